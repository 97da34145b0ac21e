"""
Consumption Aggregator

Merges client-reported consumption samples per session and folds them into the
post-level aggregates (average scroll depth, average watch percentage, total
completions).

Merge rule (same session): percentages and time spent only move forward
(max of existing/incoming), completed is sticky and also set once the merged
percentage crosses the completion threshold. The rule is applied to new
sessions too, so merging is order independent.

Aggregates are a pure fold over every sample of the post. Running it after
every write or once over the full set gives the same result.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from contentlynk.config import settings
from contentlynk.db.database import insert_if_absent
from contentlynk.models.consumption import ConsumptionSample
from contentlynk.models.post import Post

logger = logging.getLogger(__name__)

AVERAGE_PRECISION = 6


class ConcurrentSampleUpdate(Exception):
    """Raised when a session's sample kept changing under us."""
    pass


@dataclass(frozen=True)
class SampleValues:
    """The mergeable part of a consumption sample."""
    scroll_depth: float | None = None
    watch_percentage: float | None = None
    listen_percentage: float | None = None
    time_spent: float = 0.0
    completed: bool = False

    @classmethod
    def from_row(cls, row: ConsumptionSample) -> 'SampleValues':
        return cls(
            scroll_depth=row.scroll_depth,
            watch_percentage=row.watch_percentage,
            listen_percentage=row.listen_percentage,
            time_spent=row.time_spent or 0.0,
            completed=bool(row.completed),
        )

    @property
    def max_percentage(self) -> float | None:
        values = [
            v for v in (self.scroll_depth, self.watch_percentage, self.listen_percentage)
            if v is not None
        ]
        return max(values) if values else None


@dataclass(frozen=True)
class ConsumptionAggregates:
    average_scroll_depth: float | None
    average_watch_percentage: float | None
    total_completions: int
    sample_count: int


@dataclass
class RecordResult:
    sample: ConsumptionSample
    created: bool


def _fraction(value: float | None) -> float | None:
    if value is None:
        return None
    return max(0.0, min(1.0, float(value)))


def _max_optional(a: float | None, b: float | None) -> float | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def crosses_threshold(values: SampleValues, threshold: float) -> bool:
    pct = values.max_percentage
    return pct is not None and pct >= threshold


def normalize_sample(values: SampleValues, threshold: float) -> SampleValues:
    """Clamp fractions to [0, 1] and apply the completion threshold."""
    clamped = SampleValues(
        scroll_depth=_fraction(values.scroll_depth),
        watch_percentage=_fraction(values.watch_percentage),
        listen_percentage=_fraction(values.listen_percentage),
        time_spent=max(0.0, float(values.time_spent or 0.0)),
        completed=bool(values.completed),
    )
    if clamped.completed or not crosses_threshold(clamped, threshold):
        return clamped
    return SampleValues(
        scroll_depth=clamped.scroll_depth,
        watch_percentage=clamped.watch_percentage,
        listen_percentage=clamped.listen_percentage,
        time_spent=clamped.time_spent,
        completed=True,
    )


def merge_samples(
    existing: SampleValues, incoming: SampleValues, threshold: float,
) -> SampleValues:
    """Forward-only merge of two samples from the same session."""
    incoming = normalize_sample(incoming, threshold)
    merged = SampleValues(
        scroll_depth=_max_optional(existing.scroll_depth, incoming.scroll_depth),
        watch_percentage=_max_optional(existing.watch_percentage, incoming.watch_percentage),
        listen_percentage=_max_optional(existing.listen_percentage, incoming.listen_percentage),
        time_spent=max(existing.time_spent, incoming.time_spent),
        completed=existing.completed or incoming.completed,
    )
    return normalize_sample(merged, threshold)


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return round(math.fsum(values) / len(values), AVERAGE_PRECISION)


def fold_samples(samples: Iterable[SampleValues]) -> ConsumptionAggregates:
    """Post aggregates from the full sample set. Means skip nulls; no data → None."""
    samples = list(samples)
    return ConsumptionAggregates(
        average_scroll_depth=_mean(
            [s.scroll_depth for s in samples if s.scroll_depth is not None]
        ),
        average_watch_percentage=_mean(
            [s.watch_percentage for s in samples if s.watch_percentage is not None]
        ),
        total_completions=sum(1 for s in samples if s.completed),
        sample_count=len(samples),
    )


class ConsumptionAggregator:
    """Records per-session samples and keeps the post aggregates in sync."""

    def __init__(
        self,
        db: AsyncSession,
        threshold: float | None = None,
        max_attempts: int | None = None,
    ):
        self.db = db
        self.threshold = settings.completion_threshold if threshold is None else threshold
        self.max_attempts = max_attempts or settings.consumption_cas_attempts

    async def record(
        self,
        post_id: int,
        session_id: str,
        sample: SampleValues,
        user_id: int | None = None,
    ) -> RecordResult:
        """Create or refine this session's sample, then recompute the post aggregates."""
        incoming = normalize_sample(sample, self.threshold)

        for attempt in range(self.max_attempts):
            existing = await self._get_sample(post_id, session_id)

            if existing is None:
                now = datetime.utcnow()
                inserted = await insert_if_absent(
                    self.db, ConsumptionSample, ['post_id', 'session_id'],
                    {
                        'post_id': post_id,
                        'session_id': session_id,
                        'user_id': user_id,
                        'scroll_depth': incoming.scroll_depth,
                        'watch_percentage': incoming.watch_percentage,
                        'listen_percentage': incoming.listen_percentage,
                        'time_spent': incoming.time_spent,
                        'completed': incoming.completed,
                        'version': 1,
                        'created_at': now,
                        'observed_at': now,
                    },
                )
                if inserted:
                    row = await self._get_sample(post_id, session_id)
                    await self.recompute(post_id)
                    return RecordResult(sample=row, created=True)
                # Another request created the session first; merge into it
                continue

            merged = merge_samples(SampleValues.from_row(existing), incoming, self.threshold)
            result = await self.db.execute(
                update(ConsumptionSample)
                .where(
                    ConsumptionSample.id == existing.id,
                    ConsumptionSample.version == existing.version,
                )
                .values(
                    scroll_depth=merged.scroll_depth,
                    watch_percentage=merged.watch_percentage,
                    listen_percentage=merged.listen_percentage,
                    time_spent=merged.time_spent,
                    completed=merged.completed,
                    user_id=existing.user_id if existing.user_id is not None else user_id,
                    version=existing.version + 1,
                    observed_at=datetime.utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                row = await self._get_sample(post_id, session_id)
                await self.recompute(post_id)
                return RecordResult(sample=row, created=False)

            logger.debug(
                'Sample for post %s session %s changed concurrently (attempt %d)',
                post_id, session_id, attempt + 1,
            )

        raise ConcurrentSampleUpdate(
            f'Could not merge sample for post {post_id} session {session_id} '
            f'after {self.max_attempts} attempts'
        )

    async def recompute(self, post_id: int) -> ConsumptionAggregates:
        """Fold every sample for the post and write the consumption aggregates."""
        result = await self.db.execute(
            select(ConsumptionSample)
            .where(ConsumptionSample.post_id == post_id)
            .order_by(ConsumptionSample.id)
            .execution_options(populate_existing=True)
        )
        aggregates = fold_samples(
            SampleValues.from_row(row) for row in result.scalars().all()
        )

        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(
                average_scroll_depth=aggregates.average_scroll_depth,
                average_watch_percentage=aggregates.average_watch_percentage,
                total_completions=aggregates.total_completions,
            )
            .execution_options(synchronize_session='fetch')
        )
        return aggregates

    async def _get_sample(self, post_id: int, session_id: str) -> ConsumptionSample | None:
        result = await self.db.execute(
            select(ConsumptionSample)
            .where(
                ConsumptionSample.post_id == post_id,
                ConsumptionSample.session_id == session_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
