"""
Reconciliation

Two sweeps, both safe to run any number of times:
- sweep_missing_earnings: re-process credited engagements that never got a
  ledger entry (crash, timeout, failed write). Uses the same idempotency key as
  the live path, so it can't double-credit.
- rebuild_aggregates: recompute post counters and consumption aggregates from
  the source rows. The rebuild is the source of truth and overwrites drift.
"""
import logging

from sqlalchemy import select, update, and_, union
from sqlalchemy.ext.asyncio import AsyncSession

from contentlynk.models.consumption import ConsumptionSample
from contentlynk.models.engagement import EngagementEvent, ViewLog, CREDITABLE_TYPES
from contentlynk.models.ledger import EarningsRecord
from contentlynk.models.post import Post
from contentlynk.services.anti_gaming_service import ReasonCode
from contentlynk.services.consumption_service import ConsumptionAggregator
from contentlynk.services.earnings_service import EarningsProcessor
from contentlynk.services.engagement_service import EngagementService

logger = logging.getLogger(__name__)

# Gate outcomes worth retrying on a later sweep; anything else is final
RETRYABLE_REASONS = {ReasonCode.INFRA_ERROR}


class ReconciliationService:
    """Repairs missed earnings and drifted aggregates."""

    def __init__(self, db: AsyncSession, processor: EarningsProcessor | None = None):
        self.db = db
        self.processor = processor or EarningsProcessor(db)

    async def sweep_missing_earnings(self, limit: int = 500) -> dict:
        """Process credited, unrevoked engagements that have no earnings record."""
        result = await self.db.execute(
            select(EngagementEvent, Post.author_id)
            .join(Post, Post.id == EngagementEvent.post_id)
            .outerjoin(
                EarningsRecord,
                and_(
                    EarningsRecord.post_id == EngagementEvent.post_id,
                    EarningsRecord.triggering_engagement_id == EngagementEvent.id,
                ),
            )
            .where(
                EarningsRecord.id.is_(None),
                EngagementEvent.revoked_at.is_(None),
                EngagementEvent.uncredited_reason.is_(None),
                EngagementEvent.engagement_type.in_([t.value for t in CREDITABLE_TYPES]),
            )
            .order_by(EngagementEvent.created_at)
            .limit(limit)
        )
        rows = result.all()

        credited = 0
        skipped = 0
        failed = 0
        total_amount = 0.0
        for engagement, author_id in rows:
            outcome = await self.processor.process(engagement.post_id, author_id, engagement)
            if outcome.final_earnings is not None:
                credited += 1
                total_amount += outcome.final_earnings
            elif outcome.reason_code is not None:
                skipped += 1
                if outcome.reason_code not in RETRYABLE_REASONS:
                    await self._mark_uncredited(engagement.id, outcome.reason_code)
            else:
                failed += 1

        summary = {
            'candidates': len(rows),
            'credited': credited,
            'skipped': skipped,
            'failed': failed,
            'amount': round(total_amount, 4),
        }
        logger.info('Earnings sweep: %s', summary)
        return summary

    async def _mark_uncredited(self, engagement_id: int, reason: ReasonCode):
        """Take a row the gate will never credit out of future sweeps."""
        await self.db.execute(
            update(EngagementEvent)
            .where(EngagementEvent.id == engagement_id)
            .values(uncredited_reason=reason.value)
            .execution_options(synchronize_session=False)
        )
        logger.info('Engagement %s will not be credited: %s', engagement_id, reason.value)

    async def rebuild_aggregates(self, post_ids: list[int] | None = None) -> dict:
        """Recompute counters + consumption aggregates (all posts with activity by default)."""
        if post_ids is None:
            post_ids = await self._active_post_ids()

        aggregator = ConsumptionAggregator(self.db)
        engagements = EngagementService(self.db, processor=self.processor)

        corrected = 0
        for post_id in post_ids:
            before = await self.db.get(Post, post_id, populate_existing=True)
            if not before:
                continue
            snapshot = _aggregate_snapshot(before)

            await engagements.rebuild_counters(post_id)
            await aggregator.recompute(post_id)

            after = await self.db.get(Post, post_id, populate_existing=True)
            if _aggregate_snapshot(after) != snapshot:
                corrected += 1
                logger.info(
                    'Post %s aggregates drifted: %s -> %s',
                    post_id, snapshot, _aggregate_snapshot(after),
                )

        summary = {'posts': len(post_ids), 'corrected': corrected}
        logger.info('Aggregate rebuild: %s', summary)
        return summary

    async def _active_post_ids(self) -> list[int]:
        result = await self.db.execute(
            union(
                select(EngagementEvent.post_id),
                select(ConsumptionSample.post_id),
                select(ViewLog.post_id),
            )
        )
        return sorted(result.scalars().all())


def _aggregate_snapshot(post: Post) -> tuple:
    return (
        post.views_count,
        post.authenticated_views_count,
        post.public_views_count,
        post.likes_count,
        post.comments_count,
        post.shares_count,
        post.average_scroll_depth,
        post.average_watch_percentage,
        post.total_completions,
    )
