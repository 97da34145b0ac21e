"""
Anti-Gaming Validator

Decides whether an engagement may be credited toward earnings. Policy, in order:
1. SELF_ENGAGEMENT: actor owns the post
2. DUPLICATE: actor already has a credited engagement of this type on the post
3. RATE_LIMITED: actor hit the credited-engagement ceiling in the rolling window
4. credited

Rejections are normal return values. Storage errors come back as INFRA_ERROR so
the user's action still goes through, just without a payout.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from contentlynk.config import settings
from contentlynk.models.engagement import EngagementEvent, EngagementType, CREDITABLE_TYPES
from contentlynk.models.post import Post

logger = logging.getLogger(__name__)


class ReasonCode(str, Enum):
    SELF_ENGAGEMENT = 'self_engagement'
    DUPLICATE = 'duplicate'
    RATE_LIMITED = 'rate_limited'
    INFRA_ERROR = 'infra_error'
    POST_NOT_FOUND = 'post_not_found'
    NOT_CREDITABLE = 'not_creditable'


REASON_MESSAGES = {
    ReasonCode.SELF_ENGAGEMENT: 'Engagement on your own post does not earn.',
    ReasonCode.DUPLICATE: 'This engagement was already credited.',
    ReasonCode.RATE_LIMITED: 'Too many engagements in a short time; this one was not credited.',
    ReasonCode.INFRA_ERROR: 'Earnings could not be checked right now; not credited.',
    ReasonCode.POST_NOT_FOUND: 'Post not found; not credited.',
    ReasonCode.NOT_CREDITABLE: 'Views are counted but do not earn.',
}


@dataclass(frozen=True)
class GateDecision:
    credited: bool
    reason_code: ReasonCode | None = None

    @property
    def message(self) -> str | None:
        return REASON_MESSAGES.get(self.reason_code) if self.reason_code else None


ACCEPTED = GateDecision(credited=True)


class AntiGamingValidator:
    """Credit gate for LIKE / COMMENT / SHARE engagements."""

    def __init__(
        self,
        db: AsyncSession,
        rate_limit: int | None = None,
        window_seconds: int | None = None,
    ):
        self.db = db
        self.rate_limit = settings.engagement_rate_limit if rate_limit is None else rate_limit
        self.window = timedelta(
            seconds=window_seconds or settings.engagement_rate_window_seconds
        )

    async def validate(
        self,
        post_id: int,
        actor_id: int,
        engagement_type: EngagementType,
        at: datetime | None = None,
        exclude_engagement_id: int | None = None,
    ) -> GateDecision:
        """Gate an engagement.

        `at` anchors the rate window (defaults to now) so a replay of an old
        engagement is judged by when it happened. `exclude_engagement_id`
        keeps an already-stored engagement from counting against itself.

        The checks run in a savepoint: a failed statement is rolled back on
        its own and the caller's transaction stays usable.
        """
        if engagement_type not in CREDITABLE_TYPES:
            return GateDecision(False, ReasonCode.NOT_CREDITABLE)

        try:
            async with self.db.begin_nested():
                return await self._evaluate(
                    post_id, actor_id, engagement_type, at, exclude_engagement_id,
                )
        except SQLAlchemyError as e:
            logger.error(
                'Anti-gaming check failed for post %s actor %s: %s', post_id, actor_id, e,
                exc_info=True,
            )
            return GateDecision(False, ReasonCode.INFRA_ERROR)

    async def _evaluate(
        self,
        post_id: int,
        actor_id: int,
        engagement_type: EngagementType,
        at: datetime | None,
        exclude_engagement_id: int | None,
    ) -> GateDecision:
        post = await self.db.get(Post, post_id)
        if not post:
            return GateDecision(False, ReasonCode.POST_NOT_FOUND)

        if post.author_id == actor_id:
            logger.debug('Self engagement by %s on post %s', actor_id, post_id)
            return GateDecision(False, ReasonCode.SELF_ENGAGEMENT)

        if await self._has_credited(post_id, actor_id, engagement_type, exclude_engagement_id):
            logger.debug(
                'Duplicate %s by %s on post %s', engagement_type.value, actor_id, post_id,
            )
            return GateDecision(False, ReasonCode.DUPLICATE)

        recent = await self._recent_credited_count(
            actor_id, at or datetime.utcnow(), exclude_engagement_id,
        )
        if recent >= self.rate_limit:
            logger.info(
                'Rate limited actor %s: %d credited engagements in %s',
                actor_id, recent, self.window,
            )
            return GateDecision(False, ReasonCode.RATE_LIMITED)

        return ACCEPTED

    async def _has_credited(
        self,
        post_id: int,
        actor_id: int,
        engagement_type: EngagementType,
        exclude_engagement_id: int | None,
    ) -> bool:
        query = select(EngagementEvent.id).where(
            EngagementEvent.post_id == post_id,
            EngagementEvent.actor_id == actor_id,
            EngagementEvent.engagement_type == engagement_type.value,
        )
        if exclude_engagement_id is not None:
            query = query.where(EngagementEvent.id != exclude_engagement_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar() is not None

    async def _recent_credited_count(
        self,
        actor_id: int,
        at: datetime,
        exclude_engagement_id: int | None,
    ) -> int:
        query = select(func.count(EngagementEvent.id)).where(
            EngagementEvent.actor_id == actor_id,
            EngagementEvent.created_at >= at - self.window,
            EngagementEvent.created_at <= at,
        )
        if exclude_engagement_id is not None:
            query = query.where(EngagementEvent.id != exclude_engagement_id)
        result = await self.db.execute(query)
        return result.scalar() or 0
