"""Engagement ingress / revocation.

Accepted engagements are stored (one row per post/actor/type), bump the post
counter and trigger earnings. Rejected ones leave the counters alone, but the
user's action itself always succeeds. Views are logged and counted on a
best-effort basis; the rebuild sweep repairs the counter from view_logs.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update, func, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from contentlynk.db.database import insert_if_absent
from contentlynk.models.engagement import EngagementEvent, EngagementType, ViewLog
from contentlynk.models.post import Post
from contentlynk.services.anti_gaming_service import (
    AntiGamingValidator, GateDecision, ReasonCode,
)
from contentlynk.services.earnings_service import EarningsProcessor, ProcessResult

logger = logging.getLogger(__name__)

COUNTER_COLUMNS = {
    EngagementType.LIKE: Post.likes_count,
    EngagementType.COMMENT: Post.comments_count,
    EngagementType.SHARE: Post.shares_count,
    EngagementType.VIEW: Post.views_count,
}


@dataclass
class EngagementOutcome:
    post_id: int
    engagement_type: EngagementType
    credited: bool
    count: int
    reason_code: ReasonCode | None = None
    message: str | None = None
    engagement_id: int | None = None
    earnings: ProcessResult | None = None


@dataclass
class RevokeOutcome:
    post_id: int
    engagement_type: EngagementType
    revoked: bool
    count: int


@dataclass(frozen=True)
class PostCounts:
    views: int
    likes: int
    comments: int
    shares: int
    authenticated_views: int
    public_views: int


class EngagementService:
    """Engagement accept / revoke and the counters they drive."""

    def __init__(
        self,
        db: AsyncSession,
        validator: AntiGamingValidator | None = None,
        processor: EarningsProcessor | None = None,
    ):
        self.db = db
        self.validator = validator or AntiGamingValidator(db)
        self.processor = processor or EarningsProcessor(db, validator=self.validator)

    async def report_engagement(
        self,
        post_id: int,
        actor_id: int,
        engagement_type: EngagementType,
        content_length: int | None = None,
    ) -> EngagementOutcome:
        """Gate, store and credit an engagement. Never rejects the action itself."""
        if engagement_type == EngagementType.VIEW:
            return await self.report_view(post_id, actor_id)

        decision = await self.validator.validate(post_id, actor_id, engagement_type)

        if decision.credited:
            inserted = await insert_if_absent(
                self.db, EngagementEvent, ['post_id', 'actor_id', 'engagement_type'],
                {
                    'post_id': post_id,
                    'actor_id': actor_id,
                    'engagement_type': engagement_type.value,
                    'content_length': content_length,
                    'created_at': datetime.utcnow(),
                },
            )
            if inserted:
                engagement = await self._get_engagement(post_id, actor_id, engagement_type)
                count = await self._bump(post_id, engagement_type, 1)
                post = await self.db.get(Post, post_id)
                earnings = await self.processor.process(post_id, post.author_id, engagement)
                return EngagementOutcome(
                    post_id=post_id,
                    engagement_type=engagement_type,
                    credited=True,
                    count=count,
                    message=earnings.message,
                    engagement_id=engagement.id,
                    earnings=earnings,
                )
            # A concurrent request stored the same engagement first
            decision = GateDecision(False, ReasonCode.DUPLICATE)

        if decision.reason_code == ReasonCode.DUPLICATE:
            # Re-liking after an unlike restores the count, never the credit
            count = await self._restore(post_id, actor_id, engagement_type, content_length)
        else:
            count = await self._current_count(post_id, engagement_type)

        return EngagementOutcome(
            post_id=post_id,
            engagement_type=engagement_type,
            credited=False,
            count=count,
            reason_code=decision.reason_code,
            message=decision.message,
        )

    async def revoke_engagement(
        self,
        post_id: int,
        actor_id: int,
        engagement_type: EngagementType,
    ) -> RevokeOutcome:
        """Undo an engagement's count. Issued earnings stay (payouts are final)."""
        result = await self.db.execute(
            update(EngagementEvent)
            .where(
                EngagementEvent.post_id == post_id,
                EngagementEvent.actor_id == actor_id,
                EngagementEvent.engagement_type == engagement_type.value,
                EngagementEvent.revoked_at.is_(None),
            )
            .values(revoked_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            count = await self._bump(post_id, engagement_type, -1)
            return RevokeOutcome(post_id, engagement_type, revoked=True, count=count)

        count = await self._current_count(post_id, engagement_type)
        return RevokeOutcome(post_id, engagement_type, revoked=False, count=count)

    async def report_view(self, post_id: int, user_id: int | None = None) -> EngagementOutcome:
        """Log a view. The counter bump is best-effort; view_logs is authoritative."""
        self.db.add(ViewLog(
            post_id=post_id,
            user_id=user_id,
            is_authenticated=user_id is not None,
        ))
        await self.db.flush()

        try:
            async with self.db.begin_nested():
                count = await self._bump_views(post_id, authenticated=user_id is not None)
        except SQLAlchemyError as e:
            logger.warning(
                'View counter for post %s not updated, left for reconciliation: %s', post_id, e,
            )
            count = await self._current_count(post_id, EngagementType.VIEW)

        return EngagementOutcome(
            post_id=post_id,
            engagement_type=EngagementType.VIEW,
            credited=False,
            count=count,
            reason_code=ReasonCode.NOT_CREDITABLE,
        )

    async def rebuild_counters(self, post_id: int) -> PostCounts:
        """Recount views/likes/comments/shares from the source rows."""
        result = await self.db.execute(
            select(EngagementEvent.engagement_type, func.count(EngagementEvent.id))
            .where(
                EngagementEvent.post_id == post_id,
                EngagementEvent.revoked_at.is_(None),
            )
            .group_by(EngagementEvent.engagement_type)
        )
        by_type = dict(result.all())
        views = await self.db.execute(
            select(ViewLog.is_authenticated, func.count(ViewLog.id))
            .where(ViewLog.post_id == post_id)
            .group_by(ViewLog.is_authenticated)
        )
        by_audience = dict(views.all())

        counts = PostCounts(
            views=sum(by_audience.values()),
            likes=by_type.get(EngagementType.LIKE.value, 0),
            comments=by_type.get(EngagementType.COMMENT.value, 0),
            shares=by_type.get(EngagementType.SHARE.value, 0),
            authenticated_views=by_audience.get(True, 0),
            public_views=by_audience.get(False, 0),
        )
        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(
                views_count=counts.views,
                authenticated_views_count=counts.authenticated_views,
                public_views_count=counts.public_views,
                likes_count=counts.likes,
                comments_count=counts.comments,
                shares_count=counts.shares,
            )
            .execution_options(synchronize_session=False)
        )
        return counts

    async def _get_engagement(
        self, post_id: int, actor_id: int, engagement_type: EngagementType,
    ) -> EngagementEvent | None:
        result = await self.db.execute(
            select(EngagementEvent).where(
                EngagementEvent.post_id == post_id,
                EngagementEvent.actor_id == actor_id,
                EngagementEvent.engagement_type == engagement_type.value,
            )
        )
        return result.scalar_one_or_none()

    async def _restore(
        self,
        post_id: int,
        actor_id: int,
        engagement_type: EngagementType,
        content_length: int | None,
    ) -> int:
        values = {'revoked_at': None}
        if content_length is not None:
            values['content_length'] = content_length
        result = await self.db.execute(
            update(EngagementEvent)
            .where(
                EngagementEvent.post_id == post_id,
                EngagementEvent.actor_id == actor_id,
                EngagementEvent.engagement_type == engagement_type.value,
                EngagementEvent.revoked_at.is_not(None),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return await self._bump(post_id, engagement_type, 1)
        return await self._current_count(post_id, engagement_type)

    async def _bump(self, post_id: int, engagement_type: EngagementType, delta: int) -> int:
        """Atomic counter update, floored at zero."""
        column = COUNTER_COLUMNS[engagement_type]
        if delta >= 0:
            new_value = column + delta
        else:
            new_value = case((column + delta > 0, column + delta), else_=0)
        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values({column.key: new_value})
            .execution_options(synchronize_session=False)
        )
        return await self._current_count(post_id, engagement_type)

    async def _bump_views(self, post_id: int, authenticated: bool) -> int:
        """Bump the total and the signed-in or anonymous split in one statement."""
        split = Post.authenticated_views_count if authenticated else Post.public_views_count
        await self.db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values({Post.views_count.key: Post.views_count + 1, split.key: split + 1})
            .execution_options(synchronize_session=False)
        )
        return await self._current_count(post_id, EngagementType.VIEW)

    async def _current_count(self, post_id: int, engagement_type: EngagementType) -> int:
        column = COUNTER_COLUMNS[engagement_type]
        result = await self.db.execute(select(column).where(Post.id == post_id))
        return result.scalar() or 0
