"""Engagement ingress, revocation, views and counter rebuilds."""
import pytest
from sqlalchemy import select, func, update

from contentlynk.models.engagement import EngagementEvent, EngagementType, ViewLog
from contentlynk.models.ledger import EarningsRecord
from contentlynk.models.post import Post
from contentlynk.services.anti_gaming_service import AntiGamingValidator, ReasonCode
from contentlynk.services.earnings_service import EarningsProcessor, PayoutCaps
from contentlynk.services.engagement_service import EngagementService


def _service(db_session, rate_limit=None):
    validator = AntiGamingValidator(db_session, rate_limit=rate_limit)
    processor = EarningsProcessor(db_session, validator=validator, caps=PayoutCaps())
    return EngagementService(db_session, validator=validator, processor=processor)


async def _count(db_session, model, *criteria):
    result = await db_session.execute(select(func.count(model.id)).where(*criteria))
    return result.scalar()


class TestReportEngagement:
    async def test_like_is_stored_counted_and_credited(
        self, db_session, make_user, make_post,
    ):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)

        outcome = await _service(db_session).report_engagement(
            post.id, fan.id, EngagementType.LIKE,
        )

        assert outcome.credited is True
        assert outcome.count == 1
        assert outcome.earnings.success is True
        # 1 like on a short text post, STANDARD, no completion data
        assert outcome.earnings.final_earnings == pytest.approx(0.1)
        assert await _count(
            db_session, EarningsRecord, EarningsRecord.triggering_engagement_id == outcome.engagement_id,
        ) == 1

    async def test_duplicate_share_earns_once(self, db_session, make_user, make_post):
        """Sharing the same post twice counts and pays once."""
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        service = _service(db_session)

        first = await service.report_engagement(post.id, fan.id, EngagementType.SHARE)
        second = await service.report_engagement(post.id, fan.id, EngagementType.SHARE)

        assert first.credited is True
        assert second.credited is False
        assert second.reason_code == ReasonCode.DUPLICATE
        assert second.count == 1
        assert second.earnings is None
        assert await _count(db_session, EarningsRecord, EarningsRecord.post_id == post.id) == 1

        await db_session.refresh(post)
        assert post.shares_count == 1

    async def test_self_engagement_is_not_counted(self, db_session, make_user, make_post):
        creator = await make_user()
        post = await make_post(creator)

        outcome = await _service(db_session).report_engagement(
            post.id, creator.id, EngagementType.LIKE,
        )

        assert outcome.credited is False
        assert outcome.reason_code == ReasonCode.SELF_ENGAGEMENT
        assert outcome.count == 0
        assert await _count(db_session, EngagementEvent, EngagementEvent.post_id == post.id) == 0

    async def test_long_comment_weighs_more(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)

        outcome = await _service(db_session).report_engagement(
            post.id, fan.id, EngagementType.COMMENT, content_length=350,
        )

        assert outcome.credited is True
        assert outcome.count == 1
        # long comment weight 8 at 0.10 per point
        assert outcome.earnings.final_earnings == pytest.approx(0.8)

    async def test_gate_storage_failure_keeps_the_transaction(
        self, db_session, make_user, make_post, fail_next_execute,
    ):
        """A failed anti-gaming query leaves earlier writes and the session intact."""
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        service = _service(db_session)
        await service.report_view(post.id, fan.id)

        fail_next_execute()
        outcome = await service.report_engagement(post.id, fan.id, EngagementType.LIKE)

        assert outcome.credited is False
        assert outcome.reason_code == ReasonCode.INFRA_ERROR
        assert outcome.count == 0
        await db_session.commit()

        assert await _count(db_session, ViewLog, ViewLog.post_id == post.id) == 1
        assert await _count(db_session, EngagementEvent, EngagementEvent.post_id == post.id) == 0

        retry = await service.report_engagement(post.id, fan.id, EngagementType.LIKE)
        assert retry.credited is True
        assert retry.count == 1

    async def test_rate_limited_actor(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        posts = [await make_post(creator) for _ in range(3)]
        service = _service(db_session, rate_limit=2)

        outcomes = [
            await service.report_engagement(post.id, fan.id, EngagementType.LIKE)
            for post in posts
        ]

        assert [o.credited for o in outcomes] == [True, True, False]
        assert outcomes[2].reason_code == ReasonCode.RATE_LIMITED
        assert outcomes[2].count == 0
        assert await _count(db_session, EarningsRecord, EarningsRecord.creator_id == creator.id) == 2


class TestRevokeEngagement:
    async def test_unlike_keeps_earnings(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        service = _service(db_session)
        await service.report_engagement(post.id, fan.id, EngagementType.LIKE)

        revoked = await service.revoke_engagement(post.id, fan.id, EngagementType.LIKE)
        again = await service.revoke_engagement(post.id, fan.id, EngagementType.LIKE)

        assert revoked.revoked is True
        assert revoked.count == 0
        assert again.revoked is False
        assert again.count == 0
        assert await _count(db_session, EarningsRecord, EarningsRecord.post_id == post.id) == 1

    async def test_relike_restores_count_without_credit(
        self, db_session, make_user, make_post,
    ):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        service = _service(db_session)
        await service.report_engagement(post.id, fan.id, EngagementType.LIKE)
        await service.revoke_engagement(post.id, fan.id, EngagementType.LIKE)

        relike = await service.report_engagement(post.id, fan.id, EngagementType.LIKE)

        assert relike.credited is False
        assert relike.reason_code == ReasonCode.DUPLICATE
        assert relike.count == 1
        assert await _count(db_session, EarningsRecord, EarningsRecord.post_id == post.id) == 1

    async def test_revoke_without_engagement(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)

        outcome = await _service(db_session).revoke_engagement(
            post.id, fan.id, EngagementType.SHARE,
        )

        assert outcome.revoked is False
        assert outcome.count == 0


class TestViews:
    async def test_views_are_logged_and_counted(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        service = _service(db_session)

        first = await service.report_view(post.id, fan.id)
        second = await service.report_view(post.id)

        assert first.count == 1
        assert second.count == 2
        assert second.credited is False
        assert second.reason_code == ReasonCode.NOT_CREDITABLE

        logs = (await db_session.execute(
            select(ViewLog).where(ViewLog.post_id == post.id).order_by(ViewLog.id)
        )).scalars().all()
        assert [log.is_authenticated for log in logs] == [True, False]
        await db_session.refresh(post)
        assert (post.authenticated_views_count, post.public_views_count) == (1, 1)

    async def test_view_engagement_type_routes_to_views(
        self, db_session, make_user, make_post,
    ):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)

        outcome = await _service(db_session).report_engagement(
            post.id, fan.id, EngagementType.VIEW,
        )

        assert outcome.count == 1
        assert await _count(db_session, EarningsRecord, EarningsRecord.post_id == post.id) == 0


class TestRebuildCounters:
    async def test_rebuild_overwrites_drift(self, db_session, make_user, make_post):
        creator = await make_user()
        fans = [await make_user() for _ in range(2)]
        post = await make_post(creator)
        service = _service(db_session)
        for fan in fans:
            await service.report_engagement(post.id, fan.id, EngagementType.LIKE)
        await service.revoke_engagement(post.id, fans[0].id, EngagementType.LIKE)
        await service.report_view(post.id)
        await service.report_view(post.id, fans[1].id)

        await db_session.execute(
            update(Post)
            .where(Post.id == post.id)
            .values(likes_count=42, views_count=0, public_views_count=5, shares_count=7)
            .execution_options(synchronize_session=False)
        )

        counts = await service.rebuild_counters(post.id)

        assert counts.likes == 1
        assert (counts.views, counts.authenticated_views, counts.public_views) == (2, 1, 1)
        assert counts.shares == 0
        await db_session.refresh(post)
        assert (post.likes_count, post.views_count, post.shares_count) == (1, 2, 0)
        assert (post.authenticated_views_count, post.public_views_count) == (1, 1)
