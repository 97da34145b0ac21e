"""Credit gate: self-engagement, duplicates, rate limiting, storage failures."""
from datetime import datetime, timedelta

from contentlynk.models.engagement import EngagementEvent, EngagementType
from contentlynk.services.anti_gaming_service import AntiGamingValidator, ReasonCode


async def _add_engagement(db_session, post, actor_id, engagement_type, **fields):
    engagement = EngagementEvent(
        post_id=post.id,
        actor_id=actor_id,
        engagement_type=engagement_type.value,
        **fields,
    )
    db_session.add(engagement)
    await db_session.flush()
    return engagement


class TestAntiGamingValidator:
    async def test_accepts_first_engagement(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)

        decision = await AntiGamingValidator(db_session).validate(
            post.id, fan.id, EngagementType.LIKE,
        )
        assert decision.credited is True
        assert decision.reason_code is None
        assert decision.message is None

    async def test_self_engagement(self, db_session, make_user, make_post):
        creator = await make_user()
        post = await make_post(creator)

        decision = await AntiGamingValidator(db_session).validate(
            post.id, creator.id, EngagementType.SHARE,
        )
        assert decision.credited is False
        assert decision.reason_code == ReasonCode.SELF_ENGAGEMENT
        assert decision.message

    async def test_duplicate(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        await _add_engagement(db_session, post, fan.id, EngagementType.LIKE)

        validator = AntiGamingValidator(db_session)
        again = await validator.validate(post.id, fan.id, EngagementType.LIKE)
        other_type = await validator.validate(post.id, fan.id, EngagementType.SHARE)

        assert again.reason_code == ReasonCode.DUPLICATE
        assert other_type.credited is True

    async def test_revoked_engagement_still_counts_as_duplicate(
        self, db_session, make_user, make_post,
    ):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        await _add_engagement(
            db_session, post, fan.id, EngagementType.LIKE, revoked_at=datetime.utcnow(),
        )

        decision = await AntiGamingValidator(db_session).validate(
            post.id, fan.id, EngagementType.LIKE,
        )
        assert decision.reason_code == ReasonCode.DUPLICATE

    async def test_stored_engagement_does_not_block_itself(
        self, db_session, make_user, make_post,
    ):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        engagement = await _add_engagement(db_session, post, fan.id, EngagementType.COMMENT)

        decision = await AntiGamingValidator(db_session, rate_limit=1).validate(
            post.id, fan.id, EngagementType.COMMENT,
            at=engagement.created_at, exclude_engagement_id=engagement.id,
        )
        assert decision.credited is True

    async def test_rate_limited(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        posts = [await make_post(creator) for _ in range(4)]
        for post in posts[:3]:
            await _add_engagement(db_session, post, fan.id, EngagementType.LIKE)

        validator = AntiGamingValidator(db_session, rate_limit=3, window_seconds=3600)
        decision = await validator.validate(posts[3].id, fan.id, EngagementType.LIKE)

        assert decision.credited is False
        assert decision.reason_code == ReasonCode.RATE_LIMITED

    async def test_old_engagements_fall_out_of_window(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        posts = [await make_post(creator) for _ in range(4)]
        two_hours_ago = datetime.utcnow() - timedelta(hours=2)
        for post in posts[:3]:
            await _add_engagement(
                db_session, post, fan.id, EngagementType.LIKE, created_at=two_hours_ago,
            )

        validator = AntiGamingValidator(db_session, rate_limit=3, window_seconds=3600)
        decision = await validator.validate(posts[3].id, fan.id, EngagementType.LIKE)

        assert decision.credited is True

    async def test_views_are_not_creditable(self, db_session, make_user, make_post):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)

        decision = await AntiGamingValidator(db_session).validate(
            post.id, fan.id, EngagementType.VIEW,
        )
        assert decision.reason_code == ReasonCode.NOT_CREDITABLE

    async def test_missing_post(self, db_session, make_user):
        fan = await make_user()

        decision = await AntiGamingValidator(db_session).validate(
            9999, fan.id, EngagementType.LIKE,
        )
        assert decision.reason_code == ReasonCode.POST_NOT_FOUND

    async def test_storage_failure_is_infra_error(
        self, db_session, make_user, make_post, fail_next_execute,
    ):
        creator = await make_user()
        fan = await make_user()
        post = await make_post(creator)
        validator = AntiGamingValidator(db_session)

        fail_next_execute()
        decision = await validator.validate(post.id, fan.id, EngagementType.LIKE)

        assert decision.credited is False
        assert decision.reason_code == ReasonCode.INFRA_ERROR
        # Only the check's savepoint was rolled back; the session keeps working
        assert not db_session.in_nested_transaction()
        retry = await validator.validate(post.id, fan.id, EngagementType.LIKE)
        assert retry.credited is True
