"""
Earnings Processor

Turns one credited engagement into at most one ledger entry:

  final = base_rate × quality_score × content × completion × tier × bonus

Steps: gate → replay check → gather inputs → compute → cap (BETA only) →
insert-if-absent on (post_id, triggering_engagement_id).

Earnings never break the action that triggered them. Gating rejections are
business outcomes; any failure while computing or writing is logged and comes
back as "not credited this time" for the reconciliation sweep to retry.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from contentlynk.config import settings
from contentlynk.db.database import insert_if_absent
from contentlynk.models.engagement import EngagementEvent, EngagementType
from contentlynk.models.ledger import EarningsRecord, EarningsMode
from contentlynk.models.post import Post, ContentKind
from contentlynk.models.user import User, CreatorTier
from contentlynk.services.anti_gaming_service import AntiGamingValidator, ReasonCode
from contentlynk.services.multiplier_service import (
    content_type_multiplier, completion_multiplier, tier_multiplier, bonus_multiplier,
    content_measurement, completion_rate, is_measurable, needs_measurement,
    parse_content_kind, parse_tier,
)
from contentlynk.services.quality_service import CommentBuckets, bucket_comments, quality_score

logger = logging.getLogger(__name__)

AMOUNT_PRECISION = 4

NOT_CREDITED_MESSAGE = 'Earnings not credited this time; they will be retried later.'


class PlatformMode(str, Enum):
    BETA = 'BETA'
    NATURAL = 'NATURAL'


@dataclass(frozen=True)
class PayoutCaps:
    """USD caps. None = unlimited."""
    per_post: float | None = None
    daily: float | None = None
    grace_period_days: int = 0


def caps_for_mode(mode: PlatformMode) -> PayoutCaps:
    """BETA enforces per-post and daily caps, NATURAL only monitors."""
    if mode == PlatformMode.BETA:
        return PayoutCaps(
            per_post=settings.beta_per_post_cap,
            daily=settings.beta_daily_cap,
            grace_period_days=settings.beta_grace_period_days,
        )
    return PayoutCaps()


def current_platform_mode() -> PlatformMode:
    try:
        return PlatformMode(settings.platform_mode.upper())
    except ValueError:
        # Unknown value: stay on the safe side
        return PlatformMode.BETA


# ── Pure computation ─────────────────────────────────────────────────────────

@dataclass
class EarningsBreakdown:
    quality_score: int
    base_rate: float
    content_multiplier: float
    completion_multiplier: float
    tier_multiplier: float
    bonus_multiplier: float
    amount: float
    fallbacks: list[str] = field(default_factory=list)

    @property
    def mode(self) -> EarningsMode:
        return EarningsMode.ESTIMATED if self.fallbacks else EarningsMode.LIVE


def compute_earnings(
    base_rate: float,
    likes: int,
    comments: CommentBuckets,
    shares: int,
    content_kind: ContentKind | None,
    measurement: float | None,
    rate: float | None,
    tier: CreatorTier | None,
    has_bonus_pass: bool | None,
) -> EarningsBreakdown:
    """Compose the quality score and the four multipliers.

    Unresolvable inputs fall back to the conservative default and are listed
    in `fallbacks`, which makes the result ESTIMATED.
    """
    fallbacks = []

    if content_kind is None:
        content_kind = ContentKind.TEXT
        fallbacks.append('content_kind')
    if needs_measurement(content_kind) and not is_measurable(measurement):
        fallbacks.append('content_measurement')
    if tier is None:
        tier = CreatorTier.STANDARD
        fallbacks.append('tier')
    if has_bonus_pass is None:
        has_bonus_pass = False
        fallbacks.append('bonus_pass')

    score = quality_score(likes, comments, shares)
    m_content = content_type_multiplier(content_kind, measurement)
    m_completion = completion_multiplier(rate)
    m_tier = tier_multiplier(tier)
    m_bonus = bonus_multiplier(has_bonus_pass)

    amount = base_rate * score * m_content * m_completion * m_tier * m_bonus

    return EarningsBreakdown(
        quality_score=score,
        base_rate=base_rate,
        content_multiplier=m_content,
        completion_multiplier=m_completion,
        tier_multiplier=m_tier,
        bonus_multiplier=m_bonus,
        amount=round(amount, AMOUNT_PRECISION),
        fallbacks=fallbacks,
    )


# ── Tier / bonus source ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class CreatorStanding:
    """None means unknown; the processor falls back and flags ESTIMATED."""
    tier: CreatorTier | None = None
    has_bonus_pass: bool | None = None


class CreatorStandingSource:
    """Tier and bonus-pass lookup. Maintained by account management, possibly stale."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_standing(self, creator_id: int) -> CreatorStanding:
        user = await self.db.get(User, creator_id)
        if not user:
            return CreatorStanding()
        return CreatorStanding(
            tier=parse_tier(user.tier),
            has_bonus_pass=user.has_bonus_pass,
        )


# ── Orchestrator ─────────────────────────────────────────────────────────────

@dataclass
class ProcessResult:
    success: bool
    final_earnings: float | None = None
    mode: EarningsMode | None = None
    message: str | None = None
    reason_code: ReasonCode | None = None
    record_id: int | None = None
    replayed: bool = False


class EarningsProcessor:
    """Computes and records the payout for one triggering engagement."""

    def __init__(
        self,
        db: AsyncSession,
        validator: AntiGamingValidator | None = None,
        standing_source: CreatorStandingSource | None = None,
        base_rate: float | None = None,
        caps: PayoutCaps | None = None,
    ):
        self.db = db
        self.validator = validator or AntiGamingValidator(db)
        self.standing_source = standing_source or CreatorStandingSource(db)
        self.base_rate = settings.earnings_base_rate if base_rate is None else base_rate
        self.caps = caps if caps is not None else caps_for_mode(current_platform_mode())

    async def process(
        self,
        post_id: int,
        creator_id: int,
        engagement: EngagementEvent,
    ) -> ProcessResult:
        """Credit `engagement` at most once. Never raises for business outcomes."""
        decision = await self.validator.validate(
            post_id,
            engagement.actor_id,
            EngagementType(engagement.engagement_type),
            at=engagement.created_at,
            exclude_engagement_id=engagement.id,
        )
        if not decision.credited:
            return ProcessResult(
                success=True,
                message=decision.message,
                reason_code=decision.reason_code,
            )

        try:
            async with self.db.begin_nested():
                existing = await self._find_record(post_id, engagement.id)
                if existing:
                    return self._replayed(existing)

                breakdown = await self._compute(post_id, creator_id)
                amount, cap_applied = await self._apply_caps(
                    post_id, creator_id, breakdown.amount,
                )
                record, inserted = await self._persist(
                    post_id, creator_id, engagement.id, breakdown, amount, cap_applied,
                )
        except Exception:
            logger.exception(
                'Earnings computation failed for post %s engagement %s',
                post_id, engagement.id,
            )
            return ProcessResult(success=True, message=NOT_CREDITED_MESSAGE)

        if not inserted:
            # Lost the insert race; the winner's row is authoritative
            return self._replayed(record)

        if breakdown.fallbacks:
            logger.warning(
                'Post %s earnings estimated; fell back on %s',
                post_id, ', '.join(breakdown.fallbacks),
            )

        message = None
        if cap_applied:
            message = (
                f'Earnings capped at ${amount:.2f} '
                f'(uncapped ${breakdown.amount:.2f}) under {current_platform_mode().value} limits.'
            )
        return ProcessResult(
            success=True,
            final_earnings=record.amount,
            mode=EarningsMode(record.mode),
            message=message,
            record_id=record.id,
        )

    async def _find_record(self, post_id: int, engagement_id: int) -> EarningsRecord | None:
        result = await self.db.execute(
            select(EarningsRecord).where(
                EarningsRecord.post_id == post_id,
                EarningsRecord.triggering_engagement_id == engagement_id,
            )
        )
        return result.scalar_one_or_none()

    def _replayed(self, record: EarningsRecord) -> ProcessResult:
        return ProcessResult(
            success=True,
            final_earnings=record.amount,
            mode=EarningsMode(record.mode),
            message='Already credited.',
            record_id=record.id,
            replayed=True,
        )

    async def _compute(self, post_id: int, creator_id: int) -> EarningsBreakdown:
        post = await self.db.get(Post, post_id, populate_existing=True)
        if not post:
            raise LookupError(f'Post {post_id} not found')

        comments = await self._comment_buckets(post_id)
        standing = await self._standing(creator_id)

        kind = parse_content_kind(post.content_kind)
        effective_kind = kind or ContentKind.TEXT

        return compute_earnings(
            base_rate=self.base_rate,
            likes=post.likes_count,
            comments=comments,
            shares=post.shares_count,
            content_kind=kind,
            measurement=content_measurement(post, effective_kind),
            rate=completion_rate(post, effective_kind),
            tier=standing.tier,
            has_bonus_pass=standing.has_bonus_pass,
        )

    async def _comment_buckets(self, post_id: int) -> CommentBuckets:
        result = await self.db.execute(
            select(EngagementEvent.content_length).where(
                EngagementEvent.post_id == post_id,
                EngagementEvent.engagement_type == EngagementType.COMMENT.value,
                EngagementEvent.revoked_at.is_(None),
            )
        )
        return bucket_comments(result.scalars().all())

    async def _standing(self, creator_id: int) -> CreatorStanding:
        try:
            return await self.standing_source.get_standing(creator_id)
        except Exception as e:
            logger.warning('Tier/bonus lookup failed for creator %s: %s', creator_id, e)
            return CreatorStanding()

    async def _apply_caps(
        self, post_id: int, creator_id: int, amount: float,
    ) -> tuple[float, bool]:
        """Clamp to the remaining per-post / daily headroom. Returns (amount, capped)."""
        allowed = amount

        if self.caps.per_post is not None:
            post_total = await self._sum_earnings(EarningsRecord.post_id == post_id)
            allowed = min(allowed, max(0.0, self.caps.per_post - post_total))

        if self.caps.daily is not None and await self._past_grace_period(creator_id):
            day_start = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
            daily_total = await self._sum_earnings(
                EarningsRecord.creator_id == creator_id,
                EarningsRecord.computed_at >= day_start,
            )
            allowed = min(allowed, max(0.0, self.caps.daily - daily_total))

        allowed = round(allowed, AMOUNT_PRECISION)
        capped = allowed < amount
        if capped:
            logger.warning(
                'Post %s payout capped: %.4f -> %.4f (creator %s)',
                post_id, amount, allowed, creator_id,
            )
        return allowed, capped

    async def _sum_earnings(self, *criteria) -> float:
        result = await self.db.execute(
            select(func.coalesce(func.sum(EarningsRecord.amount), 0.0)).where(*criteria)
        )
        return float(result.scalar() or 0.0)

    async def _past_grace_period(self, creator_id: int) -> bool:
        creator = await self.db.get(User, creator_id)
        if not creator or not creator.created_at:
            return True
        grace = timedelta(days=self.caps.grace_period_days)
        return datetime.utcnow() - creator.created_at >= grace

    async def _persist(
        self,
        post_id: int,
        creator_id: int,
        engagement_id: int,
        breakdown: EarningsBreakdown,
        amount: float,
        cap_applied: bool,
    ) -> tuple[EarningsRecord, bool]:
        inserted = await insert_if_absent(
            self.db, EarningsRecord, ['post_id', 'triggering_engagement_id'],
            {
                'post_id': post_id,
                'creator_id': creator_id,
                'triggering_engagement_id': engagement_id,
                'amount': amount,
                'mode': breakdown.mode.value,
                'quality_score': breakdown.quality_score,
                'base_rate': breakdown.base_rate,
                'content_multiplier': breakdown.content_multiplier,
                'completion_multiplier': breakdown.completion_multiplier,
                'tier_multiplier': breakdown.tier_multiplier,
                'bonus_multiplier': breakdown.bonus_multiplier,
                'uncapped_amount': breakdown.amount,
                'cap_applied': cap_applied,
                'computed_at': datetime.utcnow(),
            },
        )
        if not inserted:
            logger.info(
                'Earnings for post %s engagement %s already recorded by a concurrent attempt',
                post_id, engagement_id,
            )
        record = await self._find_record(post_id, engagement_id)
        if record is None:
            raise RuntimeError(
                f'Earnings record for post {post_id} engagement {engagement_id} missing after insert'
            )
        return record, inserted
