"""
Multiplier Resolver

Four independent, total multipliers applied to the quality score:
- content type: content kind + its measurement (chars / minutes / seconds)
- completion: aggregated completion rate of the post
- tier: creator revenue share relative to STANDARD
- bonus: eligible pass holders earn 1.5×

The tables below are the single source of the thresholds. The estimator
(routes/earnings.py) imports them, so previews and payouts can't disagree.
"""
import math

from contentlynk.models.post import Post, ContentKind
from contentlynk.models.user import CreatorTier


# ── Content type ─────────────────────────────────────────────────────────────
# (exclusive upper bound, multiplier); the first bucket is the fallback.

CONTENT_TYPE_BUCKETS = {
    # characters
    ContentKind.TEXT: [
        (1000, 1.0),
        (5000, 1.2),
        (math.inf, 1.3),
    ],
    # reading minutes
    ContentKind.ARTICLE: [
        (5, 1.2),
        (10, 1.3),
        (math.inf, 1.5),
    ],
    # seconds
    ContentKind.VIDEO: [
        (5 * 60, 1.1),
        (15 * 60, 1.3),
        (math.inf, 1.5),
    ],
    # flat, length doesn't matter
    ContentKind.SHORT_VIDEO: [
        (math.inf, 1.0),
    ],
}


# ── Completion ───────────────────────────────────────────────────────────────
# (inclusive lower bound, multiplier), checked highest first

COMPLETION_BANDS = [
    (0.85, 1.3),
    (0.70, 1.15),
    (0.50, 1.0),
    (0.0, 0.85),
]
COMPLETION_NEUTRAL = 1.0


# ── Tier ─────────────────────────────────────────────────────────────────────

TIER_SHARE = {
    CreatorTier.STANDARD: 0.55,
    CreatorTier.SILVER: 0.60,
    CreatorTier.GOLD: 0.65,
    CreatorTier.PLATINUM: 0.70,
    CreatorTier.GENESIS: 0.75,
}


# ── Bonus ────────────────────────────────────────────────────────────────────

BONUS_PASS_MULTIPLIER = 1.5
BONUS_NONE = 1.0


def is_measurable(measurement) -> bool:
    """True for a finite, non-negative number."""
    if isinstance(measurement, bool) or not isinstance(measurement, (int, float)):
        return False
    return math.isfinite(measurement) and measurement >= 0


def needs_measurement(kind: ContentKind) -> bool:
    """Whether the multiplier for this kind depends on its measurement."""
    return len(CONTENT_TYPE_BUCKETS[kind]) > 1


def content_type_multiplier(kind: ContentKind, measurement: float | None) -> float:
    """Bucket the measurement for this kind. Unmeasurable → short bucket."""
    buckets = CONTENT_TYPE_BUCKETS[kind]
    if not is_measurable(measurement):
        return buckets[0][1]
    for upper, multiplier in buckets:
        if measurement < upper:
            return multiplier
    return buckets[-1][1]


def completion_multiplier(rate: float | None) -> float:
    """Completion band multiplier. No data yet → neutral 1.0."""
    if rate is None or not is_measurable(rate):
        return COMPLETION_NEUTRAL
    for lower, multiplier in COMPLETION_BANDS:
        if rate >= lower:
            return multiplier
    return COMPLETION_BANDS[-1][1]


def tier_multiplier(tier: CreatorTier) -> float:
    """Tier share relative to STANDARD (≥ 1 for every tier)."""
    return TIER_SHARE[tier] / TIER_SHARE[CreatorTier.STANDARD]


def bonus_multiplier(has_eligible_pass: bool) -> float:
    return BONUS_PASS_MULTIPLIER if has_eligible_pass else BONUS_NONE


def parse_content_kind(value: str | None) -> ContentKind | None:
    try:
        return ContentKind(value)
    except ValueError:
        return None


def parse_tier(value: str | None) -> CreatorTier | None:
    try:
        return CreatorTier(value)
    except ValueError:
        return None


def content_measurement(post: Post, kind: ContentKind) -> float | None:
    """The measurement the content type multiplier buckets for this post."""
    if kind == ContentKind.TEXT:
        return len(post.body) if post.body is not None else None
    if kind == ContentKind.ARTICLE:
        return post.reading_time_minutes
    return post.duration_seconds


def completion_rate(post: Post, kind: ContentKind) -> float | None:
    """Watch percentage for video, scroll depth for text/articles."""
    if kind in (ContentKind.VIDEO, ContentKind.SHORT_VIDEO):
        return post.average_watch_percentage
    return post.average_scroll_depth
