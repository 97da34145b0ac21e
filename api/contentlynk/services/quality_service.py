"""Quality Score: weighted engagement count, the base unit of earnings.

Formula:
  score = likes × 1 + short_comments × 2 + medium_comments × 5
          + long_comments × 8 + shares × 20

Comments are bucketed by character length: short < 50, medium 50–200, long > 200.
"""
from typing import Iterable, NamedTuple

# Comment length buckets (characters)
SHORT_COMMENT_MAX = 50     # short: length < 50
LONG_COMMENT_MIN = 200     # long: length > 200

# Weights
W_LIKE = 1
W_SHORT_COMMENT = 2
W_MEDIUM_COMMENT = 5
W_LONG_COMMENT = 8
W_SHARE = 20


class CommentBuckets(NamedTuple):
    short: int = 0
    medium: int = 0
    long: int = 0

    @property
    def total(self) -> int:
        return self.short + self.medium + self.long


def comment_bucket(length: int | None) -> str:
    """'short' | 'medium' | 'long'. Unknown length counts as short."""
    if length is None or length < SHORT_COMMENT_MAX:
        return 'short'
    if length > LONG_COMMENT_MIN:
        return 'long'
    return 'medium'


def bucket_comments(lengths: Iterable[int | None]) -> CommentBuckets:
    """Bucket raw comment lengths into short/medium/long counts."""
    counts = {'short': 0, 'medium': 0, 'long': 0}
    for length in lengths:
        counts[comment_bucket(length)] += 1
    return CommentBuckets(**counts)


def quality_score(likes: int, comments: CommentBuckets, shares: int) -> int:
    """Weighted quality score. Never negative, non-decreasing in every input."""
    return (
        max(0, likes) * W_LIKE
        + max(0, comments.short) * W_SHORT_COMMENT
        + max(0, comments.medium) * W_MEDIUM_COMMENT
        + max(0, comments.long) * W_LONG_COMMENT
        + max(0, shares) * W_SHARE
    )
