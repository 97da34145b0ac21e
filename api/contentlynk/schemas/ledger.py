from datetime import datetime
from pydantic import BaseModel, Field

from contentlynk.models.post import ContentKind
from contentlynk.models.user import CreatorTier


class EarningsEntry(BaseModel):
    """Single earnings ledger entry."""
    id: int
    post_id: int
    creator_id: int
    triggering_engagement_id: int
    amount: float
    mode: str
    quality_score: int
    base_rate: float
    content_multiplier: float
    completion_multiplier: float
    tier_multiplier: float
    bonus_multiplier: float
    uncapped_amount: float
    cap_applied: bool
    computed_at: datetime

    class Config:
        from_attributes = True


class CreatorEarningsResponse(BaseModel):
    creator_id: int
    total_earned: float
    records: list[EarningsEntry]


class PostEarningsResponse(BaseModel):
    post_id: int
    total_earned: float
    records: list[EarningsEntry]


class CommentCounts(BaseModel):
    short: int = Field(0, ge=0)
    medium: int = Field(0, ge=0)
    long: int = Field(0, ge=0)


class EstimateRequest(BaseModel):
    """Inputs for the prospective-creator earnings calculator."""
    tier: CreatorTier = CreatorTier.STANDARD
    content_kind: ContentKind = ContentKind.TEXT
    # chars for TEXT, minutes for ARTICLE, seconds for VIDEO
    measurement: float | None = Field(None, ge=0)
    completion_rate: float | None = Field(None, ge=0, le=1)
    likes: int = Field(0, ge=0)
    comments: CommentCounts = CommentCounts()
    shares: int = Field(0, ge=0)
    has_bonus_pass: bool = False


class EstimateResponse(BaseModel):
    quality_score: int
    base_earnings: float
    content_multiplier: float
    completion_multiplier: float
    tier_multiplier: float
    bonus_multiplier: float
    total_usd: float
    total_tokens: float
    mode: str
