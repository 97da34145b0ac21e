from datetime import datetime
from pydantic import BaseModel, Field


class CommentCreate(BaseModel):
    """Comment body. Only its length matters to earnings."""
    content: str = Field(..., min_length=1, max_length=10000)


class ViewCreate(BaseModel):
    user_id: int | None = None


class EarningsOutcome(BaseModel):
    """Result of the earnings attempt attached to an engagement."""
    success: bool
    final_earnings: float | None = None
    mode: str | None = None
    message: str | None = None
    replayed: bool = False


class EngagementResponse(BaseModel):
    """The action always succeeds; `credited` says whether it counted for earnings."""
    success: bool = True
    post_id: int
    engagement_type: str
    credited: bool
    count: int
    reason_code: str | None = None
    message: str | None = None
    earnings: EarningsOutcome | None = None


class RevokeResponse(BaseModel):
    success: bool = True
    post_id: int
    engagement_type: str
    revoked: bool
    count: int


class ConsumptionCreate(BaseModel):
    """Client-reported consumption. Fractions are 0..1, time in seconds."""
    session_id: str | None = Field(None, max_length=100)
    user_id: int | None = None
    scroll_depth: float | None = Field(None, ge=0, le=1)
    watch_percentage: float | None = Field(None, ge=0, le=1)
    listen_percentage: float | None = Field(None, ge=0, le=1)
    time_spent: float | None = Field(None, ge=0)
    completed: bool = False


class ConsumptionResponse(BaseModel):
    success: bool = True
    consumption_id: int
    session_id: str
    updated: bool
    scroll_depth: float | None
    watch_percentage: float | None
    listen_percentage: float | None
    time_spent: float
    completed: bool


class PostAggregatesResponse(BaseModel):
    """Derived post metrics (a cache over engagements and consumption)."""
    post_id: int
    views: int
    authenticated_views: int
    public_views: int
    likes: int
    comments: int
    shares: int
    average_scroll_depth: float | None
    average_watch_percentage: float | None
    total_completions: int
    created_at: datetime
