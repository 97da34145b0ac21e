from contentlynk.schemas.post import (
    CommentCreate,
    ViewCreate,
    EngagementResponse,
    RevokeResponse,
    ConsumptionCreate,
    ConsumptionResponse,
    PostAggregatesResponse,
)
from contentlynk.schemas.ledger import (
    EarningsEntry,
    CreatorEarningsResponse,
    PostEarningsResponse,
    EstimateRequest,
    EstimateResponse,
)

__all__ = [
    'CommentCreate',
    'ViewCreate',
    'EngagementResponse',
    'RevokeResponse',
    'ConsumptionCreate',
    'ConsumptionResponse',
    'PostAggregatesResponse',
    'EarningsEntry',
    'CreatorEarningsResponse',
    'PostEarningsResponse',
    'EstimateRequest',
    'EstimateResponse',
]
