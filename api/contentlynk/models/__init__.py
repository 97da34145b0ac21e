from contentlynk.models.user import User, CreatorTier
from contentlynk.models.post import Post, ContentKind
from contentlynk.models.engagement import EngagementEvent, EngagementType, ViewLog
from contentlynk.models.consumption import ConsumptionSample
from contentlynk.models.ledger import EarningsRecord, EarningsMode

__all__ = [
    'User',
    'CreatorTier',
    'Post',
    'ContentKind',
    'EngagementEvent',
    'EngagementType',
    'ViewLog',
    'ConsumptionSample',
    'EarningsRecord',
    'EarningsMode',
]
