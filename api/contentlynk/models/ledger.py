from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, Float, ForeignKey, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from contentlynk.db.database import Base


class EarningsMode(str, Enum):
    """LIVE when every input resolved, ESTIMATED when something fell back to a default."""
    LIVE = 'live'
    ESTIMATED = 'estimated'


class EarningsRecord(Base):
    """Append-only payout ledger. Exactly one row per (post, triggering engagement)."""

    __tablename__ = 'earnings_records'

    id: Mapped[int] = mapped_column(primary_key=True)
    post_id: Mapped[int] = mapped_column(ForeignKey('posts.id', ondelete='CASCADE'))
    creator_id: Mapped[int] = mapped_column(
        ForeignKey('users.id', ondelete='CASCADE'), index=True
    )
    triggering_engagement_id: Mapped[int] = mapped_column(
        ForeignKey('engagements.id', ondelete='CASCADE'),
    )

    # USD, rounded to 4 places
    amount: Mapped[float] = mapped_column(Float)
    mode: Mapped[str] = mapped_column(String(20), default=EarningsMode.LIVE.value)

    # Audit trail: amount = base_rate * quality_score * the four multipliers (then capped)
    quality_score: Mapped[int] = mapped_column(Integer, default=0)
    base_rate: Mapped[float] = mapped_column(Float)
    content_multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    completion_multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    tier_multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    bonus_multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    uncapped_amount: Mapped[float] = mapped_column(Float)
    cap_applied: Mapped[bool] = mapped_column(default=False)

    computed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('post_id', 'triggering_engagement_id', name='uq_earnings_trigger'),
        Index('ix_earnings_creator_computed', 'creator_id', 'computed_at'),
    )
