from datetime import datetime
from sqlalchemy import String, Integer, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from contentlynk.db.database import Base


class ConsumptionSample(Base):
    """How much of a post one session consumed. Refined in place per session."""

    __tablename__ = 'consumption_samples'

    id: Mapped[int] = mapped_column(primary_key=True)
    post_id: Mapped[int] = mapped_column(ForeignKey('posts.id', ondelete='CASCADE'), index=True)
    session_id: Mapped[str] = mapped_column(String(100))
    # Attribution only, never used for dedup
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey('users.id', ondelete='SET NULL'), default=None,
    )

    scroll_depth: Mapped[float | None] = mapped_column(Float, default=None)
    watch_percentage: Mapped[float | None] = mapped_column(Float, default=None)
    listen_percentage: Mapped[float | None] = mapped_column(Float, default=None)
    time_spent: Mapped[float] = mapped_column(Float, default=0.0)
    completed: Mapped[bool] = mapped_column(default=False)

    # Bumped on every merge; updates are compare-and-set on this column
    version: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    observed_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('post_id', 'session_id', name='uq_consumption_session'),
    )
