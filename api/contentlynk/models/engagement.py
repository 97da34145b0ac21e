from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, ForeignKey, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from contentlynk.db.database import Base


class EngagementType(str, Enum):
    """Discrete user actions against a post."""
    LIKE = 'like'
    COMMENT = 'comment'
    SHARE = 'share'
    VIEW = 'view'


# Types that can be credited toward earnings. VIEW is uncapped and never pays.
CREDITABLE_TYPES = (EngagementType.LIKE, EngagementType.COMMENT, EngagementType.SHARE)


class EngagementEvent(Base):
    """A credited engagement. One row per (post, actor, type), ever."""

    __tablename__ = 'engagements'

    id: Mapped[int] = mapped_column(primary_key=True)
    post_id: Mapped[int] = mapped_column(ForeignKey('posts.id', ondelete='CASCADE'))
    actor_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'))
    engagement_type: Mapped[str] = mapped_column(String(20))

    # Character count of the comment body (COMMENT only)
    content_length: Mapped[int | None] = mapped_column(Integer, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    # Set on unlike / unshare / comment removal. Row is kept so a repeat isn't re-credited.
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime, default=None)
    # Set by the reconciliation sweep when the gate permanently refuses to credit this row
    uncredited_reason: Mapped[str | None] = mapped_column(String(30), default=None)

    __table_args__ = (
        UniqueConstraint('post_id', 'actor_id', 'engagement_type', name='uq_engagement'),
        Index('ix_engagement_actor_created', 'actor_id', 'created_at'),
    )


class ViewLog(Base):
    """One row per view. Source of truth for Post.views_count."""

    __tablename__ = 'view_logs'

    id: Mapped[int] = mapped_column(primary_key=True)
    post_id: Mapped[int] = mapped_column(ForeignKey('posts.id', ondelete='CASCADE'), index=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey('users.id', ondelete='SET NULL'), default=None,
    )
    is_authenticated: Mapped[bool] = mapped_column(default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
