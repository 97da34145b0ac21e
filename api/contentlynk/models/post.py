from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, Float, ForeignKey, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contentlynk.db.database import Base


class ContentKind(str, Enum):
    """Shape of a post's content. Drives the content type multiplier."""
    TEXT = 'text'
    ARTICLE = 'article'
    VIDEO = 'video'
    SHORT_VIDEO = 'short_video'


class Post(Base):
    """Post model. The engagement/consumption columns are a derived cache."""

    __tablename__ = 'posts'

    id: Mapped[int] = mapped_column(primary_key=True)
    author_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), index=True)
    title: Mapped[str] = mapped_column(String(200), default='')
    content_kind: Mapped[str] = mapped_column(String(20), default=ContentKind.TEXT.value)
    body: Mapped[str | None] = mapped_column(Text, default=None)

    # Content measurements (whichever applies to content_kind)
    reading_time_minutes: Mapped[float | None] = mapped_column(Float, default=None)
    duration_seconds: Mapped[float | None] = mapped_column(Float, default=None)

    # Engagement counters (rebuildable from engagements / view_logs)
    views_count: Mapped[int] = mapped_column(Integer, default=0)
    authenticated_views_count: Mapped[int] = mapped_column(Integer, default=0)
    public_views_count: Mapped[int] = mapped_column(Integer, default=0)
    likes_count: Mapped[int] = mapped_column(Integer, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, default=0)
    shares_count: Mapped[int] = mapped_column(Integer, default=0)

    # Consumption aggregates (rebuildable from consumption_samples)
    average_scroll_depth: Mapped[float | None] = mapped_column(Float, default=None)
    average_watch_percentage: Mapped[float | None] = mapped_column(Float, default=None)
    total_completions: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    author: Mapped['User'] = relationship('User', back_populates='posts')
