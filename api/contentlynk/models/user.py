from datetime import datetime
from enum import Enum
from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from contentlynk.db.database import Base


class CreatorTier(str, Enum):
    """Revenue-share tier, lowest first. Fractions live in multiplier_service."""
    STANDARD = 'standard'
    SILVER = 'silver'
    GOLD = 'gold'
    PLATINUM = 'platinum'
    GENESIS = 'genesis'


class User(Base):
    """Creator / viewer account. Identity itself is managed elsewhere."""

    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    handle: Mapped[str] = mapped_column(String(50), unique=True, index=True)

    # Externally managed standing, read-only for the earnings engine.
    # NULL means account management hasn't told us yet.
    tier: Mapped[str | None] = mapped_column(String(20), default=None)
    has_bonus_pass: Mapped[bool | None] = mapped_column(default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    posts: Mapped[list['Post']] = relationship('Post', back_populates='author')
