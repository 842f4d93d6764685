"""
Subscription Database Model

SQLModel table for subscription data persistence.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin, utc_now


class SubscriptionModel(UUIDMixin, TimestampMixin, table=True):
    """
    Subscription table for storing user subscription data.

    One row per user; a canceled row is reactivated by the next subscribe.
    `version` is bumped on every write and guards compare-and-swap updates.
    """

    __tablename__ = "subscriptions"

    user_id: UUID = Field(foreign_key="users.id", unique=True, index=True, nullable=False)

    # Plan
    tier: str = Field(max_length=20, nullable=False)
    status: str = Field(default="active", max_length=20, nullable=False)
    monthly_quota: int = Field(nullable=False)

    # Usage tracking
    conversions_used: int = Field(default=0, nullable=False)
    cycle_started_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
    )

    # Stripe subscription ID
    external_ref: Optional[str] = Field(default=None, max_length=255, index=True)

    ended_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    # Optimistic concurrency guard
    version: int = Field(default=1, nullable=False)
