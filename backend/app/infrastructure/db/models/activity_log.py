"""
Activity Log Model

Append-only audit trail of subscription transitions and admin actions.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, DateTime, JSON
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import utc_now


class ActivityLogBase(SQLModel):
    """Shared fields for create/read."""

    user_id: UUID = Field(foreign_key="users.id", index=True, nullable=False)
    action: str = Field(max_length=100, nullable=False)
    details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))


class ActivityLog(ActivityLogBase, table=True):
    """Maps to the 'activity_logs' table."""

    __tablename__ = "activity_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True, nullable=False)
    created_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
    )


class ActivityLogCreate(ActivityLogBase):
    """Schema for appending an activity row."""
    pass
