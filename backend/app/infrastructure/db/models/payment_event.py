"""
Processed Payment Event Model

Replay ledger for payment confirmations, keyed by the external billing
reference. A row here means the event was already applied.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import utc_now


class ProcessedPaymentEvent(SQLModel, table=True):
    """Maps to the 'processed_payment_events' table."""

    __tablename__ = "processed_payment_events"

    external_ref: str = Field(primary_key=True, max_length=255)
    event_type: str = Field(max_length=100, nullable=False)
    user_id: Optional[UUID] = Field(default=None, index=True)
    tier: Optional[str] = Field(default=None, max_length=20)
    processed_at: datetime = Field(
        default_factory=utc_now,
        nullable=False,
        sa_type=DateTime(timezone=True),
    )
