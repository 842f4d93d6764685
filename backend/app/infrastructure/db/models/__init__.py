"""
SQLModel ORM Models for CV Transformer

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
)
from app.infrastructure.db.models.user import UserModel
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.models.payment_event import ProcessedPaymentEvent
from app.infrastructure.db.models.activity_log import (
    ActivityLog,
    ActivityLogCreate,
)


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    # Tables
    "UserModel",
    "SubscriptionModel",
    "ProcessedPaymentEvent",
    "ActivityLog",
    "ActivityLogCreate",
]
