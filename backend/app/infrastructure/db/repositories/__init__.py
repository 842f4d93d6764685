"""
Repository Layer for CV Transformer

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.db.repositories.user_repository import UserRepository
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.payment_event_repository import (
    PaymentEventRepository,
)
from app.infrastructure.db.repositories.activity_log_repository import (
    ActivityLogRepository,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "UserRepository",
    "SubscriptionRepository",
    "PaymentEventRepository",
    "ActivityLogRepository",
]
