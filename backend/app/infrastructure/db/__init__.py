"""
Database Infrastructure Package for CV Transformer

Exports database utilities and dependency providers.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session,
    get_session_context,
    init_db,
    close_db,
)

from app.infrastructure.db.dependencies import (
    SessionDep,
    get_user_repository,
    get_subscription_repository,
    get_payment_event_repository,
    get_activity_log_repository,
    UserRepoDep,
    SubscriptionRepoDep,
    PaymentEventRepoDep,
    ActivityLogRepoDep,
)


__all__ = [
    # Database management
    "DatabaseManager",
    "get_db_manager",
    "get_session",
    "get_session_context",
    "init_db",
    "close_db",
    # Dependencies
    "SessionDep",
    "get_user_repository",
    "get_subscription_repository",
    "get_payment_event_repository",
    "get_activity_log_repository",
    "UserRepoDep",
    "SubscriptionRepoDep",
    "PaymentEventRepoDep",
    "ActivityLogRepoDep",
]
