"""
Dependency Injection Providers for CV Transformer

Provides FastAPI dependencies for database sessions and repositories.
Every provider in one request shares the same session.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.database import get_session
from app.infrastructure.db.repositories import (
    ActivityLogRepository,
    PaymentEventRepository,
    SubscriptionRepository,
    UserRepository,
)


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_user_repository(
    session: SessionDep,
) -> AsyncGenerator[UserRepository, None]:
    """
    Dependency provider for UserRepository.

    Usage:
        @router.get("/users/{user_id}")
        async def get_user(
            repo: UserRepository = Depends(get_user_repository)
        ):
            ...
    """
    yield UserRepository(session)


async def get_subscription_repository(
    session: SessionDep,
) -> AsyncGenerator[SubscriptionRepository, None]:
    yield SubscriptionRepository(session)


async def get_payment_event_repository(
    session: SessionDep,
) -> AsyncGenerator[PaymentEventRepository, None]:
    yield PaymentEventRepository(session)


async def get_activity_log_repository(
    session: SessionDep,
) -> AsyncGenerator[ActivityLogRepository, None]:
    yield ActivityLogRepository(session)


# Type aliases for repository dependencies
UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]
SubscriptionRepoDep = Annotated[
    SubscriptionRepository,
    Depends(get_subscription_repository)
]
PaymentEventRepoDep = Annotated[
    PaymentEventRepository,
    Depends(get_payment_event_repository)
]
ActivityLogRepoDep = Annotated[
    ActivityLogRepository,
    Depends(get_activity_log_repository)
]
