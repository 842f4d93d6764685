"""
API Dependencies

FastAPI dependency injection for authentication and request-scoped services.

Security: JWT tokens are verified cryptographically (HS256 with the shared
session secret). Never decode without verification.

Every request gets its own AuthContext and its own service objects bound to
the request's database session; nothing identity-related is process-wide.
"""

import logging
from typing import Annotated, Optional
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config.settings import get_settings
from app.domain.payment_events import PaymentEventAdapter
from app.domain.services import SubscriptionService
from app.domain.subscription import AuthContext, AuthSource, UserRole
from app.infrastructure.db.dependencies import (
    ActivityLogRepoDep,
    PaymentEventRepoDep,
    SessionDep,
    SubscriptionRepoDep,
    UserRepoDep,
)
from app.infrastructure.exceptions import PermissionDeniedError
from app.infrastructure.payments.stripe_service import StripeService, get_stripe_service
from app.infrastructure.services.email_service import EmailService, get_email_service


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> dict:
    """Verify JWT using the HS256 shared secret."""
    settings = get_settings()
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication is not configured",
        )

    options = {"require": ["exp", "sub"]}
    kwargs = {}
    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer
        options["require"].append("iss")

    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        audience=settings.jwt_audience,
        options=options,
        **kwargs,
    )


async def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    Extract and verify the bearer token.

    Returns:
        Verified claims

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return _decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        logger.warning("JWT verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or unverifiable token",
        )


async def get_current_user_id(claims: dict = Depends(get_token_claims)) -> UUID:
    """Authenticated user ID (``sub`` claim)."""
    try:
        return UUID(str(claims.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: malformed user ID",
        )


async def get_auth_context(
    session: SessionDep,
    users: UserRepoDep,
    claims: dict = Depends(get_token_claims),
    user_id: UUID = Depends(get_current_user_id),
) -> AuthContext:
    """
    Build the request-scoped identity.

    Users are provisioned on their first authenticated request from the
    token's ``email`` claim.
    """
    user = await users.get_user(user_id)
    if user is None:
        email = claims.get("email")
        if not email:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing email",
            )
        user = await users.get_or_create(user_id, email)
        await session.commit()

    return AuthContext(user=user, source=AuthSource.SESSION)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def require_super_admin(auth: AuthDep) -> AuthContext:
    """Only super admins may manage roles."""
    if auth.user.role != UserRole.SUPER_ADMIN:
        raise PermissionDeniedError("Super admin access required")
    return AuthContext(user=auth.user, source=AuthSource.ADMIN)


SuperAdminDep = Annotated[AuthContext, Depends(require_super_admin)]


# =============================================================================
# Services
# =============================================================================

async def get_subscription_service(
    session: SessionDep,
    subscriptions: SubscriptionRepoDep,
    activity: ActivityLogRepoDep,
) -> SubscriptionService:
    return SubscriptionService(session, subscriptions, activity)


SubscriptionServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]
StripeServiceDep = Annotated[StripeService, Depends(get_stripe_service)]
EmailServiceDep = Annotated[EmailService, Depends(get_email_service)]


async def get_payment_event_adapter(
    service: SubscriptionServiceDep,
    users: UserRepoDep,
    subscriptions: SubscriptionRepoDep,
    payment_events: PaymentEventRepoDep,
    stripe_service: StripeServiceDep,
    email_service: EmailServiceDep,
) -> PaymentEventAdapter:
    return PaymentEventAdapter(
        service,
        users,
        subscriptions,
        payment_events,
        stripe_service,
        email_service,
    )


PaymentEventAdapterDep = Annotated[PaymentEventAdapter, Depends(get_payment_event_adapter)]

