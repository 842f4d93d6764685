"""
Subscription Domain Models

Domain models for subscription management following Clean Architecture.
Enums, DTOs, and domain entities for the subscription bounded context.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.plans import PlanTier


class UserRole(str, Enum):
    """Account roles. Admin roles bypass billing."""
    USER = "user"
    SUB_ADMIN = "sub_admin"
    SUPER_ADMIN = "super_admin"

    @property
    def is_admin(self) -> bool:
        return self in (UserRole.SUB_ADMIN, UserRole.SUPER_ADMIN)


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle status."""
    ACTIVE = "active"
    CANCELED = "canceled"


class AuthSource(str, Enum):
    """Where the request-scoped identity came from."""
    SESSION = "session"
    PAYMENT_EVENT = "payment_event"
    ADMIN = "admin"


# =============================================================================
# Domain Entities
# =============================================================================

class User(BaseModel):
    """Account identity as seen by the entitlement core."""
    id: UUID
    email: str
    role: UserRole = UserRole.USER
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Subscription(BaseModel):
    """Core subscription domain entity (one current row per user)."""
    id: Optional[UUID] = None
    user_id: UUID
    tier: PlanTier
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    monthly_quota: int
    conversions_used: int = Field(default=0, ge=0)
    cycle_started_at: datetime
    external_ref: Optional[str] = None
    created_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class AuthContext(BaseModel):
    """
    Identity for the current request.

    Built per request by the API layer (or by the payment adapter for
    webhook-driven calls) and passed explicitly into every entitlement call.
    """
    user: User
    source: AuthSource = AuthSource.SESSION

    @property
    def user_id(self) -> UUID:
        return self.user.id


class Entitlement(BaseModel):
    """Derived, non-persisted view of what a user may currently do."""
    effective_plan: Optional[PlanTier] = None
    is_admin_override: bool = False
    quota_remaining: int = 0
    can_consume: bool = False
    monthly_quota: int = 0
    conversions_used: int = 0
    status: Optional[SubscriptionStatus] = None
    cycle_resets_at: Optional[datetime] = None


# =============================================================================
# Request/Response DTOs
# =============================================================================

class ChangePlanRequest(BaseModel):
    """Request DTO for upgrade/downgrade."""
    tier: PlanTier = Field(..., description="Target subscription tier")


class SubscribeRequest(BaseModel):
    """Request DTO for starting a paid subscription via hosted checkout."""
    tier: PlanTier = Field(..., description="Subscription tier to purchase")
    success_url: str = Field(..., description="Redirect URL after successful payment")
    cancel_url: str = Field(..., description="Redirect URL after cancelled payment")


class CheckoutResponse(BaseModel):
    """Response DTO for checkout session creation."""
    checkout_url: str
    session_id: str


class PlanResponse(BaseModel):
    """Pricing information for a single tier."""
    tier: PlanTier
    name: str
    monthly_quota: Optional[int] = Field(description="None means unlimited")
    is_pro: bool
    monthly_price: int = Field(description="Price in pence")
    currency: str
    features: list[str]


class PlansResponse(BaseModel):
    """Response DTO for the plan listing."""
    plans: list[PlanResponse]


class UpdateRoleRequest(BaseModel):
    """Admin request to change a user's role."""
    role: UserRole


class ActivityLogEntry(BaseModel):
    """Audit row for an applied transition or admin action."""
    id: UUID
    user_id: UUID
    action: str
    details: dict = {}
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
