"""
Entitlement Resolver

Pure computation of what a user may do, from their role and their current
subscription row. No I/O, no side effects.
"""

from typing import Optional

from app.domain.plans import PlanTier, UNLIMITED_QUOTA, get_plan
from app.domain.subscription import (
    Entitlement,
    Subscription,
    User,
    UserRole,
)
from app.domain.usage import cycle_end


def is_admin_override(role: UserRole) -> bool:
    """The one place that decides whether a role bypasses billing."""
    return UserRole(role).is_admin


def admin_entitlement() -> Entitlement:
    return Entitlement(
        effective_plan=PlanTier.PRO,
        is_admin_override=True,
        quota_remaining=UNLIMITED_QUOTA,
        can_consume=True,
        monthly_quota=UNLIMITED_QUOTA,
    )


def resolve(user: User, subscription: Optional[Subscription]) -> Entitlement:
    """
    Compute the effective entitlement.

    1. Admin roles get unlimited pro, whatever the billing state.
    2. No subscription, or a canceled one, means no entitlement.
    3. Otherwise quota comes from the catalog entry for the subscribed tier.
    """
    if is_admin_override(user.role):
        return admin_entitlement()

    if subscription is None or not subscription.is_active:
        return Entitlement(
            status=subscription.status if subscription else None,
            conversions_used=subscription.conversions_used if subscription else 0,
        )

    plan = get_plan(subscription.tier)
    quota_remaining = max(0, plan.monthly_quota - subscription.conversions_used)

    return Entitlement(
        effective_plan=plan.tier,
        is_admin_override=False,
        quota_remaining=quota_remaining,
        can_consume=plan.is_unlimited or quota_remaining > 0,
        monthly_quota=plan.monthly_quota,
        conversions_used=subscription.conversions_used,
        status=subscription.status,
        cycle_resets_at=cycle_end(subscription.cycle_started_at),
    )
