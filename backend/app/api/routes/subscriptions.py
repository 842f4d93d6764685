"""
Subscription API Routes

REST API endpoints for entitlements, plan listing and subscription changes.
Domain errors propagate to the handlers registered in app.main.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks

from app.api.dependencies import AuthDep, StripeServiceDep, SubscriptionServiceDep
from app.domain.plans import PlanTier, list_plans
from app.domain.subscription import (
    ChangePlanRequest,
    CheckoutResponse,
    Entitlement,
    PlanResponse,
    PlansResponse,
    SubscribeRequest,
    Subscription,
)
from app.infrastructure.exceptions import CVTransformerError
from app.infrastructure.payments.stripe_service import StripeService


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Stripe Sync
# =============================================================================

async def sync_plan_change(
    stripe_service: StripeService,
    subscription: Optional[Subscription],
    tier: PlanTier,
) -> None:
    """Mirror an applied tier change onto the Stripe subscription."""
    if subscription is None or not subscription.external_ref or not stripe_service.is_configured:
        return
    try:
        await stripe_service.change_plan(subscription.external_ref, tier)
    except CVTransformerError as e:
        logger.error(
            f"Stripe plan sync failed for {subscription.external_ref} -> {tier.value}: {e.message}"
        )


async def sync_cancellation(
    stripe_service: StripeService,
    subscription: Optional[Subscription],
) -> None:
    """Mirror an applied cancellation onto the Stripe subscription."""
    if subscription is None or not subscription.external_ref or not stripe_service.is_configured:
        return
    try:
        await stripe_service.cancel_subscription(subscription.external_ref)
    except CVTransformerError as e:
        logger.error(f"Stripe cancellation failed for {subscription.external_ref}: {e.message}")


# =============================================================================
# Entitlement Endpoints
# =============================================================================

@router.get("/subscriptions/entitlement", response_model=Entitlement)
async def get_entitlement(auth: AuthDep, service: SubscriptionServiceDep):
    """Get the current user's effective plan and remaining quota."""
    return await service.get_entitlement(auth)


@router.get("/subscriptions/plans", response_model=PlansResponse)
async def get_plans():
    """
    List the available plans with pricing.

    Unlimited plans report `monthly_quota` as null.
    """
    return PlansResponse(
        plans=[
            PlanResponse(
                tier=plan.tier,
                name=plan.name,
                monthly_quota=None if plan.is_unlimited else plan.monthly_quota,
                is_pro=plan.is_pro,
                monthly_price=plan.display_price_pence,
                currency=plan.currency,
                features=plan.features,
            )
            for plan in list_plans()
        ]
    )


# =============================================================================
# Transition Endpoints
# =============================================================================

@router.post("/subscriptions/subscribe", response_model=CheckoutResponse)
async def subscribe(
    request: SubscribeRequest,
    auth: AuthDep,
    service: SubscriptionServiceDep,
    stripe_service: StripeServiceDep,
):
    """
    Start a subscription through Stripe hosted checkout.

    The transition guard is checked here so an already-subscribed user is
    turned away before paying; the subscription itself is activated by the
    signed checkout webhook.
    """
    current = await service.get_subscription(auth)
    service.machine.subscribe(auth.user_id, current, request.tier)

    session = await stripe_service.create_checkout_session(
        user=auth.user,
        tier=request.tier,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )

    return CheckoutResponse(checkout_url=session.url, session_id=session.id)


@router.post("/subscriptions/upgrade", response_model=Entitlement)
async def upgrade(
    request: ChangePlanRequest,
    auth: AuthDep,
    service: SubscriptionServiceDep,
    stripe_service: StripeServiceDep,
    background_tasks: BackgroundTasks,
):
    """Move to a higher tier. Usage this cycle is kept."""
    entitlement = await service.upgrade(auth, request.tier)
    background_tasks.add_task(
        sync_plan_change,
        stripe_service,
        await service.get_subscription(auth),
        request.tier,
    )
    return entitlement


@router.post("/subscriptions/downgrade", response_model=Entitlement)
async def downgrade(
    request: ChangePlanRequest,
    auth: AuthDep,
    service: SubscriptionServiceDep,
    stripe_service: StripeServiceDep,
    background_tasks: BackgroundTasks,
):
    """Move to a lower tier, effective immediately."""
    entitlement = await service.downgrade(auth, request.tier)
    background_tasks.add_task(
        sync_plan_change,
        stripe_service,
        await service.get_subscription(auth),
        request.tier,
    )
    return entitlement


@router.post("/subscriptions/cancel", response_model=Entitlement)
async def cancel(
    auth: AuthDep,
    service: SubscriptionServiceDep,
    stripe_service: StripeServiceDep,
    background_tasks: BackgroundTasks,
):
    """Cancel the current subscription immediately."""
    entitlement = await service.cancel(auth)
    background_tasks.add_task(
        sync_cancellation,
        stripe_service,
        await service.get_subscription(auth),
    )
    return entitlement


# =============================================================================
# Usage Endpoints
# =============================================================================

@router.post("/usage/consume", response_model=Entitlement)
async def consume_quota(auth: AuthDep, service: SubscriptionServiceDep):
    """
    Count one CV conversion against the monthly quota.

    Called by the conversion pipeline before the rewrite is started.
    """
    return await service.consume_quota(auth)
