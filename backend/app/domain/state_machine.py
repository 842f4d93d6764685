"""
Subscription State Machine

Guarded transitions over a user's current subscription:

    NONE      --subscribe-->          ACTIVE(tier)
    ACTIVE(t) --upgrade/downgrade-->  ACTIVE(t')
    ACTIVE(t) --cancel-->             CANCELED
    CANCELED  --subscribe-->          ACTIVE(tier)

Transitions are pure: they take the current value and return a new one, so a
rejected transition can never leave a half-applied change behind.
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Union
from uuid import UUID

from app.domain.plans import PlanTier, get_plan, parse_tier
from app.domain.subscription import Subscription, SubscriptionStatus
from app.domain.usage import utc_now
from app.infrastructure.exceptions import InvalidTransitionError


class SubscriptionState(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    CANCELED = "canceled"


class Transition(str, Enum):
    SUBSCRIBE = "subscribe"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    CANCEL = "cancel"


def state_of(subscription: Optional[Subscription]) -> SubscriptionState:
    if subscription is None:
        return SubscriptionState.NONE
    if subscription.status == SubscriptionStatus.CANCELED:
        return SubscriptionState.CANCELED
    return SubscriptionState.ACTIVE


def describe_state(subscription: Optional[Subscription]) -> str:
    """Human readable state, e.g. ``active(standard)``."""
    state = state_of(subscription)
    if state == SubscriptionState.ACTIVE:
        return f"{state.value}({subscription.tier.value})"
    return state.value


class SubscriptionStateMachine:
    """Validates and applies subscription transitions."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def subscribe(
        self,
        user_id: UUID,
        current: Optional[Subscription],
        tier: Union[str, PlanTier],
        external_ref: Optional[str] = None,
    ) -> Subscription:
        """Start (or restart after cancel) a subscription with a fresh cycle."""
        plan = get_plan(tier)
        if state_of(current) == SubscriptionState.ACTIVE:
            raise InvalidTransitionError(
                Transition.SUBSCRIBE.value,
                describe_state(current),
                "Already subscribed. Use upgrade or downgrade to change plan.",
            )

        now = self._clock()
        values = {
            "user_id": user_id,
            "tier": plan.tier,
            "status": SubscriptionStatus.ACTIVE,
            "monthly_quota": plan.monthly_quota,
            "conversions_used": 0,
            "cycle_started_at": now,
            "external_ref": external_ref,
            "ended_at": None,
        }
        if current is None:
            return Subscription(created_at=now, **values)
        # Reactivation reuses the row; the guard column carries over.
        return current.model_copy(update=values)

    def upgrade(
        self,
        current: Optional[Subscription],
        tier: Union[str, PlanTier],
    ) -> Subscription:
        """Move to a higher tier. Usage and cycle are kept."""
        return self._change_tier(Transition.UPGRADE, current, parse_tier(tier))

    def downgrade(
        self,
        current: Optional[Subscription],
        tier: Union[str, PlanTier],
    ) -> Subscription:
        """Move to a lower tier, effective immediately."""
        return self._change_tier(Transition.DOWNGRADE, current, parse_tier(tier))

    def cancel(self, current: Optional[Subscription]) -> Subscription:
        """End the subscription. Terminal until the next subscribe."""
        if state_of(current) != SubscriptionState.ACTIVE:
            raise InvalidTransitionError(
                Transition.CANCEL.value,
                describe_state(current),
                "There is no active subscription to cancel.",
            )
        return current.model_copy(
            update={
                "status": SubscriptionStatus.CANCELED,
                "ended_at": self._clock(),
            }
        )

    def _change_tier(
        self,
        transition: Transition,
        current: Optional[Subscription],
        target: PlanTier,
    ) -> Subscription:
        if state_of(current) != SubscriptionState.ACTIVE:
            raise InvalidTransitionError(
                transition.value,
                describe_state(current),
                f"Cannot {transition.value} without an active subscription.",
            )

        target_plan = get_plan(target)
        current_rank = get_plan(current.tier).rank

        if transition == Transition.UPGRADE and target_plan.rank <= current_rank:
            raise InvalidTransitionError(
                transition.value,
                describe_state(current),
                f"Cannot upgrade from {current.tier.value} to {target.value}: "
                f"target must be a higher tier.",
            )
        if transition == Transition.DOWNGRADE and target_plan.rank >= current_rank:
            raise InvalidTransitionError(
                transition.value,
                describe_state(current),
                f"Cannot downgrade from {current.tier.value} to {target.value}: "
                f"target must be a lower tier.",
            )

        return current.model_copy(
            update={
                "tier": target_plan.tier,
                "monthly_quota": target_plan.monthly_quota,
            }
        )
