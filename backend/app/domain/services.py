"""
Subscription Service

Unit of work for everything that reads or changes a user's subscription.

Handles:
- Entitlement lookup (with the lazy monthly cycle reset)
- subscribe / upgrade / downgrade / cancel through the state machine
- Quota consumption through the atomic usage counter

Each mutation runs read -> validate -> compare-and-swap -> commit. When the
compare-and-swap loses to a concurrent writer the whole cycle is re-run from a
fresh read, up to `transition_max_attempts` times.
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import settings
from app.domain.entitlements import admin_entitlement, is_admin_override, resolve
from app.domain.plans import PlanTier, get_plan
from app.domain.state_machine import SubscriptionStateMachine, describe_state
from app.domain.subscription import AuthContext, Entitlement, Subscription
from app.domain.usage import cycle_elapsed, utc_now
from app.infrastructure.db.repositories import (
    ActivityLogRepository,
    SubscriptionRepository,
)
from app.infrastructure.exceptions import (
    ConcurrentModificationError,
    QuotaExceededError,
    SubscriptionRequiredError,
)


logger = logging.getLogger(__name__)


# Builds the next subscription value from the current one; None means no change.
TransitionBuilder = Callable[[Optional[Subscription]], Optional[Subscription]]
BeforeCommitHook = Callable[[Optional[Subscription]], Awaitable[None]]


class SubscriptionService:
    """
    Request-scoped subscription operations.

    Args:
        session: Session shared with the repositories below
        subscriptions: Subscription repository
        activity: Activity log repository
        machine: Transition rules (defaults to a wall-clock machine)
        clock: Time source for cycle resets
        max_attempts: Read-validate-write attempts before giving up
    """

    def __init__(
        self,
        session: AsyncSession,
        subscriptions: SubscriptionRepository,
        activity: ActivityLogRepository,
        machine: Optional[SubscriptionStateMachine] = None,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: Optional[int] = None,
    ):
        self._session = session
        self._subscriptions = subscriptions
        self._activity = activity
        self._clock = clock
        self._machine = machine or SubscriptionStateMachine(clock=clock)
        self._max_attempts = max_attempts or settings.transition_max_attempts

    @property
    def machine(self) -> SubscriptionStateMachine:
        return self._machine

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_subscription(self, auth: AuthContext) -> Optional[Subscription]:
        return await self._subscriptions.get_by_user_id(auth.user_id)

    async def get_entitlement(self, auth: AuthContext) -> Entitlement:
        """Resolve the caller's entitlement, rolling the cycle over if due."""
        if is_admin_override(auth.user.role):
            return admin_entitlement()

        for _ in range(self._max_attempts):
            current = await self._subscriptions.get_by_user_id(auth.user_id)
            try:
                current = await self._roll_cycle_if_due(current)
            except ConcurrentModificationError:
                await self._session.rollback()
                continue
            return resolve(auth.user, current)

        # Still contended; report the latest committed state as-is.
        current = await self._subscriptions.get_by_user_id(auth.user_id)
        return resolve(auth.user, current)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def subscribe(
        self,
        auth: AuthContext,
        tier: Union[str, PlanTier],
        external_ref: Optional[str] = None,
    ) -> Entitlement:
        await self.apply_transition(
            auth,
            "subscribe",
            lambda current: self._machine.subscribe(
                auth.user_id, current, tier, external_ref=external_ref
            ),
        )
        return await self.get_entitlement(auth)

    async def upgrade(self, auth: AuthContext, tier: Union[str, PlanTier]) -> Entitlement:
        await self.apply_transition(
            auth, "upgrade", lambda current: self._machine.upgrade(current, tier)
        )
        return await self.get_entitlement(auth)

    async def downgrade(self, auth: AuthContext, tier: Union[str, PlanTier]) -> Entitlement:
        await self.apply_transition(
            auth, "downgrade", lambda current: self._machine.downgrade(current, tier)
        )
        return await self.get_entitlement(auth)

    async def cancel(self, auth: AuthContext) -> Entitlement:
        await self.apply_transition(auth, "cancel", self._machine.cancel)
        return await self.get_entitlement(auth)

    async def apply_transition(
        self,
        auth: AuthContext,
        action: str,
        build: TransitionBuilder,
        before_commit: Optional[BeforeCommitHook] = None,
    ) -> Tuple[Optional[Subscription], bool]:
        """
        Run one guarded transition as a single unit of work.

        Args:
            auth: Request identity
            action: Name recorded in the activity log
            build: Pure function from current to next state; raises
                InvalidTransitionError when the guard fails
            before_commit: Extra writes that must land in the same commit

        Returns:
            (resulting subscription, whether anything was written)

        Raises:
            InvalidTransitionError: Guard rejected the transition
            ConcurrentModificationError: Lost the race on every attempt
        """
        for attempt in range(1, self._max_attempts + 1):
            current = await self._subscriptions.get_by_user_id(auth.user_id)
            updated = build(current)

            try:
                if updated is not None:
                    expected_version = current.version if current else None
                    updated = await self._subscriptions.write(updated, expected_version)
                    await self._activity.record(
                        auth.user_id,
                        action,
                        {
                            "from": describe_state(current),
                            "to": describe_state(updated),
                            "source": auth.source.value,
                        },
                    )
                if before_commit is not None:
                    await before_commit(updated or current)
                await self._session.commit()
            except ConcurrentModificationError:
                await self._session.rollback()
                logger.warning(
                    f"{action} for user {auth.user_id} lost a concurrent write "
                    f"(attempt {attempt}/{self._max_attempts})"
                )
                if attempt == self._max_attempts:
                    raise
                continue
            except Exception:
                await self._session.rollback()
                raise

            if updated is not None:
                logger.info(
                    f"User {auth.user_id}: {action} "
                    f"{describe_state(current)} -> {describe_state(updated)}"
                )
            return (updated or current), updated is not None

        raise ConcurrentModificationError(user_id=auth.user_id)

    # =========================================================================
    # Usage Counter
    # =========================================================================

    async def consume_quota(self, auth: AuthContext) -> Entitlement:
        """
        Count one conversion against the caller's monthly quota.

        Raises:
            SubscriptionRequiredError: No active subscription
            QuotaExceededError: Quota for the current cycle is used up
        """
        if is_admin_override(auth.user.role):
            return admin_entitlement()

        for attempt in range(1, self._max_attempts + 1):
            current = await self._subscriptions.get_by_user_id(auth.user_id)
            if current is None or not current.is_active:
                raise SubscriptionRequiredError()

            try:
                current = await self._roll_cycle_if_due(current)
            except ConcurrentModificationError:
                await self._session.rollback()
                continue

            entitlement = resolve(auth.user, current)
            if not entitlement.can_consume:
                raise self._quota_exceeded(current)

            if not await self._subscriptions.try_increment_usage(current.id):
                await self._session.rollback()
                latest = await self._subscriptions.get_by_user_id(auth.user_id)
                if latest is None or not latest.is_active:
                    raise SubscriptionRequiredError()
                if cycle_elapsed(latest.cycle_started_at, self._clock()):
                    continue
                raise self._quota_exceeded(latest)

            await self._session.commit()
            updated = await self._subscriptions.get_by_user_id(auth.user_id)
            return resolve(auth.user, updated)

        raise ConcurrentModificationError(user_id=auth.user_id)

    async def _roll_cycle_if_due(
        self,
        current: Optional[Subscription],
    ) -> Optional[Subscription]:
        """
        Start a new cycle when a calendar month has passed.

        The reset is a compare-and-swap, so of several racing requests only
        one performs it; the others see ConcurrentModificationError and re-read.
        """
        if current is None or not current.is_active:
            return current

        now = self._clock()
        if not cycle_elapsed(current.cycle_started_at, now):
            return current

        reset = current.model_copy(
            update={"conversions_used": 0, "cycle_started_at": now}
        )
        stored = await self._subscriptions.write(reset, current.version)
        await self._session.commit()

        logger.info(
            f"Reset usage cycle for user {current.user_id} "
            f"({current.conversions_used} conversions in previous cycle)"
        )
        return stored

    def _quota_exceeded(self, subscription: Subscription) -> QuotaExceededError:
        plan = get_plan(subscription.tier)
        return QuotaExceededError(tier=plan.tier.value, monthly_quota=plan.monthly_quota)
