"""
External Payment Event Adapter

Turns verified Stripe webhook events into subscription transitions.

- checkout.session.completed: subscribe, or upgrade/downgrade an existing plan
- customer.subscription.deleted: cancel

Events are verified before anything else is read or written. Confirmations are
idempotent per external billing reference: the ledger row is written in the
same commit as the transition, so a replayed event finds it and does nothing.
Notifications go out only after the commit and can never undo it.
"""

import logging
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from app.domain.plans import PlanTier, parse_tier, plan_rank
from app.domain.services import SubscriptionService
from app.domain.state_machine import SubscriptionState, Transition, state_of
from app.domain.subscription import AuthContext, AuthSource, Subscription, User
from app.infrastructure.db.repositories import (
    PaymentEventRepository,
    SubscriptionRepository,
    UserRepository,
)
from app.infrastructure.exceptions import (
    CVTransformerError,
    UnknownPlanError,
    UnverifiedPaymentEventError,
)
from app.infrastructure.payments.stripe_service import StripeService
from app.infrastructure.services.email_service import EmailService, NotificationTemplate


logger = logging.getLogger(__name__)


CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class PaymentEventOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNCHANGED = "unchanged"
    IGNORED = "ignored"


class _AlreadyClaimed(Exception):
    """Another delivery of the same event committed first."""


_TEMPLATE_FOR = {
    Transition.SUBSCRIBE: NotificationTemplate.WELCOME,
    Transition.UPGRADE: NotificationTemplate.PLAN_CHANGED,
    Transition.DOWNGRADE: NotificationTemplate.PLAN_CHANGED,
    Transition.CANCEL: NotificationTemplate.CANCELED,
}


class PaymentEventAdapter:
    """
    Entry point for payment-collaborator events.

    Args:
        service: Subscription unit of work for the current session
        users: User lookups
        subscriptions: Subscription lookups by external reference
        payment_events: Processed-event ledger
        stripe_service: Signature verification
        email_service: Notification collaborator
    """

    def __init__(
        self,
        service: SubscriptionService,
        users: UserRepository,
        subscriptions: SubscriptionRepository,
        payment_events: PaymentEventRepository,
        stripe_service: StripeService,
        email_service: EmailService,
    ):
        self._service = service
        self._users = users
        self._subscriptions = subscriptions
        self._payment_events = payment_events
        self._stripe = stripe_service
        self._email = email_service

    async def handle_webhook(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> PaymentEventOutcome:
        """
        Verify and dispatch one webhook delivery.

        Raises:
            UnverifiedPaymentEventError: Signature or payload rejected;
                nothing has been read or written
        """
        try:
            event = self._stripe.verify_webhook_signature(payload, signature)
        except UnverifiedPaymentEventError as e:
            logger.warning(f"Dropping unverified payment event: {e.message}")
            raise

        event_type = event["type"]
        data = event["data"]["object"]
        logger.info(f"Processing webhook event: {event_type} ({event.get('id')})")

        if event_type == CHECKOUT_COMPLETED:
            metadata = data.get("metadata") or {}
            user_id = metadata.get("user_id") or data.get("client_reference_id")
            tier = metadata.get("tier")
            external_ref = data.get("subscription") or data.get("id")

            if not user_id or not tier:
                logger.error(f"Checkout {data.get('id')} completed without user_id/tier metadata")
                return PaymentEventOutcome.IGNORED

            try:
                return await self.on_payment_confirmed(UUID(str(user_id)), tier, external_ref)
            except (ValueError, UnknownPlanError) as e:
                logger.error(f"Checkout {data.get('id')} has unusable metadata: {e}")
                return PaymentEventOutcome.IGNORED

        if event_type == SUBSCRIPTION_DELETED:
            return await self.on_subscription_ended(data["id"])

        logger.debug(f"Unhandled event type: {event_type}")
        return PaymentEventOutcome.IGNORED

    async def on_payment_confirmed(
        self,
        user_id: UUID,
        tier: Union[str, PlanTier],
        external_ref: str,
    ) -> PaymentEventOutcome:
        """
        Apply a confirmed payment for `tier`.

        NONE/CANCELED subscribes; an active plan is upgraded or downgraded by
        catalog rank; the same tier keeps the plan. When the payment moves an
        active plan onto a new Stripe subscription, the old one is cancelled
        after the commit so the user is not billed twice.
        """
        tier = parse_tier(tier)

        if await self._payment_events.is_processed(external_ref):
            logger.info(f"Payment event {external_ref} already processed, skipping")
            return PaymentEventOutcome.DUPLICATE

        user = await self._users.get_user(user_id)
        if user is None:
            logger.error(f"Payment event {external_ref} for unknown user {user_id}")
            return PaymentEventOutcome.IGNORED

        auth = AuthContext(user=user, source=AuthSource.PAYMENT_EVENT)
        machine = self._service.machine
        chosen: dict = {}

        def build(current: Optional[Subscription]) -> Optional[Subscription]:
            chosen.clear()
            if state_of(current) != SubscriptionState.ACTIVE:
                chosen["transition"] = Transition.SUBSCRIBE
                return machine.subscribe(user.id, current, tier, external_ref=external_ref)

            if current.external_ref and current.external_ref != external_ref:
                chosen["superseded_ref"] = current.external_ref

            current_rank, target_rank = plan_rank(current.tier), plan_rank(tier)
            if target_rank == current_rank:
                if current.external_ref == external_ref:
                    return None
                # Same plan, now billed under the new reference
                return current.model_copy(update={"external_ref": external_ref})

            if target_rank > current_rank:
                chosen["transition"] = Transition.UPGRADE
                updated = machine.upgrade(current, tier)
            else:
                chosen["transition"] = Transition.DOWNGRADE
                updated = machine.downgrade(current, tier)
            return updated.model_copy(update={"external_ref": external_ref})

        async def record_event(_: Optional[Subscription]) -> None:
            claimed = await self._payment_events.claim(
                external_ref,
                CHECKOUT_COMPLETED,
                user_id=user.id,
                tier=tier.value,
            )
            if not claimed:
                raise _AlreadyClaimed()

        try:
            _, changed = await self._service.apply_transition(
                auth,
                "payment_confirmed",
                build,
                before_commit=record_event,
            )
        except _AlreadyClaimed:
            logger.info(f"Payment event {external_ref} claimed concurrently, skipping")
            return PaymentEventOutcome.DUPLICATE

        if changed and chosen.get("superseded_ref"):
            await self._cancel_superseded(chosen["superseded_ref"], external_ref)

        transition = chosen.get("transition")
        if not changed or transition is None:
            logger.info(f"Payment event {external_ref}: user {user.id} already on {tier.value}")
            return PaymentEventOutcome.UNCHANGED

        await self._notify(user, _TEMPLATE_FOR[transition], tier)
        return PaymentEventOutcome.APPLIED

    async def on_subscription_ended(self, external_ref: str) -> PaymentEventOutcome:
        """Cancel the subscription billed under `external_ref`, if still active."""
        subscription = await self._subscriptions.get_by_external_ref(external_ref)
        if subscription is None or not subscription.is_active:
            logger.info(f"No active subscription for {external_ref}, nothing to cancel")
            return PaymentEventOutcome.UNCHANGED

        user = await self._users.get_user(subscription.user_id)
        if user is None:
            logger.error(f"Subscription {external_ref} belongs to unknown user {subscription.user_id}")
            return PaymentEventOutcome.IGNORED

        auth = AuthContext(user=user, source=AuthSource.PAYMENT_EVENT)
        machine = self._service.machine

        def build(current: Optional[Subscription]) -> Optional[Subscription]:
            # The row may have been reactivated under a newer billing reference.
            if (
                state_of(current) != SubscriptionState.ACTIVE
                or current.external_ref != external_ref
            ):
                return None
            return machine.cancel(current)

        _, changed = await self._service.apply_transition(auth, "cancel", build)
        if not changed:
            return PaymentEventOutcome.UNCHANGED

        await self._notify(user, NotificationTemplate.CANCELED)
        return PaymentEventOutcome.APPLIED

    async def _cancel_superseded(self, old_ref: str, new_ref: str) -> None:
        """Stop billing the Stripe subscription that `new_ref` replaced."""
        if not self._stripe.is_configured:
            return
        try:
            await self._stripe.cancel_subscription(old_ref)
        except CVTransformerError as e:
            logger.error(
                f"Could not cancel superseded subscription {old_ref} "
                f"(replaced by {new_ref}): {e.message}"
            )

    async def _notify(
        self,
        user: User,
        template: NotificationTemplate,
        tier: Optional[PlanTier] = None,
    ) -> None:
        try:
            sent = await self._email.send(user, template, tier)
        except Exception as e:
            logger.error(f"Notification '{template.value}' for user {user.id} failed: {e}")
            return

        if not sent:
            logger.warning(f"Notification '{template.value}' for user {user.id} was not delivered")
