"""
Stripe Payment Service

Infrastructure service for Stripe payment processing.
Handles hosted checkout, plan changes, cancellation and webhook verification.

Stripe is the billing system of record for money only; subscription state
lives in our database and changes only through the state machine.
"""

import json
import logging
from typing import Optional, Union

import stripe
from stripe import StripeError

from app.config.settings import get_settings
from app.domain.plans import PlanTier, parse_tier
from app.domain.subscription import User
from app.infrastructure.exceptions import (
    BillingError,
    ConfigurationError,
    UnverifiedPaymentEventError,
)


logger = logging.getLogger(__name__)


class StripeServiceError(BillingError):
    """Base exception for Stripe service errors."""
    pass


class StripeService:
    """
    Stripe payment processing service.

    Stateless wrapper over the Stripe SDK; one price per tier.
    """

    def __init__(self):
        """Initialize Stripe with API key from settings."""
        settings = get_settings()
        self._api_key = settings.stripe_secret_key
        self._webhook_secret = settings.stripe_webhook_secret

        if self._api_key:
            stripe.api_key = self._api_key

        # Monthly GBP price per tier
        self._price_map = {
            PlanTier.BASIC: settings.stripe_price_id_basic,
            PlanTier.STANDARD: settings.stripe_price_id_standard,
            PlanTier.PRO: settings.stripe_price_id_pro,
        }

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _get_price_id(self, tier: Union[str, PlanTier]) -> str:
        """Get Stripe Price ID for a tier."""
        tier = parse_tier(tier)
        price_id = self._price_map.get(tier)

        if not price_id:
            raise ConfigurationError(
                f"No Stripe price configured for {tier.value}",
                missing_keys=[f"STRIPE_PRICE_ID_{tier.value.upper()}"],
            )

        return price_id

    def _require_api_key(self) -> None:
        if not self.is_configured:
            raise ConfigurationError(
                "Stripe is not configured",
                missing_keys=["STRIPE_SECRET_KEY"],
            )

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self,
        user: User,
        tier: Union[str, PlanTier],
        success_url: str,
        cancel_url: str,
    ) -> stripe.checkout.Session:
        """
        Create a Stripe Checkout Session for a new subscription.

        The subscription is activated later, when the signed
        `checkout.session.completed` webhook arrives.

        Args:
            user: Paying user (id goes into metadata, email prefills checkout)
            tier: Subscription tier to purchase
            success_url: Redirect after successful payment
            cancel_url: Redirect after cancelled payment

        Returns:
            stripe.checkout.Session with checkout URL
        """
        self._require_api_key()
        tier = parse_tier(tier)
        price_id = self._get_price_id(tier)

        try:
            session = stripe.checkout.Session.create(
                customer_email=user.email,
                client_reference_id=str(user.id),
                payment_method_types=["card"],
                line_items=[
                    {
                        "price": price_id,
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url,
                allow_promotion_codes=True,
                metadata={
                    "user_id": str(user.id),
                    "tier": tier.value,
                },
                subscription_data={
                    "metadata": {
                        "user_id": str(user.id),
                        "tier": tier.value,
                    },
                },
            )

            logger.info(
                f"Created checkout session {session.id} for user {user.id}, "
                f"tier={tier.value}"
            )
            return session

        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise StripeServiceError(
                f"Failed to create checkout: {e.user_message}",
                operation="create_checkout_session",
                original_error=e,
            )

    # =========================================================================
    # Subscription Changes
    # =========================================================================

    async def change_plan(
        self,
        subscription_id: str,
        tier: Union[str, PlanTier],
    ) -> stripe.Subscription:
        """
        Swap the subscription's price to another tier, with proration.

        Args:
            subscription_id: Stripe subscription ID
            tier: New tier

        Returns:
            Updated stripe.Subscription
        """
        self._require_api_key()
        tier = parse_tier(tier)
        price_id = self._get_price_id(tier)

        try:
            current = stripe.Subscription.retrieve(subscription_id)
            item_id = current["items"]["data"][0]["id"]

            subscription = stripe.Subscription.modify(
                subscription_id,
                items=[{"id": item_id, "price": price_id}],
                proration_behavior="create_prorations",
                metadata={"tier": tier.value},
            )

            logger.info(f"Moved Stripe subscription {subscription_id} to {tier.value}")
            return subscription

        except StripeError as e:
            logger.error(f"Failed to change plan for {subscription_id}: {e}")
            raise StripeServiceError(
                f"Failed to change plan: {e.user_message}",
                operation="change_plan",
                original_error=e,
            )

    async def cancel_subscription(self, subscription_id: str) -> stripe.Subscription:
        """
        Cancel a subscription immediately.

        Args:
            subscription_id: Stripe subscription ID

        Returns:
            Cancelled stripe.Subscription
        """
        self._require_api_key()

        try:
            subscription = stripe.Subscription.cancel(subscription_id)
            logger.info(f"Cancelled Stripe subscription {subscription_id}")
            return subscription

        except StripeError as e:
            logger.error(f"Failed to cancel subscription: {e}")
            raise StripeServiceError(
                f"Failed to cancel: {e.user_message}",
                operation="cancel_subscription",
                original_error=e,
            )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: Optional[str],
    ) -> dict:
        """
        Verify webhook signature and decode the event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            The verified event as a plain dict

        Raises:
            ConfigurationError: No webhook secret is configured
            UnverifiedPaymentEventError: Missing/invalid signature or payload
        """
        if not self._webhook_secret:
            raise ConfigurationError(
                "Stripe webhook secret is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )

        if not signature:
            raise UnverifiedPaymentEventError("Missing Stripe-Signature header")

        try:
            stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
            )

        except ValueError as e:
            raise UnverifiedPaymentEventError(f"Invalid payload: {e}", original_error=e)
        except stripe.SignatureVerificationError as e:
            raise UnverifiedPaymentEventError(f"Invalid signature: {e}", original_error=e)

        return json.loads(payload)


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
