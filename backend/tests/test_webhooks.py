"""
Integration Tests for Webhooks (Stripe)

Verifies:
- Signature verification failure (400) with no state change
- Successful event processing
- Idempotency (prevent double processing)
"""

from unittest.mock import MagicMock

import pytest

from app.infrastructure.exceptions import ConfigurationError, UnverifiedPaymentEventError


def checkout_completed(user_id, tier: str = "standard", subscription: str = "sub_test") -> dict:
    return {
        "id": "evt_checkout_ok",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_123",
                "customer": "cus_test",
                "subscription": subscription,
                "client_reference_id": str(user_id),
                "metadata": {"user_id": str(user_id), "tier": tier},
            }
        },
    }


class TestStripeWebhooks:

    @pytest.mark.asyncio
    async def test_webhook_missing_signature(self, async_client, mock_stripe_service):
        """Webhook without signature header should fail 400."""
        mock_stripe_service.verify_webhook_signature = MagicMock(
            side_effect=UnverifiedPaymentEventError("Missing Stripe-Signature header")
        )

        response = await async_client.post("/api/webhooks/stripe", json={"id": "evt_123"})

        assert response.status_code == 400
        assert response.json()["error"] == "UnverifiedPaymentEventError"
        mock_stripe_service.verify_webhook_signature.assert_called_once()
        _, signature = mock_stripe_service.verify_webhook_signature.call_args.args
        assert signature is None

    @pytest.mark.asyncio
    async def test_webhook_invalid_signature_changes_nothing(
        self, async_client, mock_stripe_service, make_user, headers_for
    ):
        """A forged checkout must not activate anything."""
        auth = await make_user()
        mock_stripe_service.verify_webhook_signature = MagicMock(
            side_effect=UnverifiedPaymentEventError("Invalid signature: bad")
        )

        response = await async_client.post(
            "/api/webhooks/stripe",
            json=checkout_completed(auth.user_id),
            headers={"stripe-signature": "invalid_sig"},
        )
        assert response.status_code == 400
        assert "Invalid signature" in response.json()["message"]

        entitlement = await async_client.get(
            "/api/subscriptions/entitlement", headers=headers_for(auth.user)
        )
        assert entitlement.json()["effective_plan"] is None

    @pytest.mark.asyncio
    async def test_webhook_secret_not_configured(self, async_client, mock_stripe_service):
        mock_stripe_service.verify_webhook_signature = MagicMock(
            side_effect=ConfigurationError(
                "Stripe webhook secret is not configured",
                missing_keys=["STRIPE_WEBHOOK_SECRET"],
            )
        )

        response = await async_client.post(
            "/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"}
        )

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_webhook_success_checkout(
        self, async_client, mock_stripe_service, mock_email_service, make_user, headers_for
    ):
        """Valid checkout.session.completed event activates the plan."""
        auth = await make_user()
        mock_stripe_service.verify_webhook_signature = MagicMock(
            return_value=checkout_completed(auth.user_id)
        )

        response = await async_client.post(
            "/api/webhooks/stripe",
            content=b'{"id": "evt_checkout_ok"}',
            headers={"stripe-signature": "t=1,v1=valid"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "applied"}
        payload, signature = mock_stripe_service.verify_webhook_signature.call_args.args
        assert payload == b'{"id": "evt_checkout_ok"}'
        assert signature == "t=1,v1=valid"
        mock_email_service.send.assert_awaited_once()

        entitlement = await async_client.get(
            "/api/subscriptions/entitlement", headers=headers_for(auth.user)
        )
        body = entitlement.json()
        assert body["effective_plan"] == "standard"
        assert body["quota_remaining"] == 20

    @pytest.mark.asyncio
    async def test_webhook_idempotency(
        self, async_client, mock_stripe_service, mock_email_service, make_user, headers_for
    ):
        """Replaying the same checkout is acknowledged but applied once."""
        auth = await make_user()
        mock_stripe_service.verify_webhook_signature = MagicMock(
            return_value=checkout_completed(auth.user_id, tier="basic")
        )
        headers = {"stripe-signature": "t=1,v1=valid"}

        first = await async_client.post("/api/webhooks/stripe", content=b"{}", headers=headers)
        second = await async_client.post("/api/webhooks/stripe", content=b"{}", headers=headers)

        assert first.json() == {"status": "applied"}
        assert second.status_code == 200
        assert second.json() == {"status": "duplicate"}
        assert mock_email_service.send.await_count == 1

    @pytest.mark.asyncio
    async def test_webhook_subscription_deleted(
        self, async_client, mock_stripe_service, make_user, headers_for
    ):
        auth = await make_user()
        headers = {"stripe-signature": "t=1,v1=valid"}
        mock_stripe_service.verify_webhook_signature = MagicMock(
            return_value=checkout_completed(auth.user_id, subscription="sub_gone")
        )
        await async_client.post("/api/webhooks/stripe", content=b"{}", headers=headers)

        mock_stripe_service.verify_webhook_signature = MagicMock(
            return_value={
                "id": "evt_deleted",
                "type": "customer.subscription.deleted",
                "data": {"object": {"id": "sub_gone"}},
            }
        )
        response = await async_client.post("/api/webhooks/stripe", content=b"{}", headers=headers)

        assert response.json() == {"status": "applied"}
        entitlement = await async_client.get(
            "/api/subscriptions/entitlement", headers=headers_for(auth.user)
        )
        assert entitlement.json()["status"] == "canceled"
        assert entitlement.json()["can_consume"] is False

    @pytest.mark.asyncio
    async def test_webhook_unhandled_event(self, async_client, mock_stripe_service):
        mock_stripe_service.verify_webhook_signature = MagicMock(
            return_value={"id": "evt_x", "type": "invoice.paid", "data": {"object": {}}}
        )

        response = await async_client.post(
            "/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"}
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
