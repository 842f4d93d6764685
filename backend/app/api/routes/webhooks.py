"""
Stripe Webhook Handler

Receives Stripe webhook deliveries and hands them to the payment event
adapter, which verifies the signature before touching any state.

Handled events:
- checkout.session.completed: activate or change the subscription
- customer.subscription.deleted: cancel the subscription
"""

import logging

from fastapi import APIRouter, Request

from app.api.dependencies import PaymentEventAdapterDep


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, adapter: PaymentEventAdapterDep):
    """
    Handle Stripe webhook events.

    Returns 200 OK to acknowledge receipt, including for replays and
    unhandled event types. Unverifiable deliveries get a 400.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    outcome = await adapter.handle_webhook(payload, signature)
    return {"status": outcome.value}
