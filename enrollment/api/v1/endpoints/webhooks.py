# enrollment/api/v1/endpoints/webhooks.py
"""
Stripe webhook receiver for registration payments.
"""
import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from enrollment.api import deps
from enrollment.core.config import settings
from enrollment.db.session import get_db
from enrollment.services.payment.webhook_handler import StripeWebhookHandler
from enrollment.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="stripe-signature"),
    db=Depends(get_db),
    service: RegistrationService = Depends(deps.get_registration_service),
):
    """
    Handle Stripe checkout events.

    Events handled:
    - checkout.session.completed / async_payment_succeeded: confirm the registration
    - checkout.session.expired / async_payment_failed: record the failed payment
    """
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing stripe-signature header",
        )

    payload = await request.body()

    try:
        event = stripe.Webhook.construct_event(
            payload, stripe_signature, settings.STRIPE_WEBHOOK_SECRET
        )
    except ValueError:
        logger.error("Invalid payload")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    except stripe.error.SignatureVerificationError:
        logger.error("Invalid signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    logger.info(f"Received Stripe webhook: {event['type']}")

    try:
        result = StripeWebhookHandler(db, service).handle(event)
    except Exception as e:
        # Answer 200 anyway; the failure is recorded on the webhook log row.
        logger.error(f"Stripe webhook {event['id']} failed: {e}")
        result = "failed"

    return {"status": "success", "result": result}
