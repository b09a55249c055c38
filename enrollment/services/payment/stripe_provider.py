# enrollment/services/payment/stripe_provider.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import stripe

from enrollment.core.config import settings
from enrollment.core.exceptions import CheckoutCreationFailed
from .provider_interface import CheckoutHandle, PaymentProvider

logger = logging.getLogger(__name__)

# Stripe allows 30 minutes to 24 hours; the pending-payment sweep runs at 24h.
CHECKOUT_EXPIRY_MINUTES = 60


class StripeCheckoutProvider(PaymentProvider):
    """Stripe Checkout implementation of the payment collaborator."""

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not configured")

    def create_checkout(
        self,
        *,
        amount_cents: int,
        currency: str,
        customer_email: Optional[str],
        reference_id: str,
        description: str,
    ) -> CheckoutHandle:
        session_data = {
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": {"name": description},
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "client_reference_id": reference_id,
            "success_url": f"{settings.FRONTEND_URL}/registrations/{reference_id}?checkout=success",
            "cancel_url": f"{settings.FRONTEND_URL}/registrations/{reference_id}?checkout=cancelled",
            "metadata": {"registration_id": reference_id},
            "expires_at": int(
                (datetime.now(timezone.utc) + timedelta(minutes=CHECKOUT_EXPIRY_MINUTES)).timestamp()
            ),
        }
        if customer_email:
            session_data["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **session_data)
        except stripe.error.StripeError as e:
            logger.error(
                "Failed to create Stripe checkout session",
                extra={
                    "registration_id": reference_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
            raise CheckoutCreationFailed(
                f"Payment provider rejected checkout: {e.user_message or str(e)}",
                registration_id=reference_id,
            ) from e

        logger.info(f"Created Stripe checkout session {session.id} for registration {reference_id}")
        return CheckoutHandle(session_id=session.id, url=session.url)
