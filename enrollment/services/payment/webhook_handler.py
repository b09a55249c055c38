# enrollment/services/payment/webhook_handler.py
"""
Applies verified Stripe webhook events to registrations.

Events are logged by provider event id first, so a redelivered event that was
already applied is acknowledged without touching the registration again.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from enrollment import crud
from enrollment.core.exceptions import RegistrationNotFound, RegistrationNotPending
from enrollment.db.session import transaction
from enrollment.services.registration_service import RegistrationService

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)
PAYMENT_FAILED_EVENTS = (
    "checkout.session.expired",
    "checkout.session.async_payment_failed",
)
PAID_SESSION_STATUSES = ("paid", "no_payment_required")


class StripeWebhookHandler:
    provider_code = "stripe"

    def __init__(self, db: Session, registration_service: RegistrationService):
        self.db = db
        self.registrations = registration_service

    @staticmethod
    def _registration_id(session_data: Dict[str, Any]) -> Optional[str]:
        metadata = session_data.get("metadata") or {}
        return session_data.get("client_reference_id") or metadata.get("registration_id")

    def handle(self, event: Dict[str, Any]) -> str:
        """
        Process one event and return the status recorded for it:
        'processed', 'refund_required', 'skipped' or 'duplicate'.
        """
        event_id = event["id"]
        event_type = event["type"]
        session_data = event["data"]["object"]

        with transaction(self.db):
            log = crud.webhook_event.record_received(
                self.db,
                provider_code=self.provider_code,
                provider_event_id=event_id,
                provider_event_type=event_type,
                payload=dict(session_data),
            )
            if log.is_processed:
                logger.info(f"Stripe event {event_id} already processed")
                return "duplicate"
            log_id = log.id

        registration_id = self._registration_id(session_data)
        status = "processed"
        error = None

        try:
            if registration_id is None:
                status, error = "skipped", "no registration reference"
            elif event_type in PAYMENT_SUCCEEDED_EVENTS:
                if session_data.get("payment_status") in PAID_SESSION_STATUSES:
                    payment_reference = session_data.get("payment_intent") or session_data.get("id")
                    try:
                        self.registrations.confirm_payment(
                            registration_id, payment_reference=payment_reference
                        )
                    except RegistrationNotPending:
                        # Paid after cancellation: keep track of the money for a refund
                        if not self.registrations.record_late_payment(
                            registration_id, payment_reference=payment_reference
                        ):
                            raise
                        status = "refund_required"
                else:
                    # Delayed payment methods confirm via async_payment_succeeded
                    status, error = "skipped", f"session payment_status {session_data.get('payment_status')}"
            elif event_type in PAYMENT_FAILED_EVENTS:
                self.registrations.record_payment_failure(registration_id)
            else:
                status, error = "skipped", "unhandled event type"
        except RegistrationNotPending:
            logger.info(f"Stripe event {event_id}: registration {registration_id} already settled")
            status, error = "skipped", "registration not pending"
        except RegistrationNotFound:
            logger.warning(f"Stripe event {event_id} references unknown registration {registration_id}")
            status, error = "skipped", "registration not found"
        except Exception as e:
            logger.error(f"Error processing Stripe event {event_id}: {e}", exc_info=True)
            with transaction(self.db):
                crud.webhook_event.mark(
                    self.db,
                    event=crud.webhook_event.get(self.db, log_id),
                    status="failed",
                    related_registration_id=registration_id,
                    error=str(e),
                )
            raise

        with transaction(self.db):
            crud.webhook_event.mark(
                self.db,
                event=crud.webhook_event.get(self.db, log_id),
                status=status,
                related_registration_id=registration_id,
                error=error,
            )
        logger.info(f"Stripe event {event_id} ({event_type}) {status}")
        return status
