# enrollment/services/checkout.py
"""
Starting checkout for a pending_payment registration.

The provider call is a network round trip, so it runs between two short
units of work and never while the offering row is locked. A failure leaves
the registration pending so checkout can be retried.
"""
import logging

from sqlalchemy.orm import Session

from enrollment.constants.status import PaymentStatus, RegistrationStatus
from enrollment.core.exceptions import (
    CheckoutCreationFailed,
    RegistrationNotFound,
    RegistrationNotPending,
)
from enrollment.db.session import transaction
from enrollment.models.registration import Registration
from enrollment.services.payment import CheckoutHandle, PaymentProvider

logger = logging.getLogger(__name__)


def _load(db: Session, registration_id: str) -> Registration:
    registration = (
        db.query(Registration)
        .filter(Registration.id == registration_id)
        .populate_existing()
        .first()
    )
    if registration is None:
        raise RegistrationNotFound(registration_id=registration_id)
    if registration.status != RegistrationStatus.PENDING_PAYMENT:
        raise RegistrationNotPending(registration_id=registration_id)
    return registration


def start_checkout(
    db: Session,
    provider: PaymentProvider,
    *,
    registration_id: str,
) -> CheckoutHandle:
    with transaction(db):
        registration = _load(db, registration_id)
        offering = registration.offering
        amount_cents = offering.price_cents
        currency = offering.currency
        description = offering.title
        customer_email = registration.contact_email

    try:
        handle = provider.create_checkout(
            amount_cents=amount_cents,
            currency=currency,
            customer_email=customer_email,
            reference_id=registration_id,
            description=description,
        )
    except CheckoutCreationFailed as e:
        e.registration_id = registration_id
        logger.error(f"Checkout creation failed for registration {registration_id}: {e.message}")
        raise
    except Exception as e:
        logger.error(f"Payment provider error for registration {registration_id}: {e}", exc_info=True)
        raise CheckoutCreationFailed(registration_id=registration_id) from e

    with transaction(db):
        # Cancellation may have won the race while the provider was called.
        registration = _load(db, registration_id)
        registration.checkout_session_id = handle.session_id
        registration.checkout_url = handle.url
        registration.payment_status = PaymentStatus.PENDING

    logger.info(f"Checkout {handle.session_id} attached to registration {registration_id}")
    return handle
