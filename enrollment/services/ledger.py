# enrollment/services/ledger.py
"""
Registration state changes.

Both orchestrators create and move registrations only through these helpers,
so seat accounting runs on every transition. Callers hold the offering lock
and own the unit of work.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from enrollment import crud
from enrollment.constants.status import PaymentStatus, RegistrationStatus
from enrollment.core.exceptions import AlreadyRegistered
from enrollment.models.offering import Offering
from enrollment.models.registration import Registration
from enrollment.services import seat_accounting

logger = logging.getLogger(__name__)


def open_registration(
    db: Session,
    offering: Offering,
    *,
    subject_id: str,
    contact_email: Optional[str],
    now: datetime,
    waitlist_entry_id: Optional[str] = None,
) -> Registration:
    """
    Create a registration on the capacity-available path.

    Free offerings confirm immediately and take a seat; paid offerings start
    in pending_payment and take a seat only when payment is confirmed.
    """
    if offering.is_free:
        status = RegistrationStatus.CONFIRMED
        payment_status = None
    else:
        status = RegistrationStatus.PENDING_PAYMENT
        payment_status = PaymentStatus.PENDING

    registration = Registration(
        offering_id=offering.id,
        subject_id=subject_id,
        contact_email=contact_email,
        status=status,
        payment_status=payment_status,
        registered_at=now,
        confirmed_at=now if status == RegistrationStatus.CONFIRMED else None,
        waitlist_entry_id=waitlist_entry_id,
    )
    seat_accounting.apply_transition(offering, None, status, now=now)

    try:
        crud.registration.add(db, db_obj=registration)
    except IntegrityError as e:
        raise AlreadyRegistered(offering_id=offering.id) from e

    logger.info(f"Registration {registration.id} created for {subject_id} on {offering.id} as {status}")
    return registration


def transition_registration(
    offering: Offering,
    registration: Registration,
    new_status: str,
    *,
    now: datetime,
    reason: Optional[str] = None,
) -> None:
    old_status = registration.status
    if new_status not in RegistrationStatus.TRANSITIONS.get(old_status, ()):
        raise ValueError(
            f"Illegal registration transition {old_status} -> {new_status} for {registration.id}"
        )

    seat_accounting.apply_transition(offering, old_status, new_status, now=now)

    registration.status = new_status
    if new_status == RegistrationStatus.CONFIRMED:
        registration.confirmed_at = now
    elif new_status == RegistrationStatus.CANCELLED:
        registration.cancelled_at = now
        registration.cancel_reason = reason
    elif new_status == RegistrationStatus.COMPLETED:
        registration.completed_at = now

    logger.info(f"Registration {registration.id}: {old_status} -> {new_status}")
