# enrollment/services/sweeps.py
"""
Time-driven maintenance passes run by the scheduler.

Each pass lists candidates outside any lock and then handles every item in
its own unit of work, re-checking the condition under the offering lock. A
failing item is logged and skipped; the rest of the batch still runs.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from enrollment import crud
from enrollment.constants.status import OfferingStatus
from enrollment.core.config import settings
from enrollment.db.session import transaction
from enrollment.services.notifications import Notification, NotificationKind, Notifier
from enrollment.services.offering_service import OfferingService
from enrollment.services.payment import PaymentProvider
from enrollment.services.registration_service import RegistrationService
from enrollment.services.waitlist_service import WaitlistService
from enrollment.utils.clock import utcnow

logger = logging.getLogger(__name__)


def expire_stale_offers(
    db: Session,
    *,
    notifier: Notifier,
    payment_provider: PaymentProvider,
    now: Optional[datetime] = None,
) -> int:
    service = WaitlistService(db, notifier=notifier, payment_provider=payment_provider)
    return service.expire_stale_offers(now=now or utcnow())


def cleanup_stale_pending_registrations(
    db: Session,
    *,
    notifier: Notifier,
    payment_provider: PaymentProvider,
    now: Optional[datetime] = None,
) -> int:
    """Cancel pending_payment registrations that outlived the payment window."""
    now = now or utcnow()
    cutoff = now - timedelta(hours=settings.PENDING_PAYMENT_TTL_HOURS)
    stale_ids = [r.id for r in crud.registration.get_stale_pending(db, registered_before=cutoff)]
    if not stale_ids:
        return 0

    logger.info(f"Found {len(stale_ids)} stale pending registrations")
    service = RegistrationService(db, payment_provider=payment_provider, notifier=notifier)
    cancelled = 0
    for registration_id in stale_ids:
        try:
            if service.cancel_stale_pending(registration_id, now=now):
                cancelled += 1
        except Exception as e:
            logger.error(f"Error cancelling stale registration {registration_id}: {e}", exc_info=True)
    return cancelled


def send_upcoming_reminders(
    db: Session,
    *,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> int:
    """
    Remind confirmed attendees of offerings starting 24-48 hours from now.

    ``reminder_sent_at`` is stamped in the same unit of work that queues the
    reminder, so overlapping runs never remind anyone twice.
    """
    now = now or utcnow()
    window_start = now + timedelta(hours=settings.REMINDER_WINDOW_START_HOURS)
    window_end = now + timedelta(hours=settings.REMINDER_WINDOW_END_HOURS)
    offering_ids = [
        o.id
        for o in crud.offering.get_open_starting_between(
            db, window_start=window_start, window_end=window_end
        )
    ]

    sent = 0
    for offering_id in offering_ids:
        try:
            notifications: List[Notification] = []
            with transaction(db):
                offering = crud.offering.get_for_update(db, offering_id)
                if offering is None or offering.status != OfferingStatus.OPEN:
                    continue
                for registration in crud.registration.get_unreminded_confirmed(
                    db, offering_id=offering_id
                ):
                    registration.reminder_sent_at = now
                    notifications.append(
                        Notification(
                            kind=NotificationKind.EVENT_REMINDER,
                            recipient=registration.contact_email or registration.subject_id,
                            payload={
                                "offering_id": offering.id,
                                "offering_title": offering.title,
                                "registration_id": registration.id,
                                "subject_id": registration.subject_id,
                                "starts_at": offering.starts_at.isoformat(),
                            },
                        )
                    )
            notifier.dispatch(notifications)
            sent += len(notifications)
        except Exception as e:
            logger.error(f"Error sending reminders for offering {offering_id}: {e}", exc_info=True)

    if sent:
        logger.info(f"Sent {sent} event reminders across {len(offering_ids)} offerings")
    return sent


def close_past_offerings(
    db: Session,
    *,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> int:
    now = now or utcnow()
    offering_ids = [o.id for o in crud.offering.get_open_finished_before(db, now=now)]
    service = OfferingService(db, notifier=notifier)

    closed = 0
    for offering_id in offering_ids:
        try:
            if service.close_offering(offering_id, now=now):
                closed += 1
        except Exception as e:
            logger.error(f"Error closing offering {offering_id}: {e}", exc_info=True)
    return closed
