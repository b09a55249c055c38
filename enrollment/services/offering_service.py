# enrollment/services/offering_service.py
"""
Offering lifecycle changes that cascade to registrations and the waitlist.

Cancelling (admin) or closing (after the offering ends) moves every live
registration and waitlist entry to a terminal status in the same unit of
work. Seats are released through seat accounting and nobody is promoted.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from enrollment import crud
from enrollment.constants.status import (
    OfferingStatus,
    PaymentStatus,
    RegistrationStatus,
    WaitlistStatus,
)
from enrollment.core.exceptions import NotAuthorized, OfferingNotFound
from enrollment.db.session import transaction
from enrollment.models.offering import Offering
from enrollment.services import ledger, waitlist_queue
from enrollment.services.identity import Subject
from enrollment.services.notifications import Notification, NotificationKind, Notifier
from enrollment.utils.clock import utcnow

logger = logging.getLogger(__name__)

OFFERING_CANCELLED_REASON = "offering cancelled"
OFFERING_CLOSED_REASON = "offering closed before payment completed"


class OfferingService:
    def __init__(self, db: Session, *, notifier: Notifier):
        self.db = db
        self.notifier = notifier

    def _lock(self, offering_id: str) -> Offering:
        offering = crud.offering.get_for_update(self.db, offering_id)
        if offering is None:
            raise OfferingNotFound(offering_id=offering_id)
        return offering

    def _expire_waitlist(self, offering: Offering, *, now: datetime) -> int:
        entries = crud.waitlist.get_live_entries(self.db, offering_id=offering.id)
        for entry in entries:
            waitlist_queue.transition_entry(entry, WaitlistStatus.EXPIRED, now=now)
        waitlist_queue.compact_positions(self.db, offering.id)
        return len(entries)

    def cancel_offering(
        self,
        actor: Subject,
        offering_id: str,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Offering:
        if not actor.is_admin:
            raise NotAuthorized(offering_id=offering_id)
        now = now or utcnow()
        reason = reason or OFFERING_CANCELLED_REASON
        notifications: List[Notification] = []

        with transaction(self.db):
            offering = self._lock(offering_id)
            if offering.status in (OfferingStatus.CANCELLED, OfferingStatus.CLOSED):
                return offering

            offering.status = OfferingStatus.CANCELLED
            offering.updated_at = now

            live = crud.registration.get_multi_by_offering(
                self.db, offering_id=offering.id, statuses=RegistrationStatus.LIVE, limit=None
            )
            for registration in live:
                ledger.transition_registration(
                    offering, registration, RegistrationStatus.CANCELLED, now=now, reason=reason
                )
                notifications.append(
                    Notification(
                        kind=NotificationKind.REGISTRATION_CANCELLED,
                        recipient=registration.contact_email or registration.subject_id,
                        payload={
                            "offering_id": offering.id,
                            "offering_title": offering.title,
                            "registration_id": registration.id,
                            "subject_id": registration.subject_id,
                            "reason": reason,
                            "refund_required": registration.payment_status == PaymentStatus.COMPLETED,
                        },
                    )
                )
            expired = self._expire_waitlist(offering, now=now)

        logger.info(
            f"Offering {offering_id} cancelled by {actor.id}: "
            f"{len(live)} registrations cancelled, {expired} waitlist entries expired"
        )
        self.notifier.dispatch(notifications)
        return offering

    def close_offering(self, offering_id: str, *, now: Optional[datetime] = None) -> bool:
        """Close one finished offering. False if it is no longer open or not finished yet."""
        now = now or utcnow()

        with transaction(self.db):
            offering = self._lock(offering_id)
            finished_at = offering.ends_at or offering.starts_at
            if offering.status != OfferingStatus.OPEN or finished_at >= now:
                return False

            offering.status = OfferingStatus.CLOSED
            offering.updated_at = now

            live = crud.registration.get_multi_by_offering(
                self.db, offering_id=offering.id, statuses=RegistrationStatus.LIVE, limit=None
            )
            completed = 0
            for registration in live:
                if registration.status == RegistrationStatus.CONFIRMED:
                    ledger.transition_registration(
                        offering, registration, RegistrationStatus.COMPLETED, now=now
                    )
                    completed += 1
                else:
                    ledger.transition_registration(
                        offering,
                        registration,
                        RegistrationStatus.CANCELLED,
                        now=now,
                        reason=OFFERING_CLOSED_REASON,
                    )
            expired = self._expire_waitlist(offering, now=now)

        logger.info(
            f"Closed offering {offering_id}: {completed} registrations completed, "
            f"{expired} waitlist entries expired"
        )
        return True
