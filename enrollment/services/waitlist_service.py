# enrollment/services/waitlist_service.py
"""
Waitlist orchestration: offering freed seats to the head of the queue and
handling the subject's response.

Exactly one entry is offered per free seat. A free seat is one not taken by a
confirmed registration and not held by an outstanding offer or by the pending
registration of an accepted offer. Offers carry a response deadline; an offer
found past its deadline is expired on the spot and the seat moves to the next
waiting entry.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from enrollment import crud
from enrollment.constants.status import (
    RegistrationOutcome,
    RegistrationStatus,
    WaitlistStatus,
)
from enrollment.core.config import settings
from enrollment.core.exceptions import (
    AlreadyRegistered,
    NoCapacity,
    NotAuthorized,
    OfferExpired,
    OfferingNotFound,
    OfferNotActive,
    WaitlistEntryNotFound,
)
from enrollment.db.session import transaction
from enrollment.models.offering import Offering
from enrollment.models.waitlist_entry import WaitlistEntry
from enrollment.services import ledger, waitlist_queue
from enrollment.services.checkout import start_checkout
from enrollment.services.identity import Subject
from enrollment.services.notifications import Notification, NotificationKind, Notifier
from enrollment.services.payment import PaymentProvider
from enrollment.services.results import RegistrationResult, WaitlistPosition
from enrollment.utils.clock import utcnow

logger = logging.getLogger(__name__)


def _recipient(entry) -> str:
    return entry.contact_email or entry.subject_id


class WaitlistService:
    def __init__(self, db: Session, *, notifier: Notifier, payment_provider: PaymentProvider):
        self.db = db
        self.notifier = notifier
        self.payment_provider = payment_provider

    # ------------------------------------------------------------------
    # Promotion
    # ------------------------------------------------------------------

    def free_seats(self, offering: Offering) -> int:
        outstanding = crud.waitlist.count_outstanding_offers(self.db, offering_id=offering.id)
        reserved = crud.registration.count_reserved_pending(self.db, offering_id=offering.id)
        return offering.capacity - offering.confirmed_seats - outstanding - reserved

    def promote_next_locked(
        self, offering: Offering, *, now: datetime
    ) -> Tuple[Optional[WaitlistEntry], List[Notification]]:
        """
        Offer a free seat to the lowest-position waiting entry.

        Runs inside the caller's unit of work with the offering row locked.
        Returns the offered entry (or None) and the notifications to send
        after commit.
        """
        self.db.flush()
        if self.free_seats(offering) <= 0:
            return None, []

        entry = crud.waitlist.get_next_waiting(self.db, offering_id=offering.id)
        if entry is None:
            return None, []

        waitlist_queue.transition_entry(entry, WaitlistStatus.OFFERED, now=now)
        entry.offered_at = now
        entry.response_deadline = now + timedelta(hours=settings.WAITLIST_OFFER_TTL_HOURS)
        self.db.flush()

        logger.info(
            f"Offered seat on {offering.id} to waitlist entry {entry.id} "
            f"(position {entry.position}), respond by {entry.response_deadline.isoformat()}"
        )
        notification = Notification(
            kind=NotificationKind.WAITLIST_SPOT_AVAILABLE,
            recipient=_recipient(entry),
            payload={
                "offering_id": offering.id,
                "offering_title": offering.title,
                "waitlist_entry_id": entry.id,
                "subject_id": entry.subject_id,
                "response_deadline": entry.response_deadline.isoformat(),
            },
        )
        return entry, [notification]

    def promote_next(self, offering_id: str, *, now: Optional[datetime] = None) -> Optional[WaitlistEntry]:
        now = now or utcnow()
        with transaction(self.db):
            offering = crud.offering.get_for_update(self.db, offering_id)
            if offering is None:
                raise OfferingNotFound(offering_id=offering_id)
            entry, notifications = self.promote_next_locked(offering, now=now)

        self.notifier.dispatch(notifications)
        return entry

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def _get_owned_entry(self, subject: Subject, entry_id: str) -> WaitlistEntry:
        entry = crud.waitlist.get(self.db, entry_id)
        if entry is None:
            raise WaitlistEntryNotFound(waitlist_entry_id=entry_id)
        if entry.subject_id != subject.id:
            raise NotAuthorized(waitlist_entry_id=entry_id)
        return entry

    def _lock(self, entry: WaitlistEntry) -> Tuple[Offering, WaitlistEntry]:
        offering = crud.offering.get_for_update(self.db, entry.offering_id)
        if offering is None:
            raise OfferingNotFound(offering_id=entry.offering_id)
        # Re-read under the lock; the pre-lock copy may be stale.
        self.db.refresh(entry)
        return offering, entry

    def _expire_locked(self, offering: Offering, entry: WaitlistEntry, *, now: datetime) -> List[Notification]:
        waitlist_queue.retire_entry(self.db, entry, WaitlistStatus.EXPIRED, now=now)
        logger.info(f"Waitlist offer {entry.id} on {offering.id} expired")
        notifications = [
            Notification(
                kind=NotificationKind.WAITLIST_OFFER_EXPIRED,
                recipient=_recipient(entry),
                payload={
                    "offering_id": offering.id,
                    "offering_title": offering.title,
                    "waitlist_entry_id": entry.id,
                    "subject_id": entry.subject_id,
                },
            )
        ]
        _, promoted = self.promote_next_locked(offering, now=now)
        return notifications + promoted

    def accept_offer(
        self, subject: Subject, entry_id: str, *, now: Optional[datetime] = None
    ) -> RegistrationResult:
        now = now or utcnow()
        entry = self._get_owned_entry(subject, entry_id)
        notifications: List[Notification] = []
        expired = False

        with transaction(self.db):
            offering, entry = self._lock(entry)
            if entry.status != WaitlistStatus.OFFERED:
                raise OfferNotActive(waitlist_entry_id=entry_id, status=entry.status)

            if entry.response_deadline is not None and entry.response_deadline < now:
                notifications = self._expire_locked(offering, entry, now=now)
                expired = True
            else:
                if crud.registration.get_live(
                    self.db, offering_id=offering.id, subject_id=subject.id
                ):
                    raise AlreadyRegistered(offering_id=offering.id)
                if offering.confirmed_seats >= offering.capacity:
                    raise NoCapacity(offering_id=offering.id)

                waitlist_queue.retire_entry(self.db, entry, WaitlistStatus.ACCEPTED, now=now)
                registration = ledger.open_registration(
                    self.db,
                    offering,
                    subject_id=subject.id,
                    contact_email=subject.email or entry.contact_email,
                    now=now,
                    waitlist_entry_id=entry.id,
                )
                if registration.status == RegistrationStatus.CONFIRMED:
                    notifications.append(
                        Notification(
                            kind=NotificationKind.REGISTRATION_CONFIRMED,
                            recipient=registration.contact_email or subject.id,
                            payload={
                                "offering_id": offering.id,
                                "offering_title": offering.title,
                                "registration_id": registration.id,
                                "subject_id": subject.id,
                                "from_waitlist": True,
                            },
                        )
                    )
                registration_id = registration.id
                pending = registration.status == RegistrationStatus.PENDING_PAYMENT

        self.notifier.dispatch(notifications)
        if expired:
            raise OfferExpired(waitlist_entry_id=entry_id)

        logger.info(f"Waitlist entry {entry_id} accepted; registration {registration_id}")
        if not pending:
            return RegistrationResult(
                outcome=RegistrationOutcome.CONFIRMED,
                registration=registration,
                waitlist_entry=entry,
            )

        handle = start_checkout(
            self.db,
            self.payment_provider,
            registration_id=registration_id,
        )
        return RegistrationResult(
            outcome=RegistrationOutcome.CHECKOUT_REQUIRED,
            registration=crud.registration.get(self.db, registration_id),
            waitlist_entry=entry,
            checkout=handle,
        )

    def decline_offer(
        self, subject: Subject, entry_id: str, *, now: Optional[datetime] = None
    ) -> WaitlistEntry:
        now = now or utcnow()
        entry = self._get_owned_entry(subject, entry_id)

        with transaction(self.db):
            offering, entry = self._lock(entry)
            if entry.status != WaitlistStatus.OFFERED:
                raise OfferNotActive(waitlist_entry_id=entry_id, status=entry.status)

            waitlist_queue.retire_entry(self.db, entry, WaitlistStatus.DECLINED, now=now)
            logger.info(f"Waitlist entry {entry_id} declined the offer on {offering.id}")
            _, notifications = self.promote_next_locked(offering, now=now)

        self.notifier.dispatch(notifications)
        return entry

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    def expire_offer(self, entry_id: str, *, now: Optional[datetime] = None) -> bool:
        """Expire one overdue offer and promote the next entry. False if it was no longer overdue."""
        now = now or utcnow()
        entry = crud.waitlist.get(self.db, entry_id)
        if entry is None:
            return False

        with transaction(self.db):
            offering, entry = self._lock(entry)
            if (
                entry.status != WaitlistStatus.OFFERED
                or entry.response_deadline is None
                or entry.response_deadline >= now
            ):
                return False
            notifications = self._expire_locked(offering, entry, now=now)

        self.notifier.dispatch(notifications)
        return True

    def expire_stale_offers(self, *, now: Optional[datetime] = None) -> int:
        """
        Expire every offer whose deadline has passed.

        Each entry is handled in its own unit of work; one failure is logged
        and the sweep moves on.
        """
        now = now or utcnow()
        overdue_ids = [e.id for e in crud.waitlist.get_expired_offers(self.db, now=now)]
        if not overdue_ids:
            return 0

        logger.info(f"Found {len(overdue_ids)} expired waitlist offers")
        expired = 0
        for entry_id in overdue_ids:
            try:
                if self.expire_offer(entry_id, now=now):
                    expired += 1
            except Exception as e:
                logger.error(f"Error expiring waitlist offer {entry_id}: {e}", exc_info=True)
        return expired

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_waitlist_position(self, subject: Subject, offering_id: str) -> WaitlistPosition:
        entry = crud.waitlist.get_live(self.db, offering_id=offering_id, subject_id=subject.id)
        if entry is None:
            raise WaitlistEntryNotFound(offering_id=offering_id)
        total = len(crud.waitlist.get_live_entries(self.db, offering_id=offering_id))
        return WaitlistPosition(entry=entry, position=entry.position, total_live=total)
