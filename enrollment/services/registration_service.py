# enrollment/services/registration_service.py
"""
Registration orchestration.

Each mutating operation runs as one unit of work that starts by locking the
offering row, so capacity checks, seat accounting and waitlist promotion for
an offering never interleave. Notifications are collected while the unit of
work is open and dispatched after it commits; checkout is started only after
commit, outside the lock.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from enrollment import crud
from enrollment.constants.status import (
    OfferingStatus,
    PaymentStatus,
    RegistrationOutcome,
    RegistrationStatus,
)
from enrollment.core.config import settings
from enrollment.core.exceptions import (
    AlreadyRegistered,
    AlreadyWaitlisted,
    CancellationNotAllowed,
    DeadlinePassed,
    NotAuthorized,
    OfferingNotFound,
    OfferingNotOpen,
    RegistrationNotFound,
    RegistrationNotPending,
)
from enrollment.db.session import transaction
from enrollment.models.offering import Offering
from enrollment.models.registration import Registration
from enrollment.services import ledger, waitlist_queue
from enrollment.services.checkout import start_checkout
from enrollment.services.identity import Subject
from enrollment.services.notifications import Notification, NotificationKind, Notifier
from enrollment.services.payment import CheckoutHandle, PaymentProvider
from enrollment.services.results import RegistrationResult
from enrollment.services.waitlist_service import WaitlistService
from enrollment.utils.clock import utcnow

logger = logging.getLogger(__name__)

CAPACITY_EXHAUSTED_REASON = "capacity exhausted before payment completed"
PAYMENT_TIMEOUT_REASON = "payment timeout"


def _notification(kind: str, offering: Offering, registration: Registration, **extra) -> Notification:
    payload = {
        "offering_id": offering.id,
        "offering_title": offering.title,
        "registration_id": registration.id,
        "subject_id": registration.subject_id,
    }
    payload.update(extra)
    return Notification(
        kind=kind,
        recipient=registration.contact_email or registration.subject_id,
        payload=payload,
    )


class RegistrationService:
    def __init__(
        self,
        db: Session,
        *,
        payment_provider: PaymentProvider,
        notifier: Notifier,
        waitlist_service: Optional[WaitlistService] = None,
    ):
        self.db = db
        self.payment_provider = payment_provider
        self.notifier = notifier
        self.waitlist = waitlist_service or WaitlistService(
            db, notifier=notifier, payment_provider=payment_provider
        )

    def _lock_offering(self, offering_id: str) -> Offering:
        offering = crud.offering.get_for_update(self.db, offering_id)
        if offering is None:
            raise OfferingNotFound(offering_id=offering_id)
        return offering

    @staticmethod
    def _ensure_open(offering: Offering, now: datetime) -> None:
        if offering.status != OfferingStatus.OPEN:
            raise OfferingNotOpen(offering_id=offering.id, status=offering.status)
        if offering.registration_deadline is not None and now > offering.registration_deadline:
            raise DeadlinePassed(offering_id=offering.id)

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    def register(
        self, subject: Subject, offering_id: str, *, now: Optional[datetime] = None
    ) -> RegistrationResult:
        """
        Register ``subject`` for an offering.

        Outcomes:
          - confirmed: free offering with a seat available
          - checkout_required: paid offering with a seat available; the
            registration is pending_payment until the provider confirms
          - waitlisted: no seat available; the subject joins the queue

        Raises CheckoutCreationFailed (carrying the registration id) when the
        provider cannot start checkout; the pending registration is kept.
        """
        now = now or utcnow()
        notifications: List[Notification] = []

        with transaction(self.db):
            offering = self._lock_offering(offering_id)
            self._ensure_open(offering, now)

            if crud.registration.get_live(self.db, offering_id=offering.id, subject_id=subject.id):
                raise AlreadyRegistered(offering_id=offering.id)
            if crud.waitlist.get_live(self.db, offering_id=offering.id, subject_id=subject.id):
                raise AlreadyWaitlisted(offering_id=offering.id)

            if self.waitlist.free_seats(offering) <= 0:
                entry = waitlist_queue.enqueue(
                    self.db,
                    offering,
                    subject_id=subject.id,
                    contact_email=subject.email,
                    now=now,
                )
                notifications.append(
                    Notification(
                        kind=NotificationKind.WAITLIST_JOINED,
                        recipient=subject.email or subject.id,
                        payload={
                            "offering_id": offering.id,
                            "offering_title": offering.title,
                            "waitlist_entry_id": entry.id,
                            "subject_id": subject.id,
                            "position": entry.position,
                        },
                    )
                )
                result = RegistrationResult(outcome=RegistrationOutcome.WAITLISTED, waitlist_entry=entry)
            else:
                registration = ledger.open_registration(
                    self.db,
                    offering,
                    subject_id=subject.id,
                    contact_email=subject.email,
                    now=now,
                )
                if registration.status == RegistrationStatus.CONFIRMED:
                    notifications.append(
                        _notification(NotificationKind.REGISTRATION_CONFIRMED, offering, registration)
                    )
                    outcome = RegistrationOutcome.CONFIRMED
                else:
                    outcome = RegistrationOutcome.CHECKOUT_REQUIRED
                result = RegistrationResult(outcome=outcome, registration=registration)

        self.notifier.dispatch(notifications)

        if result.outcome == RegistrationOutcome.CHECKOUT_REQUIRED:
            result.checkout = start_checkout(
                self.db, self.payment_provider, registration_id=result.registration.id
            )
            self.db.refresh(result.registration)
        return result

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def _lock_registration(self, registration_id: str) -> tuple[Offering, Registration]:
        registration = crud.registration.get(self.db, registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id=registration_id)
        offering = self._lock_offering(registration.offering_id)
        self.db.refresh(registration)
        return offering, registration

    def confirm_payment(
        self,
        registration_id: str,
        *,
        payment_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Registration:
        """
        Apply a successful payment to a pending registration.

        If the last seat was taken while the subject was paying, the
        registration is cancelled instead of overbooking the offering. The
        payment is still recorded as completed so it can be refunded.
        """
        now = now or utcnow()
        notifications: List[Notification] = []

        with transaction(self.db):
            offering, registration = self._lock_registration(registration_id)
            if registration.status != RegistrationStatus.PENDING_PAYMENT:
                raise RegistrationNotPending(registration_id=registration_id, status=registration.status)

            registration.payment_status = PaymentStatus.COMPLETED
            if payment_reference:
                registration.payment_reference = payment_reference

            if offering.confirmed_seats >= offering.capacity:
                ledger.transition_registration(
                    offering,
                    registration,
                    RegistrationStatus.CANCELLED,
                    now=now,
                    reason=CAPACITY_EXHAUSTED_REASON,
                )
                logger.warning(
                    f"Payment for registration {registration_id} arrived after {offering.id} filled; "
                    f"registration cancelled, refund required"
                )
                notifications.append(
                    _notification(
                        NotificationKind.REGISTRATION_CANCELLED,
                        offering,
                        registration,
                        reason=CAPACITY_EXHAUSTED_REASON,
                        refund_required=True,
                    )
                )
            else:
                ledger.transition_registration(
                    offering, registration, RegistrationStatus.CONFIRMED, now=now
                )
                notifications.append(
                    _notification(NotificationKind.REGISTRATION_CONFIRMED, offering, registration)
                )

        self.notifier.dispatch(notifications)
        return registration

    def record_payment_failure(
        self, registration_id: str, *, now: Optional[datetime] = None
    ) -> Registration:
        """Mark a pending registration's payment as failed. It stays pending so checkout can be retried."""
        now = now or utcnow()
        notifications: List[Notification] = []

        with transaction(self.db):
            offering, registration = self._lock_registration(registration_id)
            if registration.status != RegistrationStatus.PENDING_PAYMENT:
                logger.info(
                    f"Ignoring payment failure for registration {registration_id} in status {registration.status}"
                )
                return registration
            if registration.payment_status != PaymentStatus.FAILED:
                registration.payment_status = PaymentStatus.FAILED
                notifications.append(
                    _notification(NotificationKind.PAYMENT_FAILED, offering, registration)
                )

        self.notifier.dispatch(notifications)
        return registration

    def record_late_payment(
        self,
        registration_id: str,
        *,
        payment_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Record a successful payment that arrived after the registration was cancelled.

        The registration stays cancelled; the payment is marked completed and
        the subject is notified that a refund is due. Returns False when there
        is nothing to record (not cancelled, or the payment is already known).
        """
        now = now or utcnow()
        notifications: List[Notification] = []

        with transaction(self.db):
            offering, registration = self._lock_registration(registration_id)
            if (
                registration.status != RegistrationStatus.CANCELLED
                or registration.payment_status == PaymentStatus.COMPLETED
            ):
                return False

            registration.payment_status = PaymentStatus.COMPLETED
            if payment_reference:
                registration.payment_reference = payment_reference
            logger.warning(
                f"Payment for cancelled registration {registration_id} on {offering.id} "
                f"arrived at {now.isoformat()}; refund required"
            )
            notifications.append(
                _notification(
                    NotificationKind.REGISTRATION_CANCELLED,
                    offering,
                    registration,
                    reason=registration.cancel_reason,
                    refund_required=True,
                )
            )

        self.notifier.dispatch(notifications)
        return True

    def retry_checkout(self, subject: Subject, registration_id: str) -> CheckoutHandle:
        registration = crud.registration.get(self.db, registration_id)
        if registration is None:
            raise RegistrationNotFound(registration_id=registration_id)
        if registration.subject_id != subject.id and not subject.is_admin:
            raise NotAuthorized(registration_id=registration_id)
        if registration.status != RegistrationStatus.PENDING_PAYMENT:
            raise RegistrationNotPending(registration_id=registration_id, status=registration.status)

        return start_checkout(self.db, self.payment_provider, registration_id=registration_id)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _cancel_locked(
        self,
        offering: Offering,
        registration: Registration,
        *,
        reason: Optional[str],
        now: datetime,
    ) -> List[Notification]:
        # A confirmed seat, or one reserved by an accepted waitlist offer, goes to the next entry.
        releases_seat = (
            registration.status == RegistrationStatus.CONFIRMED
            or registration.waitlist_entry_id is not None
        )
        ledger.transition_registration(
            offering, registration, RegistrationStatus.CANCELLED, now=now, reason=reason
        )
        notifications = [
            _notification(NotificationKind.REGISTRATION_CANCELLED, offering, registration, reason=reason)
        ]
        if releases_seat:
            _, promoted = self.waitlist.promote_next_locked(offering, now=now)
            notifications.extend(promoted)
        return notifications

    def cancel_registration(
        self,
        subject: Subject,
        offering_id: str,
        *,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Registration:
        """
        Cancel the subject's live registration.

        A confirmed registration releases its seat, as does a pending one
        opened from an accepted waitlist offer. The seat is offered to the
        next waitlist entry in the same unit of work.
        """
        now = now or utcnow()

        with transaction(self.db):
            offering = self._lock_offering(offering_id)
            registration = crud.registration.get_live(
                self.db, offering_id=offering.id, subject_id=subject.id
            ) or crud.registration.get_latest(self.db, offering_id=offering.id, subject_id=subject.id)
            if registration is None:
                raise RegistrationNotFound(offering_id=offering_id)
            if not registration.is_live:
                raise CancellationNotAllowed(registration_id=registration.id, status=registration.status)

            notifications = self._cancel_locked(offering, registration, reason=reason, now=now)

        self.notifier.dispatch(notifications)
        return registration

    def cancel_stale_pending(self, registration_id: str, *, now: Optional[datetime] = None) -> bool:
        """Cancel one pending_payment registration older than the payment window.

        Returns False when it was paid or cancelled in the meantime.
        """
        now = now or utcnow()
        cutoff = now - timedelta(hours=settings.PENDING_PAYMENT_TTL_HOURS)

        with transaction(self.db):
            offering, registration = self._lock_registration(registration_id)
            if (
                registration.status != RegistrationStatus.PENDING_PAYMENT
                or registration.registered_at >= cutoff
            ):
                return False
            notifications = self._cancel_locked(
                offering, registration, reason=PAYMENT_TIMEOUT_REASON, now=now
            )

        self.notifier.dispatch(notifications)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_my_registration(self, subject: Subject, offering_id: str) -> Registration:
        if crud.offering.get(self.db, offering_id) is None:
            raise OfferingNotFound(offering_id=offering_id)
        registration = crud.registration.get_live(
            self.db, offering_id=offering_id, subject_id=subject.id
        ) or crud.registration.get_latest(self.db, offering_id=offering_id, subject_id=subject.id)
        if registration is None:
            raise RegistrationNotFound(offering_id=offering_id)
        return registration

    def list_attendees(self, offering_id: str, *, skip: int = 0, limit: int = 100) -> List[Registration]:
        if crud.offering.get(self.db, offering_id) is None:
            raise OfferingNotFound(offering_id=offering_id)
        return crud.registration.get_multi_by_offering(
            self.db,
            offering_id=offering_id,
            statuses=(RegistrationStatus.CONFIRMED, RegistrationStatus.COMPLETED),
            skip=skip,
            limit=limit,
        )
