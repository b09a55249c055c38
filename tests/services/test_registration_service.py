# tests/services/test_registration_service.py
"""
Tests for RegistrationService against the SQLite test database.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from enrollment import crud
from enrollment.constants.status import (
    OfferingStatus,
    PaymentStatus,
    RegistrationOutcome,
    RegistrationStatus,
    Role,
    WaitlistStatus,
)
from enrollment.core.exceptions import (
    AlreadyRegistered,
    AlreadyWaitlisted,
    CancellationNotAllowed,
    CheckoutCreationFailed,
    DeadlinePassed,
    NotAuthorized,
    OfferingNotFound,
    OfferingNotOpen,
    RegistrationNotFound,
    RegistrationNotPending,
    TransactionFailed,
)
from enrollment.models.offering import Offering
from enrollment.models.registration import Registration
from enrollment.services.identity import Subject
from enrollment.services.notifications import NotificationKind
from enrollment.services.registration_service import RegistrationService
from tests.utils.fakes import FailingNotifier
from tests.utils.invariants import assert_offering_invariants
from tests.utils.offering import NOW, create_offering

ALICE = Subject(id="user_alice", email="alice@example.com")
BOB = Subject(id="user_bob", email="bob@example.com")
CAROL = Subject(id="user_carol", email="carol@example.com")


def _seats(db, offering_id):
    db.expire_all()
    return db.get(Offering, offering_id).confirmed_seats


class TestRegister:
    def test_free_offering_confirms_immediately(self, db, registration_service, notifier):
        offering = create_offering(db, capacity=2)

        result = registration_service.register(ALICE, offering.id, now=NOW)

        assert result.outcome == RegistrationOutcome.CONFIRMED
        assert result.registration.status == RegistrationStatus.CONFIRMED
        assert result.registration.confirmed_at == NOW
        assert result.checkout is None
        assert _seats(db, offering.id) == 1
        assert notifier.kinds() == [NotificationKind.REGISTRATION_CONFIRMED]
        assert_offering_invariants(db, offering.id)

    def test_paid_offering_requires_checkout(self, db, registration_service, payment_provider):
        offering = create_offering(db, price_cents=5000)

        result = registration_service.register(ALICE, offering.id, now=NOW)

        assert result.outcome == RegistrationOutcome.CHECKOUT_REQUIRED
        assert result.checkout.session_id == "cs_test_1"
        assert result.registration.status == RegistrationStatus.PENDING_PAYMENT
        assert result.registration.payment_status == PaymentStatus.PENDING
        assert result.registration.checkout_session_id == "cs_test_1"
        # No seat until payment is confirmed
        assert _seats(db, offering.id) == 0

        call = payment_provider.calls[0]
        assert call["amount_cents"] == 5000
        assert call["currency"] == "USD"
        assert call["reference_id"] == result.registration.id
        assert call["customer_email"] == "alice@example.com"

    def test_full_offering_waitlists_with_position(self, db, registration_service, notifier):
        offering = create_offering(db, capacity=1)
        registration_service.register(ALICE, offering.id, now=NOW)

        bob = registration_service.register(BOB, offering.id, now=NOW + timedelta(minutes=1))
        carol = registration_service.register(CAROL, offering.id, now=NOW + timedelta(minutes=2))

        assert bob.outcome == RegistrationOutcome.WAITLISTED
        assert bob.position == 1
        assert bob.registration is None
        assert carol.position == 2
        assert notifier.of_kind(NotificationKind.WAITLIST_JOINED)[1]["position"] == 2
        assert_offering_invariants(db, offering.id)

    def test_already_registered(self, db, registration_service):
        offering = create_offering(db, capacity=5)
        registration_service.register(ALICE, offering.id, now=NOW)

        with pytest.raises(AlreadyRegistered):
            registration_service.register(ALICE, offering.id, now=NOW)
        assert _seats(db, offering.id) == 1

    def test_pending_payment_also_blocks_second_attempt(self, db, registration_service):
        offering = create_offering(db, price_cents=1000)
        registration_service.register(ALICE, offering.id, now=NOW)

        with pytest.raises(AlreadyRegistered):
            registration_service.register(ALICE, offering.id, now=NOW)

    def test_already_waitlisted(self, db, registration_service):
        offering = create_offering(db, capacity=1)
        registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.register(BOB, offering.id, now=NOW)

        with pytest.raises(AlreadyWaitlisted):
            registration_service.register(BOB, offering.id, now=NOW)

    @pytest.mark.parametrize(
        "status", [OfferingStatus.DRAFT, OfferingStatus.CANCELLED, OfferingStatus.CLOSED]
    )
    def test_offering_not_open(self, db, registration_service, status):
        offering = create_offering(db, status=status)

        with pytest.raises(OfferingNotOpen) as exc_info:
            registration_service.register(ALICE, offering.id, now=NOW)
        assert not isinstance(exc_info.value, DeadlinePassed)

    def test_deadline_passed(self, db, registration_service):
        offering = create_offering(db, registration_deadline=NOW - timedelta(hours=1))

        with pytest.raises(DeadlinePassed) as exc_info:
            registration_service.register(ALICE, offering.id, now=NOW)
        assert exc_info.value.code == "deadline_passed"

    def test_unknown_offering(self, registration_service):
        with pytest.raises(OfferingNotFound):
            registration_service.register(ALICE, "off_missing", now=NOW)

    def test_checkout_failure_keeps_pending_registration(self, db, registration_service, payment_provider):
        offering = create_offering(db, price_cents=5000)
        payment_provider.fail = True

        with pytest.raises(CheckoutCreationFailed) as exc_info:
            registration_service.register(ALICE, offering.id, now=NOW)

        db.expire_all()
        registration = crud.registration.get(db, exc_info.value.registration_id)
        assert registration.status == RegistrationStatus.PENDING_PAYMENT
        assert registration.checkout_session_id is None
        assert _seats(db, offering.id) == 0

    def test_notification_failure_does_not_undo_registration(self, db, payment_provider):
        offering = create_offering(db)
        service = RegistrationService(db, payment_provider=payment_provider, notifier=FailingNotifier())

        result = service.register(ALICE, offering.id, now=NOW)

        assert result.outcome == RegistrationOutcome.CONFIRMED
        assert _seats(db, offering.id) == 1

    def test_store_failure_rolls_back_seat_change(self, db, registration_service):
        offering = create_offering(db)

        with patch.object(
            crud.registration, "add", side_effect=OperationalError("INSERT", {}, Exception("disk I/O error"))
        ):
            with pytest.raises(TransactionFailed):
                registration_service.register(ALICE, offering.id, now=NOW)

        assert _seats(db, offering.id) == 0
        assert db.query(Registration).count() == 0


class TestConfirmPayment:
    def test_confirms_and_takes_seat(self, db, registration_service, notifier):
        offering = create_offering(db, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)

        registration = registration_service.confirm_payment(
            result.registration.id, payment_reference="pi_123", now=NOW + timedelta(minutes=5)
        )

        assert registration.status == RegistrationStatus.CONFIRMED
        assert registration.payment_status == PaymentStatus.COMPLETED
        assert registration.payment_reference == "pi_123"
        assert registration.confirmed_at == NOW + timedelta(minutes=5)
        assert _seats(db, offering.id) == 1
        assert NotificationKind.REGISTRATION_CONFIRMED in notifier.kinds()

    def test_duplicate_confirmation_is_rejected_without_double_count(self, db, registration_service):
        offering = create_offering(db, capacity=3, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.confirm_payment(result.registration.id, now=NOW)

        with pytest.raises(RegistrationNotPending):
            registration_service.confirm_payment(result.registration.id, now=NOW)
        assert _seats(db, offering.id) == 1
        assert_offering_invariants(db, offering.id)

    def test_unknown_registration(self, registration_service):
        with pytest.raises(RegistrationNotFound):
            registration_service.confirm_payment("reg_missing", now=NOW)

    def test_seat_taken_while_paying_cancels_instead_of_overbooking(self, db, registration_service, notifier):
        offering = create_offering(db, capacity=1, price_cents=5000)
        first = registration_service.register(ALICE, offering.id, now=NOW)
        second = registration_service.register(BOB, offering.id, now=NOW)
        registration_service.confirm_payment(first.registration.id, now=NOW)

        late = registration_service.confirm_payment(second.registration.id, now=NOW)

        assert late.status == RegistrationStatus.CANCELLED
        assert late.payment_status == PaymentStatus.COMPLETED
        assert late.cancel_reason.startswith("capacity exhausted")
        assert _seats(db, offering.id) == 1
        cancelled = notifier.of_kind(NotificationKind.REGISTRATION_CANCELLED)
        assert cancelled[-1]["refund_required"] is True
        assert_offering_invariants(db, offering.id)


class TestRecordLatePayment:
    def test_payment_after_timeout_is_kept_for_refund(self, db, registration_service, notifier):
        offering = create_offering(db, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)
        assert registration_service.cancel_stale_pending(result.registration.id, now=NOW + timedelta(hours=25))

        recorded = registration_service.record_late_payment(
            result.registration.id, payment_reference="pi_late", now=NOW + timedelta(hours=26)
        )

        assert recorded is True
        db.expire_all()
        registration = crud.registration.get(db, result.registration.id)
        assert registration.status == RegistrationStatus.CANCELLED
        assert registration.payment_status == PaymentStatus.COMPLETED
        assert registration.payment_reference == "pi_late"
        assert _seats(db, offering.id) == 0
        cancelled = notifier.of_kind(NotificationKind.REGISTRATION_CANCELLED)
        assert cancelled[-1]["refund_required"] is True
        assert cancelled[-1]["reason"] == "payment timeout"

    def test_recorded_only_once(self, db, registration_service, notifier):
        offering = create_offering(db, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.cancel_registration(ALICE, offering.id, now=NOW)
        registration_service.record_late_payment(result.registration.id, now=NOW)

        assert registration_service.record_late_payment(result.registration.id, now=NOW) is False
        assert len(notifier.of_kind(NotificationKind.REGISTRATION_CANCELLED)) == 2

    def test_nothing_to_record_for_live_registration(self, db, registration_service):
        offering = create_offering(db, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)

        assert registration_service.record_late_payment(result.registration.id, now=NOW) is False
        db.expire_all()
        assert crud.registration.get(db, result.registration.id).payment_status == PaymentStatus.PENDING


class TestRecordPaymentFailure:
    def test_marks_failed_and_stays_pending(self, db, registration_service, notifier):
        offering = create_offering(db, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)

        registration = registration_service.record_payment_failure(result.registration.id, now=NOW)
        registration_service.record_payment_failure(result.registration.id, now=NOW)

        assert registration.status == RegistrationStatus.PENDING_PAYMENT
        assert registration.payment_status == PaymentStatus.FAILED
        assert notifier.kinds().count(NotificationKind.PAYMENT_FAILED) == 1

    def test_ignored_once_confirmed(self, db, registration_service):
        offering = create_offering(db, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.confirm_payment(result.registration.id, now=NOW)

        registration = registration_service.record_payment_failure(result.registration.id, now=NOW)

        assert registration.status == RegistrationStatus.CONFIRMED
        assert registration.payment_status == PaymentStatus.COMPLETED


class TestRetryCheckout:
    def test_creates_fresh_checkout(self, db, registration_service, payment_provider):
        offering = create_offering(db, price_cents=5000)
        payment_provider.fail = True
        with pytest.raises(CheckoutCreationFailed) as exc_info:
            registration_service.register(ALICE, offering.id, now=NOW)
        payment_provider.fail = False

        handle = registration_service.retry_checkout(ALICE, exc_info.value.registration_id)

        assert handle.session_id == "cs_test_2"
        db.expire_all()
        registration = crud.registration.get(db, exc_info.value.registration_id)
        assert registration.checkout_session_id == "cs_test_2"
        assert registration.checkout_url == handle.url

    def test_other_subject_not_authorized(self, db, registration_service):
        offering = create_offering(db, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)

        with pytest.raises(NotAuthorized):
            registration_service.retry_checkout(BOB, result.registration.id)

    def test_confirmed_registration_not_pending(self, db, registration_service):
        offering = create_offering(db, price_cents=5000)
        result = registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.confirm_payment(result.registration.id, now=NOW)

        with pytest.raises(RegistrationNotPending):
            registration_service.retry_checkout(ALICE, result.registration.id)


class TestCancelRegistration:
    def test_cancelling_confirmed_offers_seat_to_waitlist_head(self, db, registration_service, notifier):
        offering = create_offering(db, capacity=1)
        registration_service.register(ALICE, offering.id, now=NOW)
        waitlisted = registration_service.register(BOB, offering.id, now=NOW)

        cancelled = registration_service.cancel_registration(
            ALICE, offering.id, reason="conflict", now=NOW + timedelta(hours=1)
        )

        assert cancelled.status == RegistrationStatus.CANCELLED
        assert cancelled.cancel_reason == "conflict"
        assert cancelled.cancelled_at == NOW + timedelta(hours=1)
        assert _seats(db, offering.id) == 0

        entry = crud.waitlist.get(db, waitlisted.waitlist_entry.id)
        assert entry.status == WaitlistStatus.OFFERED
        assert entry.response_deadline == NOW + timedelta(hours=49)
        spot = notifier.of_kind(NotificationKind.WAITLIST_SPOT_AVAILABLE)
        assert spot[0]["waitlist_entry_id"] == entry.id
        assert_offering_invariants(db, offering.id)

    def test_outstanding_offer_holds_the_freed_seat(self, db, registration_service):
        offering = create_offering(db, capacity=1)
        registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.register(BOB, offering.id, now=NOW)
        registration_service.cancel_registration(ALICE, offering.id, now=NOW)

        carol = registration_service.register(CAROL, offering.id, now=NOW)

        assert carol.outcome == RegistrationOutcome.WAITLISTED
        assert carol.position == 2

    def test_cancelling_pending_triggers_no_promotion(self, db, registration_service, notifier):
        offering = create_offering(db, price_cents=5000)
        registration_service.register(ALICE, offering.id, now=NOW)

        registration_service.cancel_registration(ALICE, offering.id, now=NOW)

        assert _seats(db, offering.id) == 0
        assert NotificationKind.WAITLIST_SPOT_AVAILABLE not in notifier.kinds()

    def test_cancelling_twice_is_not_allowed(self, db, registration_service):
        offering = create_offering(db)
        registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.cancel_registration(ALICE, offering.id, now=NOW)

        with pytest.raises(CancellationNotAllowed):
            registration_service.cancel_registration(ALICE, offering.id, now=NOW)

    def test_nothing_to_cancel(self, db, registration_service):
        offering = create_offering(db)

        with pytest.raises(RegistrationNotFound):
            registration_service.cancel_registration(ALICE, offering.id, now=NOW)


class TestReads:
    def test_my_registration_prefers_live_row(self, db, registration_service):
        offering = create_offering(db, capacity=2)
        registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.cancel_registration(ALICE, offering.id, now=NOW)
        registration_service.register(ALICE, offering.id, now=NOW)

        mine = registration_service.get_my_registration(ALICE, offering.id)

        assert mine.status == RegistrationStatus.CONFIRMED

    def test_attendees_are_confirmed_only(self, db, registration_service):
        offering = create_offering(db, capacity=3)
        registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.register(BOB, offering.id, now=NOW + timedelta(minutes=1))
        registration_service.cancel_registration(BOB, offering.id, now=NOW)

        attendees = registration_service.list_attendees(offering.id)

        assert [a.subject_id for a in attendees] == [ALICE.id]

    def test_admin_subject(self):
        assert Subject(id="admin_1", role=Role.ADMIN).is_admin
        assert not ALICE.is_admin
