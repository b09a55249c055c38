# tests/services/test_waitlist_service.py
"""
Tests for WaitlistService: promotion, offer responses and offer expiry.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from enrollment import crud
from enrollment.constants.status import (
    RegistrationOutcome,
    RegistrationStatus,
    WaitlistStatus,
)
from enrollment.core.exceptions import (
    AlreadyRegistered,
    NoCapacity,
    NotAuthorized,
    OfferExpired,
    OfferNotActive,
    WaitlistEntryNotFound,
)
from enrollment.models.offering import Offering
from enrollment.models.waitlist_entry import WaitlistEntry
from enrollment.services.identity import Subject
from enrollment.services.notifications import NotificationKind
from tests.utils.invariants import assert_offering_invariants
from tests.utils.offering import NOW, create_offering

ALICE = Subject(id="user_alice", email="alice@example.com")
BOB = Subject(id="user_bob", email="bob@example.com")
CAROL = Subject(id="user_carol", email="carol@example.com")
DAVE = Subject(id="user_dave", email="dave@example.com")


@pytest.fixture
def full_offering(db, registration_service):
    """Capacity 1: Alice holds the seat, Bob and Carol wait in that order."""
    offering = create_offering(db, capacity=1)
    registration_service.register(ALICE, offering.id, now=NOW)
    registration_service.register(BOB, offering.id, now=NOW + timedelta(minutes=1))
    registration_service.register(CAROL, offering.id, now=NOW + timedelta(minutes=2))
    return offering


def _entry(db, offering_id, subject):
    db.expire_all()
    return (
        db.query(WaitlistEntry)
        .filter(WaitlistEntry.offering_id == offering_id, WaitlistEntry.subject_id == subject.id)
        .order_by(WaitlistEntry.joined_at.desc())
        .first()
    )


class TestPromoteNext:
    def test_no_free_seat_is_a_noop(self, db, waitlist_service, full_offering, notifier):
        assert waitlist_service.promote_next(full_offering.id, now=NOW) is None
        assert NotificationKind.WAITLIST_SPOT_AVAILABLE not in notifier.kinds()

    def test_offers_exactly_one_entry(self, db, registration_service, waitlist_service, full_offering):
        registration_service.cancel_registration(ALICE, full_offering.id, now=NOW)

        # The freed seat is already held by Bob's offer; a manual call offers nothing more.
        assert waitlist_service.promote_next(full_offering.id, now=NOW) is None
        assert _entry(db, full_offering.id, BOB).status == WaitlistStatus.OFFERED
        assert _entry(db, full_offering.id, CAROL).status == WaitlistStatus.WAITING

    def test_manual_promotion_after_capacity_increase(self, db, waitlist_service, full_offering, notifier):
        offering = db.get(Offering, full_offering.id)
        offering.capacity = 2
        db.commit()

        entry = waitlist_service.promote_next(full_offering.id, now=NOW)

        assert entry.subject_id == BOB.id
        assert entry.offered_at == NOW
        assert entry.response_deadline == NOW + timedelta(hours=48)
        payload = notifier.of_kind(NotificationKind.WAITLIST_SPOT_AVAILABLE)[0]
        assert payload["response_deadline"] == entry.response_deadline.isoformat()

    def test_empty_waitlist_is_a_noop(self, db, waitlist_service):
        offering = create_offering(db, capacity=3)
        assert waitlist_service.promote_next(offering.id, now=NOW) is None


class TestAcceptOffer:
    def _offer_to_bob(self, registration_service, offering):
        registration_service.cancel_registration(ALICE, offering.id, now=NOW)

    def test_free_offering_confirms(self, db, registration_service, waitlist_service, full_offering):
        self._offer_to_bob(registration_service, full_offering)
        entry = _entry(db, full_offering.id, BOB)

        result = waitlist_service.accept_offer(BOB, entry.id, now=NOW + timedelta(hours=1))

        assert result.outcome == RegistrationOutcome.CONFIRMED
        assert result.registration.status == RegistrationStatus.CONFIRMED
        entry = _entry(db, full_offering.id, BOB)
        assert entry.status == WaitlistStatus.ACCEPTED
        assert entry.responded_at == NOW + timedelta(hours=1)
        # Carol moves up
        assert _entry(db, full_offering.id, CAROL).position == 1
        assert db.get(Offering, full_offering.id).confirmed_seats == 1
        assert_offering_invariants(db, full_offering.id)

    def test_paid_offering_requires_checkout(self, db, registration_service, waitlist_service, payment_provider):
        offering = create_offering(db, capacity=1, price_cents=2500)
        first = registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.confirm_payment(first.registration.id, now=NOW)
        registration_service.register(BOB, offering.id, now=NOW)
        self._offer_to_bob(registration_service, offering)
        entry = _entry(db, offering.id, BOB)

        result = waitlist_service.accept_offer(BOB, entry.id, now=NOW)

        assert result.outcome == RegistrationOutcome.CHECKOUT_REQUIRED
        assert result.registration.status == RegistrationStatus.PENDING_PAYMENT
        assert result.checkout.session_id == "cs_test_2"
        assert payment_provider.calls[-1]["amount_cents"] == 2500

        registration_service.confirm_payment(result.registration.id, now=NOW)
        assert db.get(Offering, offering.id).confirmed_seats == 1
        assert_offering_invariants(db, offering.id)

    def test_expired_offer_is_expired_on_access(self, db, registration_service, waitlist_service, full_offering, notifier):
        self._offer_to_bob(registration_service, full_offering)
        entry = _entry(db, full_offering.id, BOB)

        with pytest.raises(OfferExpired):
            waitlist_service.accept_offer(BOB, entry.id, now=NOW + timedelta(hours=49))

        assert _entry(db, full_offering.id, BOB).status == WaitlistStatus.EXPIRED
        carol = _entry(db, full_offering.id, CAROL)
        assert carol.status == WaitlistStatus.OFFERED
        assert carol.position == 1
        assert NotificationKind.WAITLIST_OFFER_EXPIRED in notifier.kinds()
        assert_offering_invariants(db, full_offering.id)

    def test_other_subject_not_authorized(self, db, registration_service, waitlist_service, full_offering):
        self._offer_to_bob(registration_service, full_offering)
        entry = _entry(db, full_offering.id, BOB)

        with pytest.raises(NotAuthorized):
            waitlist_service.accept_offer(CAROL, entry.id, now=NOW)

    def test_waiting_entry_has_no_active_offer(self, db, waitlist_service, full_offering):
        entry = _entry(db, full_offering.id, BOB)

        with pytest.raises(OfferNotActive):
            waitlist_service.accept_offer(BOB, entry.id, now=NOW)

    def test_unknown_entry(self, waitlist_service):
        with pytest.raises(WaitlistEntryNotFound):
            waitlist_service.accept_offer(BOB, "wle_missing", now=NOW)

    def test_no_capacity_when_seat_was_taken(self, db, registration_service, waitlist_service, full_offering):
        self._offer_to_bob(registration_service, full_offering)
        entry = _entry(db, full_offering.id, BOB)
        offering = db.get(Offering, full_offering.id)
        offering.capacity = 2
        db.commit()
        # A new attendee takes the last seat while Bob's offer is open
        registration_service.register(DAVE, full_offering.id, now=NOW)
        offering = db.get(Offering, full_offering.id)
        offering.capacity = 1
        db.commit()

        with pytest.raises(NoCapacity):
            waitlist_service.accept_offer(BOB, entry.id, now=NOW)
        assert _entry(db, full_offering.id, BOB).status == WaitlistStatus.OFFERED

    def test_already_registered(self, db, registration_service, waitlist_service, full_offering):
        self._offer_to_bob(registration_service, full_offering)
        entry = _entry(db, full_offering.id, BOB)

        with patch.object(crud.registration, "get_live", return_value=object()):
            with pytest.raises(AlreadyRegistered):
                waitlist_service.accept_offer(BOB, entry.id, now=NOW)


class TestAcceptedOfferAwaitingPayment:
    """Capacity 1, paid: Alice's seat was freed and Bob accepted it but has not paid yet."""

    @pytest.fixture
    def accepted(self, db, registration_service, waitlist_service):
        offering = create_offering(db, capacity=1, price_cents=2500)
        first = registration_service.register(ALICE, offering.id, now=NOW)
        registration_service.confirm_payment(first.registration.id, now=NOW)
        registration_service.register(BOB, offering.id, now=NOW + timedelta(minutes=1))
        registration_service.register(CAROL, offering.id, now=NOW + timedelta(minutes=2))
        registration_service.cancel_registration(ALICE, offering.id, now=NOW + timedelta(hours=1))
        result = waitlist_service.accept_offer(
            BOB, _entry(db, offering.id, BOB).id, now=NOW + timedelta(hours=2)
        )
        assert result.outcome == RegistrationOutcome.CHECKOUT_REQUIRED
        return offering, result.registration

    def test_seat_stays_reserved_for_the_accepted_offer(self, db, registration_service, waitlist_service, accepted):
        offering, registration = accepted

        assert registration.waitlist_entry_id == _entry(db, offering.id, BOB).id
        assert waitlist_service.free_seats(db.get(Offering, offering.id)) == 0
        dave = registration_service.register(DAVE, offering.id, now=NOW + timedelta(hours=3))

        assert dave.outcome == RegistrationOutcome.WAITLISTED
        assert dave.position == 2
        assert _entry(db, offering.id, CAROL).status == WaitlistStatus.WAITING
        assert_offering_invariants(db, offering.id)

    def test_cancelling_the_unpaid_registration_offers_the_seat_to_the_next_entry(
        self, db, registration_service, accepted, notifier
    ):
        offering, _ = accepted

        registration_service.cancel_registration(BOB, offering.id, now=NOW + timedelta(hours=3))

        carol = _entry(db, offering.id, CAROL)
        assert carol.status == WaitlistStatus.OFFERED
        assert carol.position == 1
        spot = notifier.of_kind(NotificationKind.WAITLIST_SPOT_AVAILABLE)
        assert spot[-1]["waitlist_entry_id"] == carol.id
        assert_offering_invariants(db, offering.id)

    def test_payment_takes_the_reserved_seat(self, db, registration_service, waitlist_service, accepted):
        offering, registration = accepted

        confirmed = registration_service.confirm_payment(registration.id, now=NOW + timedelta(hours=3))

        assert confirmed.status == RegistrationStatus.CONFIRMED
        offering = db.get(Offering, offering.id)
        assert offering.confirmed_seats == 1
        assert waitlist_service.free_seats(offering) == 0
        assert _entry(db, offering.id, CAROL).status == WaitlistStatus.WAITING
        assert_offering_invariants(db, offering.id)


class TestDeclineOffer:
    def test_decline_passes_seat_to_next(self, db, registration_service, waitlist_service, full_offering):
        registration_service.cancel_registration(ALICE, full_offering.id, now=NOW)
        entry = _entry(db, full_offering.id, BOB)

        declined = waitlist_service.decline_offer(BOB, entry.id, now=NOW + timedelta(hours=2))

        assert declined.status == WaitlistStatus.DECLINED
        assert declined.responded_at == NOW + timedelta(hours=2)
        carol = _entry(db, full_offering.id, CAROL)
        assert carol.status == WaitlistStatus.OFFERED
        assert carol.position == 1
        assert_offering_invariants(db, full_offering.id)

    def test_decline_without_offer(self, db, waitlist_service, full_offering):
        entry = _entry(db, full_offering.id, CAROL)

        with pytest.raises(OfferNotActive):
            waitlist_service.decline_offer(CAROL, entry.id, now=NOW)


class TestExpireStaleOffers:
    def test_expires_overdue_offers_and_promotes(self, db, registration_service, waitlist_service, full_offering):
        registration_service.cancel_registration(ALICE, full_offering.id, now=NOW)

        assert waitlist_service.expire_stale_offers(now=NOW + timedelta(hours=47)) == 0
        assert waitlist_service.expire_stale_offers(now=NOW + timedelta(hours=49)) == 1

        assert _entry(db, full_offering.id, BOB).status == WaitlistStatus.EXPIRED
        assert _entry(db, full_offering.id, CAROL).status == WaitlistStatus.OFFERED
        assert_offering_invariants(db, full_offering.id)

    def test_one_failure_does_not_stop_the_sweep(self, db, registration_service, waitlist_service):
        offerings = []
        for title in ("first", "second"):
            offering = create_offering(db, title=title, capacity=1)
            registration_service.register(ALICE, offering.id, now=NOW)
            registration_service.register(BOB, offering.id, now=NOW)
            registration_service.cancel_registration(ALICE, offering.id, now=NOW)
            offerings.append(offering)

        original = waitlist_service.expire_offer
        calls = []

        def flaky(entry_id, now=None):
            calls.append(entry_id)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return original(entry_id, now=now)

        with patch.object(waitlist_service, "expire_offer", side_effect=flaky):
            expired = waitlist_service.expire_stale_offers(now=NOW + timedelta(hours=49))

        assert expired == 1
        assert len(calls) == 2


class TestWaitlistPosition:
    def test_reports_position_and_total(self, db, waitlist_service, full_offering):
        position = waitlist_service.get_waitlist_position(CAROL, full_offering.id)

        assert position.position == 2
        assert position.total_live == 2
        assert position.entry.status == WaitlistStatus.WAITING

    def test_not_on_waitlist(self, db, waitlist_service, full_offering):
        with pytest.raises(WaitlistEntryNotFound):
            waitlist_service.get_waitlist_position(ALICE, full_offering.id)
