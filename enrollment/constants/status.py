# enrollment/constants/status.py
"""
Status vocabularies for offerings, registrations and waitlist entries.

Provides type-safe constants to replace hardcoded strings throughout the codebase.
"""


class OfferingStatus:
    DRAFT = "draft"
    OPEN = "open"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class RegistrationStatus:
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    # At most one row per (offering, subject) may be in one of these.
    LIVE = (PENDING_PAYMENT, CONFIRMED)

    # Allowed transitions; anything else is a programming error.
    TRANSITIONS = {
        PENDING_PAYMENT: (CONFIRMED, CANCELLED),
        CONFIRMED: (CANCELLED, COMPLETED),
        CANCELLED: (),
        COMPLETED: (),
    }


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class WaitlistStatus:
    WAITING = "waiting"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    DECLINED = "declined"

    LIVE = (WAITING, OFFERED)

    TRANSITIONS = {
        WAITING: (OFFERED, EXPIRED),
        OFFERED: (ACCEPTED, DECLINED, EXPIRED),
        ACCEPTED: (),
        EXPIRED: (),
        DECLINED: (),
    }


class Role:
    """Roles supplied by the identity provider."""
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class RegistrationOutcome:
    """Result kinds returned by ``register`` and ``accept_offer``."""
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    CHECKOUT_REQUIRED = "checkout_required"
