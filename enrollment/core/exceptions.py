# enrollment/core/exceptions.py
"""
Error taxonomy for the registration and waitlist workflows.

Every ``EnrollmentError`` is an expected, caller-recoverable condition. The API
layer turns them into ``{"code": ..., "detail": ...}`` responses using the
``code`` and ``status_code`` class attributes, so clients can tell
"already registered" apart from "offer expired".

``TransactionFailed`` is deliberately outside that hierarchy: it means the
store could not complete the unit of work and everything was rolled back.
"""

from typing import Optional


class EnrollmentError(Exception):
    """Base class for all expected registration/waitlist failures."""

    code = "enrollment_error"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


# --- Offering availability ---


class NotFound(EnrollmentError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class OfferingNotFound(NotFound):
    code = "offering_not_found"
    default_message = "Offering not found"


class OfferingNotOpen(EnrollmentError):
    code = "offering_not_open"
    status_code = 409
    default_message = "Offering is not open for registration"


class DeadlinePassed(OfferingNotOpen):
    code = "deadline_passed"
    default_message = "The registration deadline has passed"


# --- Duplicate-attempt guards ---


class AlreadyRegistered(EnrollmentError):
    code = "already_registered"
    status_code = 409
    default_message = "Already registered for this offering"


class AlreadyWaitlisted(EnrollmentError):
    code = "already_waitlisted"
    status_code = 409
    default_message = "Already on the waitlist for this offering"


# --- Invalid registration transitions ---


class RegistrationNotFound(NotFound):
    code = "registration_not_found"
    default_message = "Registration not found"


class RegistrationNotPending(EnrollmentError):
    code = "registration_not_pending"
    status_code = 409
    default_message = "Registration is not awaiting payment"


class CancellationNotAllowed(EnrollmentError):
    code = "cancellation_not_allowed"
    status_code = 409
    default_message = "Registration cannot be cancelled in its current state"


# --- Waitlist offer responses ---


class WaitlistEntryNotFound(NotFound):
    code = "waitlist_entry_not_found"
    default_message = "Waitlist entry not found"


class OfferNotActive(EnrollmentError):
    code = "offer_not_active"
    status_code = 409
    default_message = "There is no active offer for this waitlist entry"


class OfferExpired(EnrollmentError):
    code = "offer_expired"
    status_code = 410
    default_message = "The waitlist offer has expired"


class NoCapacity(EnrollmentError):
    code = "no_capacity"
    status_code = 409
    default_message = "No seat is available"


class NotAuthorized(EnrollmentError):
    code = "not_authorized"
    status_code = 403
    default_message = "Not authorized to act on this resource"


# --- Payment collaborator ---


class CheckoutCreationFailed(EnrollmentError):
    code = "checkout_creation_failed"
    status_code = 502
    default_message = "Could not start checkout; the registration is kept so checkout can be retried"

    def __init__(self, message: Optional[str] = None, registration_id: Optional[str] = None, **context):
        self.registration_id = registration_id
        super().__init__(message, registration_id=registration_id, **context)


class TransactionFailed(Exception):
    """The transactional store failed mid-operation; nothing was persisted."""
