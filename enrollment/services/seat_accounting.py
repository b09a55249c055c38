# enrollment/services/seat_accounting.py
"""
Seat accounting for offerings.

``Offering.confirmed_seats`` must always equal the number of confirmed
registrations for that offering. Every registration status change goes
through ``apply_transition`` (via ``services.ledger``), which is the only
code that writes the counter. Callers must hold the offering row lock.
"""
import logging
from datetime import datetime
from typing import Optional

from enrollment.constants.status import RegistrationStatus
from enrollment.core.exceptions import NoCapacity
from enrollment.models.offering import Offering

logger = logging.getLogger(__name__)

SEAT_HOLDING_STATUSES = (RegistrationStatus.CONFIRMED,)


def holds_seat(status: Optional[str]) -> bool:
    return status in SEAT_HOLDING_STATUSES


def seat_delta(old_status: Optional[str], new_status: str) -> int:
    """+1 entering a seat-holding status, -1 leaving one, 0 otherwise.

    ``old_status`` is None for a registration that is being created.
    """
    return int(holds_seat(new_status)) - int(holds_seat(old_status))


def apply_transition(
    offering: Offering,
    old_status: Optional[str],
    new_status: str,
    *,
    now: Optional[datetime] = None,
) -> int:
    delta = seat_delta(old_status, new_status)
    if delta == 0:
        return 0

    if delta > 0:
        if offering.confirmed_seats + delta > offering.capacity:
            logger.warning(
                f"Refusing seat increment on full offering {offering.id} "
                f"({offering.confirmed_seats}/{offering.capacity})"
            )
            raise NoCapacity(offering_id=offering.id)
        offering.confirmed_seats += delta
    else:
        offering.confirmed_seats = max(0, offering.confirmed_seats + delta)

    if now is not None:
        offering.updated_at = now

    logger.debug(
        f"Offering {offering.id} seats {offering.confirmed_seats}/{offering.capacity} "
        f"after {old_status} -> {new_status}"
    )
    return delta
