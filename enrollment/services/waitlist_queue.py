# enrollment/services/waitlist_queue.py
"""
Waitlist position bookkeeping.

Live entries (waiting/offered) of an offering always hold positions 1..n in
join order. New entries go to the back; every live -> terminal transition is
followed by ``compact_positions`` so the gap closes before the unit of work
commits.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from enrollment import crud
from enrollment.constants.status import WaitlistStatus
from enrollment.core.exceptions import AlreadyWaitlisted
from enrollment.models.offering import Offering
from enrollment.models.waitlist_entry import WaitlistEntry

logger = logging.getLogger(__name__)


def next_position(db: Session, offering_id: str) -> int:
    return crud.waitlist.get_max_live_position(db, offering_id=offering_id) + 1


def enqueue(
    db: Session,
    offering: Offering,
    *,
    subject_id: str,
    contact_email: Optional[str],
    now: datetime,
) -> WaitlistEntry:
    entry = WaitlistEntry(
        offering_id=offering.id,
        subject_id=subject_id,
        contact_email=contact_email,
        position=next_position(db, offering.id),
        status=WaitlistStatus.WAITING,
        joined_at=now,
    )
    try:
        crud.waitlist.add(db, db_obj=entry)
    except IntegrityError as e:
        raise AlreadyWaitlisted(offering_id=offering.id) from e

    logger.info(f"Subject {subject_id} joined waitlist for {offering.id} at position {entry.position}")
    return entry


def transition_entry(entry: WaitlistEntry, new_status: str, *, now: datetime) -> None:
    allowed = WaitlistStatus.TRANSITIONS.get(entry.status, ())
    if new_status not in allowed:
        raise ValueError(f"Illegal waitlist transition {entry.status} -> {new_status} for {entry.id}")

    entry.status = new_status
    if new_status in (WaitlistStatus.ACCEPTED, WaitlistStatus.DECLINED):
        entry.responded_at = now


def compact_positions(db: Session, offering_id: str) -> int:
    """Renumber live entries 1..n, keeping their relative order.

    Returns the number of live entries left.
    """
    db.flush()
    entries = crud.waitlist.get_live_entries(db, offering_id=offering_id)
    for index, entry in enumerate(entries, start=1):
        if entry.position != index:
            entry.position = index
    db.flush()
    return len(entries)


def retire_entry(db: Session, entry: WaitlistEntry, new_status: str, *, now: datetime) -> None:
    """Move a live entry to a terminal status and close the gap it leaves."""
    transition_entry(entry, new_status, now=now)
    compact_positions(db, entry.offering_id)
