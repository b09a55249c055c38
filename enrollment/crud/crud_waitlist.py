# enrollment/crud/crud_waitlist.py
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from enrollment.constants.status import WaitlistStatus
from enrollment.crud.base import CRUDBase
from enrollment.models.waitlist_entry import WaitlistEntry


class CRUDWaitlist(CRUDBase[WaitlistEntry]):
    """Queries over waitlist entries. Position ordering is by position, then join time."""

    def get_live(
        self, db: Session, *, offering_id: str, subject_id: str
    ) -> Optional[WaitlistEntry]:
        """Get active waitlist entry (waiting or offered)"""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.subject_id == subject_id,
                    self.model.status.in_(WaitlistStatus.LIVE),
                )
            )
            .first()
        )

    def get_live_entries(self, db: Session, *, offering_id: str) -> list[WaitlistEntry]:
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.status.in_(WaitlistStatus.LIVE),
                )
            )
            .order_by(self.model.position.asc(), self.model.joined_at.asc())
            .all()
        )

    def get_max_live_position(self, db: Session, *, offering_id: str) -> int:
        result = (
            db.query(func.max(self.model.position))
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.status.in_(WaitlistStatus.LIVE),
                )
            )
            .scalar()
        )
        return result or 0

    def get_next_waiting(self, db: Session, *, offering_id: str) -> Optional[WaitlistEntry]:
        """The waiting entry with the lowest position."""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.status == WaitlistStatus.WAITING,
                )
            )
            .order_by(self.model.position.asc(), self.model.joined_at.asc())
            .first()
        )

    def count_outstanding_offers(self, db: Session, *, offering_id: str) -> int:
        """Offers still awaiting a response; each one holds a freed seat."""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.status == WaitlistStatus.OFFERED,
                )
            )
            .count()
        )

    def get_expired_offers(self, db: Session, *, now: datetime) -> list[WaitlistEntry]:
        """Get all offers whose response deadline has passed"""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.status == WaitlistStatus.OFFERED,
                    self.model.response_deadline < now,
                )
            )
            .order_by(self.model.response_deadline.asc())
            .all()
        )


waitlist = CRUDWaitlist(WaitlistEntry)
