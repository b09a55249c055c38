# enrollment/crud/crud_registration.py
from datetime import datetime
from typing import Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from enrollment.constants.status import RegistrationStatus
from enrollment.crud.base import CRUDBase
from enrollment.models.registration import Registration


class CRUDRegistration(CRUDBase[Registration]):
    def get_live(
        self, db: Session, *, offering_id: str, subject_id: str
    ) -> Optional[Registration]:
        """The subject's pending_payment/confirmed registration, if any."""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.subject_id == subject_id,
                    self.model.status.in_(RegistrationStatus.LIVE),
                )
            )
            .first()
        )

    def get_latest(
        self, db: Session, *, offering_id: str, subject_id: str
    ) -> Optional[Registration]:
        """Most recent registration row for the pair, whatever its status."""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.subject_id == subject_id,
                )
            )
            .order_by(self.model.registered_at.desc())
            .first()
        )

    def get_multi_by_offering(
        self,
        db: Session,
        *,
        offering_id: str,
        statuses: Optional[tuple[str, ...]] = None,
        skip: int = 0,
        limit: Optional[int] = 100,
    ) -> list[Registration]:
        query = db.query(self.model).filter(self.model.offering_id == offering_id)
        if statuses:
            query = query.filter(self.model.status.in_(statuses))
        return (
            query.order_by(self.model.registered_at.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_reserved_pending(self, db: Session, *, offering_id: str) -> int:
        """Pending registrations opened from an accepted waitlist offer; each keeps its seat reserved."""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.status == RegistrationStatus.PENDING_PAYMENT,
                    self.model.waitlist_entry_id.isnot(None),
                )
            )
            .count()
        )

    def get_stale_pending(self, db: Session, *, registered_before: datetime) -> list[Registration]:
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.status == RegistrationStatus.PENDING_PAYMENT,
                    self.model.registered_at < registered_before,
                )
            )
            .order_by(self.model.registered_at.asc())
            .all()
        )

    def get_unreminded_confirmed(self, db: Session, *, offering_id: str) -> list[Registration]:
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.offering_id == offering_id,
                    self.model.status == RegistrationStatus.CONFIRMED,
                    self.model.reminder_sent_at.is_(None),
                )
            )
            .all()
        )


registration = CRUDRegistration(Registration)
