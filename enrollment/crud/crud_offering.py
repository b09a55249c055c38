# enrollment/crud/crud_offering.py
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from enrollment.constants.status import OfferingStatus
from enrollment.crud.base import CRUDBase
from enrollment.models.offering import Offering


class CRUDOffering(CRUDBase[Offering]):
    def get_for_update(self, db: Session, offering_id: str) -> Optional[Offering]:
        """
        Load an offering with SELECT ... FOR UPDATE.

        Every mutating registration/waitlist operation starts here, so two
        operations on the same offering are serialized by the row lock.
        """
        return (
            db.query(self.model)
            .filter(self.model.id == offering_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_open_starting_between(
        self, db: Session, *, window_start: datetime, window_end: datetime
    ) -> list[Offering]:
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.status == OfferingStatus.OPEN,
                    self.model.starts_at >= window_start,
                    self.model.starts_at < window_end,
                )
            )
            .order_by(self.model.starts_at.asc())
            .all()
        )

    def get_open_finished_before(self, db: Session, *, now: datetime) -> list[Offering]:
        """Open offerings whose end (or start, when no end is set) has passed."""
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.status == OfferingStatus.OPEN,
                    or_(
                        and_(self.model.ends_at.isnot(None), self.model.ends_at < now),
                        and_(self.model.ends_at.is_(None), self.model.starts_at < now),
                    ),
                )
            )
            .all()
        )


offering = CRUDOffering(Offering)
