# enrollment/models/waitlist_entry.py
import uuid
from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from enrollment.constants.status import WaitlistStatus
from enrollment.db.base_class import Base
from enrollment.db.types import UTCDateTime

_LIVE_STATUSES = text("status IN ('waiting', 'offered')")
_OFFERED = text("status = 'offered'")


class WaitlistEntry(Base):
    """
    Queue entry for a full offering.

    Positions of live entries (waiting/offered) form 1..n per offering in join
    order; they are assigned and compacted by ``services.waitlist_queue``.
    """

    __tablename__ = "waitlist_entries"

    id = Column(String, primary_key=True, default=lambda: f"wle_{uuid.uuid4().hex[:12]}")
    offering_id = Column(
        String, ForeignKey("offerings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subject_id = Column(String, nullable=False, index=True)
    # Denormalized for notifications
    contact_email = Column(String, nullable=True)

    position = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=WaitlistStatus.WAITING)

    joined_at = Column(UTCDateTime, nullable=False)
    offered_at = Column(UTCDateTime, nullable=True)
    response_deadline = Column(UTCDateTime, nullable=True)
    responded_at = Column(UTCDateTime, nullable=True)

    offering = relationship("Offering", back_populates="waitlist_entries")

    __table_args__ = (
        CheckConstraint(
            "status IN ('waiting', 'offered', 'accepted', 'expired', 'declined')",
            name="check_waitlist_status",
        ),
        Index(
            "uq_waitlist_live_offering_subject",
            "offering_id",
            "subject_id",
            unique=True,
            postgresql_where=_LIVE_STATUSES,
            sqlite_where=_LIVE_STATUSES,
        ),
        Index("ix_waitlist_offering_status_position", "offering_id", "status", "position"),
        Index(
            "idx_waitlist_offer_deadline",
            "response_deadline",
            postgresql_where=_OFFERED,
            sqlite_where=_OFFERED,
        ),
    )

    @property
    def is_live(self) -> bool:
        return self.status in WaitlistStatus.LIVE
