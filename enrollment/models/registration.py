# enrollment/models/registration.py
import uuid
from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import relationship

from enrollment.constants.status import RegistrationStatus
from enrollment.db.base_class import Base
from enrollment.db.types import UTCDateTime

_LIVE_STATUSES = text("status IN ('pending_payment', 'confirmed')")


class Registration(Base):
    __tablename__ = "registrations"

    id = Column(String, primary_key=True, default=lambda: f"reg_{uuid.uuid4().hex[:12]}")
    offering_id = Column(
        String, ForeignKey("offerings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # No FK - subject identity lives in the identity provider
    subject_id = Column(String, nullable=False, index=True)
    contact_email = Column(String, nullable=True)

    status = Column(String(20), nullable=False, default=RegistrationStatus.PENDING_PAYMENT)

    # Payment shadow (paid offerings only): pending, completed, failed
    payment_status = Column(String(20), nullable=True)
    checkout_session_id = Column(String, nullable=True, index=True)
    checkout_url = Column(Text, nullable=True)
    payment_reference = Column(String, nullable=True)

    registered_at = Column(UTCDateTime, nullable=False)
    confirmed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    reminder_sent_at = Column(UTCDateTime, nullable=True)

    # Set when the registration was opened by accepting a waitlist offer. While
    # such a registration is pending_payment it keeps the offered seat reserved.
    waitlist_entry_id = Column(
        String, ForeignKey("waitlist_entries.id", ondelete="SET NULL"), nullable=True
    )

    offering = relationship("Offering", back_populates="registrations")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_payment', 'confirmed', 'cancelled', 'completed')",
            name="check_registration_status",
        ),
        # A cancelled or completed row never blocks a fresh attempt.
        Index(
            "uq_registrations_live_offering_subject",
            "offering_id",
            "subject_id",
            unique=True,
            postgresql_where=_LIVE_STATUSES,
            sqlite_where=_LIVE_STATUSES,
        ),
        Index("ix_registrations_offering_status", "offering_id", "status"),
    )

    @property
    def is_live(self) -> bool:
        return self.status in RegistrationStatus.LIVE
