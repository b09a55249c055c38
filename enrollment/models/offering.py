# enrollment/models/offering.py
import uuid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from enrollment.constants.status import OfferingStatus
from enrollment.db.base_class import Base
from enrollment.db.types import UTCDateTime


class Offering(Base):
    """
    A scheduled, capacity-bounded event subjects can register for.

    ``confirmed_seats`` is the authoritative seat counter. It is written only by
    seat accounting, under the row lock taken at the start of each
    registration/waitlist operation.
    """

    __tablename__ = "offerings"

    id = Column(String, primary_key=True, default=lambda: f"off_{uuid.uuid4().hex[:12]}")
    title = Column(String(200), nullable=False)

    capacity = Column(Integer, nullable=False)
    confirmed_seats = Column(Integer, nullable=False, default=0, server_default=text("0"))

    # Pricing: free, or a positive amount in the smallest currency unit
    is_free = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    price_cents = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=False, default="USD", server_default="USD")

    # Schedule
    starts_at = Column(UTCDateTime, nullable=False)
    ends_at = Column(UTCDateTime, nullable=True)
    registration_deadline = Column(UTCDateTime, nullable=True)

    status = Column(String(20), nullable=False, default=OfferingStatus.DRAFT, server_default=OfferingStatus.DRAFT)

    created_at = Column(UTCDateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    updated_at = Column(UTCDateTime, nullable=True)

    registrations = relationship(
        "Registration",
        back_populates="offering",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    waitlist_entries = relationship(
        "WaitlistEntry",
        back_populates="offering",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_offerings_capacity_positive"),
        CheckConstraint("confirmed_seats >= 0", name="ck_offerings_seats_non_negative"),
        CheckConstraint("confirmed_seats <= capacity", name="ck_offerings_seats_within_capacity"),
        CheckConstraint(
            "is_free OR (price_cents IS NOT NULL AND price_cents > 0)",
            name="ck_offerings_priced_or_free",
        ),
        Index("ix_offerings_status_starts_at", "status", "starts_at"),
    )
