# enrollment/models/payment_webhook_event.py
import uuid
from sqlalchemy import JSON, Column, String, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB

from enrollment.db.base_class import Base
from enrollment.db.types import UTCDateTime


class PaymentWebhookEvent(Base):
    """Log of payment-provider callbacks, one row per provider event id."""

    __tablename__ = "payment_webhook_events"

    id = Column(String, primary_key=True, default=lambda: f"whe_{uuid.uuid4().hex[:12]}")

    # Provider information
    provider_code = Column(String(50), nullable=False)
    provider_event_id = Column(String(255), nullable=False)
    provider_event_type = Column(String(100), nullable=False)

    # Values: 'pending', 'processed', 'refund_required', 'failed', 'skipped'
    status = Column(String(50), nullable=False, default="pending", server_default="pending")

    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)
    related_registration_id = Column(String, nullable=True, index=True)
    processing_error = Column(Text, nullable=True)

    received_at = Column(UTCDateTime, nullable=False, server_default=text("CURRENT_TIMESTAMP"))
    processed_at = Column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("provider_code", "provider_event_id", name="uq_webhook_provider_event"),
    )

    @property
    def is_processed(self) -> bool:
        return self.status in ("processed", "refund_required", "skipped")
