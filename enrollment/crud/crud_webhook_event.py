# enrollment/crud/crud_webhook_event.py
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from enrollment.crud.base import CRUDBase
from enrollment.models.payment_webhook_event import PaymentWebhookEvent


class CRUDWebhookEvent(CRUDBase[PaymentWebhookEvent]):
    """CRUD operations for PaymentWebhookEvent model."""

    def get_by_provider_event_id(
        self, db: Session, *, provider_code: str, provider_event_id: str
    ) -> Optional[PaymentWebhookEvent]:
        return (
            db.query(self.model)
            .filter(
                and_(
                    self.model.provider_code == provider_code,
                    self.model.provider_event_id == provider_event_id,
                )
            )
            .first()
        )

    def record_received(
        self,
        db: Session,
        *,
        provider_code: str,
        provider_event_id: str,
        provider_event_type: str,
        payload: Optional[dict] = None,
    ) -> PaymentWebhookEvent:
        """Return the existing log row for this provider event, or create one."""
        existing = self.get_by_provider_event_id(
            db, provider_code=provider_code, provider_event_id=provider_event_id
        )
        if existing:
            return existing
        return self.add(
            db,
            db_obj=PaymentWebhookEvent(
                provider_code=provider_code,
                provider_event_id=provider_event_id,
                provider_event_type=provider_event_type,
                payload=payload,
                status="pending",
            ),
        )

    def mark(
        self,
        db: Session,
        *,
        event: PaymentWebhookEvent,
        status: str,
        related_registration_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> PaymentWebhookEvent:
        event.status = status
        event.processed_at = datetime.now(timezone.utc)
        if related_registration_id:
            event.related_registration_id = related_registration_id
        event.processing_error = error
        db.flush()
        return event


webhook_event = CRUDWebhookEvent(PaymentWebhookEvent)
