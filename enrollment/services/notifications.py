# enrollment/services/notifications.py
"""
Outbound notification collaborator.

Orchestrators never talk to a transport directly. They queue ``Notification``
objects while the unit of work is open and hand them to ``Notifier.dispatch``
after commit. Delivery is fire-and-forget: failures are logged and never
reach the caller of the operation that produced them.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from kafka import KafkaProducer

from enrollment.core.config import settings

logger = logging.getLogger(__name__)


class NotificationKind:
    REGISTRATION_CONFIRMED = "registration_confirmed"
    REGISTRATION_CANCELLED = "registration_cancelled"
    WAITLIST_JOINED = "waitlist_joined"
    WAITLIST_SPOT_AVAILABLE = "waitlist_spot_available"
    WAITLIST_OFFER_EXPIRED = "waitlist_offer_expired"
    PAYMENT_FAILED = "payment_failed"
    EVENT_REMINDER = "event_reminder"


@dataclass
class Notification:
    kind: str
    recipient: str
    payload: Dict[str, Any] = field(default_factory=dict)


class Notifier(ABC):
    @abstractmethod
    def send(self, kind: str, recipient: str, payload: Dict[str, Any]) -> None:
        """Deliver one notification. Implementations must not block on delivery."""

    def dispatch(self, notifications: Iterable[Notification]) -> None:
        for notification in notifications:
            try:
                self.send(notification.kind, notification.recipient, notification.payload)
            except Exception as e:
                logger.error(
                    f"Failed to send {notification.kind} notification to {notification.recipient}: {e}",
                    exc_info=True,
                )

    def close(self) -> None:
        """Flush and release transport resources."""


class KafkaNotifier(Notifier):
    """
    Publishes notifications to Kafka for the email/push consumers.

    The producer is created lazily so the service starts even when the broker
    is down; sends are not awaited.
    """

    def __init__(self, topic: Optional[str] = None, bootstrap_servers: Optional[str] = None):
        self.topic = topic or settings.NOTIFICATION_TOPIC
        self.bootstrap_servers = bootstrap_servers or settings.KAFKA_BOOTSTRAP_SERVERS
        self._producer: Optional[KafkaProducer] = None

    def _get_producer(self) -> KafkaProducer:
        if self._producer is None:
            self._producer = KafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
                request_timeout_ms=5000,
            )
        return self._producer

    def send(self, kind: str, recipient: str, payload: Dict[str, Any]) -> None:
        message = {
            "type": kind,
            "recipient": recipient,
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._get_producer().send(self.topic, value=message)
            logger.info(f"Queued {kind} notification for {recipient}")
        except Exception as e:
            logger.error(f"Kafka publish failed for {kind} notification: {e}", exc_info=True)

    def close(self) -> None:
        if self._producer is not None:
            self._producer.flush()
            self._producer.close()
            self._producer = None


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Process-wide notifier used by the API and the scheduled sweeps."""
    global _notifier
    if _notifier is None:
        _notifier = KafkaNotifier()
    return _notifier
