# enrollment/background_tasks/enrollment_tasks.py
"""
Scheduled entry points for the registration and waitlist sweeps.

Each task opens its own database session, runs one sweep and closes the
session. Schedules live in enrollment/scheduler.py:
- expire_waitlist_offers(): every EXPIRE_OFFERS_INTERVAL_MINUTES
- cleanup_pending_registrations(): every PENDING_CLEANUP_INTERVAL_MINUTES
- send_event_reminders(): daily at REMINDER_HOUR_UTC
- close_finished_offerings(): every CLOSE_OFFERINGS_INTERVAL_MINUTES
"""

import logging

from enrollment.db.session import SessionLocal
from enrollment.services import sweeps
from enrollment.services.notifications import get_notifier
from enrollment.services.payment import get_payment_provider

logger = logging.getLogger(__name__)


def expire_waitlist_offers() -> int:
    """Expire overdue waitlist offers and pass each seat to the next person in line."""
    db = SessionLocal()
    try:
        expired = sweeps.expire_stale_offers(
            db, notifier=get_notifier(), payment_provider=get_payment_provider()
        )
        if expired:
            logger.info(f"Expired {expired} waitlist offers")
        return expired
    except Exception as e:
        logger.error(f"Error in expire_waitlist_offers task: {e}", exc_info=True)
        return 0
    finally:
        db.close()


def cleanup_pending_registrations() -> int:
    db = SessionLocal()
    try:
        cancelled = sweeps.cleanup_stale_pending_registrations(
            db, notifier=get_notifier(), payment_provider=get_payment_provider()
        )
        if cancelled:
            logger.info(f"Cancelled {cancelled} unpaid registrations")
        return cancelled
    except Exception as e:
        logger.error(f"Error in cleanup_pending_registrations task: {e}", exc_info=True)
        return 0
    finally:
        db.close()


def send_event_reminders() -> int:
    db = SessionLocal()
    try:
        return sweeps.send_upcoming_reminders(db, notifier=get_notifier())
    except Exception as e:
        logger.error(f"Error in send_event_reminders task: {e}", exc_info=True)
        return 0
    finally:
        db.close()


def close_finished_offerings() -> int:
    db = SessionLocal()
    try:
        closed = sweeps.close_past_offerings(db, notifier=get_notifier())
        if closed:
            logger.info(f"Closed {closed} finished offerings")
        return closed
    except Exception as e:
        logger.error(f"Error in close_finished_offerings task: {e}", exc_info=True)
        return 0
    finally:
        db.close()
