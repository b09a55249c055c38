# enrollment/scheduler.py
"""
Background task scheduler for the registration and waitlist sweeps.

Uses APScheduler to run periodic background jobs for:
- Expiring waitlist offers (and promoting the next entry)
- Cancelling registrations whose payment never arrived
- Reminding attendees of upcoming offerings
- Closing offerings that have ended
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED

from enrollment.background_tasks.enrollment_tasks import (
    cleanup_pending_registrations,
    close_finished_offerings,
    expire_waitlist_offers,
    send_event_reminders,
)
from enrollment.core.config import settings

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def _on_job_error(event):
    exc = event.exception
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )
    if event.traceback:
        logger.error("Traceback for job %s:\n%s", event.job_id, event.traceback)


def _on_job_missed(event):
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def init_scheduler():
    """
    Initialize the background scheduler with the sweep jobs.

    This is called once when the application starts up.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            'coalesce': True,  # Combine missed executions
            'max_instances': 1,  # Only one instance of each job at a time
            'misfire_grace_time': 60
        }
    )

    scheduler.add_job(
        func=expire_waitlist_offers,
        trigger=IntervalTrigger(minutes=settings.EXPIRE_OFFERS_INTERVAL_MINUTES),
        id='expire_waitlist_offers',
        name='Expire Waitlist Offers',
        replace_existing=True
    )
    logger.info(
        f"Scheduled job: expire_waitlist_offers (every {settings.EXPIRE_OFFERS_INTERVAL_MINUTES} minutes)"
    )

    scheduler.add_job(
        func=cleanup_pending_registrations,
        trigger=IntervalTrigger(minutes=settings.PENDING_CLEANUP_INTERVAL_MINUTES),
        id='cleanup_pending_registrations',
        name='Cancel Unpaid Registrations',
        replace_existing=True
    )
    logger.info(
        f"Scheduled job: cleanup_pending_registrations (every {settings.PENDING_CLEANUP_INTERVAL_MINUTES} minutes)"
    )

    scheduler.add_job(
        func=send_event_reminders,
        trigger=CronTrigger(hour=settings.REMINDER_HOUR_UTC, minute=0),
        id='send_event_reminders',
        name='Send Upcoming Event Reminders',
        replace_existing=True
    )
    logger.info(f"Scheduled job: send_event_reminders (daily at {settings.REMINDER_HOUR_UTC}:00 UTC)")

    scheduler.add_job(
        func=close_finished_offerings,
        trigger=IntervalTrigger(minutes=settings.CLOSE_OFFERINGS_INTERVAL_MINUTES),
        id='close_finished_offerings',
        name='Close Finished Offerings',
        replace_existing=True
    )
    logger.info(
        f"Scheduled job: close_finished_offerings (every {settings.CLOSE_OFFERINGS_INTERVAL_MINUTES} minutes)"
    )

    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    scheduler.start()
    logger.info("Background scheduler started successfully")

    return scheduler


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=True)
        logger.info("Background scheduler shutdown complete")
        scheduler = None


def get_scheduler_status():
    """Current status of all scheduled jobs."""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })
    return {"status": "running" if scheduler.running else "stopped", "jobs": jobs}
