"""
Background scheduler for the daily medication recheck.
Uses APScheduler to run a cron job shortly after local midnight, inside
the Flask app context, so reminders reflect the new calendar day.
"""

import atexit
import logging
import os
from datetime import date

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import Flask

from medvault.config import Config

logger = logging.getLogger("medvault.scheduler")

_scheduler = None


def init_scheduler(app: Flask) -> None:
    """
    Initialize and start the background scheduler.
    Must be called after the Flask app is fully configured.
    """
    global _scheduler

    # Only run scheduler in the main process (not in reloader subprocess)
    if os.environ.get("WERKZEUG_RUN_MAIN") != "true" and app.config.get("DEBUG"):
        logger.info("Scheduler deferred to reloader child process.")
        return

    if _scheduler is not None and _scheduler.running:
        return

    _scheduler = BackgroundScheduler(daemon=True)
    _scheduler.add_job(
        func=_job_medication_recheck,
        trigger=CronTrigger(hour=0, minute=5),
        id="medication_recheck",
        name="Recompute medication status and create expiry reminders",
        replace_existing=True,
        kwargs={"app": app},
        misfire_grace_time=3600,
    )
    _scheduler.start()
    logger.info("Background scheduler started with daily medication recheck.")

    atexit.register(lambda: _shutdown_scheduler())


def _shutdown_scheduler() -> None:
    """Gracefully shut down the scheduler."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Background scheduler shut down.")


def _job_medication_recheck(app: Flask) -> None:
    """Scheduled job: create reminders for courses about to end."""
    with app.app_context():
        try:
            from medvault.services.reminder_service import generate_reminders
            stats = generate_reminders(date.today(), Config.REMINDER_WINDOW_DAYS)
            logger.info(
                "Medication recheck complete: checked=%d, created=%d, existing=%d",
                stats["checked"], stats["created"], stats["existing"],
            )
        except Exception as exc:
            logger.error("Medication recheck job failed: %s", exc, exc_info=True)
            from medvault.database import db
            db.session.rollback()
