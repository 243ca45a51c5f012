"""ADFLOW — Scheduler Jobs.

APScheduler interval job that runs the automation reconciliation pass:
expires unacknowledged and unanswered dispatches, completes campaigns whose
schedule has ended.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from adflow.automation.dispatcher import AutomationDispatcher
from adflow.config import settings
from adflow.database import engine
from adflow.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


def reconcile_automations_job():
    """Run one reconciliation pass over every tenant.

    Plain function: AsyncIOScheduler runs it in its thread pool executor, so
    the blocking database work stays off the event loop.
    """
    try:
        with Session(engine) as session:
            counts = AutomationDispatcher(session).reconcile()
        logger.debug(f"Reconciliation complete: {counts}")
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}")


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        reconcile_automations_job,
        "interval",
        minutes=settings.reconcile_interval_minutes,
        id="reconcile_automations",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Reconciliation every {settings.reconcile_interval_minutes} min"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
