"""Ladderwatch — Scheduler Jobs.

APScheduler daily job that runs poll + digest at the configured UTC time.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ladderwatch.config import settings
from ladderwatch.database import open_session
from ladderwatch.scheduler.daily import run_daily
from ladderwatch.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler(timezone="UTC")


async def daily_automation_job():
    """Poll every tracked character, then send (or preview) the digest."""
    logger.info("Scheduled daily automation starting...")
    dry_run = not settings.telegram_send_configured
    try:
        with open_session() as session:
            result = await run_daily(session, dry_run=dry_run)
        logger.info(
            f"Scheduled daily automation complete. poll={result.poll.status} "
            f"digest={result.digest.status}"
        )
    except Exception as e:
        logger.error(f"Scheduled daily automation failed: {e}")


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_automation_job,
        "cron",
        hour=settings.poll_hour,
        minute=settings.poll_minute,
        id="daily_automation",
        replace_existing=True,
        max_instances=1,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Daily automation at "
        f"{settings.poll_hour:02d}:{settings.poll_minute:02d} UTC"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
