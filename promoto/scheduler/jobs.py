"""Promoto — Scheduler Jobs.

APScheduler daily job that expires finished promotions at the configured time.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from promoto.config import settings
from promoto.connectors.meta.client import MetaClient
from promoto.database import engine
from promoto.services.expiration import ExpirationSweeper
from promoto.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def daily_expiration_job():
    """Expire every ACTIVE post whose promotion end date has passed."""
    logger.info("Scheduled expiration sweep starting...")
    client = MetaClient()
    try:
        with Session(engine) as session:
            result = await ExpirationSweeper(session, client).sweep()
        logger.info(
            f"Scheduled sweep complete. {result.success}/{result.total} expired, {result.failed} failed"
        )
    except Exception as e:
        logger.error(f"Scheduled sweep failed: {e}")
    finally:
        await client.close()


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_expiration_job,
        "cron",
        hour=settings.expiration_hour,
        minute=settings.expiration_minute,
        id="daily_expiration",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Daily expiration at "
        f"{settings.expiration_hour:02d}:{settings.expiration_minute:02d}"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
