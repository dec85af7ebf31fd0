"""AdSync - Scheduler Jobs.

APScheduler daily job that syncs every connected account over the trailing
window at the configured hour.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from adsync.config import settings
from adsync.models.remote_models import DateRange
from adsync.sync.orchestrator import SyncOrchestrator
from adsync.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def daily_sync_job(orchestrator: SyncOrchestrator):
    """Run the sync for all accounts over the trailing window."""
    logger.info("Scheduled daily sync starting...")
    try:
        result = await orchestrator.run_sync_all_accounts(
            DateRange.trailing(settings.sync_window_days)
        )
        logger.info(
            f"Scheduled sync {result.state.value}: {result.metrics_stored} metrics, "
            f"{len(result.errors)} errors"
        )
    except Exception as e:
        logger.error(f"Scheduled sync failed: {e}")


def start_scheduler(orchestrator: SyncOrchestrator):
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_sync_job,
        "cron",
        args=[orchestrator],
        hour=settings.sync_hour,
        minute=0,
        id="daily_sync",
        replace_existing=True,
        misfire_grace_time=3600,
        max_instances=1,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Daily sync at {settings.sync_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
