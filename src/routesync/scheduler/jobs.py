"""
APScheduler jobs for background sync.

The periodic job wakes every `sync_check_minutes` and asks the coordinator
to sync; the coordinator's own throttle decides whether anything runs, so
waking often is cheap.

The scheduler runs inside the same process as the API (wired in __main__.py).
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from routesync.config import get_settings
from routesync.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


def build_scheduler(coordinator: SyncCoordinator) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        coordinator: SyncCoordinator the periodic job drives.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _periodic_sync,
        trigger="interval",
        minutes=settings.sync_check_minutes,
        id="periodic_sync",
        replace_existing=True,
        kwargs={
            "coordinator": coordinator,
            "min_interval": settings.sync_min_interval_seconds,
        },
    )

    return scheduler


async def _periodic_sync(coordinator: SyncCoordinator, min_interval: float) -> None:
    """
    Periodic job: run an incremental sync if one is due.

    Errors are logged and dropped; the watermark is untouched on failure,
    so the next wake-up retries the same range.
    """
    logger.debug("Periodic sync check at %s", datetime.utcnow().isoformat())
    try:
        ran = await coordinator.sync_if_due(min_interval=min_interval)
        if ran:
            logger.info("Periodic sync completed")
    except Exception as exc:
        logger.error("Periodic sync failed: %s", exc)
