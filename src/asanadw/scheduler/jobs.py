"""
APScheduler jobs for background sync.

Nightly sync runs every enabled monitored entity. Projects with a live event
cursor go incremental, so the nightly run is cheap when little changed.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from asanadw.config import get_settings
from asanadw.dates import utcnow

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine the sync writes to.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _nightly_sync,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id="nightly_sync",
        replace_existing=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _nightly_sync(engine) -> None:
    """
    Nightly job: sync every monitored entity.

    Never raises, so the scheduler stays alive.
    """
    from asanadw.sync.orchestrator import open_orchestrator
    from asanadw.sync.progress import LoggingProgress

    logger.info("Nightly sync starting at %s", utcnow().isoformat())

    try:
        async with open_orchestrator(engine, progress=LoggingProgress()) as orchestrator:
            reports = await orchestrator.sync_all()
        failed = [r.entity_key for r in reports if r.items_failed]
        logger.info(
            "Nightly sync finished: %d entities, %d with failures", len(reports), len(failed)
        )
    except Exception as exc:
        logger.error("Nightly sync failed: %s", exc)
