"""
Main entrypoint: runs the nightly sync scheduler.

FastAPI runs separately under uvicorn.

Usage:
    python -m asanadw                 # starts the scheduler
    python -m asanadw sync [...]      # one-shot sync (see asanadw.scripts.sync)
    python -m asanadw monitor [...]   # manage monitored entities
    uvicorn asanadw.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_scheduler() -> None:
    from asanadw.config import get_settings
    from asanadw.db.engine import get_engine
    from asanadw.scheduler.jobs import build_scheduler

    settings = get_settings()
    if not settings.asana_access_token:
        logger.error("ASANA_ACCESS_TOKEN is not set.")
        sys.exit(1)

    scheduler = build_scheduler(get_engine())
    scheduler.start()
    logger.info("Scheduler started (nightly sync at %02d:00)", settings.sync_hour)

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "sync":
        from asanadw.scripts.sync import main as sync_main
        sync_main(sys.argv[2:])
    elif len(sys.argv) > 1 and sys.argv[1] == "monitor":
        from asanadw.scripts.monitor import main as monitor_main
        monitor_main(sys.argv[2:])
    else:
        asyncio.run(_run_scheduler())
