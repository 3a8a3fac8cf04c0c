"""Progress callbacks for sync runs.

SyncProgress is a no-op base; callers that want feedback override only the
hooks they care about.
"""
import logging

from asanadw.sync.report import SyncReport

logger = logging.getLogger(__name__)


class SyncProgress:
    def on_entity_start(self, entity_key: str, index: int, total: int) -> None:
        pass

    def on_entity_complete(self, report: SyncReport) -> None:
        pass

    def on_batch_complete(self, entity_key: str, completed: int, total: int) -> None:
        pass


class LoggingProgress(SyncProgress):
    """Logs each hook at INFO. Used by the one-shot sync script and nightly job."""

    def on_entity_start(self, entity_key: str, index: int, total: int) -> None:
        logger.info("[%d/%d] Syncing %s", index + 1, total, entity_key)

    def on_entity_complete(self, report: SyncReport) -> None:
        logger.info(
            "%s: %s (%d synced, %d failed)",
            report.entity_key,
            report.status.value,
            report.items_synced,
            report.items_failed,
        )

    def on_batch_complete(self, entity_key: str, completed: int, total: int) -> None:
        logger.info("%s: batch %d/%d done", entity_key, completed, total)
