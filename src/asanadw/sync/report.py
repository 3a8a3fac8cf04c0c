"""Sync options and the SyncReport returned for every synced entity."""
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import List, Optional


class SyncStatus(str, Enum):
    SUCCESS = "Success"
    PARTIAL_FAILURE = "PartialFailure"
    FAILED = "Failed"

    @property
    def job_status(self) -> str:
        """Value written to SyncJob.status for a finished job."""
        return {
            SyncStatus.SUCCESS: "completed",
            SyncStatus.PARTIAL_FAILURE: "partial_failure",
            SyncStatus.FAILED: "failed",
        }[self]


def derive_status(items_synced: int, items_failed: int, batches_completed: int) -> SyncStatus:
    if items_failed == 0:
        return SyncStatus.SUCCESS
    if items_synced > 0 or batches_completed > 0:
        return SyncStatus.PARTIAL_FAILURE
    return SyncStatus.FAILED


@dataclass
class SyncReport:
    """Outcome of syncing one entity. Status is derived from the counts."""

    entity_key: str
    status: SyncStatus
    items_synced: int = 0
    items_failed: int = 0
    batches_completed: int = 0
    batches_total: int = 0
    error: Optional[str] = None

    @classmethod
    def from_counts(
        cls,
        entity_key: str,
        items_synced: int,
        items_failed: int,
        batches_completed: int,
        batches_total: int,
        error: Optional[str] = None,
    ) -> "SyncReport":
        if error is None and items_failed > 0:
            error = f"{items_failed} items failed"
        return cls(
            entity_key=entity_key,
            status=derive_status(items_synced, items_failed, batches_completed),
            items_synced=items_synced,
            items_failed=items_failed,
            batches_completed=batches_completed,
            batches_total=batches_total,
            error=error,
        )

    @classmethod
    def aggregate(cls, entity_key: str, children: List["SyncReport"]) -> "SyncReport":
        """Roll child reports up into a container report, one batch per child."""
        return cls.from_counts(
            entity_key,
            items_synced=sum(c.items_synced for c in children),
            items_failed=sum(c.items_failed for c in children),
            batches_completed=sum(1 for c in children if c.status is not SyncStatus.FAILED),
            batches_total=len(children),
        )

    @classmethod
    def failed(cls, entity_key: str, error: str) -> "SyncReport":
        """Report for an entity whose sync raised before producing counts."""
        return cls(
            entity_key=entity_key,
            status=SyncStatus.FAILED,
            items_failed=1,
            error=error,
        )


@dataclass
class SyncOptions:
    """
    Controls one sync run.

    since: explicit lookback start date.
    days: lookback in days from today (ignored when `since` is set).
    force_full: skip the incremental path and, for backfills, re-fetch the
        whole window instead of only its gaps.
    """

    since: Optional[date] = None
    days: Optional[int] = None
    force_full: bool = False

    def since_date(self, today: date, default_days: int = 90) -> date:
        if self.since is not None:
            return self.since
        if self.days is not None:
            return today - timedelta(days=self.days)
        return today - timedelta(days=default_days)
