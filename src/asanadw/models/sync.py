"""Sync bookkeeping models: monitored entities, audit jobs, backfilled ranges."""
from datetime import date, datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from asanadw.dates import utcnow


class MonitoredEntity(SQLModel, table=True):
    """
    One row per entity the sync engine tracks.

    Rows with sync_enabled=False are not synced by sync_all; they exist to
    anchor an event cursor and watermark for projects reached through a team
    or portfolio.
    """

    entity_key: str = Field(primary_key=True)  # "project:1201234567890"
    entity_type: str  # "project", "user", "team", "portfolio"
    entity_gid: str = Field(index=True)
    display_name: Optional[str] = None
    added_at: datetime = Field(default_factory=utcnow)
    last_sync_at: Optional[datetime] = None
    sync_enabled: bool = True
    event_cursor: Optional[str] = None


class SyncJob(SQLModel, table=True):
    """Records each sync attempt for audit and debugging."""

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_key: str = Field(index=True)
    mode: str = "full"  # "full", "incremental", "backfill"
    status: str = "running"  # "running", "completed", "partial_failure", "failed"
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    synced_count: int = 0
    failed_count: int = 0
    batches_completed: int = 0
    batches_total: int = 0
    range_start: Optional[date] = None
    range_end: Optional[date] = None
    error_message: Optional[str] = None


class SyncedRange(SQLModel, table=True):
    """A historical window already backfilled for an entity."""

    __table_args__ = (UniqueConstraint("entity_key", "start_date", "end_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_key: str = Field(index=True)
    start_date: date
    end_date: date
    synced_at: datetime = Field(default_factory=utcnow)


class AppConfig(SQLModel, table=True):
    """Cached process-wide values (workspace gid, current user identity)."""

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=utcnow)
