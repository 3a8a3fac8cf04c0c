"""
FullSyncer: re-fetches an entity's current state.

Flow for a project:
  1. Create SyncJob (status="running", mode="full")
  2. Fetch project + sections → write owner/team, project, sections
  3. List tasks with completed_since = lookback start
  4. Fetch comments for tasks modified after the last-sync watermark
  5. Write users → tasks → comments
  6. Fetch status updates → write authors → updates
  7. Finish SyncJob; on a clean run set the watermark, then establish a
     fresh event cursor (last write of the attempt)

Flow for a user (historical backfill):
  1. Compute gaps between the lookback window and already-synced ranges
  2. Per month batch: search tasks assigned to the user and modified in the
     batch, write them, record the batch as a SyncedRange (never past
     yesterday). A batch whose search was truncated is written but not
     recorded.

On any unexpected exception the SyncJob is marked "failed" and the
exception re-raised. Individual comment or batch failures are counted in
items_failed instead.
"""
import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from asanadw.asana.errors import SearchTruncatedError
from asanadw.asana.normalizer import referenced_users
from asanadw.dates import parse_timestamp, utcnow
from asanadw.refs import make_entity_key
from asanadw.sync.context import SyncContext
from asanadw.sync.gaps import DateRange, find_gaps, split_into_months
from asanadw.sync.progress import SyncProgress
from asanadw.sync.rate_limit import RateLimitedCaller
from asanadw.sync.report import SyncOptions, SyncReport

logger = logging.getLogger(__name__)


# ─── Shared write helpers ─────────────────────────────────────────────────────


def store_project_metadata(
    repository,
    project: Dict[str, Any],
    sections: List[Dict[str, Any]],
    workspace_gid: Optional[str] = None,
) -> None:
    """Write a project's owner and team, then the project and its sections."""
    owner = project.get("owner")
    if owner and owner.get("gid"):
        repository.upsert_users([owner])
    team = project.get("team")
    if team and team.get("gid"):
        repository.ensure_team(team, workspace_gid)
    repository.upsert_project(project)
    repository.upsert_sections(project["gid"], sections)


def store_tasks(
    repository,
    tasks: List[Dict[str, Any]],
    comments_by_task: Optional[Dict[str, List[Dict[str, Any]]]] = None,
) -> None:
    """Write users first, then tasks, then comments."""
    comments_by_task = comments_by_task or {}
    all_comments = [c for comments in comments_by_task.values() for c in comments]
    users = referenced_users(tasks, "assignee") + referenced_users(all_comments, "created_by")
    if users:
        repository.upsert_users(users)
    if tasks:
        repository.upsert_tasks(tasks)
    if all_comments:
        repository.upsert_comments(comments_by_task)


async def fetch_comments(
    client, call: RateLimitedCaller, task_gids: Iterable[str]
) -> Tuple[Dict[str, List[Dict[str, Any]]], int]:
    """Comments for each task, sequentially. Returns (comments_by_task, failures)."""
    comments_by_task: Dict[str, List[Dict[str, Any]]] = {}
    failed = 0
    for task_gid in task_gids:
        try:
            comments_by_task[task_gid] = await call(
                lambda gid=task_gid: client.list_task_comments(gid)
            )
        except Exception as exc:
            failed += 1
            logger.warning("Failed to fetch comments for task %s: %s", task_gid, exc)
    return comments_by_task, failed


async def refresh_status_updates(client, repository, call: RateLimitedCaller, project_gid: str) -> int:
    updates = await call(lambda: client.list_status_updates(project_gid))
    authors = referenced_users(updates, "created_by")
    if authors:
        repository.upsert_users(authors)
    repository.upsert_status_updates(project_gid, updates)
    return len(updates)


def needs_comment_refresh(task: Dict[str, Any], watermark: Optional[datetime]) -> bool:
    if watermark is None:
        return True
    modified_at = task.get("modified_at")
    if not modified_at:
        return True
    parsed = parse_timestamp(modified_at)
    return parsed is None or parsed > watermark


# ─── FullSyncer ───────────────────────────────────────────────────────────────


class FullSyncer:
    """Full re-fetch of projects and historical backfill of users."""

    def __init__(
        self,
        client,
        repository,
        settings,
        call: Optional[RateLimitedCaller] = None,
        progress: Optional[SyncProgress] = None,
    ):
        """
        Args:
            client: AsanaClient instance (or AsyncMock in tests).
            repository: Repository over the local mirror.
            settings: Settings (lookback default).
            call: RateLimitedCaller every remote call goes through.
            progress: Receives on_batch_complete during user backfills.
        """
        self.client = client
        self.repository = repository
        self.settings = settings
        self.call = call or RateLimitedCaller()
        self.progress = progress or SyncProgress()

    async def sync_project(
        self,
        project_gid: str,
        options: SyncOptions,
        context: Optional[SyncContext] = None,
    ) -> SyncReport:
        """
        Fetch and persist the full current state of one project.

        Returns:
            SyncReport with one item per task written.

        Raises:
            Any exception from the metadata or task-list fetch (after
            recording the failed SyncJob).
        """
        started = utcnow()
        today = started.date()
        since = options.since_date(today, self.settings.default_lookback_days)
        entity_key = make_entity_key("project", project_gid)
        workspace_gid = context.workspace_gid if context else None

        self.repository.ensure_entity_for_sync("project", project_gid)
        watermark = self.repository.get_last_sync_at(entity_key)
        job_id = self.repository.insert_sync_job(
            entity_key, mode="full", range_start=since, range_end=today
        )

        try:
            project = await self.call(lambda: self.client.get_project(project_gid))
            sections = await self.call(lambda: self.client.list_sections(project_gid))
            store_project_metadata(self.repository, project, sections, workspace_gid)
            self.repository.ensure_entity_for_sync("project", project_gid, project.get("name"))

            tasks = await self.call(
                lambda: self.client.list_project_tasks(
                    project_gid, datetime.combine(since, time.min)
                )
            )
            stale = [t["gid"] for t in tasks if needs_comment_refresh(t, watermark)]
            logger.info(
                "Project %s: %d tasks, refreshing comments on %d",
                project_gid, len(tasks), len(stale),
            )
            comments_by_task, failed = await fetch_comments(self.client, self.call, stale)
            store_tasks(self.repository, tasks, comments_by_task)

            try:
                await refresh_status_updates(
                    self.client, self.repository, self.call, project_gid
                )
            except Exception as exc:
                failed += 1
                logger.warning("Failed to refresh status updates for %s: %s", project_gid, exc)

            synced = len(tasks)
            report = SyncReport.from_counts(
                entity_key,
                items_synced=synced,
                items_failed=failed,
                batches_completed=1 if synced or not failed else 0,
                batches_total=1,
            )
            self._finish_job(job_id, report)

        except Exception as exc:
            self.repository.update_sync_job(job_id, status="failed", error_message=str(exc))
            raise

        if report.items_failed == 0:
            self.repository.set_last_sync_at(entity_key, started)
            await self._establish_cursor(entity_key, project_gid)
        return report

    async def sync_user(
        self,
        user_gid: str,
        options: SyncOptions,
        context: SyncContext,
    ) -> SyncReport:
        """
        Backfill tasks assigned to a user, one calendar month per batch.

        Only gaps in the already-synced ranges are fetched unless
        options.force_full is set.
        """
        started = utcnow()
        today = started.date()
        yesterday = today - timedelta(days=1)
        since = options.since_date(today, self.settings.default_lookback_days)
        entity_key = self.repository.ensure_entity_for_sync("user", user_gid)

        if options.force_full:
            batches = split_into_months(since, today)
        else:
            batches = find_gaps(
                DateRange(since, today), self.repository.get_synced_ranges(entity_key)
            )
        logger.info("User %s: %d batches to backfill since %s", user_gid, len(batches), since)

        job_id = self.repository.insert_sync_job(
            entity_key, mode="backfill", range_start=since, range_end=today
        )
        synced = failed = completed = 0
        try:
            for i, batch in enumerate(batches):
                try:
                    tasks = await self.call(
                        lambda b=batch: self.client.search_workspace_tasks(
                            context.workspace_gid,
                            user_gid,
                            modified_after=datetime.combine(b.start, time.min),
                            modified_before=datetime.combine(b.end + timedelta(days=1), time.min),
                        )
                    )
                    store_tasks(self.repository, tasks)
                except SearchTruncatedError as exc:
                    # Keep what was fetched but leave the month unrecorded
                    store_tasks(self.repository, exc.tasks)
                    synced += len(exc.tasks)
                    failed += 1
                    logger.warning(
                        "Backfill batch %s..%s incomplete for %s: %s",
                        batch.start, batch.end, entity_key, exc,
                    )
                except Exception as exc:
                    failed += 1
                    logger.warning(
                        "Backfill batch %s..%s failed for %s: %s",
                        batch.start, batch.end, entity_key, exc,
                    )
                else:
                    synced += len(tasks)
                    completed += 1
                    if batch.start <= yesterday:
                        self.repository.insert_synced_range(
                            entity_key, batch.start, min(batch.end, yesterday)
                        )
                self.progress.on_batch_complete(entity_key, i + 1, len(batches))

            report = SyncReport.from_counts(
                entity_key,
                items_synced=synced,
                items_failed=failed,
                batches_completed=completed,
                batches_total=len(batches),
            )
            self._finish_job(job_id, report)

        except Exception as exc:
            self.repository.update_sync_job(job_id, status="failed", error_message=str(exc))
            raise

        if report.items_failed == 0:
            self.repository.set_last_sync_at(entity_key, started)
        return report

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _finish_job(self, job_id: int, report: SyncReport) -> None:
        self.repository.update_sync_job(
            job_id,
            status=report.status.job_status,
            synced_count=report.items_synced,
            failed_count=report.items_failed,
            batches_completed=report.batches_completed,
            batches_total=report.batches_total,
            error_message=report.error,
        )

    async def _establish_cursor(self, entity_key: str, resource_gid: str) -> None:
        """Mint and store a fresh cursor so the next attempt can go incremental."""
        try:
            cursor = await self.call(lambda: self.client.establish_cursor(resource_gid))
        except Exception as exc:
            logger.warning("Could not establish event cursor for %s: %s", entity_key, exc)
            return
        self.repository.set_event_cursor(entity_key, cursor)
