"""
IncrementalSyncer: applies the changes reported by a project's event stream.

sync_project() returns:
  SyncReport     changes (possibly none) were applied.
  CursorExpired  no usable cursor; the caller must run a full sync.
  None           too many tasks changed to refetch one by one; the cursor
                   has been advanced and the caller must run a full sync.

The consumed cursor and the watermark are written only after every write of
a clean attempt has committed. If any task or comment fetch fails the cursor
stays put, so the next attempt re-reads the same events.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from asanadw.asana.errors import NotFoundError
from asanadw.dates import utcnow
from asanadw.sync.context import SyncContext
from asanadw.sync.events import ChangeEventReader, ChangeSet, CursorExpired
from asanadw.sync.full import (
    fetch_comments,
    refresh_status_updates,
    store_project_metadata,
    store_tasks,
)
from asanadw.sync.rate_limit import RateLimitedCaller
from asanadw.sync.report import SyncReport

logger = logging.getLogger(__name__)

DEFAULT_TASK_THRESHOLD = 50

IncrementalResult = Union[SyncReport, CursorExpired, None]


class IncrementalSyncer:
    def __init__(
        self,
        client,
        repository,
        call: Optional[RateLimitedCaller] = None,
        task_threshold: int = DEFAULT_TASK_THRESHOLD,
    ):
        self.client = client
        self.repository = repository
        self.call = call or RateLimitedCaller()
        self.task_threshold = task_threshold
        self.reader = ChangeEventReader(client, repository, self.call)

    async def sync_project(
        self,
        entity_key: str,
        project_gid: str,
        context: Optional[SyncContext] = None,
    ) -> IncrementalResult:
        started = utcnow()
        result = await self.reader.read(entity_key, project_gid)
        if isinstance(result, CursorExpired):
            return result

        changes = ChangeSet.from_events(result.events)
        if not changes.has_changes:
            self._advance(entity_key, result.new_cursor, started)
            return SyncReport.from_counts(entity_key, 0, 0, 1, 1)

        if len(changes.changed_task_gids) > self.task_threshold:
            logger.info(
                "%s: %d tasks changed (threshold %d), falling back to full sync",
                entity_key, len(changes.changed_task_gids), self.task_threshold,
            )
            self.repository.set_event_cursor(entity_key, result.new_cursor)
            return None

        job_id = self.repository.insert_sync_job(entity_key, mode="incremental")
        try:
            report = await self._apply(entity_key, project_gid, changes, context)
            self.repository.update_sync_job(
                job_id,
                status=report.status.job_status,
                synced_count=report.items_synced,
                failed_count=report.items_failed,
                batches_completed=report.batches_completed,
                batches_total=report.batches_total,
                error_message=report.error,
            )
        except Exception as exc:
            self.repository.update_sync_job(job_id, status="failed", error_message=str(exc))
            raise

        if report.items_failed == 0:
            self._advance(entity_key, result.new_cursor, started)
        else:
            logger.warning(
                "%s: %d items failed, keeping the previous event cursor",
                entity_key, report.items_failed,
            )
        return report

    async def _apply(
        self,
        entity_key: str,
        project_gid: str,
        changes: ChangeSet,
        context: Optional[SyncContext],
    ) -> SyncReport:
        tasks: List[Dict[str, Any]] = []
        failed = 0
        for task_gid in sorted(changes.changed_task_gids):
            try:
                tasks.append(await self.call(lambda gid=task_gid: self.client.get_task(gid)))
            except NotFoundError:
                logger.debug("Task %s no longer exists, skipping", task_gid)
            except Exception as exc:
                failed += 1
                logger.warning("Failed to fetch task %s: %s", task_gid, exc)

        comments_by_task, comment_failures = await fetch_comments(
            self.client, self.call, [t["gid"] for t in tasks]
        )
        failed += comment_failures
        store_tasks(self.repository, tasks, comments_by_task)

        if changes.metadata_changed:
            project = await self.call(lambda: self.client.get_project(project_gid))
            sections = await self.call(lambda: self.client.list_sections(project_gid))
            store_project_metadata(
                self.repository, project, sections, context.workspace_gid if context else None
            )
        if changes.status_updates_changed:
            await refresh_status_updates(self.client, self.repository, self.call, project_gid)

        logger.info(
            "%s: applied %d changed tasks incrementally (%d failed)",
            entity_key, len(tasks), failed,
        )
        return SyncReport.from_counts(
            entity_key,
            items_synced=len(tasks),
            items_failed=failed,
            batches_completed=1 if tasks or not failed else 0,
            batches_total=1,
        )

    def _advance(self, entity_key: str, cursor: str, synced_at) -> None:
        self.repository.set_event_cursor(entity_key, cursor)
        self.repository.set_last_sync_at(entity_key, synced_at)
