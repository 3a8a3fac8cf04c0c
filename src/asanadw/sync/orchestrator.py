"""
SyncOrchestrator: entry point of the sync engine.

Per entity type:
  project    incremental if possible, otherwise full
  user       historical backfill (users have no event stream)
  team       team + members, then every non-archived project
  portfolio  portfolio + owner, then every project item and nested
             portfolio (each nested portfolio at most once)

Container reports aggregate their children: one batch per child.

sync_all() runs monitored entities one at a time in the order they were
added. An entity that raises becomes a Failed report and the run continues.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Set

from asanadw.asana.client import AsanaClient
from asanadw.config import get_settings
from asanadw.dates import utcnow
from asanadw.db.repository import Repository
from asanadw.models.sync import MonitoredEntity
from asanadw.refs import InvalidReferenceError, is_gid, make_entity_key, parse_entity_ref
from asanadw.sync.context import (
    SyncContext,
    ensure_user_identity,
    resolve_context,
    resolve_workspace,
)
from asanadw.sync.events import CursorExpired
from asanadw.sync.full import FullSyncer
from asanadw.sync.incremental import IncrementalSyncer
from asanadw.sync.progress import SyncProgress
from asanadw.sync.rate_limit import RateLimitedCaller
from asanadw.sync.report import SyncOptions, SyncReport

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Chooses incremental vs. full sync per entity and cascades containers."""

    def __init__(
        self,
        client,
        repository: Repository,
        settings=None,
        progress: Optional[SyncProgress] = None,
        call: Optional[RateLimitedCaller] = None,
    ):
        """
        Args:
            client: AsanaClient instance (or AsyncMock in tests).
            repository: Repository over the local mirror.
            settings: Settings; defaults to get_settings().
            progress: Progress callbacks; defaults to no-ops.
            call: RateLimitedCaller shared by every remote call of a run.
        """
        self.client = client
        self.repository = repository
        self.settings = settings or get_settings()
        self.progress = progress or SyncProgress()
        self.call = call or RateLimitedCaller(
            backoff_seconds=self.settings.rate_limit_backoff_seconds,
            max_retries=self.settings.rate_limit_max_retries,
        )
        self.full = FullSyncer(client, repository, self.settings, self.call, self.progress)
        self.incremental = IncrementalSyncer(
            client, repository, self.call, self.settings.incremental_task_threshold
        )

    # ─── Entry points ─────────────────────────────────────────────────────────

    async def sync_one(self, entity_ref: str, options: Optional[SyncOptions] = None) -> SyncReport:
        """
        Sync a single entity given as a "type:gid" key or an Asana URL.

        Raises:
            InvalidReferenceError: if the reference cannot be parsed.
            Any exception from the sync itself.
        """
        options = options or SyncOptions()
        entity_type, gid = parse_entity_ref(entity_ref)
        context = SyncContext()
        self.repository.ensure_entity_for_sync(entity_type, gid)

        entity_key = make_entity_key(entity_type, gid)
        self.progress.on_entity_start(entity_key, 0, 1)
        report = await self._sync_entity(entity_type, gid, options, context)
        self.progress.on_entity_complete(report)
        return report

    async def sync_all(self, options: Optional[SyncOptions] = None) -> List[SyncReport]:
        """Sync every enabled monitored entity, sequentially."""
        options = options or SyncOptions()
        context = SyncContext()
        try:
            context.user_gid = await ensure_user_identity(self.client, self.repository, self.call)
        except Exception as exc:
            logger.warning("Could not resolve the current user: %s", exc)

        entities = self.repository.list_monitored_entities()
        logger.info("Syncing %d monitored entities", len(entities))

        reports = []
        for i, entity in enumerate(entities):
            self.progress.on_entity_start(entity.entity_key, i, len(entities))
            try:
                report = await self._sync_entity(
                    entity.entity_type, entity.entity_gid, options, context
                )
            except Exception as exc:
                logger.error("Sync failed for %s: %s", entity.entity_key, exc)
                report = SyncReport.failed(entity.entity_key, str(exc))
            if report is None:
                continue
            reports.append(report)
            self.progress.on_entity_complete(report)
        return reports

    async def _sync_entity(
        self, entity_type: str, gid: str, options: SyncOptions, context: SyncContext
    ) -> Optional[SyncReport]:
        if entity_type == "project":
            return await self.sync_project(gid, options, context)
        if entity_type == "user":
            await self._require_workspace(context)
            return await self.full.sync_user(gid, options, context)
        if entity_type == "team":
            return await self.sync_team(gid, options, context)
        if entity_type == "portfolio":
            return await self.sync_portfolio(gid, options, context)
        logger.warning("Skipping %s: unknown entity type %r", gid, entity_type)
        return None

    async def _require_workspace(self, context: SyncContext) -> None:
        """Resolve the workspace on first use; users and teams are scoped to one."""
        if context.workspace_gid is None:
            context.workspace_gid = await resolve_workspace(
                self.client, self.repository, self.settings, self.call
            )

    # ─── Per type ─────────────────────────────────────────────────────────────

    async def sync_project(
        self, project_gid: str, options: SyncOptions, context: Optional[SyncContext] = None
    ) -> SyncReport:
        entity_key = self.repository.ensure_entity_for_sync("project", project_gid)

        if not options.force_full and self.repository.get_last_sync_at(entity_key):
            try:
                result = await self.incremental.sync_project(entity_key, project_gid, context)
            except Exception as exc:
                logger.warning(
                    "Incremental sync failed for %s, running full sync: %s", entity_key, exc
                )
                result = None
            if isinstance(result, SyncReport):
                return result
            if isinstance(result, CursorExpired):
                logger.info("%s: no usable event cursor, running full sync", entity_key)

        return await self.full.sync_project(project_gid, options, context)

    async def sync_team(
        self, team_gid: str, options: SyncOptions, context: SyncContext
    ) -> SyncReport:
        await self._require_workspace(context)
        entity_key = self.repository.ensure_entity_for_sync("team", team_gid)

        team = await self.call(lambda: self.client.get_team(team_gid))
        self.repository.upsert_team(team, context.workspace_gid)
        self.repository.ensure_entity_for_sync("team", team_gid, team.get("name"))
        members = await self.call(lambda: self.client.list_team_members(team_gid))
        self.repository.upsert_users(members)
        self.repository.upsert_team_members(team_gid, [m["gid"] for m in members])

        projects = await self.call(lambda: self.client.list_team_projects(team_gid))
        active = [p for p in projects if not p.get("archived")]
        logger.info("Team %s: %d members, %d active projects", team_gid, len(members), len(active))

        children = []
        for i, project in enumerate(active):
            children.append(await self._sync_child_project(project["gid"], options, context))
            self.progress.on_batch_complete(entity_key, i + 1, len(active))

        return self._finish_container(entity_key, children)

    async def sync_portfolio(
        self,
        portfolio_gid: str,
        options: SyncOptions,
        context: SyncContext,
        visited: Optional[Set[str]] = None,
    ) -> SyncReport:
        visited = visited if visited is not None else set()
        visited.add(portfolio_gid)
        entity_key = self.repository.ensure_entity_for_sync("portfolio", portfolio_gid)

        portfolio = await self.call(lambda: self.client.get_portfolio(portfolio_gid))
        owner = portfolio.get("owner")
        if owner and owner.get("gid"):
            self.repository.upsert_users([owner])
        self.repository.upsert_portfolio(portfolio)
        self.repository.ensure_entity_for_sync("portfolio", portfolio_gid, portfolio.get("name"))

        items = await self.call(lambda: self.client.list_portfolio_items(portfolio_gid))
        children = []
        for i, item in enumerate(items):
            item_type = item.get("resource_type")
            if item_type == "project":
                if item.get("archived"):
                    continue
                try:
                    child = await self.sync_project(item["gid"], options, context)
                except Exception as exc:
                    logger.warning("Project %s failed: %s", item["gid"], exc)
                    child = SyncReport.failed(make_entity_key("project", item["gid"]), str(exc))
                else:
                    self.repository.upsert_portfolio_project(portfolio_gid, item["gid"])
                children.append(child)
            elif item_type == "portfolio":
                if item["gid"] in visited:
                    logger.debug("Portfolio %s already visited, skipping", item["gid"])
                    continue
                try:
                    child = await self.sync_portfolio(item["gid"], options, context, visited)
                except Exception as exc:
                    logger.warning("Nested portfolio %s failed: %s", item["gid"], exc)
                    child = SyncReport.failed(make_entity_key("portfolio", item["gid"]), str(exc))
                else:
                    self.repository.upsert_portfolio_portfolio(portfolio_gid, item["gid"])
                children.append(child)
            else:
                continue
            self.progress.on_batch_complete(entity_key, i + 1, len(items))

        return self._finish_container(entity_key, children)

    async def _sync_child_project(
        self, project_gid: str, options: SyncOptions, context: SyncContext
    ) -> SyncReport:
        try:
            return await self.sync_project(project_gid, options, context)
        except Exception as exc:
            logger.warning("Project %s failed: %s", project_gid, exc)
            return SyncReport.failed(make_entity_key("project", project_gid), str(exc))

    def _finish_container(self, entity_key: str, children: List[SyncReport]) -> SyncReport:
        report = SyncReport.aggregate(entity_key, children)
        if report.items_failed == 0:
            self.repository.set_last_sync_at(entity_key, utcnow())
        return report

    # ─── Monitoring ───────────────────────────────────────────────────────────

    async def monitor_add(self, entity_type: str, ref: str) -> str:
        """Start monitoring an entity given by gid, key, or URL. Returns its key."""
        if is_gid(ref.strip()):
            gid = ref.strip()
        else:
            parsed_type, gid = parse_entity_ref(ref)
            if parsed_type != entity_type:
                raise InvalidReferenceError(
                    f"{ref!r} refers to a {parsed_type}, not a {entity_type}"
                )
        display_name = await self._lookup_name(entity_type, gid)
        entity_key = self.repository.add_monitored_entity(entity_type, gid, display_name)
        logger.info("Monitoring %s (%s)", entity_key, display_name or "unnamed")
        return entity_key

    def monitor_remove(self, entity_key: str) -> bool:
        return self.repository.remove_monitored_entity(entity_key)

    def monitor_list(self) -> List[MonitoredEntity]:
        return self.repository.list_monitored_entities(include_disabled=True)

    async def monitor_add_favorites(self) -> List[str]:
        """Monitor the current user's favorite projects and portfolios."""
        context = await resolve_context(self.client, self.repository, self.settings, self.call)
        added = []
        for resource_type in ("project", "portfolio"):
            favorites = await self.call(
                lambda rt=resource_type: self.client.list_favorites(context.workspace_gid, rt)
            )
            for fav in favorites:
                added.append(
                    self.repository.add_monitored_entity(resource_type, fav["gid"], fav.get("name"))
                )
        logger.info("Added %d favorites", len(added))
        return added

    async def _lookup_name(self, entity_type: str, gid: str) -> Optional[str]:
        fetchers = {
            "project": self.client.get_project,
            "portfolio": self.client.get_portfolio,
            "team": self.client.get_team,
        }
        fetch = fetchers.get(entity_type)
        if fetch is None:
            return None
        try:
            return (await self.call(lambda: fetch(gid))).get("name")
        except Exception as exc:
            logger.warning("Could not look up name for %s %s: %s", entity_type, gid, exc)
            return None


@asynccontextmanager
async def open_orchestrator(
    engine, settings=None, progress: Optional[SyncProgress] = None
) -> AsyncIterator[SyncOrchestrator]:
    """Build an orchestrator with a live AsanaClient, closing it on exit."""
    settings = settings or get_settings()
    client = AsanaClient(
        settings.asana_access_token,
        base_url=settings.asana_base_url,
        timeout=settings.request_timeout_seconds,
    )
    try:
        yield SyncOrchestrator(client, Repository(engine), settings, progress)
    finally:
        await client.close()
