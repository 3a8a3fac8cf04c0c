"""
Repository: the storage collaborator used by the sync engine.

Every write opens a short-lived Session and commits before returning, so
writes are serialised on the calling thread and each call is its own unit of
work. Upserts are idempotent: rows are keyed by their Asana gid and merged.

Foreign-key ordering is the caller's job (users before the rows that
reference them), with one exception: upsert_tasks() turns FK enforcement off
for the batch because a task's parent, or a project/section it belongs to,
may not be mirrored yet. Enforcement is restored before the call returns so
comments written afterwards are checked again.
"""
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlmodel import Session, select

from asanadw.asana.normalizer import (
    normalize_comment,
    normalize_portfolio,
    normalize_project,
    normalize_section,
    normalize_status_update,
    normalize_task,
    normalize_team,
    normalize_user,
    task_memberships,
)
from asanadw.dates import utcnow
from asanadw.models.sync import AppConfig, MonitoredEntity, SyncedRange, SyncJob
from asanadw.models.warehouse import (
    Comment,
    Portfolio,
    PortfolioPortfolio,
    PortfolioProject,
    Project,
    Section,
    StatusUpdate,
    Task,
    TaskProject,
    Team,
    TeamMember,
    User,
)
from asanadw.refs import make_entity_key
from asanadw.sync.gaps import DateRange


class Repository:
    """Reads and writes for the local mirror."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    # ─── Monitored entities ───────────────────────────────────────────────────

    def add_monitored_entity(
        self, entity_type: str, gid: str, display_name: Optional[str] = None
    ) -> str:
        """Add (or re-enable) a first-class monitored entity. Returns its key."""
        entity_key = make_entity_key(entity_type, gid)
        with Session(self.engine) as s:
            entity = s.get(MonitoredEntity, entity_key)
            if entity is None:
                entity = MonitoredEntity(
                    entity_key=entity_key,
                    entity_type=entity_type,
                    entity_gid=gid,
                    display_name=display_name,
                )
            else:
                entity.sync_enabled = True
                if display_name:
                    entity.display_name = display_name
            s.add(entity)
            s.commit()
        return entity_key

    def ensure_entity_for_sync(
        self, entity_type: str, gid: str, display_name: Optional[str] = None
    ) -> str:
        """Make sure a row exists to hold a cursor and watermark.

        Creates it with sync_enabled=False when missing; never changes an
        existing row's sync_enabled.
        """
        entity_key = make_entity_key(entity_type, gid)
        with Session(self.engine) as s:
            entity = s.get(MonitoredEntity, entity_key)
            if entity is None:
                s.add(MonitoredEntity(
                    entity_key=entity_key,
                    entity_type=entity_type,
                    entity_gid=gid,
                    display_name=display_name,
                    sync_enabled=False,
                ))
                s.commit()
            elif display_name and not entity.display_name:
                entity.display_name = display_name
                s.add(entity)
                s.commit()
        return entity_key

    def remove_monitored_entity(self, entity_key: str) -> bool:
        with Session(self.engine) as s:
            entity = s.get(MonitoredEntity, entity_key)
            if entity is None:
                return False
            s.delete(entity)
            s.commit()
        return True

    def get_monitored_entity(self, entity_key: str) -> Optional[MonitoredEntity]:
        with Session(self.engine) as s:
            return s.get(MonitoredEntity, entity_key)

    def list_monitored_entities(self, include_disabled: bool = False) -> List[MonitoredEntity]:
        """Monitored entities in the order they were added."""
        with Session(self.engine) as s:
            query = select(MonitoredEntity)
            if not include_disabled:
                query = query.where(MonitoredEntity.sync_enabled == True)  # noqa: E712
            query = query.order_by(MonitoredEntity.added_at, MonitoredEntity.entity_key)
            return list(s.exec(query).all())

    def get_event_cursor(self, entity_key: str) -> Optional[str]:
        entity = self.get_monitored_entity(entity_key)
        return entity.event_cursor if entity else None

    def set_event_cursor(self, entity_key: str, cursor: str) -> None:
        self._update_entity(entity_key, event_cursor=cursor)

    def get_last_sync_at(self, entity_key: str) -> Optional[datetime]:
        entity = self.get_monitored_entity(entity_key)
        return entity.last_sync_at if entity else None

    def set_last_sync_at(self, entity_key: str, when: datetime) -> None:
        self._update_entity(entity_key, last_sync_at=when)

    def _update_entity(self, entity_key: str, **fields: Any) -> None:
        with Session(self.engine) as s:
            entity = s.get(MonitoredEntity, entity_key)
            if entity is None:
                raise KeyError(f"no monitored entity {entity_key}")
            for k, v in fields.items():
                setattr(entity, k, v)
            s.add(entity)
            s.commit()

    # ─── App config ───────────────────────────────────────────────────────────

    def get_config(self, key: str) -> Optional[str]:
        with Session(self.engine) as s:
            row = s.get(AppConfig, key)
            return row.value if row else None

    def set_config(self, key: str, value: str) -> None:
        with Session(self.engine) as s:
            s.merge(AppConfig(key=key, value=value, updated_at=utcnow()))
            s.commit()

    # ─── Sync jobs ────────────────────────────────────────────────────────────

    def insert_sync_job(
        self,
        entity_key: str,
        mode: str = "full",
        range_start: Optional[date] = None,
        range_end: Optional[date] = None,
    ) -> int:
        job = SyncJob(
            entity_key=entity_key,
            mode=mode,
            range_start=range_start,
            range_end=range_end,
        )
        with Session(self.engine) as s:
            s.add(job)
            s.commit()
            s.refresh(job)
            return job.id

    def update_sync_job(
        self,
        job_id: int,
        *,
        status: str,
        synced_count: int = 0,
        failed_count: int = 0,
        batches_completed: int = 0,
        batches_total: int = 0,
        error_message: Optional[str] = None,
    ) -> None:
        """Terminal write for a job row."""
        with Session(self.engine) as s:
            job = s.get(SyncJob, job_id)
            job.status = status
            job.completed_at = utcnow()
            job.synced_count = synced_count
            job.failed_count = failed_count
            job.batches_completed = batches_completed
            job.batches_total = batches_total
            job.error_message = error_message
            s.add(job)
            s.commit()

    def latest_sync_job(self, entity_key: Optional[str] = None) -> Optional[SyncJob]:
        with Session(self.engine) as s:
            query = select(SyncJob)
            if entity_key:
                query = query.where(SyncJob.entity_key == entity_key)
            return s.exec(query.order_by(SyncJob.started_at.desc(), SyncJob.id.desc())).first()

    # ─── Synced ranges ────────────────────────────────────────────────────────

    def get_synced_ranges(self, entity_key: str) -> List[DateRange]:
        with Session(self.engine) as s:
            rows = s.exec(
                select(SyncedRange).where(SyncedRange.entity_key == entity_key)
            ).all()
            return [DateRange(r.start_date, r.end_date) for r in rows]

    def insert_synced_range(self, entity_key: str, start: date, end: date) -> None:
        with Session(self.engine) as s:
            existing = s.exec(
                select(SyncedRange).where(
                    SyncedRange.entity_key == entity_key,
                    SyncedRange.start_date == start,
                    SyncedRange.end_date == end,
                )
            ).first()
            if existing:
                existing.synced_at = utcnow()
                s.add(existing)
            else:
                s.add(SyncedRange(entity_key=entity_key, start_date=start, end_date=end))
            s.commit()

    # ─── Dimensions ───────────────────────────────────────────────────────────

    def upsert_users(self, users: Iterable[Dict[str, Any]]) -> None:
        """Upsert users from raw refs. A ref without an email keeps the stored one."""
        with Session(self.engine) as s:
            for raw in users:
                fields = normalize_user(raw)
                existing = s.get(User, fields["gid"])
                if existing:
                    existing.name = fields["name"] or existing.name
                    existing.email = fields["email"] or existing.email
                    existing.cached_at = utcnow()
                    s.add(existing)
                else:
                    s.add(User(**fields))
            s.commit()

    def upsert_team(self, raw: Dict[str, Any], workspace_gid: Optional[str] = None) -> None:
        with Session(self.engine) as s:
            s.merge(Team(**normalize_team(raw, workspace_gid)))
            s.commit()

    def ensure_team(self, raw: Dict[str, Any], workspace_gid: Optional[str] = None) -> None:
        """Insert a team from a compact reference only if it is not mirrored yet."""
        with Session(self.engine) as s:
            if s.get(Team, raw["gid"]) is None:
                s.add(Team(**normalize_team(raw, workspace_gid)))
                s.commit()

    def upsert_team_members(self, team_gid: str, user_gids: Iterable[str]) -> None:
        with Session(self.engine) as s:
            for user_gid in user_gids:
                s.merge(TeamMember(team_gid=team_gid, user_gid=user_gid))
            s.commit()

    def upsert_project(self, raw: Dict[str, Any]) -> None:
        with Session(self.engine) as s:
            s.merge(Project(**normalize_project(raw)))
            s.commit()

    def upsert_sections(self, project_gid: str, sections: List[Dict[str, Any]]) -> None:
        with Session(self.engine) as s:
            for i, raw in enumerate(sections):
                s.merge(Section(**normalize_section(raw, project_gid, i)))
            s.commit()

    def upsert_portfolio(self, raw: Dict[str, Any]) -> None:
        with Session(self.engine) as s:
            s.merge(Portfolio(**normalize_portfolio(raw)))
            s.commit()

    def upsert_portfolio_project(self, portfolio_gid: str, project_gid: str) -> None:
        with Session(self.engine) as s:
            s.merge(PortfolioProject(portfolio_gid=portfolio_gid, project_gid=project_gid))
            s.commit()

    def upsert_portfolio_portfolio(self, parent_gid: str, child_gid: str) -> None:
        with Session(self.engine) as s:
            s.merge(PortfolioPortfolio(parent_gid=parent_gid, child_gid=child_gid))
            s.commit()

    # ─── Facts ────────────────────────────────────────────────────────────────

    @contextmanager
    def _relaxed_foreign_keys(self) -> Iterator[Session]:
        """Session on a dedicated connection with FK enforcement off.

        PRAGMA foreign_keys is a no-op inside a transaction, so it is toggled
        on the bare connection before the session begins and after it ends.
        """
        with self.engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            conn.commit()
            try:
                with Session(bind=conn) as s:
                    yield s
                    s.commit()
            finally:
                conn.exec_driver_sql("PRAGMA foreign_keys=ON")
                conn.commit()

    def upsert_tasks(self, tasks: List[Dict[str, Any]]) -> None:
        """Upsert tasks and their project/section memberships."""
        with self._relaxed_foreign_keys() as s:
            for raw in tasks:
                s.merge(Task(**normalize_task(raw)))
                for project_gid, section_gid in task_memberships(raw):
                    s.merge(TaskProject(
                        task_gid=raw["gid"],
                        project_gid=project_gid,
                        section_gid=section_gid,
                    ))

    def upsert_comments(self, comments_by_task: Dict[str, List[Dict[str, Any]]]) -> int:
        """Upsert comments keyed by task gid. Returns the number written."""
        written = 0
        with Session(self.engine) as s:
            for task_gid, comments in comments_by_task.items():
                for raw in comments:
                    s.merge(Comment(**normalize_comment(raw, task_gid)))
                    written += 1
            s.commit()
        return written

    def upsert_status_updates(
        self, parent_gid: str, updates: List[Dict[str, Any]], parent_type: str = "project"
    ) -> None:
        with Session(self.engine) as s:
            for raw in updates:
                s.merge(StatusUpdate(**normalize_status_update(raw, parent_gid, parent_type)))
            s.commit()
