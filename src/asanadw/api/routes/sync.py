"""Sync trigger, status, and monitored-entity routes."""
import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from asanadw.db.engine import get_engine, get_session
from asanadw.models.sync import MonitoredEntity, SyncJob
from asanadw.refs import InvalidReferenceError, parse_entity_ref
from asanadw.sync.report import SyncOptions

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    entity: Optional[str] = None  # "type:gid" or Asana URL; None syncs everything
    force_full: bool = False
    since: Optional[date] = None
    days: Optional[int] = None


class SyncStatusResponse(BaseModel):
    status: str
    entity_key: Optional[str] = None
    mode: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    synced_count: Optional[int] = None
    failed_count: Optional[int] = None
    error_message: Optional[str] = None


class MonitoredEntityResponse(BaseModel):
    entity_key: str
    entity_type: str
    display_name: Optional[str]
    added_at: datetime
    last_sync_at: Optional[datetime]
    sync_enabled: bool


async def _do_sync(entity: Optional[str], options: SyncOptions) -> None:
    """Background task: run one sync and log the outcome."""
    from asanadw.sync.orchestrator import open_orchestrator

    async with open_orchestrator(get_engine()) as orchestrator:
        if entity:
            reports = [await orchestrator.sync_one(entity, options)]
        else:
            reports = await orchestrator.sync_all(options)
    for report in reports:
        logger.info(
            "%s: %s (%d synced, %d failed)",
            report.entity_key, report.status.value, report.items_synced, report.items_failed,
        )


@router.post("/trigger")
async def trigger_sync(
    request: SyncTriggerRequest,
    background_tasks: BackgroundTasks,
):
    """
    Trigger an on-demand sync of one entity, or of every monitored entity.
    Returns immediately; sync runs in background.
    """
    if request.entity:
        try:
            parse_entity_ref(request.entity)
        except InvalidReferenceError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
    options = SyncOptions(since=request.since, days=request.days, force_full=request.force_full)
    background_tasks.add_task(_do_sync, request.entity, options)
    return {"message": "Sync started", "entity": request.entity}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    entity_key: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """Return the most recent sync job, optionally for one entity."""
    query = select(SyncJob)
    if entity_key:
        query = query.where(SyncJob.entity_key == entity_key)
    job = session.exec(query.order_by(SyncJob.started_at.desc(), SyncJob.id.desc())).first()
    if not job:
        return SyncStatusResponse(status="never_run", entity_key=entity_key)
    return SyncStatusResponse(
        status=job.status,
        entity_key=job.entity_key,
        mode=job.mode,
        started_at=job.started_at,
        completed_at=job.completed_at,
        synced_count=job.synced_count,
        failed_count=job.failed_count,
        error_message=job.error_message,
    )


@router.get("/entities", response_model=List[MonitoredEntityResponse])
def list_entities(
    include_disabled: bool = False,
    session: Session = Depends(get_session),
):
    """Monitored entities in the order they were added."""
    query = select(MonitoredEntity)
    if not include_disabled:
        query = query.where(MonitoredEntity.sync_enabled == True)  # noqa: E712
    rows = session.exec(query.order_by(MonitoredEntity.added_at)).all()
    return [
        MonitoredEntityResponse(
            entity_key=r.entity_key,
            entity_type=r.entity_type,
            display_name=r.display_name,
            added_at=r.added_at,
            last_sync_at=r.last_sync_at,
            sync_enabled=r.sync_enabled,
        )
        for r in rows
    ]


@router.delete("/entities/{entity_key}")
def remove_entity(entity_key: str, session: Session = Depends(get_session)):
    """Stop monitoring an entity. Mirrored data is kept."""
    entity = session.get(MonitoredEntity, entity_key)
    if entity is None:
        raise HTTPException(status_code=404, detail=f"{entity_key} is not monitored")
    session.delete(entity)
    session.commit()
    return {"message": "Removed", "entity_key": entity_key}
