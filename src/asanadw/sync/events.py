"""
Change events: classification and cursor-aware reading.

ChangeEventReader.read() returns one of:
  EventBatch     events since the stored cursor, plus the next cursor.
                   The next cursor is NOT persisted here; the caller stores
                   it once the changes have been applied.
  CursorExpired  there was no usable cursor. A fresh one has already been
                   persisted, and this attempt must fall back to a full sync.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from asanadw.asana.errors import CursorExpiredError
from asanadw.sync.rate_limit import RateLimitedCaller

logger = logging.getLogger(__name__)


class EventKind(Enum):
    TASK_CHANGED = "task_changed"
    TASK_REMOVED = "task_removed"
    COMMENT_CHANGED = "comment_changed"
    SECTION_CHANGED = "section_changed"
    PROJECT_CHANGED = "project_changed"
    STATUS_UPDATE_CHANGED = "status_update_changed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ChangeEvent:
    resource_type: str
    resource_gid: str
    action: str
    parent_gid: Optional[str] = None
    parent_type: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "ChangeEvent":
        resource = raw.get("resource") or {}
        parent = raw.get("parent") or {}
        return cls(
            resource_type=resource.get("resource_type", ""),
            resource_gid=resource.get("gid", ""),
            action=raw.get("action", ""),
            parent_gid=parent.get("gid"),
            parent_type=parent.get("resource_type"),
        )


def classify_event(event: ChangeEvent) -> EventKind:
    rtype, action = event.resource_type, event.action
    if rtype == "task":
        if action in ("changed", "added", "undeleted"):
            return EventKind.TASK_CHANGED
        if action in ("removed", "deleted"):
            return EventKind.TASK_REMOVED
    elif rtype == "story":
        if action in ("changed", "added") and event.parent_gid and event.parent_type in (None, "task"):
            return EventKind.COMMENT_CHANGED
    elif rtype == "section":
        return EventKind.SECTION_CHANGED
    elif rtype == "project":
        if action == "changed":
            return EventKind.PROJECT_CHANGED
    elif rtype == "status_update":
        if action in ("changed", "added"):
            return EventKind.STATUS_UPDATE_CHANGED
    return EventKind.UNKNOWN


@dataclass
class ChangeSet:
    """What an incremental sync has to refetch."""

    changed_task_gids: Set[str] = field(default_factory=set)
    removed_task_gids: Set[str] = field(default_factory=set)
    sections_changed: bool = False
    project_changed: bool = False
    status_updates_changed: bool = False
    unknown_count: int = 0

    @classmethod
    def from_events(cls, events: List[ChangeEvent]) -> "ChangeSet":
        changes = cls()
        for event in events:
            kind = classify_event(event)
            if kind is EventKind.TASK_CHANGED:
                changes.changed_task_gids.add(event.resource_gid)
            elif kind is EventKind.COMMENT_CHANGED:
                changes.changed_task_gids.add(event.parent_gid)
            elif kind is EventKind.TASK_REMOVED:
                # Reconciled by the next full sync
                changes.removed_task_gids.add(event.resource_gid)
            elif kind is EventKind.SECTION_CHANGED:
                changes.sections_changed = True
            elif kind is EventKind.PROJECT_CHANGED:
                changes.project_changed = True
            elif kind is EventKind.STATUS_UPDATE_CHANGED:
                changes.status_updates_changed = True
            else:
                changes.unknown_count += 1
                logger.debug(
                    "Ignoring event %s %s %s", event.resource_type, event.action, event.resource_gid
                )
        return changes

    @property
    def metadata_changed(self) -> bool:
        return self.sections_changed or self.project_changed

    @property
    def has_changes(self) -> bool:
        return bool(
            self.changed_task_gids or self.metadata_changed or self.status_updates_changed
        )


@dataclass
class EventBatch:
    new_cursor: str
    events: List[ChangeEvent] = field(default_factory=list)


@dataclass
class CursorExpired:
    fresh_cursor: str
    established: bool = False


ReadResult = Union[EventBatch, CursorExpired]


class ChangeEventReader:
    """Reads the event stream for one entity at its stored cursor."""

    def __init__(self, client, repository, call: Optional[RateLimitedCaller] = None):
        self.client = client
        self.repository = repository
        self.call = call or RateLimitedCaller()

    async def read(self, entity_key: str, resource_gid: str) -> ReadResult:
        cursor = self.repository.get_event_cursor(entity_key)
        if not cursor:
            fresh = await self.call(lambda: self.client.establish_cursor(resource_gid))
            self.repository.set_event_cursor(entity_key, fresh)
            logger.info("Established event cursor for %s", entity_key)
            return CursorExpired(fresh_cursor=fresh, established=True)

        try:
            page = await self.call(lambda: self.client.get_events(resource_gid, cursor))
        except CursorExpiredError as exc:
            self.repository.set_event_cursor(entity_key, exc.fresh_cursor)
            logger.info("Event cursor for %s expired; stored a fresh one", entity_key)
            return CursorExpired(fresh_cursor=exc.fresh_cursor)

        return EventBatch(
            new_cursor=page.next_cursor,
            events=[ChangeEvent.from_raw(e) for e in page.events],
        )
