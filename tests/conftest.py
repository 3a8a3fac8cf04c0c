"""Shared test fixtures."""
from typing import Any, Dict, Generator, Optional
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
import asanadw.models.sync  # noqa: F401
import asanadw.models.warehouse  # noqa: F401
from asanadw.config import Settings
from asanadw.db.engine import configure_sqlite
from asanadw.db.repository import Repository
from asanadw.sync.rate_limit import RateLimitedCaller

WORKSPACE_GID = "1000"
PROJECT_GID = "2000"


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine with foreign keys enforced, fresh per test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="repository")
def repository_fixture(engine) -> Repository:
    return Repository(engine)


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    return Settings(
        _env_file=None,
        asana_access_token="test-token",
        workspace_gid=WORKSPACE_GID,
    )


@pytest.fixture(name="no_wait")
def no_wait_fixture() -> RateLimitedCaller:
    """RateLimitedCaller that never actually sleeps."""
    return RateLimitedCaller(sleep=AsyncMock())


# ─── Raw Asana payload factories ──────────────────────────────────────────────


def make_user(gid: str = "500", name: str = "Ada Lovelace", email: Optional[str] = None) -> Dict[str, Any]:
    user = {"gid": gid, "name": name, "resource_type": "user"}
    if email:
        user["email"] = email
    return user


def make_project(gid: str = PROJECT_GID, name: str = "Launch", **overrides) -> Dict[str, Any]:
    project = {
        "gid": gid,
        "name": name,
        "archived": False,
        "color": "light-green",
        "notes": "",
        "created_at": "2025-01-01T09:00:00.000Z",
        "modified_at": "2025-02-01T09:00:00.000Z",
        "permalink_url": f"https://app.asana.com/0/{gid}/{gid}",
        "owner": make_user("500", "Ada Lovelace"),
        "team": {"gid": "300", "name": "Platform", "resource_type": "team"},
        "workspace": {"gid": WORKSPACE_GID, "resource_type": "workspace"},
    }
    project.update(overrides)
    return project


def make_task(
    gid: str,
    project_gid: str = PROJECT_GID,
    modified_at: Optional[str] = "2025-03-01T12:00:00.000Z",
    assignee: Optional[Dict[str, Any]] = None,
    parent_gid: Optional[str] = None,
    section_gid: Optional[str] = "700",
    **overrides,
) -> Dict[str, Any]:
    task = {
        "gid": gid,
        "name": f"Task {gid}",
        "completed": False,
        "completed_at": None,
        "assignee": assignee if assignee is not None else make_user("501", "Grace Hopper"),
        "due_on": "2025-03-15",
        "created_at": "2025-01-10T08:00:00.000Z",
        "modified_at": modified_at,
        "notes": "",
        "parent": {"gid": parent_gid, "resource_type": "task"} if parent_gid else None,
        "num_subtasks": 0,
        "num_likes": 0,
        "memberships": [
            {
                "project": {"gid": project_gid, "name": "Launch"},
                "section": {"gid": section_gid, "name": "To do"} if section_gid else None,
            }
        ],
        "permalink_url": f"https://app.asana.com/0/{project_gid}/{gid}",
    }
    task.update(overrides)
    return task


def make_comment(gid: str, author_gid: str = "502", text: str = "Looks good") -> Dict[str, Any]:
    return {
        "gid": gid,
        "type": "comment",
        "resource_subtype": "comment_added",
        "text": text,
        "created_at": "2025-03-02T10:00:00.000Z",
        "created_by": make_user(author_gid, f"User {author_gid}"),
    }


def make_event(resource_type: str, gid: str, action: str = "changed", parent: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "action": action,
        "resource": {"gid": gid, "resource_type": resource_type},
        "parent": parent,
        "created_at": "2025-03-05T10:00:00.000Z",
    }
