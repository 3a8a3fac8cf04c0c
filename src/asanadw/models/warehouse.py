"""Mirrored Asana data: users, teams, projects, tasks, comments, portfolios.

Every table is keyed by the Asana gid (or a gid pair for bridge tables) so
upserts are idempotent merges on the natural key.
"""
from datetime import date, datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from asanadw.dates import utcnow


class User(SQLModel, table=True):
    gid: str = Field(primary_key=True)
    name: str = ""
    email: Optional[str] = Field(default=None, index=True)
    cached_at: datetime = Field(default_factory=utcnow)


class Team(SQLModel, table=True):
    gid: str = Field(primary_key=True)
    name: str = ""
    workspace_gid: str = ""
    description: Optional[str] = None
    cached_at: datetime = Field(default_factory=utcnow)


class TeamMember(SQLModel, table=True):
    team_gid: str = Field(foreign_key="team.gid", primary_key=True)
    user_gid: str = Field(foreign_key="user.gid", primary_key=True)
    role: Optional[str] = None


class Project(SQLModel, table=True):
    gid: str = Field(primary_key=True)
    name: str
    owner_gid: Optional[str] = Field(default=None, foreign_key="user.gid")
    team_gid: Optional[str] = Field(default=None, foreign_key="team.gid")
    workspace_gid: str = ""
    is_archived: bool = False
    color: Optional[str] = None
    notes: Optional[str] = None
    notes_html: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    permalink_url: Optional[str] = None
    cached_at: datetime = Field(default_factory=utcnow)


class Section(SQLModel, table=True):
    gid: str = Field(primary_key=True)
    project_gid: str = Field(foreign_key="project.gid", index=True)
    name: str
    sort_order: int = 0
    cached_at: datetime = Field(default_factory=utcnow)


class Task(SQLModel, table=True):
    """One row per task. parent_gid may point at a task not mirrored yet."""

    gid: str = Field(primary_key=True)
    name: str = ""
    notes: Optional[str] = None
    notes_html: Optional[str] = None
    assignee_gid: Optional[str] = Field(default=None, foreign_key="user.gid", index=True)
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    due_on: Optional[date] = None
    due_at: Optional[datetime] = None
    start_on: Optional[date] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    parent_gid: Optional[str] = Field(default=None, foreign_key="task.gid")
    is_subtask: bool = False
    num_subtasks: int = 0
    num_likes: int = 0
    permalink_url: Optional[str] = None
    cached_at: datetime = Field(default_factory=utcnow)


class TaskProject(SQLModel, table=True):
    """Task membership in a project (and section). Written with FK checks relaxed."""

    task_gid: str = Field(foreign_key="task.gid", primary_key=True)
    project_gid: str = Field(foreign_key="project.gid", primary_key=True, index=True)
    section_gid: Optional[str] = Field(default=None, foreign_key="section.gid")


class Comment(SQLModel, table=True):
    gid: str = Field(primary_key=True)
    task_gid: str = Field(foreign_key="task.gid", index=True)
    author_gid: Optional[str] = Field(default=None, foreign_key="user.gid")
    text: Optional[str] = None
    html_text: Optional[str] = None
    story_type: str = "comment"
    created_at: Optional[datetime] = None
    cached_at: datetime = Field(default_factory=utcnow)


class StatusUpdate(SQLModel, table=True):
    gid: str = Field(primary_key=True)
    parent_gid: str = Field(index=True)
    parent_type: str = "project"
    author_gid: Optional[str] = Field(default=None, foreign_key="user.gid")
    title: str = ""
    text: Optional[str] = None
    html_text: Optional[str] = None
    status_type: str = ""
    created_at: Optional[datetime] = None
    cached_at: datetime = Field(default_factory=utcnow)


class Portfolio(SQLModel, table=True):
    gid: str = Field(primary_key=True)
    name: str
    owner_gid: Optional[str] = Field(default=None, foreign_key="user.gid")
    workspace_gid: str = ""
    is_public: bool = True
    color: Optional[str] = None
    permalink_url: Optional[str] = None
    cached_at: datetime = Field(default_factory=utcnow)


class PortfolioProject(SQLModel, table=True):
    portfolio_gid: str = Field(foreign_key="portfolio.gid", primary_key=True)
    project_gid: str = Field(foreign_key="project.gid", primary_key=True)


class PortfolioPortfolio(SQLModel, table=True):
    """Nested portfolio membership."""

    parent_gid: str = Field(foreign_key="portfolio.gid", primary_key=True)
    child_gid: str = Field(foreign_key="portfolio.gid", primary_key=True)
