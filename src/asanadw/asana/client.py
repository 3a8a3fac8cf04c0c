"""
Async client for the Asana REST API.

Thin wrapper over httpx.AsyncClient: bearer auth, `data` envelope
unwrapping, `next_page.offset` pagination, and mapping of error statuses onto
the exceptions in asanadw.asana.errors. No retries here. Callers wrap each
call in RateLimitedCaller.

Two endpoints need special handling:

  /events:
    - Without a `sync` param, Asana answers 412 with a fresh token in the
      body's `sync` key. That is how a cursor is established.
    - With an expired token, Asana answers 412 the same way. That is raised
      as CursorExpiredError carrying the fresh token.
    - `has_more: true` means another page is available under the new token.

  /workspaces/{gid}/tasks/search:
    - No offset pagination. Results are sorted by modified_at ascending and
      the `modified_at.after` bound is moved to just before the last row of
      each full page, so rows sharing that timestamp are read again and
      de-duplicated. A page that adds nothing new raises
      SearchTruncatedError.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx

from asanadw.asana.errors import (
    AsanaAPIError,
    CursorExpiredError,
    NotFoundError,
    RateLimitError,
    SearchTruncatedError,
)
from asanadw.dates import format_timestamp, parse_timestamp

PAGE_LIMIT = 100

USER_FIELDS = "gid,name,email"
PROJECT_FIELDS = (
    "gid,name,archived,color,notes,html_notes,created_at,modified_at,permalink_url,"
    "owner,owner.name,owner.email,team,team.name,workspace"
)
TASK_FIELDS = (
    "gid,name,completed,completed_at,assignee,assignee.name,assignee.email,"
    "due_on,due_at,start_on,created_at,modified_at,notes,html_notes,parent,"
    "num_subtasks,num_likes,memberships,memberships.project,memberships.project.name,"
    "memberships.section,memberships.section.name,permalink_url"
)
STORY_FIELDS = "gid,type,resource_subtype,text,html_text,created_at,created_by,created_by.name"
STATUS_FIELDS = (
    "gid,title,text,html_text,status_type,created_at,created_by,created_by.name,parent"
)
PORTFOLIO_FIELDS = "gid,name,color,public,owner,owner.name,workspace,permalink_url"
TEAM_FIELDS = "gid,name,description,organization"


@dataclass
class EventPage:
    """All events available since a cursor, plus the cursor to use next time."""

    next_cursor: str
    events: List[Dict[str, Any]] = field(default_factory=list)


class AsanaClient:
    """
    Async Asana API client.

    Usage:
        async with AsanaClient(token) as client:
            project = await client.get_project("1201234567890")
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = "https://app.asana.com/api/1.0",
        timeout: float = 30.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            access_token: Asana personal access token.
            base_url: API root, overridable for tests.
            timeout: Per-request timeout in seconds.
            http: Pre-built httpx.AsyncClient (tests pass one with a MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

    async def __aenter__(self) -> "AsanaClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    # ─── Transport ────────────────────────────────────────────────────────────

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET `path` and return the decoded JSON body (not unwrapped)."""
        response = await self._http.get(
            f"{self.base_url}{path}", params=params, headers=self._headers
        )
        if response.status_code >= 400:
            self._raise_for_status(response)
        return response.json()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        message = f"Asana API request failed ({status})"
        body: Dict[str, Any] = {}
        try:
            body = response.json()
            errors = body.get("errors")
            if errors and isinstance(errors, list):
                message = f"{errors[0].get('message', message)} ({status})"
        except ValueError:
            message = response.text or message

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                message, retry_after=float(retry_after) if retry_after else None
            )
        if status == 404:
            raise NotFoundError(message)
        if status == 412 and body.get("sync"):
            raise CursorExpiredError(body["sync"], message)
        raise AsanaAPIError(message, status_code=status)

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        payload = await self._request(path, params)
        return payload.get("data", payload)

    async def _get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """GET every page of a list endpoint, following next_page.offset."""
        query = dict(params or {})
        query.setdefault("limit", PAGE_LIMIT)
        items: List[Dict[str, Any]] = []
        while True:
            payload = await self._request(path, query)
            items.extend(payload.get("data", []))
            next_page = payload.get("next_page") or {}
            offset = next_page.get("offset")
            if not offset:
                return items
            query["offset"] = offset

    # ─── Single resources ─────────────────────────────────────────────────────

    async def get_project(self, project_gid: str) -> Dict[str, Any]:
        return await self._get(f"/projects/{project_gid}", {"opt_fields": PROJECT_FIELDS})

    async def get_team(self, team_gid: str) -> Dict[str, Any]:
        return await self._get(f"/teams/{team_gid}", {"opt_fields": TEAM_FIELDS})

    async def get_portfolio(self, portfolio_gid: str) -> Dict[str, Any]:
        return await self._get(f"/portfolios/{portfolio_gid}", {"opt_fields": PORTFOLIO_FIELDS})

    async def get_task(self, task_gid: str) -> Dict[str, Any]:
        """Fetch one task. Raises NotFoundError if it was deleted upstream."""
        return await self._get(f"/tasks/{task_gid}", {"opt_fields": TASK_FIELDS})

    async def get_me(self) -> Dict[str, Any]:
        return await self._get("/users/me", {"opt_fields": USER_FIELDS})

    # ─── Collections ──────────────────────────────────────────────────────────

    async def list_project_tasks(self, project_gid: str, completed_since: datetime) -> List[Dict[str, Any]]:
        """All incomplete tasks plus tasks completed on or after `completed_since`.

        The project task list cannot be filtered by modification time.
        """
        return await self._get_all(
            f"/projects/{project_gid}/tasks",
            {"opt_fields": TASK_FIELDS, "completed_since": format_timestamp(completed_since)},
        )

    async def list_task_comments(self, task_gid: str) -> List[Dict[str, Any]]:
        """Comment stories on a task (system stories are dropped)."""
        stories = await self._get_all(f"/tasks/{task_gid}/stories", {"opt_fields": STORY_FIELDS})
        return [
            s for s in stories
            if s.get("resource_subtype") == "comment_added" or s.get("type") == "comment"
        ]

    async def list_sections(self, project_gid: str) -> List[Dict[str, Any]]:
        return await self._get_all(f"/projects/{project_gid}/sections", {"opt_fields": "gid,name"})

    async def list_status_updates(self, parent_gid: str) -> List[Dict[str, Any]]:
        return await self._get_all(
            "/status_updates", {"parent": parent_gid, "opt_fields": STATUS_FIELDS}
        )

    async def list_team_members(self, team_gid: str) -> List[Dict[str, Any]]:
        return await self._get_all(f"/teams/{team_gid}/users", {"opt_fields": USER_FIELDS})

    async def list_team_projects(self, team_gid: str) -> List[Dict[str, Any]]:
        return await self._get_all(
            f"/teams/{team_gid}/projects", {"opt_fields": "gid,name,archived"}
        )

    async def list_portfolio_items(self, portfolio_gid: str) -> List[Dict[str, Any]]:
        return await self._get_all(
            f"/portfolios/{portfolio_gid}/items", {"opt_fields": "gid,name,resource_type,archived"}
        )

    async def list_workspaces(self) -> List[Dict[str, Any]]:
        return await self._get_all("/workspaces", {"opt_fields": "gid,name"})

    async def list_favorites(self, workspace_gid: str, resource_type: str) -> List[Dict[str, Any]]:
        return await self._get_all(
            "/users/me/favorites",
            {"workspace": workspace_gid, "resource_type": resource_type, "opt_fields": "gid,name,resource_type"},
        )

    async def search_workspace_tasks(
        self,
        workspace_gid: str,
        assignee_gid: str,
        modified_after: datetime,
        modified_before: datetime,
    ) -> List[Dict[str, Any]]:
        """Tasks assigned to `assignee_gid` last modified inside the window.

        Raises:
            SearchTruncatedError: more tasks share one modified_at second
                than fit on a page; `.tasks` holds what was fetched.
        """
        path = f"/workspaces/{workspace_gid}/tasks/search"
        query: Dict[str, Any] = {
            "opt_fields": TASK_FIELDS,
            "assignee.any": assignee_gid,
            "modified_at.before": format_timestamp(modified_before),
            "sort_by": "modified_at",
            "sort_ascending": "true",
            "limit": PAGE_LIMIT,
        }
        after = format_timestamp(modified_after)
        seen: Dict[str, Dict[str, Any]] = {}
        while True:
            query["modified_at.after"] = after
            page = await self._get(path, query)
            new = [task for task in page if task["gid"] not in seen]
            for task in page:
                seen[task["gid"]] = task
            last_modified = parse_timestamp(page[-1].get("modified_at")) if page else None
            if len(page) < PAGE_LIMIT or last_modified is None:
                return list(seen.values())
            if not new:
                raise SearchTruncatedError(
                    list(seen.values()),
                    f"more than {PAGE_LIMIT} tasks modified at {page[-1]['modified_at']}",
                )
            # One second back so tasks sharing the last timestamp are re-read
            after = format_timestamp(last_modified.replace(microsecond=0) - timedelta(seconds=1))

    # ─── Events ───────────────────────────────────────────────────────────────

    async def establish_cursor(self, resource_gid: str) -> str:
        """Mint a fresh event cursor for a resource."""
        try:
            payload = await self._request("/events", {"resource": resource_gid})
        except CursorExpiredError as exc:
            return exc.fresh_cursor
        token = payload.get("sync")
        if not token:
            raise AsanaAPIError(f"no sync token returned for {resource_gid}")
        return token

    async def get_events(self, resource_gid: str, cursor: str) -> EventPage:
        """All events since `cursor`. Raises CursorExpiredError if it is too old."""
        events: List[Dict[str, Any]] = []
        token = cursor
        while True:
            payload = await self._request("/events", {"resource": resource_gid, "sync": token})
            events.extend(payload.get("data", []))
            token = payload.get("sync") or token
            if not payload.get("has_more"):
                return EventPage(next_cursor=token, events=events)
