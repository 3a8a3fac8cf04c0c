"""
Asana API response normalizer.

Converts raw dicts from AsanaClient into clean field dicts that map directly
onto SQLModel columns. No DB access here. Callers (the repository) handle
persistence.

All functions return plain dicts so they're easy to test without any
SQLModel or DB dependencies.

Asana returns compact references for related objects, e.g.
  "assignee": {"gid": "12", "name": "Ada", "resource_type": "user"}
and `null` for unset ones. Only the gid is stored on the referencing row;
the reference itself is collected by referenced_users() so the user row can
be written first.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple

from asanadw.dates import parse_date, parse_timestamp


def _ref_gid(ref: Optional[Dict[str, Any]]) -> Optional[str]:
    if isinstance(ref, dict):
        return ref.get("gid")
    return None


def normalize_user(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "gid": raw["gid"],
        "name": raw.get("name") or "",
        "email": raw.get("email"),
    }


def referenced_users(items: Iterable[Dict[str, Any]], *keys: str) -> List[Dict[str, Any]]:
    """
    Collect the user references found under `keys` of each item, deduplicated
    by gid. A later reference carrying an email wins over one without.

    Example:
        referenced_users(tasks, "assignee")
        referenced_users(comments, "created_by")
    """
    users: Dict[str, Dict[str, Any]] = {}
    for item in items:
        for key in keys:
            ref = item.get(key)
            gid = _ref_gid(ref)
            if not gid:
                continue
            user = normalize_user(ref)
            if gid not in users or (user["email"] and not users[gid]["email"]):
                users[gid] = user
    return list(users.values())


def normalize_team(raw: Dict[str, Any], workspace_gid: Optional[str] = None) -> Dict[str, Any]:
    return {
        "gid": raw["gid"],
        "name": raw.get("name") or "",
        "workspace_gid": workspace_gid or _ref_gid(raw.get("organization")) or "",
        "description": raw.get("description"),
    }


def normalize_project(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "gid": raw["gid"],
        "name": raw.get("name") or "",
        "owner_gid": _ref_gid(raw.get("owner")),
        "team_gid": _ref_gid(raw.get("team")),
        "workspace_gid": _ref_gid(raw.get("workspace")) or "",
        "is_archived": bool(raw.get("archived", False)),
        "color": raw.get("color"),
        "notes": raw.get("notes"),
        "notes_html": raw.get("html_notes"),
        "created_at": parse_timestamp(raw.get("created_at")),
        "modified_at": parse_timestamp(raw.get("modified_at")),
        "permalink_url": raw.get("permalink_url"),
    }


def normalize_section(raw: Dict[str, Any], project_gid: str, sort_order: int) -> Dict[str, Any]:
    return {
        "gid": raw["gid"],
        "project_gid": project_gid,
        "name": raw.get("name") or "",
        "sort_order": sort_order,
    }


def normalize_task(raw: Dict[str, Any]) -> Dict[str, Any]:
    parent_gid = _ref_gid(raw.get("parent"))
    return {
        "gid": raw["gid"],
        "name": raw.get("name") or "",
        "notes": raw.get("notes"),
        "notes_html": raw.get("html_notes"),
        "assignee_gid": _ref_gid(raw.get("assignee")),
        "is_completed": bool(raw.get("completed", False)),
        "completed_at": parse_timestamp(raw.get("completed_at")),
        "due_on": parse_date(raw.get("due_on")),
        "due_at": parse_timestamp(raw.get("due_at")),
        "start_on": parse_date(raw.get("start_on")),
        "created_at": parse_timestamp(raw.get("created_at")),
        "modified_at": parse_timestamp(raw.get("modified_at")),
        "parent_gid": parent_gid,
        "is_subtask": parent_gid is not None,
        "num_subtasks": raw.get("num_subtasks") or 0,
        "num_likes": raw.get("num_likes") or 0,
        "permalink_url": raw.get("permalink_url"),
    }


def task_memberships(raw: Dict[str, Any]) -> List[Tuple[str, Optional[str]]]:
    """(project_gid, section_gid) pairs for a task's project memberships."""
    pairs = []
    for membership in raw.get("memberships") or []:
        project_gid = _ref_gid(membership.get("project"))
        if project_gid:
            pairs.append((project_gid, _ref_gid(membership.get("section"))))
    return pairs


def normalize_comment(raw: Dict[str, Any], task_gid: str) -> Dict[str, Any]:
    return {
        "gid": raw["gid"],
        "task_gid": task_gid,
        "author_gid": _ref_gid(raw.get("created_by")),
        "text": raw.get("text"),
        "html_text": raw.get("html_text"),
        "story_type": raw.get("resource_subtype") or raw.get("type") or "comment",
        "created_at": parse_timestamp(raw.get("created_at")),
    }


def normalize_status_update(raw: Dict[str, Any], parent_gid: str, parent_type: str = "project") -> Dict[str, Any]:
    return {
        "gid": raw["gid"],
        "parent_gid": _ref_gid(raw.get("parent")) or parent_gid,
        "parent_type": parent_type,
        "author_gid": _ref_gid(raw.get("created_by")),
        "title": raw.get("title") or "",
        "text": raw.get("text"),
        "html_text": raw.get("html_text"),
        "status_type": raw.get("status_type") or "",
        "created_at": parse_timestamp(raw.get("created_at")),
    }


def normalize_portfolio(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "gid": raw["gid"],
        "name": raw.get("name") or "",
        "owner_gid": _ref_gid(raw.get("owner")),
        "workspace_gid": _ref_gid(raw.get("workspace")) or "",
        "is_public": bool(raw.get("public", True)),
        "color": raw.get("color"),
        "permalink_url": raw.get("permalink_url"),
    }
