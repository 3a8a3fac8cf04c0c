"""
SyncContext: workspace and user identity for one sync command.

Both are resolved at most once per command and passed explicitly to the
syncers. Projects and portfolios never need the workspace, so it is only
resolved when a user or team is synced.
Resolved values are cached in the app_config table so later runs skip the
API round-trips.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from asanadw.sync.rate_limit import RateLimitedCaller

logger = logging.getLogger(__name__)

WORKSPACE_KEY = "workspace_gid"
USER_GID_KEY = "user_gid"
USER_NAME_KEY = "user_name"
USER_EMAIL_KEY = "user_email"


class ConfigurationError(RuntimeError):
    """The workspace (or identity) could not be determined."""


@dataclass
class SyncContext:
    workspace_gid: Optional[str] = None
    user_gid: Optional[str] = None


async def resolve_workspace(client, repository, settings, call: Optional[RateLimitedCaller] = None) -> str:
    """Settings, then the app_config cache, then the API."""
    if settings.workspace_gid:
        return settings.workspace_gid

    cached = repository.get_config(WORKSPACE_KEY)
    if cached:
        return cached

    call = call or RateLimitedCaller()
    workspaces = await call(lambda: client.list_workspaces())
    if len(workspaces) != 1:
        names = ", ".join(f"{w.get('name')} ({w['gid']})" for w in workspaces) or "none"
        raise ConfigurationError(
            f"Expected exactly one workspace, found {len(workspaces)}: {names}. "
            "Set WORKSPACE_GID."
        )
    gid = workspaces[0]["gid"]
    repository.set_config(WORKSPACE_KEY, gid)
    logger.info("Detected workspace %s (%s)", workspaces[0].get("name"), gid)
    return gid


async def ensure_user_identity(client, repository, call: Optional[RateLimitedCaller] = None) -> str:
    """Return the token owner's gid, fetching and caching it on first use."""
    cached = repository.get_config(USER_GID_KEY)
    if cached:
        return cached

    call = call or RateLimitedCaller()
    me = await call(lambda: client.get_me())
    repository.upsert_users([me])
    repository.set_config(USER_GID_KEY, me["gid"])
    if me.get("name"):
        repository.set_config(USER_NAME_KEY, me["name"])
    if me.get("email"):
        repository.set_config(USER_EMAIL_KEY, me["email"])
    return me["gid"]


async def resolve_context(
    client, repository, settings, call: Optional[RateLimitedCaller] = None
) -> SyncContext:
    workspace_gid = await resolve_workspace(client, repository, settings, call)
    return SyncContext(workspace_gid=workspace_gid)
