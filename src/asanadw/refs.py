"""
Entity reference parsing.

An entity reference is either an entity key ("project:1201234567890") or an
Asana URL. Both resolve to an (entity_type, gid) pair.

Supported URL shapes:
  https://app.asana.com/0/portfolio/<portfolio_gid>/list
  https://app.asana.com/0/<project_gid>[/<view or task_gid>]
  https://app.asana.com/1/<workspace_gid>/<project|portfolio|team>/<gid>/...
"""
from typing import Tuple
from urllib.parse import urlparse

ENTITY_TYPES = ("project", "user", "team", "portfolio")


class InvalidReferenceError(ValueError):
    """Raised when an entity reference cannot be resolved to a type and gid."""


def is_gid(value: str) -> bool:
    return bool(value) and value.isdigit()


def make_entity_key(entity_type: str, gid: str) -> str:
    return f"{entity_type}:{gid}"


def parse_entity_key(entity_key: str) -> Tuple[str, str]:
    """Split "type:gid" into its parts, validating both."""
    entity_type, sep, gid = entity_key.partition(":")
    if not sep or entity_type not in ENTITY_TYPES or not is_gid(gid):
        raise InvalidReferenceError(f"invalid entity key: {entity_key!r}")
    return entity_type, gid


def parse_entity_ref(ref: str) -> Tuple[str, str]:
    """Resolve an entity key or Asana URL to (entity_type, gid)."""
    ref = ref.strip()
    if "asana.com" in ref:
        return _parse_url(ref)
    return parse_entity_key(ref)


def _parse_url(url: str) -> Tuple[str, str]:
    parsed = urlparse(url)
    if not parsed.netloc.endswith("asana.com"):
        raise InvalidReferenceError(f"not an Asana URL: {url}")
    segments = [s for s in parsed.path.split("/") if s]
    if not segments:
        raise InvalidReferenceError(f"unexpected URL format: {url}")

    if segments[0] == "1":
        # /1/<workspace_gid>/<entity_type>/<gid>/...
        if len(segments) < 4 or not is_gid(segments[1]):
            raise InvalidReferenceError(f"missing workspace GID in URL: {url}")
        entity_type, gid = segments[2], segments[3]
        if entity_type not in ("project", "portfolio", "team") or not is_gid(gid):
            raise InvalidReferenceError(f"unsupported entity in URL: {url}")
        return entity_type, gid

    if segments[0] == "0":
        rest = segments[1:]
        if rest and rest[0] == "portfolio":
            if len(rest) < 2 or not is_gid(rest[1]):
                raise InvalidReferenceError(f"missing portfolio GID in URL: {url}")
            return "portfolio", rest[1]
        if rest and is_gid(rest[0]):
            return "project", rest[0]
        raise InvalidReferenceError(f"expected GID in URL path: {url}")

    raise InvalidReferenceError(f"unexpected URL format: {url}")
