"""Asana API error taxonomy.

The sync engine only distinguishes four cases: rate limiting (retried by the
rate-limited caller), not-found (skipped), an expired event cursor (a control
signal carrying the server's fresh cursor), and everything else.
"""
from typing import Optional


class AsanaAPIError(RuntimeError):
    """Raised for any Asana API response with status >= 400."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(AsanaAPIError):
    """HTTP 429 from Asana."""

    def __init__(self, message: str = "rate limited (429)", retry_after: Optional[float] = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class NotFoundError(AsanaAPIError):
    """HTTP 404: the resource was deleted upstream or is not visible."""

    def __init__(self, message: str = "not found"):
        super().__init__(message, status_code=404)


class CursorExpiredError(AsanaAPIError):
    """HTTP 412 from the events endpoint; carries the server-issued fresh cursor."""

    def __init__(self, fresh_cursor: str, message: str = "event cursor expired"):
        super().__init__(message, status_code=412)
        self.fresh_cursor = fresh_cursor


class SearchTruncatedError(AsanaAPIError):
    """Task search could not page past a run of tasks sharing one modified_at.

    Carries the tasks that were fetched; the window is incomplete.
    """

    def __init__(self, tasks, message: str = "task search truncated"):
        super().__init__(message)
        self.tasks = tasks
