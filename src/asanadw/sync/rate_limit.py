"""Retry Asana calls that were rejected for rate limiting."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from asanadw.asana.errors import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 3
BACKOFF_SECONDS = (60.0, 120.0, 240.0)


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for a 429, or for an error whose message says it was rate limited."""
    if isinstance(exc, RateLimitError):
        return True
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    if status is not None:
        return status == 429
    msg = str(exc)
    return "429" in msg or "rate limit" in msg.lower()


class RateLimitedCaller:
    """
    Awaits a zero-argument coroutine factory, retrying on rate-limit errors.

    Usage:
        call = RateLimitedCaller()
        project = await call(lambda: client.get_project(gid))

    Sleeps backoff[attempt] seconds between attempts (the last value repeats
    once the schedule runs out) for at most `max_retries` retries. Any other
    error propagates on the first occurrence. When retries are exhausted the
    last rate-limit error is raised.
    """

    def __init__(
        self,
        backoff_seconds: Sequence[float] = BACKOFF_SECONDS,
        max_retries: int = MAX_RETRIES,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if not backoff_seconds:
            raise ValueError("backoff_seconds must not be empty")
        self.backoff_seconds = tuple(backoff_seconds)
        self.max_retries = max_retries
        self._sleep = sleep or asyncio.sleep

    def backoff_for(self, attempt: int) -> float:
        return self.backoff_seconds[min(attempt, len(self.backoff_seconds) - 1)]

    async def __call__(self, thunk: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            try:
                return await thunk()
            except Exception as exc:
                if not is_rate_limit_error(exc) or attempt >= self.max_retries:
                    raise
                wait = self.backoff_for(attempt)
                logger.warning(
                    "Rate limited (429). Waiting %ss before retry %d/%d",
                    wait,
                    attempt + 1,
                    self.max_retries,
                )
                await self._sleep(wait)
                attempt += 1
