"""Calendar and timestamp helpers shared by the sync engine."""
from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC now. All timestamps are stored naive-UTC in SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def last_day_of_month(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - timedelta(days=1)
    return date(year, month + 1, 1) - timedelta(days=1)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an Asana ISO 8601 timestamp ("2025-01-15T10:00:00.000Z") to naive UTC.

    Returns None for missing or unparseable values.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse an Asana date string ("2025-01-15")."""
    if not value:
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def format_timestamp(value: datetime) -> str:
    """Format a naive-UTC datetime the way the Asana API expects in query params."""
    return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")
