"""
Gap finding for historical backfill.

Given the window a backfill should cover and the windows already backfilled,
find_gaps() returns what is still missing, split into calendar-month batches
so each batch maps onto one upstream search query.

Pure functions, no I/O.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Sequence

from asanadw.dates import last_day_of_month

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range."""

    start: date
    end: date


def merge_ranges(ranges: Sequence[DateRange]) -> List[DateRange]:
    """Merge overlapping or adjacent ranges into a minimal sorted cover."""
    if not ranges:
        return []
    ordered = sorted(ranges, key=lambda r: r.start)
    merged = [ordered[0]]
    for rng in ordered[1:]:
        last = merged[-1]
        # A one-day gap counts as adjacent
        if rng.start <= last.end + ONE_DAY:
            merged[-1] = DateRange(last.start, max(last.end, rng.end))
        else:
            merged.append(rng)
    return merged


def split_into_months(start: date, end: date) -> List[DateRange]:
    """Split [start, end] into month-aligned batches."""
    batches = []
    cursor = start
    while cursor <= end:
        batch_end = min(last_day_of_month(cursor.year, cursor.month), end)
        batches.append(DateRange(cursor, batch_end))
        cursor = batch_end + ONE_DAY
    return batches


def find_gaps(desired: DateRange, synced: Sequence[DateRange]) -> List[DateRange]:
    """
    Sub-ranges of `desired` not covered by any of `synced`, month-aligned.

    Example:
        >>> find_gaps(
        ...     DateRange(date(2025, 1, 1), date(2025, 3, 31)),
        ...     [DateRange(date(2025, 1, 1), date(2025, 1, 31)),
        ...      DateRange(date(2025, 3, 1), date(2025, 3, 31))],
        ... )
        [DateRange(start=datetime.date(2025, 2, 1), end=datetime.date(2025, 2, 28))]
    """
    if desired.start > desired.end:
        return []

    gaps = []
    cursor = desired.start
    for rng in merge_ranges(synced):
        if rng.end < cursor:
            continue
        if rng.start > desired.end:
            break
        if rng.start > cursor:
            gaps.append(DateRange(cursor, rng.start - ONE_DAY))
        cursor = rng.end + ONE_DAY
    if cursor <= desired.end:
        gaps.append(DateRange(cursor, desired.end))

    return [batch for gap in gaps for batch in split_into_months(gap.start, gap.end)]
