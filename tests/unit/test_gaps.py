"""Tests for backfill gap finding."""
from datetime import date

from asanadw.sync.gaps import DateRange, find_gaps, merge_ranges, split_into_months


def _r(start: str, end: str) -> DateRange:
    return DateRange(date.fromisoformat(start), date.fromisoformat(end))


class TestMergeRanges:
    def test_empty(self):
        assert merge_ranges([]) == []

    def test_overlapping_ranges_merge(self):
        merged = merge_ranges([_r("2025-01-10", "2025-01-31"), _r("2025-01-01", "2025-01-15")])
        assert merged == [_r("2025-01-01", "2025-01-31")]

    def test_adjacent_ranges_merge(self):
        merged = merge_ranges([_r("2025-01-01", "2025-01-31"), _r("2025-02-01", "2025-02-28")])
        assert merged == [_r("2025-01-01", "2025-02-28")]

    def test_disjoint_ranges_stay_separate_and_sorted(self):
        merged = merge_ranges([_r("2025-03-01", "2025-03-31"), _r("2025-01-01", "2025-01-31")])
        assert merged == [_r("2025-01-01", "2025-01-31"), _r("2025-03-01", "2025-03-31")]

    def test_contained_range_absorbed(self):
        merged = merge_ranges([_r("2025-01-01", "2025-03-31"), _r("2025-02-01", "2025-02-10")])
        assert merged == [_r("2025-01-01", "2025-03-31")]


class TestSplitIntoMonths:
    def test_single_partial_month(self):
        assert split_into_months(date(2025, 1, 10), date(2025, 1, 20)) == [_r("2025-01-10", "2025-01-20")]

    def test_three_months(self):
        assert split_into_months(date(2025, 1, 1), date(2025, 3, 31)) == [
            _r("2025-01-01", "2025-01-31"),
            _r("2025-02-01", "2025-02-28"),
            _r("2025-03-01", "2025-03-31"),
        ]

    def test_clipped_at_both_ends(self):
        assert split_into_months(date(2024, 1, 15), date(2024, 3, 10)) == [
            _r("2024-01-15", "2024-01-31"),
            _r("2024-02-01", "2024-02-29"),
            _r("2024-03-01", "2024-03-10"),
        ]

    def test_crosses_year_boundary(self):
        assert split_into_months(date(2024, 12, 20), date(2025, 1, 5)) == [
            _r("2024-12-20", "2024-12-31"),
            _r("2025-01-01", "2025-01-05"),
        ]


class TestFindGaps:
    def test_no_synced_ranges_returns_whole_range_month_split(self):
        gaps = find_gaps(_r("2025-01-01", "2025-03-31"), [])
        assert gaps == [
            _r("2025-01-01", "2025-01-31"),
            _r("2025-02-01", "2025-02-28"),
            _r("2025-03-01", "2025-03-31"),
        ]

    def test_fully_covered_returns_empty(self):
        assert find_gaps(_r("2025-01-01", "2025-03-31"), [_r("2025-01-01", "2025-03-31")]) == []

    def test_covered_by_wider_range(self):
        assert find_gaps(_r("2025-02-01", "2025-02-28"), [_r("2024-12-01", "2025-06-30")]) == []

    def test_middle_gap(self):
        gaps = find_gaps(
            _r("2025-01-01", "2025-03-31"),
            [_r("2025-01-01", "2025-01-31"), _r("2025-03-01", "2025-03-31")],
        )
        assert gaps == [_r("2025-02-01", "2025-02-28")]

    def test_leading_and_trailing_gaps(self):
        gaps = find_gaps(_r("2025-01-01", "2025-03-31"), [_r("2025-02-01", "2025-02-28")])
        assert gaps == [_r("2025-01-01", "2025-01-31"), _r("2025-03-01", "2025-03-31")]

    def test_overlapping_synced_ranges_are_merged(self):
        gaps = find_gaps(
            _r("2025-01-01", "2025-02-28"),
            [_r("2025-01-01", "2025-01-20"), _r("2025-01-15", "2025-02-10")],
        )
        assert gaps == [_r("2025-02-11", "2025-02-28")]

    def test_partial_day_gap_inside_month(self):
        gaps = find_gaps(_r("2025-01-01", "2025-01-31"), [_r("2025-01-01", "2025-01-29")])
        assert gaps == [_r("2025-01-30", "2025-01-31")]

    def test_ranges_outside_desired_are_ignored(self):
        gaps = find_gaps(
            _r("2025-02-01", "2025-02-28"),
            [_r("2024-01-01", "2024-12-31"), _r("2025-06-01", "2025-06-30")],
        )
        assert gaps == [_r("2025-02-01", "2025-02-28")]

    def test_inverted_desired_range_returns_empty(self):
        assert find_gaps(_r("2025-03-01", "2025-01-01"), []) == []

    def test_single_day(self):
        assert find_gaps(_r("2025-01-15", "2025-01-15"), []) == [_r("2025-01-15", "2025-01-15")]

    def test_idempotent_once_gaps_are_recorded(self):
        desired = _r("2025-01-01", "2025-04-15")
        synced = [_r("2025-02-01", "2025-02-28")]
        gaps = find_gaps(desired, synced)
        assert find_gaps(desired, synced + gaps) == []

    def test_gaps_never_exceed_a_month(self):
        for gap in find_gaps(_r("2024-01-01", "2025-12-31"), [_r("2024-05-10", "2024-07-20")]):
            assert gap.start.year == gap.end.year
            assert gap.start.month == gap.end.month
