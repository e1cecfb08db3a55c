"""
Tests for current term resolution.
"""

from datetime import date, datetime

from sis_sync.services.sync.term_resolver import resolve_current
from sis_sync.services.sync.transformers import TermRecord


def term(external_id, first_day, last_day, is_year_record=False):
    return TermRecord(
        external_id=external_id,
        external_dcid=external_id,
        name=f"Term {external_id}",
        first_day=first_day,
        last_day=last_day,
        school_external_id=100,
        is_year_record=is_year_record,
    )


YEAR = term(1, date(2025, 8, 25), date(2026, 6, 15), is_year_record=True)
SEMESTER = term(2, date(2025, 8, 25), date(2025, 10, 31))


class TestResolveCurrent:

    def test_year_record_wins_over_contained_term(self):
        assert resolve_current([SEMESTER, YEAR], date(2025, 9, 15)) == 1

    def test_any_containing_term_when_no_year_contains(self):
        old_year = term(3, date(2024, 8, 26), date(2025, 6, 13), is_year_record=True)
        summer = term(4, date(2025, 6, 20), date(2025, 8, 15))
        assert resolve_current([old_year, summer], date(2025, 7, 1)) == 4

    def test_boundaries_are_inclusive(self):
        assert resolve_current([SEMESTER], date(2025, 8, 25)) == 2
        assert resolve_current([SEMESTER], date(2025, 10, 31)) == 2

    def test_latest_first_day_when_nothing_contains(self):
        terms = [
            term(5, date(2023, 8, 28), date(2024, 6, 14), is_year_record=True),
            term(6, date(2024, 8, 26), date(2025, 6, 13), is_year_record=True),
            term(7, date(2022, 8, 29), date(2023, 6, 16)),
        ]
        assert resolve_current(terms, date(2025, 7, 1)) == 6

    def test_tie_on_first_day_keeps_upstream_order(self):
        a = term(8, date(2026, 8, 24), date(2026, 12, 18))
        b = term(9, date(2026, 8, 24), date(2027, 6, 11))
        assert resolve_current([a, b], date(2025, 1, 1)) == 8
        assert resolve_current([b, a], date(2025, 1, 1)) == 9

    def test_first_containing_year_in_upstream_order(self):
        other_year = term(10, date(2025, 7, 1), date(2026, 6, 30), is_year_record=True)
        assert resolve_current([other_year, YEAR], date(2025, 9, 15)) == 10

    def test_empty(self):
        assert resolve_current([], date(2025, 9, 15)) is None

    def test_accepts_datetime(self):
        assert resolve_current([YEAR, SEMESTER], datetime(2025, 9, 15, 13, 30)) == 1
