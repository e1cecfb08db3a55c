"""
Selection of the single current term among synced terms.
"""

from datetime import date, datetime
from typing import Optional, Sequence, Union

from sis_sync.services.sync.transformers import TermRecord


def resolve_current(terms: Sequence[TermRecord], now: Union[date, datetime]) -> Optional[int]:
    """
    Pick the external id of the current term.

    1. The first full-year term containing ``now``.
    2. Otherwise the first term of any kind containing ``now``.
    3. Otherwise the term with the latest first day; ties go to the earliest in ``terms``.
    4. None when there are no terms.

    Containment includes both the first and last day. "First" always means upstream order.
    """
    if isinstance(now, datetime):
        now = now.date()

    for term in terms:
        if term.is_year_record and term.contains(now):
            return term.external_id

    for term in terms:
        if term.contains(now):
            return term.external_id

    latest = None
    for term in terms:
        if latest is None or term.first_day > latest.first_day:
            latest = term

    return latest.external_id if latest else None
