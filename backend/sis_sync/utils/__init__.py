"""
Utility helpers for the sync engine.
"""

from .timeutils import utcnow, to_naive_utc

__all__ = [
    "utcnow",
    "to_naive_utc"
]
