"""Timezone-aware timestamp helpers.

Usage:
    from recipe_costing.utils.datetime_utils import utc_now

    created_at = Column(DateTime, default=utc_now)
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)
