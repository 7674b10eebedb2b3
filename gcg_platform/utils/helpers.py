"""Shared utility functions used across services.

parse_date:  returns None on bad input
is_uuid:     canonical UUID-string check used by the id policy
round_score: stable rounding for aggregated output
"""
import logging
import uuid
from datetime import date, datetime

logger = logging.getLogger(__name__)

SCORE_PRECISION = 6


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (Indonesian/European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        logger.debug("Unparseable date value: %r", value)
        return None


def is_uuid(value):
    """True if ``value`` is a lowercase string in canonical 8-4-4-4-12 UUID form."""
    if not isinstance(value, str) or len(value) != 36:
        return False
    try:
        return str(uuid.UUID(value)) == value
    except ValueError:
        return False


def round_score(value):
    return round(float(value or 0.0), SCORE_PRECISION)
