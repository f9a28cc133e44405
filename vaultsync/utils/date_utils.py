"""
vaultsync/utils/date_utils.py

Purpose: Date helpers

- Lenient parsing of dates relayed by automation webhooks
- UTC "now" used for all stored timestamps
"""

from datetime import datetime, timezone
from typing import Any, Optional

from vaultsync.core.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _expand_year(year: str) -> int:
    # 00-49 -> 2000-2049, 50-99 -> 1950-1999
    if len(year) == 2:
        value = int(year)
        return 2000 + value if value < 50 else 1900 + value
    return int(year)


def parse_completion_date(value: Optional[Any]) -> datetime:
    """
    Parses a contract completion date into an aware UTC datetime.

    Supported inputs:
        - None / empty -> now
        - ISO 8601 datetime ("2025-12-17T10:30:00Z")
        - ISO date ("2025-12-17")
        - US short date ("12/17/25" or "12/17/2025")
        - Unix timestamp (int/float, seconds)

    Anything unparseable falls back to now.
    """
    if value is None or value == "":
        return utcnow()

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    text = str(value).strip()

    try:
        if "/" in text:
            parts = text.split("/")
            if len(parts) == 3:
                month, day, year = parts
                return datetime(_expand_year(year), int(month), int(day), tzinfo=timezone.utc)

        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    except ValueError:
        logger.warning(f"Could not parse completion date {text!r}, using current time")
        return utcnow()
