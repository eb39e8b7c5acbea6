"""Utility functions for pygistsync."""

from datetime import datetime, timezone
from typing import Optional, Union

# =============================================================================
# Constants for sync operations
# =============================================================================

# Default depth bound when collecting files below the user folder
DEFAULT_SCAN_DEPTH: int = 2

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Number of parallel workers used for writing downloaded files
DEFAULT_WRITE_WORKERS: int = 4


# =============================================================================
# Timestamp utilities
# =============================================================================


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime (millisecond precision)."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def parse_iso_timestamp(
    timestamp: Union[str, datetime, None],
) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as written into the marker document.

    Args:
        timestamp: ISO format timestamp string (e.g., "2025-01-15T10:30:00.000Z")
            or an already parsed datetime

    Returns:
        Aware datetime in UTC, or None if the value is empty or unparseable.
        Naive values are assumed to be UTC.

    Examples:
        >>> parse_iso_timestamp("2025-01-15T10:30:00.000Z").isoformat()
        '2025-01-15T10:30:00+00:00'
        >>> parse_iso_timestamp("") is None
        True
    """
    if not timestamp:
        return None

    if isinstance(timestamp, datetime):
        dt = timestamp
    else:
        timestamp_str = timestamp.strip()
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(timestamp_str)
        except ValueError:
            return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso_timestamp(dt: datetime) -> str:
    """Format a datetime the way the marker document stores it.

    Examples:
        >>> from datetime import datetime, timezone
        >>> format_iso_timestamp(datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc))
        '2025-01-15T10:30:00.000Z'
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def same_instant(
    first: Union[str, datetime, None], second: Union[str, datetime, None]
) -> bool:
    """Check whether two timestamps denote the same instant.

    Empty or unparseable values never match anything.

    Examples:
        >>> same_instant("2025-01-15T10:30:00.000Z", "2025-01-15T11:30:00+01:00")
        True
        >>> same_instant(None, "2025-01-15T10:30:00.000Z")
        False
    """
    first_dt = parse_iso_timestamp(first)
    second_dt = parse_iso_timestamp(second)
    if first_dt is None or second_dt is None:
        return False
    return first_dt == second_dt
