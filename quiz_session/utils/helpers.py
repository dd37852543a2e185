"""
Common utility functions.
"""

from datetime import datetime, timezone


def format_time(seconds: int) -> str:
    """
    Format seconds as zero-padded MM:SS.

    Minutes are not capped, so an hour renders as "60:00".

    Args:
        seconds: Non-negative number of seconds

    Returns:
        Formatted string
    """
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes:02d}:{secs:02d}"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ms_to_seconds(value: int | float) -> float:
    """Convert a millisecond setting into seconds for asyncio sleeps."""
    return float(value) / 1000.0
