"""Timestamp helpers."""

import time
from datetime import datetime


def now() -> str:
    """Current local time as a compact identifier-safe string (YYYYMMDD_HHMMSS)."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def now_exact() -> str:
    """Current local time as an ISO 8601 string with microseconds."""
    return datetime.now().isoformat()


def epoch_millis() -> int:
    """Current wall-clock time in epoch milliseconds (persisted cache records)."""
    return int(time.time() * 1000)


def format_cache_age(age_ms: int) -> str:
    """
    Format a cache record age for logging.

    Examples:
        format_cache_age(3 * 3600 * 1000)   # "3 hours"
        format_cache_age(50 * 3600 * 1000)  # "2 days"
    """
    hours = max(0, age_ms) // (1000 * 60 * 60)
    if hours < 24:
        return f"{hours} hours"
    return f"{hours // 24} days"


def format_timestamp(iso_timestamp: str) -> str:
    """
    Format ISO 8601 timestamp to readable format ("2025-11-13 18:45:40").

    Returns the original string if it cannot be parsed.
    """
    try:
        return datetime.fromisoformat(iso_timestamp).strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, TypeError):
        return iso_timestamp
