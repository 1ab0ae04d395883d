"""
Analysis event logging utilities for ELEVATE (Tier 2 logging).

Appends one JSON object per line to the analysis event log so that runs can be
audited and tailed across processes (see scripts/tail_log.py).

For detailed within-context logging (Tier 1), use elevate.contexts.analysis.logger.

Usage:
    from elevate.utils.event_logging import log_analysis_event

    log_analysis_event(
        event_type="complete",
        profile_id="jane-doe",
        source="orchestrator",
        completeness=85,
        content_score=7.4,
    )
"""

import json
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from elevate.utils.timestamp import now_exact

load_dotenv()
ANALYSIS_EVENTS_FILE = Path(os.getenv("ANALYSIS_EVENTS_FILE", "outs/logs/analysis_events.log"))


def log_analysis_event(
    event_type: str,
    profile_id: str,
    source: str,
    events_file: Optional[Path] = None,
    **extra_fields,
) -> None:
    """
    Log an event to the analysis event log.

    Args:
        event_type: Type of event (e.g., "complete", "fallback_to_cache", "error")
        profile_id: Profile identifier
        source: Event source (e.g., "orchestrator", "cli")
        events_file: Override for the log path (default: ANALYSIS_EVENTS_FILE)
        **extra_fields: Additional event-specific fields (must be JSON serializable)
    """
    events_file = events_file or ANALYSIS_EVENTS_FILE
    events_file.parent.mkdir(parents=True, exist_ok=True)

    event = {
        "timestamp": now_exact(),
        "event_type": event_type,
        "profile_id": profile_id,
        "source": source,
        **extra_fields,
    }

    with open(events_file, "a", encoding="utf-8") as f:
        f.write(json.dumps(event, default=str) + "\n")


def get_recent_events(
    n: int = 10,
    profile_id: Optional[str] = None,
    event_type: Optional[str] = None,
    events_file: Optional[Path] = None,
) -> list[dict]:
    """
    Get the last n events from the analysis log, optionally filtered.

    Args:
        n: Number of recent events to return (default: 10)
        profile_id: Filter to only events for this profile (optional)
        event_type: Filter to only events of this type (optional)
        events_file: Override for the log path (default: ANALYSIS_EVENTS_FILE)

    Returns:
        List of event dicts (most recent last)
    """
    events_file = events_file or ANALYSIS_EVENTS_FILE
    if not events_file.exists():
        return []

    events = []
    with open(events_file, "r", encoding="utf-8") as f:
        for line in f:
            try:
                events.append(json.loads(line.strip()))
            except json.JSONDecodeError:
                # Skip malformed lines
                continue

    if profile_id:
        events = [e for e in events if e.get("profile_id") == profile_id]

    if event_type:
        events = [e for e in events if e.get("event_type") == event_type]

    return events[-n:] if len(events) > n else events
