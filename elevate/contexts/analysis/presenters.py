"""
Presentation sinks for analysis lifecycle events.

The orchestrator calls Presenter.set_state(state, payload) on every
transition. Payload keys by state:

    SCANNING, EXTRACTING, CALCULATING   {"profile_id"}
    AI_ANALYZING                        {"profile_id", "section", "completed", "total",
                                         "retry_after_seconds"}
                                        per experience role, also {"role", "total_roles"}
    CACHE_LOADED, COMPLETE              {"profile_id", "result"}
    FALLBACK_TO_CACHE                   {"profile_id", "result", "reason"}
    ERROR                               {"profile_id", "message"}

Exceptions raised by a presenter propagate to the caller of run_analysis().
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from elevate.contexts.analysis.logger import _log_error, _log_info, _log_warning
from elevate.utils.event_logging import log_analysis_event

# States that end a run (or short-circuit it) and are written to the event log
LOGGED_STATES = ("CACHE_LOADED", "COMPLETE", "FALLBACK_TO_CACHE", "ERROR")


class Presenter(ABC):
    """Receives lifecycle transitions from the orchestrator."""

    @abstractmethod
    def set_state(self, state, payload: Dict[str, Any]) -> None:
        pass


class NullPresenter(Presenter):
    """Discards every transition."""

    def set_state(self, state, payload: Dict[str, Any]) -> None:
        pass


class RecordingPresenter(Presenter):
    """Keeps every transition in memory, in order."""

    def __init__(self):
        self.transitions: List[Tuple[Any, Dict[str, Any]]] = []

    def set_state(self, state, payload: Dict[str, Any]) -> None:
        self.transitions.append((state, dict(payload)))

    @property
    def states(self) -> List[Any]:
        return [state for state, _ in self.transitions]

    def payloads_for(self, state) -> List[Dict[str, Any]]:
        return [payload for recorded, payload in self.transitions if recorded == state]


def _result_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    result = payload.get("result")
    if result is None:
        return {}
    return {
        "completeness": result.completeness,
        "content_score": result.content_score,
        "fingerprint": result.fingerprint,
        "from_cache": result.from_cache,
        "fallback": result.fallback,
        "note": result.note,
    }


class LoggingPresenter(Presenter):
    """
    Reports transitions through loguru and appends terminal ones to the
    JSONL analysis event log.

    Args:
        events_file: Event log path (default: ANALYSIS_EVENTS_FILE)
        source: Value of the "source" field in logged events
    """

    def __init__(self, events_file: Optional[Path] = None, source: str = "orchestrator"):
        self.events_file = events_file
        self.source = source

    def set_state(self, state, payload: Dict[str, Any]) -> None:
        state_name = getattr(state, "value", state)
        profile_id = payload.get("profile_id", "")

        if state_name == "AI_ANALYZING" and "role" in payload:
            _log_info(
                f"Analyzed {payload['section']} role {payload['role']}/{payload['total_roles']}"
            )
        elif state_name == "AI_ANALYZING" and "section" in payload:
            _log_info(
                f"Analyzed {payload['section']} ({payload['completed']}/{payload['total']})"
            )
        elif state_name == "FALLBACK_TO_CACHE":
            _log_warning(f"{profile_id}: falling back to cached result ({payload.get('reason')})")
        elif state_name == "ERROR":
            _log_error(f"{profile_id}: {payload.get('message')}")
        else:
            _log_info(f"{profile_id}: {state_name}")

        if state_name in LOGGED_STATES:
            extra = _result_fields(payload)
            if "reason" in payload:
                extra["reason"] = payload["reason"]
            if "message" in payload:
                extra["message"] = payload["message"]
            log_analysis_event(
                event_type=state_name.lower(),
                profile_id=profile_id,
                source=self.source,
                events_file=self.events_file,
                **extra,
            )
