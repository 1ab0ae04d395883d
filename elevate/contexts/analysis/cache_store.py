"""
Content-addressed cache of analysis results.

Results are keyed by a fingerprint of the profile's section sizes and the
analysis-affecting settings, never by wall-clock time: an unchanged profile
always hits, any counted change misses. Entries never expire by age; a forced
refresh overwrites and clear() removes.

Legacy payloads (camelCase keys, `overallScore`, high/medium buckets,
recommendations embedded as fenced JSON in a `summary` string) are upgraded
once at read time by migrate_analysis_record().

Usage:
    from elevate.contexts.analysis.cache_store import SQLiteCacheStore, compute_fingerprint

    store = SQLiteCacheStore("outs/cache/analysis.db")
    key = compute_fingerprint("jane-doe", scan_results, config)
    cached = store.get(key)
"""

import hashlib
import json
import re
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from elevate.contexts.analysis.config import AnalysisConfig
from elevate.contexts.analysis.data_structures import (
    PRIORITY_CRITICAL,
    PRIORITY_IMPORTANT,
    PRIORITY_NICE_TO_HAVE,
    SCHEMA_VERSION,
    AnalysisResult,
    ScanResult,
)
from elevate.contexts.analysis.exceptions import CorruptCacheEntry
from elevate.contexts.analysis.logger import _log_debug, _log_warning
from elevate.utils.llm import ErrorCategory
from elevate.utils.timestamp import epoch_millis, format_cache_age

NO_PROVIDER = "none"


def compute_fingerprint(
    profile_id: str,
    scan_results: Mapping[str, ScanResult],
    config: AnalysisConfig,
    active_provider: Optional[str] = None,
) -> str:
    """
    Compute the cache key for a profile's current content and settings.

    Args:
        profile_id: Profile identifier
        scan_results: Section name -> ScanResult from the extractors' scan()
        config: Settings; target role, seniority and whether custom
            instructions are set are part of the key
        active_provider: Provider that will evaluate sections, or None when
            AI evaluation is inactive

    Returns:
        Hex digest (identical content and settings -> identical key)
    """
    canonical = json.dumps(
        {
            "profile_id": profile_id,
            "sections": {
                name: [bool(scan.exists), int(scan.count)]
                for name, scan in sorted(scan_results.items())
            },
            "target_role": config.target_role,
            "seniority_level": config.seniority_level,
            "custom": bool(config.custom_instructions),
            "provider": active_provider or NO_PROVIDER,
        },
        sort_keys=True,
    )
    return hashlib.sha256(canonical.encode()).hexdigest()


# =============================================================================
# LEGACY RECORD MIGRATION
# =============================================================================

_SUMMARY_JSON = re.compile(r"```json\s*\n([\s\S]+?)\n\s*```")

_LEGACY_KEYS = {
    "profileId": "profile_id",
    "overallScore": "content_score",
    "contentScore": "content_score",
    "sectionScores": "section_scores",
    "completenessScore": "completeness",
    "completenessDetails": "completeness_details",
}

_LEGACY_BUCKETS = {
    PRIORITY_CRITICAL: (PRIORITY_CRITICAL,),
    PRIORITY_IMPORTANT: (PRIORITY_IMPORTANT, "high"),
    PRIORITY_NICE_TO_HAVE: (PRIORITY_NICE_TO_HAVE, "niceToHave", "medium"),
}

# Older versions stored the provider's error message verbatim; first match wins
_LEGACY_ERROR_PATTERNS = (
    (re.compile(r"\b40[13]\b|auth|api key|unauthori[sz]ed|forbidden", re.I), ErrorCategory.AUTH),
    (re.compile(r"\b429\b|rate.?limit|too many requests|quota", re.I), ErrorCategory.RATE_LIMIT),
    (re.compile(r"\b50[234]\b|529|overloaded|unavailable", re.I), ErrorCategory.SERVICE_UNAVAILABLE),
    (re.compile(r"fetch|network|timed? ?out|connection|offline", re.I), ErrorCategory.NETWORK),
)


def _migrate_recommendation(item: Any, priority: str) -> Optional[Dict[str, Any]]:
    if isinstance(item, str):
        return {"priority": priority, "what": item, "why": "", "how": "", "section": None}
    if not isinstance(item, Mapping):
        return None
    action = item.get("action") if isinstance(item.get("action"), Mapping) else item
    what = action.get("what") or action.get("text") or item.get("text")
    if not what:
        return None
    return {
        "priority": priority,
        "what": str(what),
        "why": str(action.get("why") or ""),
        "how": str(action.get("how") or action.get("example") or ""),
        "section": item.get("section"),
    }


def _migrate_buckets(raw: Any) -> Dict[str, List[Dict[str, Any]]]:
    buckets = {key: [] for key in _LEGACY_BUCKETS}
    if not isinstance(raw, Mapping):
        return buckets
    for key, aliases in _LEGACY_BUCKETS.items():
        for alias in aliases:
            for item in raw.get(alias) or []:
                migrated = _migrate_recommendation(item, key)
                if migrated:
                    buckets[key].append(migrated)
    return buckets


def _migrate_error(raw: Any) -> Optional[str]:
    """Map a stored error (category value or free-text message) to an ErrorCategory value."""
    if not raw:
        return None
    text = str(raw).strip()
    if text.upper() in ErrorCategory.__members__:
        return ErrorCategory[text.upper()].value
    for pattern, category in _LEGACY_ERROR_PATTERNS:
        if pattern.search(text):
            return category.value
    return ErrorCategory.GENERIC.value


def _migrate_section(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, Mapping):
        return {"exists": True, "score": raw if isinstance(raw, (int, float)) else None}
    items = raw.get("actionItems") or raw.get("recommendations") or []
    insight = raw.get("raw_insight") or raw.get("positiveInsight") or raw.get("insight") or ""
    error = _migrate_error(raw.get("error"))
    return {
        "exists": bool(raw.get("exists", True)),
        # A failed section never carries a score
        "score": None if error else raw.get("score"),
        "recommendations": [
            rec for rec in (_migrate_recommendation(item, PRIORITY_IMPORTANT) for item in items)
            if rec
        ],
        "raw_insight": str(insight),
        "error": error,
        "retry_after_seconds": raw.get("retry_after_seconds", raw.get("retryAfter")),
    }


def _flatten_insights(insights: Any) -> str:
    if isinstance(insights, Mapping):
        return " ".join(str(value) for value in insights.values() if value)
    return str(insights or "")


def _extract_summary_json(summary: str) -> Optional[Dict[str, Any]]:
    match = _SUMMARY_JSON.search(summary)
    if not match:
        return None
    try:
        embedded = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        _log_warning(f"Could not re-parse recommendations from cached summary: {exc}")
        return None
    return embedded if isinstance(embedded, dict) else None


def migrate_analysis_record(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Upgrade a stored analysis payload to the current AnalysisResult schema.

    Current-schema payloads are returned unchanged (as a copy).

    Args:
        payload: Stored analysis dict

    Returns:
        Dict accepted by AnalysisResult.from_dict()
    """
    if payload.get("schema_version") == SCHEMA_VERSION:
        return dict(payload)

    record = dict(payload)

    summary = record.get("summary")
    if (
        not record.get("recommendations")
        and isinstance(summary, str)
        and '"recommendations"' in summary
    ):
        embedded = _extract_summary_json(summary)
        if embedded and embedded.get("recommendations"):
            record["recommendations"] = embedded["recommendations"]
            record["insights"] = embedded.get("insights", record.get("insights"))

    for old_key, new_key in _LEGACY_KEYS.items():
        if old_key in record:
            value = record.pop(old_key)
            record.setdefault(new_key, value)

    completeness = record.get("completeness", 0)
    if isinstance(completeness, Mapping):
        record.setdefault("completeness_details", dict(completeness))
        completeness = completeness.get("score", 0)
    record["completeness"] = int(round(float(completeness or 0)))

    timestamp = record.get("timestamp")
    if isinstance(timestamp, (int, float)):
        record["timestamp"] = datetime.fromtimestamp(timestamp / 1000).isoformat()

    record["section_scores"] = {
        name: _migrate_section(section)
        for name, section in (record.get("section_scores") or {}).items()
        if isinstance(name, str)
    }
    record["recommendations"] = _migrate_buckets(record.get("recommendations"))
    record["insights"] = _flatten_insights(record.get("insights"))
    record.pop("summary", None)
    record["schema_version"] = SCHEMA_VERSION
    return record


# =============================================================================
# STORES
# =============================================================================


@dataclass(frozen=True)
class CacheEntry:
    """A persisted cache record."""

    fingerprint: str
    profile_id: str
    analysis: AnalysisResult
    stored_at: int


class CacheStore(ABC):
    """
    Fingerprint-keyed store of AnalysisResults.

    Subclasses persist raw payload dicts; this base class owns migration and
    deserialization so every backend reads legacy records the same way.
    """

    def __init__(self, clock: Callable[[], int] = epoch_millis):
        self._clock = clock

    @abstractmethod
    def _read(self, fingerprint: str) -> Optional[tuple]:
        """Return (fingerprint, profile_id, payload_dict, stored_at) or None."""
        pass

    @abstractmethod
    def _read_latest(self, profile_id: str) -> Optional[tuple]:
        pass

    @abstractmethod
    def _read_all(self) -> List[tuple]:
        pass

    @abstractmethod
    def _write(self, fingerprint: str, profile_id: str, payload: Dict[str, Any], stored_at: int):
        pass

    @abstractmethod
    def clear(self, profile_id: Optional[str] = None) -> int:
        """Remove entries for profile_id (all entries if None). Returns count removed."""
        pass

    def _to_entry(self, row: tuple) -> CacheEntry:
        fingerprint, profile_id, payload, stored_at = row
        try:
            analysis = AnalysisResult.from_dict(migrate_analysis_record(payload))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise CorruptCacheEntry(fingerprint, str(exc)) from exc
        if not analysis.profile_id:
            analysis = analysis.tagged(profile_id=profile_id)
        return CacheEntry(fingerprint, profile_id, analysis, stored_at)

    def get(self, fingerprint: str) -> Optional[AnalysisResult]:
        """
        Exact-fingerprint lookup.

        Raises:
            CorruptCacheEntry: If the stored row cannot be decoded
        """
        row = self._read(fingerprint)
        if row is None:
            _log_debug(f"Cache miss for {fingerprint[:12]}")
            return None
        entry = self._to_entry(row)
        _log_debug(
            f"Cache hit for {fingerprint[:12]}, "
            f"age: {format_cache_age(self._clock() - entry.stored_at)}"
        )
        return entry.analysis

    def put(self, fingerprint: str, result: AnalysisResult) -> None:
        """Store result under fingerprint. Last write wins."""
        self._write(fingerprint, result.profile_id, result.to_dict(), self._clock())

    def put_raw(
        self,
        fingerprint: str,
        profile_id: str,
        payload: Mapping[str, Any],
        stored_at: Optional[int] = None,
    ) -> None:
        """Store a payload as-is (imports of records written by older versions)."""
        self._write(
            fingerprint, profile_id, dict(payload), self._clock() if stored_at is None else stored_at
        )

    def latest(self, profile_id: str) -> Optional[AnalysisResult]:
        """Most recently stored result for a profile, regardless of fingerprint."""
        row = self._read_latest(profile_id)
        return self._to_entry(row).analysis if row else None

    def entries(self) -> List[CacheEntry]:
        """All readable entries, most recent first. Undecodable rows are skipped."""
        entries = []
        for row in self._read_all():
            try:
                entries.append(self._to_entry(row))
            except CorruptCacheEntry as exc:
                _log_warning(str(exc))
        return entries


class MemoryCacheStore(CacheStore):
    """Process-local store."""

    def __init__(self, clock: Callable[[], int] = epoch_millis):
        super().__init__(clock)
        self._records: Dict[str, tuple] = {}
        self._order: Dict[str, int] = {}
        self._counter = 0
        self._lock = threading.Lock()

    def _write(self, fingerprint, profile_id, payload, stored_at):
        with self._lock:
            self._counter += 1
            # Round-trip through JSON so stored payloads never alias caller objects
            payload = json.loads(json.dumps(payload, default=str))
            self._records[fingerprint] = (fingerprint, profile_id, payload, stored_at)
            self._order[fingerprint] = self._counter

    def _sorted(self, rows) -> List[tuple]:
        return sorted(rows, key=lambda row: (row[3], self._order[row[0]]), reverse=True)

    def _read(self, fingerprint):
        with self._lock:
            return self._records.get(fingerprint)

    def _read_latest(self, profile_id):
        with self._lock:
            rows = self._sorted(r for r in self._records.values() if r[1] == profile_id)
        return rows[0] if rows else None

    def _read_all(self):
        with self._lock:
            return self._sorted(self._records.values())

    def clear(self, profile_id: Optional[str] = None) -> int:
        with self._lock:
            doomed = [
                fp for fp, row in self._records.items()
                if profile_id is None or row[1] == profile_id
            ]
            for fp in doomed:
                del self._records[fp]
                del self._order[fp]
        return len(doomed)


class SQLiteCacheStore(CacheStore):
    """
    SQLite-backed store: one row per fingerprint in a flat table.

    Args:
        db_path: Path to the SQLite database file (parent directories are created)
        clock: Epoch-millis time source for stored_at
    """

    def __init__(self, db_path: Union[str, Path], clock: Callable[[], int] = epoch_millis):
        super().__init__(clock)
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS analysis_cache (
                    fingerprint TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    analysis_json TEXT NOT NULL,
                    stored_at INTEGER NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_analysis_cache_profile "
                "ON analysis_cache (profile_id, stored_at)"
            )
            conn.commit()

    @staticmethod
    def _decode(row) -> tuple:
        return (row[0], row[1], json.loads(row[2]), row[3])

    def _read(self, fingerprint):
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT fingerprint, profile_id, analysis_json, stored_at "
                "FROM analysis_cache WHERE fingerprint = ?",
                (fingerprint,),
            ).fetchone()
        return self._decode(row) if row else None

    def _read_latest(self, profile_id):
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT fingerprint, profile_id, analysis_json, stored_at "
                "FROM analysis_cache WHERE profile_id = ? "
                "ORDER BY stored_at DESC, rowid DESC LIMIT 1",
                (profile_id,),
            ).fetchone()
        return self._decode(row) if row else None

    def _read_all(self):
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT fingerprint, profile_id, analysis_json, stored_at "
                "FROM analysis_cache ORDER BY stored_at DESC, rowid DESC"
            ).fetchall()
        return [self._decode(row) for row in rows]

    def _write(self, fingerprint, profile_id, payload, stored_at):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO analysis_cache "
                "(fingerprint, profile_id, analysis_json, stored_at) VALUES (?, ?, ?, ?)",
                (fingerprint, profile_id, json.dumps(payload, default=str), stored_at),
            )
            conn.commit()

    def clear(self, profile_id: Optional[str] = None) -> int:
        with sqlite3.connect(self.db_path) as conn:
            if profile_id is None:
                cursor = conn.execute("DELETE FROM analysis_cache")
            else:
                cursor = conn.execute(
                    "DELETE FROM analysis_cache WHERE profile_id = ?", (profile_id,)
                )
            conn.commit()
            return cursor.rowcount
