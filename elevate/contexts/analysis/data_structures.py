"""
Data structures for the Analysis context.

Defines the profile snapshot handed over by the Intake context, the per-section
AI evaluation result, and the AnalysisResult that is cached and presented.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from elevate.utils.llm import ErrorCategory

# Bump when the AnalysisResult dict layout changes; older records are
# upgraded by cache_store.migrate_analysis_record()
SCHEMA_VERSION = 2

PRIORITY_CRITICAL = "critical"
PRIORITY_IMPORTANT = "important"
PRIORITY_NICE_TO_HAVE = "nice_to_have"


@dataclass(frozen=True)
class ScanResult:
    """Cheap pre-scan of a section, used for fingerprinting."""

    exists: bool
    count: int = 0


@dataclass(frozen=True)
class SectionData:
    """
    Extracted content of one profile section.

    Attributes:
        exists: Whether the section is present on the profile
        count: Item count (characters for text sections like headline/about)
        char_count: Total characters of text content
        text: Raw text content
        items: Structured items (roles, schools, skills, ...)
        fields: Additional section-specific fields
    """

    exists: bool
    count: int = 0
    char_count: int = 0
    text: str = ""
    items: Tuple[Dict[str, Any], ...] = ()
    fields: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def absent(cls) -> "SectionData":
        return cls(exists=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SectionData":
        """Build from a loosely-shaped dict (profile export or extractor payload)."""
        text = str(data.get("text") or "")
        items = tuple(dict(item) if isinstance(item, Mapping) else {"text": str(item)}
                      for item in (data.get("items") or []))
        char_count = int(data.get("char_count", data.get("charCount", len(text))) or 0)
        count = int(data.get("count", len(items) if items else char_count) or 0)
        known = {"exists", "count", "char_count", "charCount", "text", "items"}
        return cls(
            exists=bool(data.get("exists", bool(text or items or count))),
            count=count,
            char_count=char_count,
            text=text,
            items=items,
            fields={k: v for k, v in data.items() if k not in known},
        )

    def to_prompt_payload(self) -> Dict[str, Any]:
        """Compact representation of the section for a provider prompt."""
        payload: Dict[str, Any] = {"count": self.count}
        if self.text:
            payload["text"] = self.text
        if self.items:
            payload["items"] = list(self.items)
        payload.update(self.fields)
        return payload


class ProfileSnapshot:
    """
    Immutable mapping of section name to SectionData for a single run.

    Unknown sections resolve to an absent SectionData.
    """

    def __init__(self, sections: Mapping[str, SectionData]):
        self._sections = MappingProxyType(dict(sections))

    def __getitem__(self, name: str) -> SectionData:
        return self._sections[name]

    def __contains__(self, name: object) -> bool:
        return name in self._sections

    def __iter__(self):
        return iter(self._sections)

    def __len__(self) -> int:
        return len(self._sections)

    def get(self, name: str) -> SectionData:
        return self._sections.get(name, SectionData.absent())

    def items(self):
        return self._sections.items()

    def existing_sections(self) -> List[str]:
        return [name for name, data in self._sections.items() if data.exists]


@dataclass(frozen=True)
class RoleContext:
    """Target-role context that shapes section prompts."""

    target_role: str = "general professional"
    seniority_level: str = "any level"
    custom_instructions: str = ""


@dataclass(frozen=True)
class Recommendation:
    """A single actionable recommendation."""

    what: str
    why: str = ""
    how: str = ""
    priority: str = PRIORITY_IMPORTANT
    section: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority,
            "what": self.what,
            "why": self.why,
            "how": self.how,
            "section": self.section,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Recommendation":
        return cls(
            what=str(data.get("what", "")),
            why=str(data.get("why", "")),
            how=str(data.get("how", "")),
            priority=str(data.get("priority", PRIORITY_IMPORTANT)),
            section=data.get("section"),
        )


@dataclass(frozen=True)
class SectionResult:
    """
    AI evaluation of one section.

    A null score means the section exists but could not be evaluated
    (provider error, rate limit, cancellation); `error` says why.
    """

    exists: bool
    score: Optional[float] = None
    recommendations: Tuple[Recommendation, ...] = ()
    raw_insight: str = ""
    error: Optional[ErrorCategory] = None
    retry_after_seconds: Optional[int] = None

    @classmethod
    def missing(cls) -> "SectionResult":
        return cls(exists=False)

    @classmethod
    def failed(
        cls, category: ErrorCategory, retry_after_seconds: Optional[int] = None
    ) -> "SectionResult":
        return cls(
            exists=True, score=None, error=category, retry_after_seconds=retry_after_seconds
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exists": self.exists,
            "score": self.score,
            "recommendations": [rec.to_dict() for rec in self.recommendations],
            "raw_insight": self.raw_insight,
            "error": self.error.value if self.error else None,
            "retry_after_seconds": self.retry_after_seconds,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SectionResult":
        error = data.get("error")
        score = data.get("score")
        return cls(
            exists=bool(data.get("exists", True)),
            score=float(score) if score is not None else None,
            recommendations=tuple(
                Recommendation.from_dict(rec) for rec in data.get("recommendations") or []
            ),
            raw_insight=str(data.get("raw_insight", "")),
            error=ErrorCategory(error) if error else None,
            retry_after_seconds=data.get("retry_after_seconds"),
        )


@dataclass(frozen=True)
class RecommendationBuckets:
    """Recommendations grouped by priority."""

    critical: Tuple[Recommendation, ...] = ()
    important: Tuple[Recommendation, ...] = ()
    nice_to_have: Tuple[Recommendation, ...] = ()

    def __len__(self) -> int:
        return len(self.critical) + len(self.important) + len(self.nice_to_have)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            PRIORITY_CRITICAL: [rec.to_dict() for rec in self.critical],
            PRIORITY_IMPORTANT: [rec.to_dict() for rec in self.important],
            PRIORITY_NICE_TO_HAVE: [rec.to_dict() for rec in self.nice_to_have],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RecommendationBuckets":
        def _bucket(key: str) -> Tuple[Recommendation, ...]:
            return tuple(Recommendation.from_dict(rec) for rec in data.get(key) or [])

        return cls(
            critical=_bucket(PRIORITY_CRITICAL),
            important=_bucket(PRIORITY_IMPORTANT),
            nice_to_have=_bucket(PRIORITY_NICE_TO_HAVE),
        )


@dataclass(frozen=True)
class AnalysisResult:
    """
    Outcome of one analysis run. The unit of caching and presentation.

    Attributes:
        profile_id: Profile identifier
        completeness: Completeness percentage (0-100)
        content_score: AI content-quality score (0-10), None when AI was skipped
        section_scores: Per-section AI results
        recommendations: Prioritized recommendation buckets
        insights: Consolidated insight text
        timestamp: ISO 8601 creation time
        fingerprint: Content fingerprint the result was computed for
        from_cache: True when served from the cache store
        fallback: True when served as a fallback after a failed/timed-out run
        note: Explanation for degraded, partial or fallback results
        completeness_details: Breakdown from the completeness scorer
    """

    profile_id: str
    completeness: int
    content_score: Optional[float] = None
    section_scores: Mapping[str, SectionResult] = field(default_factory=dict)
    recommendations: RecommendationBuckets = field(default_factory=RecommendationBuckets)
    insights: str = ""
    timestamp: str = ""
    fingerprint: Optional[str] = None
    from_cache: bool = False
    fallback: bool = False
    note: Optional[str] = None
    completeness_details: Mapping[str, Any] = field(default_factory=dict)

    @property
    def needs_reconfiguration(self) -> bool:
        """True when any section failed authentication (bad or revoked API key)."""
        return any(
            result.error is ErrorCategory.AUTH for result in self.section_scores.values()
        )

    @property
    def retry_after_seconds(self) -> Optional[int]:
        """Largest rate-limit wait hint across sections, if any."""
        hints = [
            result.retry_after_seconds
            for result in self.section_scores.values()
            if result.retry_after_seconds
        ]
        return max(hints) if hints else None

    def tagged(self, **changes) -> "AnalysisResult":
        """Copy with presentation tags changed (from_cache, fallback, note)."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "profile_id": self.profile_id,
            "completeness": self.completeness,
            "content_score": self.content_score,
            "section_scores": {name: res.to_dict() for name, res in self.section_scores.items()},
            "recommendations": self.recommendations.to_dict(),
            "insights": self.insights,
            "timestamp": self.timestamp,
            "fingerprint": self.fingerprint,
            "note": self.note,
            "completeness_details": dict(self.completeness_details),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AnalysisResult":
        """Build from a current-schema dict. Legacy records go through migration first."""
        content_score = data.get("content_score")
        return cls(
            profile_id=str(data.get("profile_id", "")),
            completeness=int(data.get("completeness", 0)),
            content_score=float(content_score) if content_score is not None else None,
            section_scores={
                name: SectionResult.from_dict(res)
                for name, res in (data.get("section_scores") or {}).items()
            },
            recommendations=RecommendationBuckets.from_dict(data.get("recommendations") or {}),
            insights=str(data.get("insights", "")),
            timestamp=str(data.get("timestamp", "")),
            fingerprint=data.get("fingerprint"),
            note=data.get("note"),
            completeness_details=data.get("completeness_details") or {},
        )
