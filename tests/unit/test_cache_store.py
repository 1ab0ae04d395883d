"""Unit tests for the analysis cache: fingerprints, stores, legacy migration."""

import json

import pytest

from elevate.contexts.analysis.cache_store import (
    MemoryCacheStore,
    SQLiteCacheStore,
    compute_fingerprint,
    migrate_analysis_record,
)
from elevate.contexts.analysis.config import AnalysisConfig
from elevate.contexts.analysis.data_structures import (
    SCHEMA_VERSION,
    AnalysisResult,
    Recommendation,
    RecommendationBuckets,
    ScanResult,
    SectionResult,
)
from elevate.contexts.analysis.exceptions import CorruptCacheEntry
from elevate.utils.llm import ErrorCategory

SCANS = {
    "about": ScanResult(True, 950),
    "experience": ScanResult(True, 2),
    "skills": ScanResult(True, 16),
    "projects": ScanResult(False, 0),
}


def _result(profile_id="jane-doe", score=7.5, fingerprint="fp-1"):
    return AnalysisResult(
        profile_id=profile_id,
        completeness=85,
        content_score=score,
        section_scores={
            "about": SectionResult(
                exists=True, score=8.0, recommendations=(Recommendation("Add metrics"),)
            ),
            "skills": SectionResult.failed(ErrorCategory.RATE_LIMIT, 30),
            "projects": SectionResult.missing(),
        },
        recommendations=RecommendationBuckets(important=(Recommendation("Add metrics"),)),
        insights="Strong sections: about.",
        timestamp="2025-11-14T12:00:00",
        fingerprint=fingerprint,
    )


class Clock:
    def __init__(self):
        self.now = 1_700_000_000_000

    def __call__(self):
        self.now += 1
        return self.now


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryCacheStore(clock=Clock())
    return SQLiteCacheStore(tmp_path / "cache" / "analysis.db", clock=Clock())


# --- Fingerprint ---


@pytest.mark.unit
def test_fingerprint_stable_for_unchanged_content():
    config = AnalysisConfig(provider="openai")

    first = compute_fingerprint("jane-doe", SCANS, config, "openai")
    second = compute_fingerprint("jane-doe", dict(reversed(list(SCANS.items()))), config, "openai")

    assert first == second
    assert len(first) == 64


@pytest.mark.unit
def test_fingerprint_changes_with_section_counts():
    config = AnalysisConfig()
    base = compute_fingerprint("jane-doe", SCANS, config)

    assert compute_fingerprint("jane-doe", dict(SCANS, skills=ScanResult(True, 17)), config) != base
    assert compute_fingerprint("jane-doe", dict(SCANS, projects=ScanResult(True, 1)), config) != base


@pytest.mark.unit
def test_fingerprint_changes_with_settings():
    base = compute_fingerprint("jane-doe", SCANS, AnalysisConfig())

    assert compute_fingerprint("jane-doe", SCANS, AnalysisConfig(target_role="CTO")) != base
    assert compute_fingerprint("jane-doe", SCANS, AnalysisConfig(seniority_level="senior")) != base
    assert compute_fingerprint("jane-doe", SCANS, AnalysisConfig(custom_instructions="x")) != base
    assert compute_fingerprint("jane-doe", SCANS, AnalysisConfig(), "anthropic") != base
    assert compute_fingerprint("john-doe", SCANS, AnalysisConfig()) != base


@pytest.mark.unit
def test_fingerprint_ignores_custom_instruction_text():
    first = compute_fingerprint("jane-doe", SCANS, AnalysisConfig(custom_instructions="one"))
    second = compute_fingerprint("jane-doe", SCANS, AnalysisConfig(custom_instructions="two"))

    assert first == second


# --- Stores ---


@pytest.mark.unit
def test_round_trip(store):
    original = _result()
    store.put("fp-1", original)

    loaded = store.get("fp-1")

    assert loaded == original
    assert loaded.section_scores["skills"].error is ErrorCategory.RATE_LIMIT
    assert store.get("fp-unknown") is None


@pytest.mark.unit
def test_last_write_wins(store):
    store.put("fp-1", _result(score=5.0))
    store.put("fp-1", _result(score=9.0))

    assert store.get("fp-1").content_score == 9.0
    assert len(store.entries()) == 1


@pytest.mark.unit
def test_latest_ignores_fingerprint(store):
    store.put("fp-old", _result(score=5.0, fingerprint="fp-old"))
    store.put("fp-new", _result(score=6.0, fingerprint="fp-new"))
    store.put("fp-other", _result(profile_id="john-doe", score=9.0, fingerprint="fp-other"))

    assert store.latest("jane-doe").content_score == 6.0
    assert store.latest("nobody") is None


@pytest.mark.unit
def test_entries_most_recent_first(store):
    store.put("fp-a", _result(fingerprint="fp-a"))
    store.put("fp-b", _result(profile_id="john-doe", fingerprint="fp-b"))

    entries = store.entries()

    assert [e.fingerprint for e in entries] == ["fp-b", "fp-a"]
    assert entries[0].profile_id == "john-doe"
    assert entries[0].stored_at > entries[1].stored_at


@pytest.mark.unit
def test_clear(store):
    store.put("fp-a", _result(fingerprint="fp-a"))
    store.put("fp-b", _result(fingerprint="fp-b"))
    store.put("fp-c", _result(profile_id="john-doe", fingerprint="fp-c"))

    assert store.clear("jane-doe") == 2
    assert store.latest("jane-doe") is None
    assert store.clear() == 1
    assert store.entries() == []


@pytest.mark.unit
def test_sqlite_store_persists_across_instances(tmp_path):
    db_path = tmp_path / "analysis.db"
    SQLiteCacheStore(db_path).put("fp-1", _result())

    assert SQLiteCacheStore(db_path).get("fp-1").content_score == 7.5


# --- Legacy migration ---


LEGACY_RECORD = {
    "overallScore": 6.4,
    "completeness": 72,
    "timestamp": 1_700_000_000_000,
    "sectionScores": {
        "about": {
            "exists": True,
            "score": 6,
            "positiveInsight": "Good hook.",
            "actionItems": [{"what": "Add metrics", "how": "Use numbers"}],
        },
        "recommendations": {"exists": False},
    },
    "recommendations": {
        "critical": [
            {"section": "recommendations", "priority": "critical",
             "action": {"what": "Add recommendations section", "why": "Trust", "how": "Ask"}}
        ],
        "high": [{"section": "about", "action": {"what": "Add metrics"}}],
        "medium": ["Polish headline"],
    },
    "insights": {"strengths": "about: Good hook", "improvements": "", "careerTrajectory": ""},
    "summary": "Analysis complete.",
}


@pytest.mark.unit
def test_migrate_legacy_record():
    record = migrate_analysis_record(LEGACY_RECORD)
    result = AnalysisResult.from_dict(record)

    assert record["schema_version"] == SCHEMA_VERSION
    assert "summary" not in record
    assert result.content_score == 6.4
    assert result.completeness == 72
    assert result.timestamp.startswith("2023-11-1")
    assert result.section_scores["about"].score == 6.0
    assert result.section_scores["about"].raw_insight == "Good hook."
    assert result.section_scores["about"].recommendations[0].how == "Use numbers"
    assert not result.section_scores["recommendations"].exists
    assert result.recommendations.critical[0].what == "Add recommendations section"
    assert result.recommendations.critical[0].section == "recommendations"
    assert [r.what for r in result.recommendations.important] == ["Add metrics"]
    assert [r.what for r in result.recommendations.nice_to_have] == ["Polish headline"]
    assert result.insights == "about: Good hook"


@pytest.mark.unit
def test_migrate_recommendations_from_fenced_summary():
    embedded = {
        "recommendations": {"critical": [], "important": ["Quantify impact"], "niceToHave": []},
        "insights": "Solid profile.",
    }
    record = migrate_analysis_record(
        {
            "overallScore": 7,
            "summary": f"Here is the analysis:\n```json\n{json.dumps(embedded)}\n```",
        }
    )

    assert record["recommendations"]["important"][0]["what"] == "Quantify impact"
    assert record["insights"] == "Solid profile."


@pytest.mark.unit
def test_migrate_unparsable_summary_leaves_empty_buckets():
    record = migrate_analysis_record(
        {"summary": 'See ```json\n{"recommendations": [oops\n```', "overallScore": 5}
    )

    assert record["recommendations"] == {"critical": [], "important": [], "nice_to_have": []}
    assert record["content_score"] == 5


@pytest.mark.unit
def test_current_schema_passes_through():
    payload = _result().to_dict()

    assert migrate_analysis_record(payload) == payload


@pytest.mark.unit
def test_legacy_records_migrated_on_read(store):
    store.put_raw("fp-legacy", "jane-doe", LEGACY_RECORD, stored_at=1)

    result = store.get("fp-legacy")

    assert result.profile_id == "jane-doe"
    assert result.content_score == 6.4
    assert store.latest("jane-doe").content_score == 6.4


@pytest.mark.unit
def test_legacy_error_messages_mapped_to_categories(store):
    store.put_raw(
        "fp-legacy",
        "jane-doe",
        {
            "overallScore": 6.0,
            "sectionScores": {
                "about": {"exists": True, "score": 5, "error": "Failed to fetch"},
                "headline": {"exists": True, "score": 5, "error": "Invalid API key (401)"},
                "skills": {"exists": True, "error": "429 Too Many Requests", "retryAfter": 30},
                "education": {"exists": True, "score": 4, "error": "Something odd happened"},
                "experience": {"exists": True, "score": 7, "error": "RATE_LIMIT"},
                "recommendations": {"exists": True, "score": 8, "error": None},
            },
        },
        stored_at=1,
    )

    sections = store.get("fp-legacy").section_scores

    assert sections["about"].error is ErrorCategory.NETWORK
    assert sections["about"].score is None
    assert sections["headline"].error is ErrorCategory.AUTH
    assert sections["skills"].error is ErrorCategory.RATE_LIMIT
    assert sections["skills"].retry_after_seconds == 30
    assert sections["education"].error is ErrorCategory.GENERIC
    assert sections["education"].score is None
    assert sections["experience"].error is ErrorCategory.RATE_LIMIT
    assert sections["recommendations"].error is None
    assert sections["recommendations"].score == 8.0
    assert store.latest("jane-doe").section_scores["about"].error is ErrorCategory.NETWORK


@pytest.mark.unit
def test_undecodable_row_raises_corrupt_entry(store):
    store.put_raw("fp-bad", "jane-doe", {"overallScore": 6.0, "completeness": "most of it"})
    store.put("fp-good", _result(fingerprint="fp-good"))

    with pytest.raises(CorruptCacheEntry) as exc_info:
        store.get("fp-bad")

    assert exc_info.value.fingerprint == "fp-bad"
    assert [e.fingerprint for e in store.entries()] == ["fp-good"]
