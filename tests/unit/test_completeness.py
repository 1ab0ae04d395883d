"""Unit tests for completeness scoring."""

import pytest

from elevate.contexts.analysis.completeness import (
    COMPLETENESS_RULES,
    calculate_completeness,
    completeness_level,
)
from elevate.contexts.analysis.data_structures import ProfileSnapshot, SectionData


def _snapshot(sections):
    return ProfileSnapshot({name: SectionData.from_dict(data) for name, data in sections.items()})


@pytest.mark.unit
def test_point_table_sums_to_100():
    assert sum(rule.points for rule in COMPLETENESS_RULES.values()) == 100


@pytest.mark.unit
def test_complete_profile_scores_earned_share(profile_sections):
    result = calculate_completeness(_snapshot(profile_sections))

    # certifications (3) and projects (2) are missing
    assert result.earned_points == 95
    assert result.total_points == 100
    assert result.score == 95
    assert result.level == "excellent"
    assert [item.section for item in result.recommendations] == ["certifications", "projects"]


@pytest.mark.unit
def test_empty_profile_scores_zero():
    result = calculate_completeness(ProfileSnapshot({}))

    assert result.score == 0
    assert result.level == "poor"
    assert len(result.recommendations) == 5
    # Highest impact first
    assert [item.section for item in result.recommendations] == [
        "experience",
        "about",
        "skills",
        "headline",
        "education",
    ]
    assert result.recommendations[0].message == "Add your work experience"


@pytest.mark.unit
def test_size_thresholds_gate_points():
    result = calculate_completeness(
        _snapshot(
            {
                "headline": {"text": "x" * 49},
                "about": {"text": "x" * 799},
                "experience": {"items": [{"title": "Only role"}]},
                "skills": {"items": ["a"] * 14},
            }
        )
    )

    for section in ("headline", "about", "experience", "skills"):
        assert result.breakdown[section]["passed"] is False
        assert result.breakdown[section]["earned"] == 0

    messages = {item.section: item.message for item in result.recommendations}
    assert messages["about"] == "Add more detail to your About section"
    assert messages["experience"] == "Add more work experiences (at least 2)"
    assert messages["skills"] == "Add 1 more skills"


@pytest.mark.unit
def test_thresholds_are_inclusive():
    result = calculate_completeness(
        _snapshot({"headline": {"text": "x" * 50}, "about": {"text": "x" * 800}})
    )

    assert result.breakdown["headline"]["passed"] is True
    assert result.breakdown["about"]["passed"] is True
    assert result.score == 30


@pytest.mark.unit
def test_unknown_sections_are_ignored(profile_sections):
    with_extra = dict(profile_sections, featured={"items": [{"title": "Talk"}]})

    assert calculate_completeness(_snapshot(with_extra)).score == 95


@pytest.mark.unit
def test_deterministic_and_idempotent(profile_sections):
    snapshot = _snapshot(profile_sections)

    first = calculate_completeness(snapshot)
    second = calculate_completeness(snapshot)

    assert first == second
    assert first.to_dict() == second.to_dict()


@pytest.mark.unit
@pytest.mark.parametrize(
    "score, level",
    [(100, "excellent"), (90, "excellent"), (89, "good"), (75, "good"), (60, "fair"),
     (40, "needs_work"), (39, "poor"), (0, "poor")],
)
def test_completeness_level(score, level):
    assert completeness_level(score) == level
