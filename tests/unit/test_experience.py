"""Unit tests for per-role experience aggregation and the career-trajectory summary."""

import pytest

from elevate.contexts.analysis.data_structures import Recommendation, SectionResult
from elevate.contexts.analysis.experience import (
    RoleEvaluation,
    aggregate_role_results,
    career_trajectory,
    has_quantified_achievements,
    has_upward_progression,
    summarize_career_trajectory,
)
from elevate.utils.llm import ErrorCategory


def role(position, score, title="Engineer", quantified=False, actions=(), insight=""):
    return RoleEvaluation(
        position=position,
        title=title,
        quantified=quantified,
        result=SectionResult(
            exists=True,
            score=score,
            recommendations=tuple(Recommendation(what, section="experience") for what in actions),
            raw_insight=insight,
        ),
    )


def failed(position, category, retry_after=None, title="Engineer"):
    return RoleEvaluation(
        position=position,
        title=title,
        quantified=False,
        result=SectionResult.failed(category, retry_after),
    )


# --- Aggregation ---


@pytest.mark.unit
def test_aggregate_averages_role_scores():
    result = aggregate_role_results([role(1, 9), role(2, 6), role(3, 6)])

    assert result.exists
    assert result.score == 7.0
    assert result.error is None


@pytest.mark.unit
def test_aggregate_ignores_unscored_roles():
    result = aggregate_role_results(
        [role(1, 8), failed(2, ErrorCategory.RATE_LIMIT, 60), role(3, 6)]
    )

    assert result.score == 7.0
    assert result.error is None


@pytest.mark.unit
def test_aggregate_merges_recommendations_most_recent_first():
    result = aggregate_role_results(
        [
            role(2, 6, actions=["Add outcomes", "quantify impact"]),
            role(1, 8, actions=["Quantify impact"], insight="Clear scope."),
        ]
    )

    assert [r.what for r in result.recommendations] == ["Quantify impact", "Add outcomes"]
    assert all(r.section == "experience" for r in result.recommendations)
    assert result.raw_insight == "Clear scope."


@pytest.mark.unit
def test_aggregate_all_failed_prefers_auth():
    result = aggregate_role_results(
        [failed(1, ErrorCategory.NETWORK), failed(2, ErrorCategory.AUTH)]
    )

    assert result.score is None
    assert result.error is ErrorCategory.AUTH


@pytest.mark.unit
def test_aggregate_all_rate_limited_keeps_longest_wait():
    result = aggregate_role_results(
        [failed(1, ErrorCategory.RATE_LIMIT, 30), failed(2, ErrorCategory.RATE_LIMIT, 45)]
    )

    assert result.error is ErrorCategory.RATE_LIMIT
    assert result.retry_after_seconds == 45


@pytest.mark.unit
def test_aggregate_nothing_evaluated_is_present_but_unscored():
    assert aggregate_role_results([]) == SectionResult(exists=True)


# --- Trajectory ---


@pytest.mark.unit
@pytest.mark.parametrize(
    "scores,expected",
    [
        ((9, 6, 6), "improving"),
        ((5, 8, 8), "declining"),
        ((7, 7), "stable"),
        ((6,), "stable"),
    ],
)
def test_career_trajectory(scores, expected):
    evaluations = [role(position, score) for position, score in enumerate(scores, start=1)]

    assert career_trajectory(evaluations) == expected


@pytest.mark.unit
def test_career_trajectory_without_scores():
    assert career_trajectory([failed(1, ErrorCategory.GENERIC)]) is None


@pytest.mark.unit
@pytest.mark.parametrize(
    "titles,expected",
    [
        (("Senior Data Engineer", "Data Engineer"), True),
        (("Engineering Director", "Engineering Manager", "Engineer"), True),
        (("Tech Lead", "Senior Engineer"), False),
        (("Data Engineer", "Senior Data Engineer"), False),
        (("Data Engineer",), False),
    ],
)
def test_upward_progression(titles, expected):
    evaluations = [
        role(position, 7, title=title) for position, title in enumerate(titles, start=1)
    ]

    assert has_upward_progression(evaluations) is expected


@pytest.mark.unit
@pytest.mark.parametrize(
    "payload,expected",
    [
        ({"description": "Grew revenue 30% in a year."}, True),
        ({"description": "Saved $1.2M in cloud spend."}, True),
        ({"description": "Onboarded 500 customers across EMEA."}, True),
        ({"description": "Owned the data platform roadmap."}, False),
        ({"description": "Grew revenue 30%.", "has_quantified_achievements": False}, False),
        ({"hasQuantifiedAchievements": True}, True),
        ({}, False),
    ],
)
def test_quantified_achievements(payload, expected):
    assert has_quantified_achievements(payload) is expected


@pytest.mark.unit
def test_summary_for_improving_progression_with_metrics():
    summary = summarize_career_trajectory(
        [
            role(1, 9, title="Senior Data Engineer", quantified=True),
            role(2, 6, title="Data Engineer"),
        ]
    )

    assert summary == (
        "Career analysis: 2 roles analyzed. "
        "Recent roles are better documented than earlier ones. "
        "Role titles show clear career progression. "
        "The current role includes quantified achievements."
    )


@pytest.mark.unit
def test_summary_flags_current_role_without_metrics():
    summary = summarize_career_trajectory(
        [role(1, 5, title="Analyst"), role(2, 8, title="Analyst", quantified=True)]
    )

    assert "Recent roles need more detail" in summary
    assert "career progression" not in summary
    assert summary.endswith(
        "The current role lacks quantified achievements; adding metrics is a "
        "high-priority improvement."
    )


@pytest.mark.unit
def test_summary_counts_only_scored_roles():
    summary = summarize_career_trajectory(
        [role(1, 7, quantified=True), failed(2, ErrorCategory.RATE_LIMIT, 60)]
    )

    assert summary.startswith("Career analysis: 1 role analyzed.")
    assert summarize_career_trajectory([failed(1, ErrorCategory.AUTH)]) == ""
