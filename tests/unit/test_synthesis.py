"""Unit tests for cross-section synthesis."""

import asyncio
import json

import pytest

from elevate.contexts.analysis.data_structures import Recommendation, RoleContext, SectionResult
from elevate.contexts.analysis.synthesis import (
    CRITICAL_SECTION_CAPS,
    MAX_PER_BUCKET,
    round_half_up,
    synthesize,
    synthesize_with_provider,
)
from elevate.utils.llm import AIProviderError, ErrorCategory


def scored(score, *actions, insight=""):
    return SectionResult(
        exists=True,
        score=score,
        recommendations=tuple(Recommendation(what=a) for a in actions),
        raw_insight=insight,
    )


@pytest.mark.unit
def test_missing_about_caps_overall_at_7():
    result = synthesize(
        {"about": SectionResult.missing(), "experience": scored(9), "skills": scored(9)}
    )

    assert result.base_score == pytest.approx(9.0)
    assert result.overall_score == 7.0
    assert "about" in result.missing_critical


@pytest.mark.unit
def test_all_present_no_cap():
    result = synthesize(
        {
            "about": scored(9),
            "experience": scored(9),
            "skills": scored(9),
            "headline": scored(9),
            "recommendations": scored(9),
        }
    )

    assert result.overall_score == 9.0
    assert result.max_possible_score == 10.0
    assert result.missing_critical == ()


@pytest.mark.unit
def test_sections_absent_from_map_count_as_missing():
    # recommendations is not in the map at all: cap 8
    result = synthesize(
        {"about": scored(9), "experience": scored(9), "skills": scored(9), "headline": scored(9)}
    )

    assert result.overall_score == 8.0
    assert result.missing_critical == ("recommendations",)


@pytest.mark.unit
def test_lowest_cap_wins():
    result = synthesize({"headline": scored(10)})

    assert result.max_possible_score == min(CRITICAL_SECTION_CAPS.values()) == 6.0
    assert result.overall_score == 6.0


@pytest.mark.unit
def test_weighted_average():
    # (8*0.30 + 6*0.30 + 4*0.20 + 10*0.05 + 10*0.05) / 0.90 = 6.67
    result = synthesize(
        {
            "about": scored(8),
            "experience": scored(6),
            "skills": scored(4),
            "education": scored(10),
            "recommendations": scored(10),
        }
    )

    assert result.base_score == pytest.approx(6.0 / 0.9)
    assert result.overall_score == 6.7


@pytest.mark.unit
def test_unscored_sections_excluded_from_average():
    result = synthesize(
        {
            "about": scored(8),
            "experience": SectionResult.failed(ErrorCategory.RATE_LIMIT, 30),
            "skills": scored(8),
            "recommendations": scored(8),
        }
    )

    # experience exists (not capped) but contributes nothing to the average
    assert result.missing_critical == ()
    assert result.overall_score == 8.0


@pytest.mark.unit
def test_no_scored_sections_gives_none():
    result = synthesize({"about": SectionResult.failed(ErrorCategory.AUTH)})

    assert result.overall_score is None
    assert result.base_score is None


@pytest.mark.unit
def test_unlisted_sections_use_default_weight():
    result = synthesize(
        {
            "about": scored(10),
            "experience": scored(10),
            "skills": scored(10),
            "recommendations": scored(10),
            "projects": scored(0),
        }
    )

    # 8.5 / 0.90 = 9.44
    assert result.overall_score == 9.4


@pytest.mark.unit
def test_round_half_up():
    assert round_half_up(6.25) == 6.3
    assert round_half_up(6.24) == 6.2


@pytest.mark.unit
def test_overall_monotonic_in_section_score():
    base = {"about": scored(6), "experience": scored(7), "skills": scored(5)}
    previous = None
    for score in range(11):
        overall = synthesize(dict(base, skills=scored(score))).overall_score
        if previous is not None:
            assert overall >= previous
        previous = overall


@pytest.mark.unit
def test_recommendations_bucketed_by_section_score():
    result = synthesize(
        {
            "about": scored(4, "Rewrite the opening"),
            "experience": scored(6, "Quantify impact"),
            "skills": scored(8, "Reorder skills"),
            "recommendations": scored(9),
        }
    )

    buckets = result.recommendations
    assert [r.what for r in buckets.critical] == ["Rewrite the opening"]
    assert [r.what for r in buckets.important] == ["Quantify impact"]
    assert [r.what for r in buckets.nice_to_have] == ["Reorder skills"]
    assert buckets.critical[0].priority == "critical"
    assert buckets.important[0].section == "experience"


@pytest.mark.unit
def test_missing_sections_produce_critical_items_first():
    result = synthesize(
        {
            "about": SectionResult.missing(),
            "experience": scored(3, "Add achievements", "Add dates"),
            "skills": scored(9),
            "recommendations": scored(9),
        }
    )

    critical = [r.what for r in result.recommendations.critical]
    assert critical[0] == "Add about section to your profile"
    assert critical[1:] == ["Add achievements", "Add dates"]


@pytest.mark.unit
def test_buckets_capped():
    result = synthesize(
        {
            "about": scored(2, "a1", "a2"),
            "experience": scored(2, "e1", "e2"),
            "skills": scored(2, "s1"),
            "recommendations": scored(9),
        }
    )

    assert len(result.recommendations.critical) == MAX_PER_BUCKET
    # Heavier sections first; about and experience tie on weight, name breaks the tie
    assert [r.what for r in result.recommendations.critical] == ["a1", "a2", "e1"]


@pytest.mark.unit
def test_insights_name_strong_and_weak_sections():
    result = synthesize(
        {
            "about": scored(9, insight="Compelling narrative."),
            "experience": scored(5),
            "skills": scored(7),
            "recommendations": scored(8),
        }
    )

    assert "Strong sections: about, recommendations." in result.insights
    assert "Sections needing work: experience." in result.insights
    assert "about: Compelling narrative." in result.insights


class _StubProvider:
    provider_name = "openai"

    def __init__(self, outcome):
        self.outcome = outcome
        self.prompts = []

    async def send(self, prompt, model_hint=None, system_prompt=""):
        self.prompts.append(prompt)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


_SCORES = {
    "about": SectionResult.missing(),
    "experience": scored(9, "Quantify impact"),
    "skills": scored(9),
    "recommendations": scored(9),
}


@pytest.mark.unit
def test_provider_synthesis_replaces_narrative_not_score():
    payload = {
        "insights": "A strong engineering profile.",
        "recommendations": {
            "critical": [{"what": "Lead with outcomes", "why": "Recruiters skim"}],
            "high": ["Mention team size"],
            "nice_to_have": [],
        },
    }
    provider = _StubProvider(f"```json\n{json.dumps(payload)}\n```")

    result = asyncio.run(synthesize_with_provider(_SCORES, provider, RoleContext()))

    assert result.overall_score == 7.0
    assert result.insights == "A strong engineering profile."
    assert [r.what for r in result.recommendations.critical] == [
        "Add about section to your profile",
        "Lead with outcomes",
    ]
    assert [r.what for r in result.recommendations.important] == ["Mention team size"]
    assert len(provider.prompts) == 1


@pytest.mark.unit
@pytest.mark.parametrize(
    "outcome",
    [
        "not json at all",
        '{"insights": "only insights"}',
        AIProviderError("boom", ErrorCategory.SERVICE_UNAVAILABLE, provider="openai"),
    ],
)
def test_provider_synthesis_falls_back(outcome):
    result = asyncio.run(synthesize_with_provider(_SCORES, _StubProvider(outcome), RoleContext()))

    assert result == synthesize(_SCORES)


@pytest.mark.unit
def test_career_trajectory_closes_insights():
    result = synthesize(
        {"about": scored(9, insight="Compelling narrative."), "experience": scored(7)},
        career_trajectory="Career analysis: 2 roles analyzed.",
    )

    assert result.insights.endswith("Career analysis: 2 roles analyzed.")
    assert "about: Compelling narrative." in result.insights
