"""
Cross-section synthesis.

Combines per-section AI results into one overall content score, prioritized
recommendation buckets and a short insight summary.

Scoring is a weighted average over scored sections, capped by the absence of
critical sections. The formula is always computed locally; an optional
provider call may only replace the narrative (insights and recommendations).
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from elevate.contexts.analysis.data_structures import (
    PRIORITY_CRITICAL,
    PRIORITY_IMPORTANT,
    PRIORITY_NICE_TO_HAVE,
    Recommendation,
    RecommendationBuckets,
    RoleContext,
    SectionResult,
)
from elevate.contexts.analysis.exceptions import SynthesisFailure
from elevate.contexts.analysis.logger import _log_debug, _log_warning
from elevate.contexts.analysis.prompts import SYNTHESIS_SYSTEM_PROMPT, build_synthesis_prompt
from elevate.utils.llm import AIProviderError, LLMProvider, extract_json_object

SECTION_WEIGHTS: Dict[str, float] = {
    "about": 0.30,
    "experience": 0.30,
    "skills": 0.20,
    "headline": 0.10,
    "education": 0.05,
    "recommendations": 0.05,
}

DEFAULT_WEIGHT = 0.05

# Upper bound on the overall score while the section is missing
CRITICAL_SECTION_CAPS: Dict[str, float] = {
    "about": 7.0,
    "experience": 6.0,
    "skills": 9.0,
    "recommendations": 8.0,
}

MAX_PER_BUCKET = 3
MAX_INSIGHTS = 3

STRONG_SCORE = 8.0
WEAK_SCORE = 6.0


@dataclass(frozen=True)
class SynthesisResult:
    """
    Outcome of synthesis.

    Attributes:
        overall_score: Capped weighted average, one decimal (None if nothing was scored)
        base_score: Uncapped weighted average
        max_possible_score: Lowest cap imposed by missing critical sections
        missing_critical: Critical sections that are absent
        recommendations: Prioritized buckets, at most MAX_PER_BUCKET each
        insights: Consolidated insight text
    """

    overall_score: Optional[float]
    base_score: Optional[float] = None
    max_possible_score: float = 10.0
    missing_critical: Tuple[str, ...] = ()
    recommendations: RecommendationBuckets = field(default_factory=RecommendationBuckets)
    insights: str = ""


def section_weight(section: str) -> float:
    return SECTION_WEIGHTS.get(section, DEFAULT_WEIGHT)


def round_half_up(value: float) -> float:
    """Round to one decimal, halves away from zero for non-negative scores."""
    return math.floor(value * 10 + 0.5) / 10


def _is_absent(section_scores: Mapping[str, SectionResult], section: str) -> bool:
    result = section_scores.get(section)
    return result is None or not result.exists


def _by_weight(sections) -> List[str]:
    return sorted(sections, key=lambda name: (-section_weight(name), name))


def _absent_sections(section_scores: Mapping[str, SectionResult]) -> List[str]:
    absent = set(section for section in CRITICAL_SECTION_CAPS if section not in section_scores)
    absent.update(name for name, result in section_scores.items() if not result.exists)
    return _by_weight(absent)


def _bucket_for(score: float) -> str:
    if score < 5:
        return PRIORITY_CRITICAL
    if score < 7:
        return PRIORITY_IMPORTANT
    return PRIORITY_NICE_TO_HAVE


def _missing_section_recommendation(section: str) -> Recommendation:
    return Recommendation(
        what=f"Add {section} section to your profile",
        why=f"Missing {section} significantly impacts profile completeness",
        how=f"Add content to the {section} section of your profile",
        priority=PRIORITY_CRITICAL,
        section=section,
    )


def compute_overall_score(
    section_scores: Mapping[str, SectionResult],
) -> Tuple[Optional[float], Optional[float], float, Tuple[str, ...]]:
    """
    Compute the capped weighted average.

    Returns:
        Tuple of (overall, base, max_possible, missing_critical)
    """
    missing_critical = tuple(
        section for section in CRITICAL_SECTION_CAPS if _is_absent(section_scores, section)
    )
    max_possible = min(
        (CRITICAL_SECTION_CAPS[section] for section in missing_critical), default=10.0
    )

    weighted_sum = 0.0
    total_weight = 0.0
    for section, result in section_scores.items():
        if not result.exists or result.score is None:
            continue
        weight = section_weight(section)
        weighted_sum += result.score * weight
        total_weight += weight

    if total_weight == 0:
        return None, None, max_possible, missing_critical

    base = weighted_sum / total_weight
    overall = round_half_up(min(base, max_possible))
    return overall, base, max_possible, missing_critical


def bucket_recommendations(section_scores: Mapping[str, SectionResult]) -> RecommendationBuckets:
    """
    Bucket recommendations by the score of the section they came from.

    Absent sections come first with a critical "Add <section>" item; then
    present sections are visited in descending weight order.
    """
    buckets: Dict[str, List[Recommendation]] = {
        PRIORITY_CRITICAL: [],
        PRIORITY_IMPORTANT: [],
        PRIORITY_NICE_TO_HAVE: [],
    }

    for section in _absent_sections(section_scores):
        buckets[PRIORITY_CRITICAL].append(_missing_section_recommendation(section))

    for section in _by_weight(section_scores):
        result = section_scores[section]
        if not result.exists or result.score is None:
            continue
        priority = _bucket_for(result.score)
        for rec in result.recommendations:
            buckets[priority].append(
                Recommendation(
                    what=rec.what,
                    why=rec.why,
                    how=rec.how,
                    priority=priority,
                    section=rec.section or section,
                )
            )

    return RecommendationBuckets(
        critical=tuple(buckets[PRIORITY_CRITICAL][:MAX_PER_BUCKET]),
        important=tuple(buckets[PRIORITY_IMPORTANT][:MAX_PER_BUCKET]),
        nice_to_have=tuple(buckets[PRIORITY_NICE_TO_HAVE][:MAX_PER_BUCKET]),
    )


def build_insights(
    section_scores: Mapping[str, SectionResult], career_trajectory: str = ""
) -> str:
    """
    Summarize strong and weak sections plus the best sections' own insights.

    A career-trajectory summary, when given, closes the text.
    """
    scored = [
        (section, result)
        for section, result in section_scores.items()
        if result.exists and result.score is not None
    ]
    if not scored:
        return ""

    strong = [section for section, result in scored if result.score >= STRONG_SCORE]
    weak = [section for section, result in scored if result.score < WEAK_SCORE]

    parts = []
    if strong:
        parts.append(f"Strong sections: {', '.join(strong)}.")
    if weak:
        parts.append(f"Sections needing work: {', '.join(weak)}.")

    best = sorted(scored, key=lambda pair: (-pair[1].score, -section_weight(pair[0])))
    for section, result in best[:MAX_INSIGHTS]:
        if result.raw_insight:
            parts.append(f"{section}: {result.raw_insight}")

    if career_trajectory:
        parts.append(career_trajectory)
    return " ".join(parts)


def synthesize(
    section_scores: Mapping[str, SectionResult], career_trajectory: str = ""
) -> SynthesisResult:
    """
    Combine per-section results into an overall score and recommendations.

    Args:
        section_scores: Section name -> SectionResult (absent sections may be
            omitted or recorded with exists=False)
        career_trajectory: Summary of per-role experience results, appended
            to the insights

    Returns:
        SynthesisResult

    Example:
        >>> synthesize({
        ...     "about": SectionResult.missing(),
        ...     "experience": SectionResult(exists=True, score=9),
        ...     "skills": SectionResult(exists=True, score=9),
        ... }).overall_score
        7.0
    """
    overall, base, max_possible, missing_critical = compute_overall_score(section_scores)
    return SynthesisResult(
        overall_score=overall,
        base_score=base,
        max_possible_score=max_possible,
        missing_critical=missing_critical,
        recommendations=bucket_recommendations(section_scores),
        insights=build_insights(section_scores, career_trajectory),
    )


def _parse_synthesis_payload(text: str) -> Tuple[str, RecommendationBuckets]:
    payload = extract_json_object(text)
    if payload is None:
        raise SynthesisFailure("Synthesis response contained no JSON object")

    insights = payload.get("insights")
    if isinstance(insights, dict):
        insights = " ".join(str(value) for value in insights.values() if value)
    raw_buckets = payload.get("recommendations")
    if not insights or not isinstance(raw_buckets, dict):
        raise SynthesisFailure("Synthesis response missing insights or recommendations")

    def _bucket(key: str, *aliases: str) -> Tuple[Recommendation, ...]:
        items = raw_buckets.get(key)
        for alias in aliases:
            items = items or raw_buckets.get(alias)
        recs = []
        for item in items or []:
            if isinstance(item, str):
                recs.append(Recommendation(what=item, priority=key))
            elif isinstance(item, dict) and item.get("what"):
                recs.append(Recommendation.from_dict({**item, "priority": key}))
        return tuple(recs[:MAX_PER_BUCKET])

    buckets = RecommendationBuckets(
        critical=_bucket(PRIORITY_CRITICAL),
        important=_bucket(PRIORITY_IMPORTANT, "high"),
        nice_to_have=_bucket(PRIORITY_NICE_TO_HAVE, "niceToHave", "medium"),
    )
    return str(insights), buckets


async def synthesize_with_provider(
    section_scores: Mapping[str, SectionResult],
    provider: LLMProvider,
    role_context: RoleContext,
    model_hint: Optional[str] = None,
    career_trajectory: str = "",
) -> SynthesisResult:
    """
    Synthesize with provider-written narrative, falling back to synthesize().

    The overall score is always the locally computed capped average; only
    insights and recommendations come from the provider. Any provider error
    or unusable payload falls back to the deterministic result.
    """
    local = synthesize(section_scores, career_trajectory)
    if local.overall_score is None:
        return local

    prompt = build_synthesis_prompt(section_scores, role_context)
    try:
        try:
            text = await provider.send(
                prompt, model_hint=model_hint, system_prompt=SYNTHESIS_SYSTEM_PROMPT
            )
        except AIProviderError as exc:
            raise SynthesisFailure(str(exc)) from exc
        insights, buckets = _parse_synthesis_payload(text)
    except SynthesisFailure as exc:
        _log_warning(f"AI synthesis unavailable, using weighted synthesis: {exc}")
        return local

    # Missing-section items stay critical regardless of what the provider returned
    missing_items = tuple(
        _missing_section_recommendation(section) for section in _absent_sections(section_scores)
    )
    critical = (missing_items + buckets.critical)[:MAX_PER_BUCKET]

    _log_debug(f"AI synthesis returned {len(buckets)} recommendations")
    return SynthesisResult(
        overall_score=local.overall_score,
        base_score=local.base_score,
        max_possible_score=local.max_possible_score,
        missing_critical=local.missing_critical,
        recommendations=RecommendationBuckets(
            critical=critical,
            important=buckets.important,
            nice_to_have=buckets.nice_to_have,
        ),
        insights=" ".join(part for part in (insights, career_trajectory) if part),
    )
