"""
Per-role experience evaluation.

The experience section is evaluated one role at a time, most recent role
first. Role scores are averaged into the section's SectionResult, and the
ordered role results feed a short career-trajectory summary that is added
to the run's insights.

Usage:
    evaluations = [RoleEvaluation.for_role(1, role, result), ...]
    section = aggregate_role_results(evaluations)
    summary = summarize_career_trajectory(evaluations)
"""

import re
from dataclasses import dataclass, replace
from typing import Any, List, Mapping, Optional, Sequence

from elevate.contexts.analysis.data_structures import Recommendation, SectionResult
from elevate.utils.llm import ErrorCategory

EXPERIENCE_SECTION = "experience"

TRAJECTORY_IMPROVING = "improving"
TRAJECTORY_DECLINING = "declining"
TRAJECTORY_STABLE = "stable"

# A number tied to an outcome ("grew revenue 30%", "$2M saved", "40% reduction")
_QUANTIFIED = re.compile(
    r"\d+[%+,kKmMbB$]*\s*(revenue|users|customers|growth|increase|decrease|roi|saved"
    r"|generated|improvement|reduction)|\d+(?:\.\d+)?\s*%|[$€£]\s?\d",
    re.IGNORECASE,
)
_TECH_STACK = re.compile(
    r"\b(React|Angular|Vue|Node|Python|Java|JavaScript|AWS|Azure|GCP|Docker|Kubernetes|SQL|API)\b",
    re.IGNORECASE,
)
_SENIOR_TITLE = re.compile(r"\b(senior|sr\.?|lead|principal|staff|director|head|vp|chief)\b", re.I)

_QUANTIFIED_FLAGS = ("has_quantified_achievements", "hasQuantifiedAchievements")
_TECH_STACK_FLAGS = ("has_tech_stack", "hasTechStack")
_CURRENT_FLAGS = ("is_current", "isCurrent", "current")


def _flag(role: Mapping[str, Any], keys: Sequence[str]) -> Optional[bool]:
    for key in keys:
        if key in role:
            return bool(role[key])
    return None


def role_title(role: Mapping[str, Any]) -> str:
    return str(role.get("title") or role.get("text") or "").strip()


def role_description(role: Mapping[str, Any]) -> str:
    return str(role.get("description") or "").strip()


def is_current_role(role: Mapping[str, Any]) -> bool:
    return bool(_flag(role, _CURRENT_FLAGS))


def has_quantified_achievements(role: Mapping[str, Any]) -> bool:
    """Extractor-supplied flag if present, otherwise a scan of the description."""
    flag = _flag(role, _QUANTIFIED_FLAGS)
    if flag is not None:
        return flag
    return bool(_QUANTIFIED.search(role_description(role)))


def mentions_tech_stack(role: Mapping[str, Any]) -> bool:
    flag = _flag(role, _TECH_STACK_FLAGS)
    if flag is not None:
        return flag
    return bool(_TECH_STACK.search(role_description(role)))


@dataclass(frozen=True)
class RoleEvaluation:
    """
    Outcome of evaluating one role.

    Attributes:
        position: 1-based position, 1 being the most recent role
        title: Role title as extracted
        quantified: Whether the role's description quantifies its impact
        result: Provider evaluation of the role
    """

    position: int
    title: str
    quantified: bool
    result: SectionResult

    @classmethod
    def for_role(
        cls, position: int, role: Mapping[str, Any], result: SectionResult
    ) -> "RoleEvaluation":
        return cls(
            position=position,
            title=role_title(role),
            quantified=has_quantified_achievements(role),
            result=result,
        )

    @property
    def score(self) -> Optional[float]:
        return self.result.score


def _scored(evaluations: Sequence[RoleEvaluation]) -> List[RoleEvaluation]:
    ordered = sorted(evaluations, key=lambda evaluation: evaluation.position)
    return [evaluation for evaluation in ordered if evaluation.score is not None]


def _failed_section(evaluations: Sequence[RoleEvaluation]) -> SectionResult:
    errors = [e.result for e in evaluations if e.result.error is not None]
    if not errors:
        return SectionResult(exists=True)

    categories = [result.error for result in errors]
    if ErrorCategory.AUTH in categories:
        category = ErrorCategory.AUTH
    elif ErrorCategory.RATE_LIMIT in categories:
        category = ErrorCategory.RATE_LIMIT
    else:
        category = categories[0]

    waits = [r.retry_after_seconds for r in errors if r.error is category and r.retry_after_seconds]
    return SectionResult.failed(category, max(waits) if waits else None)


def aggregate_role_results(evaluations: Sequence[RoleEvaluation]) -> SectionResult:
    """
    Combine role evaluations into the experience SectionResult.

    The score is the mean over roles that were scored. Recommendations keep
    role order (most recent first) with duplicates dropped, and the insight
    comes from the most recent scored role that has one. When no role was
    scored, the result carries the most significant role error (AUTH, then
    RATE_LIMIT with the longest wait, then the first error seen).

    Args:
        evaluations: Role evaluations in any order

    Returns:
        SectionResult for the experience section
    """
    scored = _scored(evaluations)
    if not scored:
        return _failed_section(evaluations)

    recommendations: List[Recommendation] = []
    seen = set()
    for evaluation in scored:
        for rec in evaluation.result.recommendations:
            key = rec.what.strip().lower()
            if key in seen:
                continue
            seen.add(key)
            recommendations.append(replace(rec, section=EXPERIENCE_SECTION))

    insight = next((e.result.raw_insight for e in scored if e.result.raw_insight), "")
    return SectionResult(
        exists=True,
        score=sum(e.score for e in scored) / len(scored),
        recommendations=tuple(recommendations),
        raw_insight=insight,
    )


def career_trajectory(evaluations: Sequence[RoleEvaluation]) -> Optional[str]:
    """
    Compare the most recent role's score with the average over all scored roles.

    Returns:
        "improving", "declining" or "stable"; None when no role was scored
    """
    scored = _scored(evaluations)
    if not scored:
        return None
    average = sum(e.score for e in scored) / len(scored)
    recent = scored[0].score
    if recent > average:
        return TRAJECTORY_IMPROVING
    if recent < average:
        return TRAJECTORY_DECLINING
    return TRAJECTORY_STABLE


def has_upward_progression(evaluations: Sequence[RoleEvaluation]) -> bool:
    """True if some role has a senior title while the role before it did not."""
    ordered = sorted(evaluations, key=lambda evaluation: evaluation.position)
    return any(
        _SENIOR_TITLE.search(newer.title) and not _SENIOR_TITLE.search(older.title)
        for newer, older in zip(ordered, ordered[1:])
    )


def summarize_career_trajectory(evaluations: Sequence[RoleEvaluation]) -> str:
    """
    Short career-trajectory summary for the run's insights.

    Returns:
        Summary text ("" when no role was scored)
    """
    scored = _scored(evaluations)
    if not scored:
        return ""

    count = len(scored)
    parts = [f"Career analysis: {count} role{'s' if count != 1 else ''} analyzed."]

    trend = career_trajectory(scored)
    if trend == TRAJECTORY_IMPROVING:
        parts.append("Recent roles are better documented than earlier ones.")
    elif trend == TRAJECTORY_DECLINING:
        parts.append("Recent roles need more detail; earlier positions are better documented.")

    if has_upward_progression(evaluations):
        parts.append("Role titles show clear career progression.")

    if scored[0].quantified:
        parts.append("The current role includes quantified achievements.")
    else:
        parts.append(
            "The current role lacks quantified achievements; adding metrics is a "
            "high-priority improvement."
        )
    return " ".join(parts)
