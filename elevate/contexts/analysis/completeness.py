"""
Profile completeness scoring.

Pure function over a ProfileSnapshot: no network, no caching, deterministic.
Each recognized section earns its full point value when its presence/size
rule passes; the score is the earned share of the total, as a percentage.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple

from elevate.contexts.analysis.data_structures import ProfileSnapshot, SectionData

MAX_RECOMMENDATIONS = 5


class CompletenessRule(NamedTuple):
    """Presence/size heuristic and improvement message for one section."""

    points: int
    check: Callable[[SectionData], bool]
    message: Callable[[SectionData], str]


def _headline_message(data: SectionData) -> str:
    if not data.exists:
        return "Add a professional headline"
    if data.char_count < 30:
        return "Expand your headline (minimum 50 characters)"
    return "Optimize your headline with keywords"


def _about_message(data: SectionData) -> str:
    if not data.exists or data.char_count == 0:
        return "Add an About section"
    if data.char_count < 400:
        return "Expand your About section (aim for 800+ characters)"
    return "Add more detail to your About section"


def _experience_message(data: SectionData) -> str:
    if not data.exists or data.count == 0:
        return "Add your work experience"
    return "Add more work experiences (at least 2)"


def _skills_message(data: SectionData) -> str:
    if not data.exists or data.count == 0:
        return "Add relevant skills"
    if data.count < 5:
        return "Add more skills (aim for 15+)"
    return f"Add {15 - data.count} more skills"


def _recommendations_message(data: SectionData) -> str:
    if not data.exists or data.count == 0:
        return "Request at least one recommendation"
    return "Request more recommendations (aim for 3+)"


# Point values sum to 100
COMPLETENESS_RULES: Dict[str, CompletenessRule] = {
    "photo": CompletenessRule(5, lambda d: d.exists, lambda d: "Add a professional photo"),
    "headline": CompletenessRule(10, lambda d: d.exists and d.char_count >= 50, _headline_message),
    "about": CompletenessRule(20, lambda d: d.exists and d.char_count >= 800, _about_message),
    "experience": CompletenessRule(25, lambda d: d.exists and d.count >= 2, _experience_message),
    "skills": CompletenessRule(15, lambda d: d.exists and d.count >= 15, _skills_message),
    "education": CompletenessRule(
        10, lambda d: d.exists and d.count >= 1, lambda d: "Add your education"
    ),
    "recommendations": CompletenessRule(
        10, lambda d: d.exists and d.count >= 1, _recommendations_message
    ),
    "certifications": CompletenessRule(
        3, lambda d: d.exists and d.count >= 1, lambda d: "Add relevant certifications"
    ),
    "projects": CompletenessRule(
        2, lambda d: d.exists and d.count >= 1, lambda d: "Showcase projects you've worked on"
    ),
}


@dataclass(frozen=True)
class CompletenessItem:
    """An unmet completeness rule, ordered by its point impact."""

    section: str
    message: str
    impact: int


@dataclass(frozen=True)
class CompletenessResult:
    """
    Outcome of completeness scoring.

    Attributes:
        score: Percentage (0-100)
        earned_points: Points earned across sections
        total_points: Points available
        breakdown: Section -> {"points", "earned", "passed"}
        recommendations: Top unmet rules by impact
        level: "excellent", "good", "fair", "needs_work" or "poor"
    """

    score: int
    earned_points: int
    total_points: int
    breakdown: Dict[str, Dict[str, object]] = field(default_factory=dict)
    recommendations: List[CompletenessItem] = field(default_factory=list)
    level: str = "poor"

    def to_dict(self) -> Dict[str, object]:
        return {
            "score": self.score,
            "earned_points": self.earned_points,
            "total_points": self.total_points,
            "level": self.level,
            "breakdown": self.breakdown,
            "recommendations": [
                {"section": item.section, "message": item.message, "impact": item.impact}
                for item in self.recommendations
            ],
        }


def completeness_level(score: int) -> str:
    if score >= 90:
        return "excellent"
    if score >= 75:
        return "good"
    if score >= 60:
        return "fair"
    if score >= 40:
        return "needs_work"
    return "poor"


def calculate_completeness(snapshot: ProfileSnapshot) -> CompletenessResult:
    """
    Score how complete a profile is.

    Args:
        snapshot: Extracted profile sections

    Returns:
        CompletenessResult (identical snapshot -> identical result)
    """
    earned = 0
    total = 0
    breakdown = {}
    unmet = []

    for section, rule in COMPLETENESS_RULES.items():
        data = snapshot.get(section)
        passed = bool(rule.check(data))
        points = rule.points if passed else 0

        total += rule.points
        earned += points
        breakdown[section] = {"points": rule.points, "earned": points, "passed": passed}

        if not passed:
            unmet.append(CompletenessItem(section, rule.message(data), rule.points))

    # Stable sort keeps table order among equal impacts
    unmet.sort(key=lambda item: item.impact, reverse=True)

    score = round(earned / total * 100) if total else 0
    score = max(0, min(100, score))

    return CompletenessResult(
        score=score,
        earned_points=earned,
        total_points=total,
        breakdown=breakdown,
        recommendations=unmet[:MAX_RECOMMENDATIONS],
        level=completeness_level(score),
    )
