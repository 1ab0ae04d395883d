"""
Per-section AI evaluation.

One provider call per section, or per role for experience, gated by the rate
limiter, with defensive parsing of the response. Provider failures never
escape evaluate() or evaluate_role(); they are recorded on the SectionResult
so the run can continue with other sections.
"""

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from elevate.contexts.analysis.data_structures import (
    PRIORITY_CRITICAL,
    PRIORITY_IMPORTANT,
    PRIORITY_NICE_TO_HAVE,
    Recommendation,
    RoleContext,
    SectionData,
    SectionResult,
)
from elevate.contexts.analysis.experience import EXPERIENCE_SECTION
from elevate.contexts.analysis.logger import _log_debug, _log_warning
from elevate.contexts.analysis.prompts import (
    SECTION_SYSTEM_PROMPT,
    build_experience_role_prompt,
    build_section_prompt,
)
from elevate.utils.llm import AIProviderError, ErrorCategory, LLMProvider, extract_json_object
from elevate.utils.rate_limiter import RateLimiter

# Low-confidence score used when a response cannot be parsed at all
DEFAULT_SCORE = 5.0

# Cooldown applied when a provider throttles without a retry-after hint
DEFAULT_COOLDOWN_SECONDS = 60

MAX_INSIGHT_CHARS = 200

_PRIORITY_ALIASES = {
    "critical": PRIORITY_CRITICAL,
    "high": PRIORITY_IMPORTANT,
    "important": PRIORITY_IMPORTANT,
    "medium": PRIORITY_NICE_TO_HAVE,
    "low": PRIORITY_NICE_TO_HAVE,
    "nice_to_have": PRIORITY_NICE_TO_HAVE,
    "nicetohave": PRIORITY_NICE_TO_HAVE,
}

_LEADING_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


@dataclass(frozen=True)
class ParsedSection:
    """Fields recovered from a provider response."""

    score: float
    recommendations: List[Recommendation]
    raw_insight: str
    parsed: bool


def _coerce_score(value: Any) -> Optional[float]:
    """Read a 0-10 score from a number or a string like "7" or "7/10"."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        score = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.search(value)
        if not match:
            return None
        score = float(match.group(0))
    else:
        return None
    return max(0.0, min(10.0, score))


def _coerce_recommendation(item: Any, section: str) -> Optional[Recommendation]:
    """Accept either a plain string or a {what, why, how, priority} object."""
    if isinstance(item, str):
        text = item.strip()
        return Recommendation(what=text, section=section) if text else None
    if not isinstance(item, Mapping):
        return None

    what = item.get("what") or item.get("text") or item.get("action")
    if not what:
        return None
    priority = str(item.get("priority", "")).strip().lower().replace(" ", "_")
    return Recommendation(
        what=str(what),
        why=str(item.get("why") or ""),
        how=str(item.get("how") or item.get("example") or ""),
        priority=_PRIORITY_ALIASES.get(priority, PRIORITY_IMPORTANT),
        section=section,
    )


def _insight_from(payload: Mapping[str, Any]) -> str:
    parts = [
        payload.get("positiveInsight") or payload.get("insight") or payload.get("feedback"),
        payload.get("gapAnalysis"),
    ]
    return " ".join(str(part).strip() for part in parts if part)


def parse_section_response(text: str, section: str = "") -> ParsedSection:
    """
    Parse a provider response into a score, recommendations and insight.

    Accepts bare JSON, fenced JSON, or JSON embedded in prose. Recommendations
    are read from "actionItems" (preferred) or "recommendations".

    Args:
        text: Raw provider response
        section: Section name, attached to each recommendation

    Returns:
        ParsedSection. On total parse failure: score DEFAULT_SCORE, no
        recommendations, and the start of the response as the insight.
    """
    payload = extract_json_object(text)
    if payload is None:
        return ParsedSection(
            score=DEFAULT_SCORE,
            recommendations=[],
            raw_insight=(text or "").strip()[:MAX_INSIGHT_CHARS],
            parsed=False,
        )

    score = _coerce_score(payload.get("score"))
    items = payload.get("actionItems") or payload.get("recommendations") or []
    if not isinstance(items, list):
        items = []

    recommendations = []
    for item in items:
        rec = _coerce_recommendation(item, section)
        if rec is not None:
            recommendations.append(rec)

    return ParsedSection(
        score=DEFAULT_SCORE if score is None else score,
        recommendations=recommendations,
        raw_insight=_insight_from(payload),
        parsed=True,
    )


class SectionEvaluator:
    """
    Evaluates one profile section per call through an AI provider.

    Args:
        provider: LLM provider used for every call
        rate_limiter: Shared limiter consulted before each call
        model_hint: Model override passed to the provider (optional)
    """

    def __init__(
        self,
        provider: LLMProvider,
        rate_limiter: RateLimiter,
        model_hint: Optional[str] = None,
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter
        self.model_hint = model_hint

    async def evaluate(
        self, section_name: str, section_data: SectionData, role_context: RoleContext
    ) -> SectionResult:
        """
        Evaluate one section.

        Never blocks on the rate limiter and never raises for provider
        failures: a denied or failed call yields a null-score SectionResult
        carrying the error category (and wait hint for rate limits).
        """
        if not section_data.exists:
            return SectionResult.missing()
        prompt = build_section_prompt(section_name, section_data, role_context)
        return await self._evaluate_prompt(section_name, section_name, prompt)

    async def evaluate_role(
        self,
        role: Mapping[str, Any],
        position: int,
        total_roles: int,
        role_context: RoleContext,
    ) -> SectionResult:
        """
        Evaluate one experience role with its own prompt.

        Same failure contract as evaluate(). Recommendations are tagged with
        the experience section.
        """
        prompt = build_experience_role_prompt(role, position, total_roles, role_context)
        label = f"experience role {position}/{total_roles}"
        return await self._evaluate_prompt(label, EXPERIENCE_SECTION, prompt)

    async def _evaluate_prompt(self, label: str, section_name: str, prompt: str) -> SectionResult:
        provider_name = self.provider.provider_name
        decision = self.rate_limiter.check_limit(provider_name)
        if not decision.allowed:
            _log_warning(
                f"{label}: {provider_name} {decision.reason}, wait {decision.wait_seconds}s"
            )
            return SectionResult.failed(ErrorCategory.RATE_LIMIT, decision.wait_seconds)

        try:
            response_text = await self.provider.send(
                prompt, model_hint=self.model_hint, system_prompt=SECTION_SYSTEM_PROMPT
            )
        except AIProviderError as exc:
            return self._handle_provider_error(label, exc)

        parsed = parse_section_response(response_text, section_name)
        if not parsed.parsed:
            _log_warning(f"{label}: unparsable response, using default score")
        _log_debug(f"{label}: response length {len(response_text)}")

        return SectionResult(
            exists=True,
            score=parsed.score,
            recommendations=tuple(parsed.recommendations),
            raw_insight=parsed.raw_insight,
        )

    def _handle_provider_error(self, label: str, exc: AIProviderError) -> SectionResult:
        _log_warning(f"{label}: {exc}")
        if exc.category is ErrorCategory.RATE_LIMIT:
            wait = exc.retry_after_seconds or DEFAULT_COOLDOWN_SECONDS
            self.rate_limiter.set_cooldown(self.provider.provider_name, wait)
            return SectionResult.failed(ErrorCategory.RATE_LIMIT, wait)
        return SectionResult.failed(exc.category)
