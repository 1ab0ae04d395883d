"""
Prompt construction for per-section evaluation and cross-section synthesis.

Wording is deliberately plain; the parsing side (section_evaluator,
synthesis) tolerates any response that contains the requested JSON object.
"""

import json
from typing import Any, Mapping

from elevate.contexts.analysis.data_structures import RoleContext, SectionData, SectionResult
from elevate.contexts.analysis.experience import (
    has_quantified_achievements,
    is_current_role,
    mentions_tech_stack,
    role_description,
    role_title,
)

# Section content longer than this is truncated before it is sent
MAX_CONTENT_CHARS = 8000

# =============================================================================
# PROMPT TEMPLATES
# =============================================================================

SECTION_SYSTEM_PROMPT = """\
You are an experienced career coach who optimizes professional profiles.
Be honest but constructive. Return ONLY a JSON object in the requested format."""

_SECTION_PROMPT_TEMPLATE = """\
Evaluate the {section_upper} section of a professional profile.

Target role: {target_role}
Seniority level: {seniority_level}
{custom_block}
Focus: {focus}

{section_upper} CONTENT:
{content}

{response_format}"""

_ROLE_PROMPT_TEMPLATE = """\
Evaluate the EXPERIENCE section of a professional profile, one role at a time.
This is role {position} of {total_roles}, most recent first.

Target role: {target_role}
Seniority level: {seniority_level}
{custom_block}
Focus: Quantified impact, scope, and how well this role positions the candidate
for the target role.

ROLE DETAILS:
Title: {title}
Company: {company}
Duration: {duration}{current_marker}
Location: {location}

DESCRIPTION:
{description}

CONTENT SIGNALS:
- Description length: {description_length} characters
- Has quantified achievements: {quantified}
- Mentions tech stack: {tech_stack}

{response_format}"""

_RESPONSE_FORMAT = """\
Respond with a JSON object:
{
  "score": <number 0-10, where 10 is ideal for the target role>,
  "positiveInsight": "<what is working, specific to the content>",
  "gapAnalysis": "<what is missing for the target role>",
  "actionItems": [
    {"what": "<change>", "why": "<impact>", "how": "<concrete guidance>", "priority": "high|medium|low"}
  ]
}"""

SYNTHESIS_SYSTEM_PROMPT = """\
You are an experienced career coach. Combine per-section profile evaluations
into a short overall assessment. Return ONLY a JSON object."""

_SYNTHESIS_PROMPT_TEMPLATE = """\
Target role: {target_role} ({seniority_level})

Per-section evaluations:
{sections_json}

Respond with a JSON object:
{{
  "insights": "<2-4 sentence overall assessment>",
  "recommendations": {{
    "critical": [{{"what": "...", "why": "...", "how": "...", "section": "..."}}],
    "important": [...],
    "nice_to_have": [...]
  }}
}}"""

# =============================================================================
# SECTION FOCUS
# =============================================================================

_SECTION_FOCUS = {
    "headline": "Keyword coverage, clarity of value proposition, and fit with the target role.",
    "about": "Narrative, evidence of impact, keywords, and a clear call to action.",
    "experience": "Quantified achievements, scope, progression, and relevance of each role.",
    "skills": "Coverage of the target role's core and strategic skills, and ordering.",
    "education": "Relevance of degrees and fields, and completeness of details.",
    "recommendations": "Recency, seniority of recommenders, and specificity of praise.",
    "certifications": "Relevance and currency of certifications for the target role.",
    "projects": "Relevance, outcomes, and clarity of each project description.",
}

_DEFAULT_FOCUS = "Overall quality and relevance to the target role."

_NOT_SPECIFIED = "Not specified"


def _custom_block(role_context: RoleContext) -> str:
    if not role_context.custom_instructions:
        return ""
    return f"Additional context: {role_context.custom_instructions}\n"


def build_section_prompt(
    section_name: str, section_data: SectionData, role_context: RoleContext
) -> str:
    """
    Build the user prompt for evaluating one section.

    Args:
        section_name: Section being evaluated (e.g., "about")
        section_data: Extracted section content
        role_context: Target role, seniority and custom instructions

    Returns:
        User prompt string for the provider
    """
    content = json.dumps(section_data.to_prompt_payload(), indent=2, default=str)
    return _SECTION_PROMPT_TEMPLATE.format(
        section_upper=section_name.upper(),
        target_role=role_context.target_role,
        seniority_level=role_context.seniority_level,
        custom_block=_custom_block(role_context),
        focus=_SECTION_FOCUS.get(section_name, _DEFAULT_FOCUS),
        content=content[:MAX_CONTENT_CHARS],
        response_format=_RESPONSE_FORMAT,
    )


def build_experience_role_prompt(
    role: Mapping[str, Any], position: int, total_roles: int, role_context: RoleContext
) -> str:
    """
    Build the user prompt for evaluating one experience role.

    Args:
        role: One experience item (title, company, duration, location, description, ...)
        position: 1-based position of the role, 1 being the most recent
        total_roles: Number of roles in the experience section
        role_context: Target role, seniority and custom instructions

    Returns:
        User prompt string for the provider
    """
    description = role_description(role)
    return _ROLE_PROMPT_TEMPLATE.format(
        position=position,
        total_roles=total_roles,
        target_role=role_context.target_role,
        seniority_level=role_context.seniority_level,
        custom_block=_custom_block(role_context),
        title=role_title(role) or _NOT_SPECIFIED,
        company=role.get("company") or _NOT_SPECIFIED,
        duration=role.get("duration") or _NOT_SPECIFIED,
        current_marker=" (current role)" if is_current_role(role) else "",
        location=role.get("location") or _NOT_SPECIFIED,
        description=description[:MAX_CONTENT_CHARS] or "No description provided",
        description_length=len(description),
        quantified="yes" if has_quantified_achievements(role) else "no",
        tech_stack="yes" if mentions_tech_stack(role) else "no",
        response_format=_RESPONSE_FORMAT,
    )


def build_synthesis_prompt(
    section_scores: Mapping[str, SectionResult], role_context: RoleContext
) -> str:
    """Build the user prompt asking the provider to synthesize section results."""
    summary = {
        name: {
            "exists": result.exists,
            "score": result.score,
            "insight": result.raw_insight,
            "actions": [rec.what for rec in result.recommendations],
        }
        for name, result in section_scores.items()
    }
    return _SYNTHESIS_PROMPT_TEMPLATE.format(
        target_role=role_context.target_role,
        seniority_level=role_context.seniority_level,
        sections_json=json.dumps(summary, indent=2)[:MAX_CONTENT_CHARS],
    )
