"""
ELEVATE - Evaluates LinkedIn-style profiles And Turns Evidence into recommendations

Analyzes a structured profile snapshot and produces a completeness percentage
plus an optional AI-derived content-quality score with prioritized
recommendations.

Architecture:
- Intake Context: Section extraction contracts and profile export loading
- Analysis Context: Completeness scoring, per-section AI evaluation, caching,
  synthesis, and the orchestration lifecycle
- Utils: LLM providers, rate limiting, credentials, logging
"""

__version__ = "0.1.0"
