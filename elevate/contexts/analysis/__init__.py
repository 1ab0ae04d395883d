"""
Analysis Context

Responsibilities:
- Scores profile completeness locally
- Evaluates sections through an AI provider under per-provider rate limits
- Synthesizes section results into an overall score and prioritized recommendations
- Caches results by content fingerprint and falls back to them on failure
- Drives the analysis lifecycle and reports it to a presenter

Owns: Scoring, synthesis, caching and orchestration
Never: Reads profile sources directly (extractors are injected by the Intake context)
"""
