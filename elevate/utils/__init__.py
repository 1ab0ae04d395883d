"""
Shared utilities for ELEVATE.

Common functionality used across contexts:
- LLM providers and the provider error taxonomy
- Per-provider rate limiting
- API key lookup
- Logging (loguru setup and the JSONL event log)
"""

from elevate.utils.timestamp import epoch_millis, now, now_exact

__all__ = ["epoch_millis", "now", "now_exact"]
