"""
API key lookup for AI providers.

The analysis core only asks "is there a key for this provider?"; storage and
encryption of keys are the host application's concern. A missing key is
treated exactly like AI being disabled.
"""

import os
import re
from abc import ABC, abstractmethod
from typing import Dict, Optional

from dotenv import load_dotenv
from loguru import logger

load_dotenv()

PROVIDER_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E]")


def clean_api_key(raw_key: Optional[str]) -> Optional[str]:
    """
    Strip whitespace and non-printable characters from a stored key.

    Returns None when nothing usable is left.
    """
    if not raw_key:
        return None
    cleaned = _NON_PRINTABLE.sub("", raw_key.strip())
    if len(cleaned) < len(raw_key.strip()) - 2:
        logger.warning("API key contained non-ASCII characters that were removed")
    return cleaned or None


class CredentialStore(ABC):
    """Source of provider API keys."""

    @abstractmethod
    def _lookup(self, provider: str) -> Optional[str]:
        pass

    def get_api_key(self, provider: str) -> Optional[str]:
        """Return the cleaned API key for provider, or None if absent."""
        return clean_api_key(self._lookup(provider))


class EnvCredentialStore(CredentialStore):
    """Reads keys from environment variables (populated from .env)."""

    def __init__(self, env_vars: Optional[Dict[str, str]] = None):
        self.env_vars = env_vars or PROVIDER_KEY_ENV_VARS

    def _lookup(self, provider: str) -> Optional[str]:
        env_var = self.env_vars.get(provider)
        return os.getenv(env_var) if env_var else None


class StaticCredentialStore(CredentialStore):
    """Fixed provider -> key mapping (tests and embedding applications)."""

    def __init__(self, keys: Optional[Dict[str, str]] = None):
        self.keys = dict(keys or {})

    def _lookup(self, provider: str) -> Optional[str]:
        return self.keys.get(provider)
