"""
LLM provider abstraction and response parsing utilities.

Provides a provider-agnostic async interface for LLM API calls, a typed error
taxonomy for provider failures, automatic retries on overloaded services, and
utilities for pulling structured JSON out of free-form responses.
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

# Retry configuration (SERVICE_UNAVAILABLE only)
MAX_RETRIES = 3
BASE_DELAY = 1.0

DEFAULT_MAX_TOKENS = 3200
DEFAULT_TEMPERATURE = 0.1

DEFAULT_SYSTEM_PROMPT = "You are an experienced career coach. Respond with JSON only."

T = TypeVar("T")


# --- Error taxonomy ---


class ErrorCategory(str, Enum):
    """Category of a failed provider call, derived from the reported status."""

    AUTH = "AUTH"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK = "NETWORK"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    GENERIC = "GENERIC"

    @property
    def is_transient(self) -> bool:
        """True for failures worth retrying later without reconfiguration."""
        return self in (
            ErrorCategory.RATE_LIMIT,
            ErrorCategory.NETWORK,
            ErrorCategory.SERVICE_UNAVAILABLE,
        )


def categorize_status(status_code: Optional[int]) -> ErrorCategory:
    """
    Map an HTTP status reported by a provider to an ErrorCategory.

    Args:
        status_code: HTTP status code (None when no response was received)

    Returns:
        ErrorCategory for the status
    """
    if status_code is None:
        return ErrorCategory.NETWORK
    if status_code in (401, 403):
        return ErrorCategory.AUTH
    if status_code == 429:
        return ErrorCategory.RATE_LIMIT
    if status_code >= 500:
        return ErrorCategory.SERVICE_UNAVAILABLE
    return ErrorCategory.GENERIC


class AIProviderError(Exception):
    """
    Exception raised when a provider call fails.

    Attributes:
        message: Error description
        category: ErrorCategory of the failure
        provider: Provider prefix (e.g., "openai")
        status_code: HTTP status reported by the provider, if any
        retry_after_seconds: Wait hint for RATE_LIMIT failures
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.GENERIC,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after_seconds: Optional[int] = None,
    ):
        self.message = message
        self.category = category
        self.provider = provider
        self.status_code = status_code
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"[{category.value}] {message}")


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    """Parse a retry-after header value (seconds) into whole seconds."""
    if not value:
        return None
    try:
        return max(1, int(float(value) + 0.999))
    except ValueError:
        return None


def _translate_sdk_error(exc: Exception, sdk, provider: str) -> AIProviderError:
    """
    Convert an OpenAI/Anthropic SDK exception into an AIProviderError.

    Both SDKs expose the same hierarchy: APIStatusError (has status_code and
    response) and APIConnectionError (no response, includes timeouts).
    """
    if isinstance(exc, sdk.APIStatusError):
        retry_after = _parse_retry_after(exc.response.headers.get("retry-after"))
        return AIProviderError(
            f"{provider} API error: {exc.status_code} {exc.message}",
            category=categorize_status(exc.status_code),
            provider=provider,
            status_code=exc.status_code,
            retry_after_seconds=retry_after,
        )
    if isinstance(exc, sdk.APIConnectionError):
        return AIProviderError(
            f"Unable to connect to {provider}: {exc}",
            category=ErrorCategory.NETWORK,
            provider=provider,
        )
    return AIProviderError(str(exc), category=ErrorCategory.GENERIC, provider=provider)


async def _retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    error_message: str,
) -> T:
    """
    Await operation with exponential backoff while the service is unavailable.

    Only SERVICE_UNAVAILABLE is retried here. Rate limits are left to the
    caller, which owns cooldown bookkeeping.

    Args:
        operation: Coroutine factory that performs the API request
        error_message: Message prefix for retry logging (e.g., "API overloaded")
    """
    for attempt in range(MAX_RETRIES):
        try:
            return await operation()
        except AIProviderError as exc:
            if exc.category is not ErrorCategory.SERVICE_UNAVAILABLE or attempt == MAX_RETRIES - 1:
                raise
            delay = BASE_DELAY * (2**attempt)
            logger.warning(
                f"{error_message}, retrying in {delay:.1f}s... "
                f"(attempt {attempt + 1}/{MAX_RETRIES})"
            )
            await asyncio.sleep(delay)


# --- LLM Provider Classes ---


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    model: str
    input_tokens: int
    output_tokens: int


class LLMProvider(ABC):
    """
    Abstract base for async LLM providers.

    Subclasses must:
    - Set _provider_prefix class attribute (e.g., "anthropic", "openai")
    - Set _retry_message for logging during retries
    - Implement _call_api() and raise AIProviderError on failure
    - Call update_model(model) in __init__ to set model and name
    """

    _provider_prefix: str
    _retry_message: str

    name: str
    model: str

    @property
    def provider_name(self) -> str:
        return self._provider_prefix

    def update_model(self, model: str):
        """Update the model and refresh the provider name."""
        self.model = model
        self.name = f"{self._provider_prefix}/{model}"

    @abstractmethod
    async def _call_api(self, system_prompt: str, user_prompt: str, model: str) -> LLMResponse:
        """Make a single API call (no retries). Implemented by subclasses."""
        pass

    async def generate(
        self, system_prompt: str, user_prompt: str, model: Optional[str] = None
    ) -> LLMResponse:
        """Generate a response, retrying while the service reports it is unavailable."""
        response = await _retry_with_backoff(
            partial(self._call_api, system_prompt, user_prompt, model or self.model),
            self._retry_message,
        )
        logger.debug(
            f"{self.name} token usage: {response.input_tokens} in / {response.output_tokens} out"
        )
        return response

    async def send(
        self,
        prompt: str,
        model_hint: Optional[str] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> str:
        """
        Send a prompt and return the response text.

        Args:
            prompt: User prompt
            model_hint: Model override for this call (default: provider model)
            system_prompt: System prompt

        Raises:
            AIProviderError: With a categorized failure
        """
        response = await self.generate(system_prompt, prompt, model=model_hint)
        return response.content or ""


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider."""

    _provider_prefix = "anthropic"
    _retry_message = "API overloaded"

    def __init__(self, api_key: str, model: str = "claude-3-5-haiku-latest"):
        # Lazy import - anthropic SDK is heavy, only load if this provider is used
        import anthropic

        self._sdk = anthropic
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.update_model(model)

    async def _call_api(self, system_prompt: str, user_prompt: str, model: str) -> LLMResponse:
        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=DEFAULT_MAX_TOKENS,
                temperature=DEFAULT_TEMPERATURE,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except self._sdk.APIError as exc:
            raise _translate_sdk_error(exc, self._sdk, self._provider_prefix) from exc

        return LLMResponse(
            content=response.content[0].text if response.content else "",
            model=model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    _provider_prefix = "openai"
    _retry_message = "Service unavailable"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        # Lazy import - openai SDK is heavy, only load if this provider is used
        import openai

        self._sdk = openai
        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.update_model(model)

    async def _call_api(self, system_prompt: str, user_prompt: str, model: str) -> LLMResponse:
        try:
            response = await self.client.chat.completions.create(
                model=model,
                max_tokens=DEFAULT_MAX_TOKENS,
                temperature=DEFAULT_TEMPERATURE,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except self._sdk.APIError as exc:
            raise _translate_sdk_error(exc, self._sdk, self._provider_prefix) from exc

        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=model,
            input_tokens=response.usage.prompt_tokens,
            output_tokens=response.usage.completion_tokens,
        )


# --- Provider Factory ---

SUPPORTED_PROVIDERS = ("openai", "anthropic")


def get_provider(provider_name: str, api_key: str, model: Optional[str] = None) -> LLMProvider:
    """
    Get an LLM provider instance.

    Args:
        provider_name: "anthropic" or "openai"
        api_key: Provider API key (from the credential store)
        model: Model name (default: provider-specific default)

    Returns:
        LLMProvider instance
    """
    provider_name = provider_name.lower()

    if provider_name == "anthropic":
        return AnthropicProvider(api_key, model=model) if model else AnthropicProvider(api_key)
    elif provider_name == "openai":
        return OpenAIProvider(api_key, model=model) if model else OpenAIProvider(api_key)
    else:
        raise ValueError(f"Unknown provider: {provider_name}. Use 'anthropic' or 'openai'")


_KEY_CHECK_MESSAGES = {
    ErrorCategory.AUTH: "Invalid API key",
    ErrorCategory.RATE_LIMIT: "Rate limit exceeded",
    ErrorCategory.NETWORK: "Unable to connect to the AI service",
    ErrorCategory.SERVICE_UNAVAILABLE: "AI service is temporarily unavailable",
}


async def check_api_key(provider: LLMProvider) -> tuple[bool, str]:
    """
    Validate a provider's API key with a tiny request.

    Returns:
        Tuple of (valid, human-readable message)
    """
    try:
        await provider.send('Say "API key validated successfully" in exactly 5 words.')
    except AIProviderError as exc:
        return False, _KEY_CHECK_MESSAGES.get(exc.category, exc.message)
    return True, f"{provider.name} API key is valid"


# --- Response Parsing Utilities ---

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def extract_json_object(text: str) -> Optional[dict]:
    """
    Parse a JSON object from an LLM response with robust fallback parsing.

    Tries, in order: the whole text, a fenced ```json block, and the span from
    the first '{' to the last '}' (for objects wrapped in prose).

    Args:
        text: LLM response text

    Returns:
        Parsed dict, or None if no object could be recovered
    """
    if not text:
        return None
    text = text.strip()

    candidates = [text]
    candidates.extend(match.group(1).strip() for match in _FENCED_BLOCK.finditer(text))
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            result = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(result, dict):
            return result

    return None
