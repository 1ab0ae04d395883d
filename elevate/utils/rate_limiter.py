"""
Per-provider request rate limiting.

Sliding-window admission control plus an explicit cooldown that is set after
a provider reports throttling. The limiter never blocks: callers get a
decision with a wait hint and decide what to do with it.
"""

import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional


@dataclass(frozen=True)
class RateLimit:
    """Ceiling of max_requests within a trailing window of window_seconds."""

    max_requests: int
    window_seconds: float = 60.0


DEFAULT_PROVIDER_LIMITS = {
    "openai": RateLimit(max_requests=10, window_seconds=60.0),
    "anthropic": RateLimit(max_requests=5, window_seconds=60.0),
}


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Result of an admission check.

    Attributes:
        allowed: Whether the call may proceed
        wait_seconds: Seconds until a call would be admitted (0 when allowed)
        reason: "cooldown" or "rate_limit" when denied
    """

    allowed: bool
    wait_seconds: int = 0
    reason: Optional[str] = None


@dataclass
class RateLimitState:
    """Mutable per-provider state. Only RateLimiter touches it."""

    window_requests: List[float] = field(default_factory=list)
    cooldown_until: Optional[float] = None


class RateLimiter:
    """
    Tracks outstanding requests per AI provider and admits or rejects calls.

    State lives for the lifetime of the instance (one per process is the
    intended use) and is shared by concurrent analysis runs; every operation
    holds a lock so the window list is updated atomically.

    Args:
        limits: Per-provider limits (default: DEFAULT_PROVIDER_LIMITS)
        clock: Monotonic time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        limits: Optional[Dict[str, RateLimit]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limits = dict(DEFAULT_PROVIDER_LIMITS if limits is None else limits)
        self._clock = clock
        self._states: Dict[str, RateLimitState] = {name: RateLimitState() for name in self.limits}
        self._lock = threading.Lock()

    def check_limit(self, provider: str) -> RateLimitDecision:
        """
        Check whether a call to provider may proceed, recording it if so.

        Unknown providers are always admitted.
        """
        limit = self.limits.get(provider)
        if limit is None:
            return RateLimitDecision(allowed=True)

        with self._lock:
            state = self._states[provider]
            now = self._clock()

            if state.cooldown_until is not None:
                if now < state.cooldown_until:
                    return RateLimitDecision(
                        allowed=False,
                        wait_seconds=_ceil_seconds(state.cooldown_until - now),
                        reason="cooldown",
                    )
                state.cooldown_until = None

            state.window_requests = [
                t for t in state.window_requests if now - t < limit.window_seconds
            ]

            if len(state.window_requests) >= limit.max_requests:
                oldest = min(state.window_requests)
                return RateLimitDecision(
                    allowed=False,
                    wait_seconds=_ceil_seconds(oldest + limit.window_seconds - now),
                    reason="rate_limit",
                )

            state.window_requests.append(now)
            return RateLimitDecision(allowed=True)

    def set_cooldown(self, provider: str, seconds: float) -> None:
        """Reject every call to provider for the next `seconds` seconds."""
        if provider not in self.limits:
            return
        with self._lock:
            state = self._states[provider]
            until = self._clock() + seconds
            # Never shorten an active cooldown
            if state.cooldown_until is None or until > state.cooldown_until:
                state.cooldown_until = until

    def snapshot(self, provider: str) -> Optional[RateLimitState]:
        """Copy of the provider's current state (for diagnostics)."""
        if provider not in self._states:
            return None
        with self._lock:
            state = self._states[provider]
            return RateLimitState(list(state.window_requests), state.cooldown_until)


def _ceil_seconds(seconds: float) -> int:
    return max(1, math.ceil(seconds))
