"""Custom exceptions for the analysis context."""

from typing import Optional


class ExtractionFailure(Exception):
    """
    Raised by an extractor when a section cannot be scanned or extracted.

    Non-fatal: the orchestrator records the section as absent.

    Attributes:
        section: Section name
        message: Error description
    """

    def __init__(self, section: str, message: str):
        self.section = section
        self.message = message
        super().__init__(f"{section}: {message}")


class SynthesisFailure(Exception):
    """
    Raised when an external synthesis call fails or returns an unusable payload.

    Never surfaced to callers; synthesis falls back to the deterministic
    weighted-average algorithm.
    """

    pass


class AnalysisTimeout(Exception):
    """Raised when a run exceeds its whole-run ceiling."""

    def __init__(self, profile_id: str, timeout_seconds: float):
        self.profile_id = profile_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Analysis of {profile_id} exceeded {timeout_seconds:.0f}s")


class AnalysisFailedError(Exception):
    """
    Raised when a run fails and no cached result is available as a fallback.

    Attributes:
        profile_id: Profile identifier
        message: Error message of the underlying failure, verbatim
    """

    def __init__(self, profile_id: str, message: str, cause: Optional[BaseException] = None):
        self.profile_id = profile_id
        self.message = message
        self.cause = cause
        super().__init__(message)


class IllegalTransitionError(RuntimeError):
    """Raised when the orchestrator attempts a transition its state table forbids."""

    pass


class CorruptCacheEntry(Exception):
    """
    Raised when a stored cache row cannot be decoded into an AnalysisResult.

    The orchestrator treats it as a cache miss.

    Attributes:
        fingerprint: Key of the unreadable row
        message: Decode error description
    """

    def __init__(self, fingerprint: str, message: str):
        self.fingerprint = fingerprint
        self.message = message
        super().__init__(f"Unreadable cache entry {fingerprint[:12]}: {message}")
