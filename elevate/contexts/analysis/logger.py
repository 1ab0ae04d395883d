"""
Analysis context logger.

Provides logging interface for the analysis context with automatic [analysis] prefix.
All analysis modules should import from this module, not from utils.logger directly.
"""

from pathlib import Path

from loguru import logger

from elevate.utils.logger import setup_logger as _setup_logger

CONTEXT_PREFIX = "[analysis]"


def setup_analysis_logger(log_dir: Path, provider: str = "none", verbose: bool = False) -> Path:
    """
    Setup logger for the analysis context.

    Args:
        log_dir: Directory for this analysis session
        provider: Active AI provider, recorded in the provenance header
        verbose: Echo DEBUG messages to the console too

    Returns:
        Path to log file
    """
    return _setup_logger(
        context_name="analysis",
        log_dir=log_dir,
        extra_provenance={"AI provider": provider},
        console_level="DEBUG" if verbose else "INFO",
    )


# Wrapper functions with automatic [analysis] prefix


def _log_info(message: str) -> None:
    """Log info message with [analysis] prefix."""
    logger.info(f"{CONTEXT_PREFIX} {message}")


def _log_success(message: str) -> None:
    """Log success message with [analysis] prefix."""
    logger.success(f"{CONTEXT_PREFIX} {message}")


def _log_error(message: str) -> None:
    """Log error message with [analysis] prefix."""
    logger.error(f"{CONTEXT_PREFIX} {message}")


def _log_warning(message: str) -> None:
    """Log warning message with [analysis] prefix."""
    logger.warning(f"{CONTEXT_PREFIX} {message}")


def _log_debug(message: str) -> None:
    """Log debug message with [analysis] prefix."""
    logger.debug(f"{CONTEXT_PREFIX} {message}")


# High-level analysis-specific logging helpers


def log_run_start(profile_id: str, force_refresh: bool, ai_active: bool) -> None:
    """Log start of an analysis run."""
    _log_info(f"Starting analysis of {profile_id}")
    _log_debug(f"  force_refresh={force_refresh} ai_active={ai_active}")


def log_section_result(section: str, result, elapsed_time: float) -> None:
    """
    Log the outcome of one section evaluation.

    Args:
        section: Section name
        result: SectionResult from SectionEvaluator.evaluate()
        elapsed_time: Seconds spent on the section
    """
    if result.error:
        hint = f", retry after {result.retry_after_seconds}s" if result.retry_after_seconds else ""
        _log_warning(f"{section}: {result.error.value}{hint} ({elapsed_time:.2f}s)")
    elif not result.exists:
        _log_debug(f"{section}: missing, not evaluated")
    else:
        _log_info(
            f"{section}: score {result.score} with "
            f"{len(result.recommendations)} recommendations ({elapsed_time:.2f}s)"
        )


def log_run_result(profile_id: str, result, elapsed_time: float) -> None:
    """
    Log the final result of an analysis run.

    Args:
        profile_id: Profile identifier
        result: AnalysisResult returned to the caller
        elapsed_time: Seconds spent on the run
    """
    score = "n/a" if result.content_score is None else f"{result.content_score}/10"
    if result.fallback:
        _log_warning(f"{profile_id}: served cached result as fallback ({elapsed_time:.2f}s)")
    elif result.from_cache:
        _log_success(f"{profile_id}: cache hit ({elapsed_time:.2f}s)")
    else:
        _log_success(
            f"{profile_id}: completeness {result.completeness}%, "
            f"content {score} ({elapsed_time:.2f}s)"
        )
    if result.note:
        _log_info(f"  Note: {result.note}")
    if result.needs_reconfiguration:
        _log_error("  API key was rejected; reconfigure credentials")
