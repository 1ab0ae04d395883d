"""
Loguru setup shared by every context (Tier 1, per-run detailed logs).

Each run gets its own directory holding a single DEBUG-level log file; the
console only shows console_level and above. Contexts wrap this in
contexts/{context}/logger.py and add their own message prefix.
"""

import os
import sys
from pathlib import Path
from typing import Mapping, Optional

from loguru import logger

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {message}"
CONSOLE_FORMAT = "{time:HH:mm:ss} | <level>{level: <7}</level> | <level>{message}</level>"

LEVEL_COLORS = {
    "DEBUG": "<dim>",
    "WARNING": "<yellow>",
    "ERROR": "<red>",
    "CRITICAL": "<bold><red>",
}


def setup_logger(
    context_name: str,
    log_dir: Path,
    extra_provenance: Optional[Mapping[str, object]] = None,
    console_level: str = "INFO",
) -> Path:
    """
    Route loguru output to a run log file and the console.

    Args:
        context_name: Context identifier, used as the log file name (e.g., "analysis")
        log_dir: Directory for this run (created if missing)
        extra_provenance: Extra key-value pairs for the provenance header
        console_level: Minimum level echoed to stdout ("DEBUG" for verbose runs)

    Returns:
        Path to the log file

    Example:
        log_file = setup_logger(
            context_name="analysis",
            log_dir=Path("outs/logs/analysis_20251114_123456"),
            extra_provenance={"AI provider": "openai"},
        )
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{context_name}.log"

    logger.remove()
    for level_name, color in LEVEL_COLORS.items():
        logger.level(level_name, color=color)

    logger.add(log_file, format=FILE_FORMAT, level="DEBUG", encoding="utf-8")
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=console_level.upper(), colorize=True)

    log_provenance(context_name, extra_provenance)
    return log_file


def log_provenance(context_name: str, extra_context: Optional[Mapping[str, object]] = None) -> None:
    """Write a header describing how this run was invoked."""
    rule = "-" * 80
    logger.info(rule)
    logger.info(f"Context: {context_name} (pid {os.getpid()})")
    logger.info(f"Command: {' '.join(sys.argv)}")
    logger.info(f"Working directory: {Path.cwd()}")
    logger.info(f"Python: {sys.version.split()[0]}")
    for key, value in (extra_context or {}).items():
        logger.info(f"{key}: {value}")
    logger.info(rule)
