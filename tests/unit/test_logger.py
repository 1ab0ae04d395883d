"""Unit tests for run log setup."""

import pytest
from loguru import logger

from elevate.contexts.analysis.logger import _log_debug, _log_info, setup_analysis_logger


@pytest.mark.unit
def test_run_log_has_provenance_and_prefix(tmp_path):
    log_file = setup_analysis_logger(tmp_path / "analysis_run", provider="anthropic")

    _log_info("Starting analysis of jane-doe")
    _log_debug("force_refresh=False")
    logger.remove()

    text = log_file.read_text()
    assert log_file.name == "analysis.log"
    assert "Context: analysis" in text
    assert "AI provider: anthropic" in text
    assert "[analysis] Starting analysis of jane-doe" in text
    assert "[analysis] force_refresh=False" in text
