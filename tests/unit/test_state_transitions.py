"""Unit tests for the orchestrator's lifecycle state table."""

import warnings
from pathlib import Path

import pytest

from elevate.contexts.analysis import orchestrator
from elevate.contexts.analysis.exceptions import IllegalTransitionError
from elevate.contexts.analysis.orchestrator import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    AnalysisState,
    _RunContext,
)
from elevate.contexts.analysis.presenters import RecordingPresenter

S = AnalysisState


def _context():
    presenter = RecordingPresenter()
    return _RunContext(profile_id="jane-doe", presenter=presenter), presenter


@pytest.mark.unit
def test_every_state_has_a_row():
    assert set(ALLOWED_TRANSITIONS) == set(AnalysisState)


@pytest.mark.unit
def test_terminal_states_have_no_exits():
    for state in TERMINAL_STATES:
        assert ALLOWED_TRANSITIONS[state] == frozenset()


@pytest.mark.unit
@pytest.mark.parametrize(
    "state", [S.SCANNING, S.EXTRACTING, S.CALCULATING, S.AI_ANALYZING]
)
def test_working_states_can_recover(state):
    assert {S.FALLBACK_TO_CACHE, S.COMPLETE, S.ERROR} <= ALLOWED_TRANSITIONS[state]


@pytest.mark.unit
def test_cache_states_only_complete():
    assert ALLOWED_TRANSITIONS[S.CACHE_LOADED] == {S.COMPLETE}
    assert ALLOWED_TRANSITIONS[S.FALLBACK_TO_CACHE] == {S.COMPLETE}


@pytest.mark.unit
def test_run_must_start_with_scanning():
    ctx, presenter = _context()

    with pytest.raises(IllegalTransitionError, match="START -> EXTRACTING"):
        ctx.transition(S.EXTRACTING)

    assert presenter.transitions == []


@pytest.mark.unit
def test_illegal_jump_rejected():
    ctx, presenter = _context()
    ctx.transition(S.SCANNING)

    with pytest.raises(IllegalTransitionError, match="SCANNING -> AI_ANALYZING"):
        ctx.transition(S.AI_ANALYZING)

    assert ctx.state is S.SCANNING
    assert presenter.states == [S.SCANNING]


@pytest.mark.unit
def test_payload_reaches_presenter_with_profile_id():
    ctx, presenter = _context()
    ctx.transition(S.SCANNING)
    ctx.transition(S.EXTRACTING)
    ctx.transition(S.CALCULATING)
    ctx.transition(S.AI_ANALYZING, completed=0, total=4)
    ctx.transition(S.AI_ANALYZING, section="about", completed=1, total=4, retry_after_seconds=None)

    assert presenter.payloads_for(S.AI_ANALYZING)[1] == {
        "profile_id": "jane-doe",
        "section": "about",
        "completed": 1,
        "total": 4,
        "retry_after_seconds": None,
    }


@pytest.mark.unit
def test_nothing_follows_complete():
    ctx, _ = _context()
    ctx.transition(S.SCANNING)
    ctx.transition(S.COMPLETE)

    with pytest.raises(IllegalTransitionError):
        ctx.transition(S.ERROR)


@pytest.mark.unit
def test_module_compiles_without_escape_warnings():
    source = Path(orchestrator.__file__).read_text(encoding="utf-8")

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, orchestrator.__file__, "exec")

    assert "+-> CACHE_LOADED -> COMPLETE" in orchestrator.__doc__
