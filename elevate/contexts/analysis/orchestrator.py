"""
Analysis orchestration.

ProfileAnalyzer sequences one analysis run:

    SCANNING -> EXTRACTING -> CALCULATING -> AI_ANALYZING -> COMPLETE
        +-> CACHE_LOADED -> COMPLETE                  (fingerprint hit)
    any non-terminal state -> FALLBACK_TO_CACHE -> COMPLETE   (recoverable failure)
    any non-terminal state -> ERROR                           (no fallback available)

Sections are evaluated one provider call at a time; experience gets one call
per role, and the role results also feed a career-trajectory insight. Every
transition is checked against ALLOWED_TRANSITIONS and reported to the
presenter. Run state lives in a per-run context object, so one analyzer can
serve concurrent runs; only the cache store and rate limiter are shared.

Usage:
    analyzer = ProfileAnalyzer(
        extractors=load_profile_extractors("data/sample_profile.yaml"),
        cache=SQLiteCacheStore("outs/cache/analysis.db"),
        rate_limiter=RateLimiter(),
        credentials=EnvCredentialStore(),
    )
    result = asyncio.run(analyzer.run_analysis("jane-doe", load_analysis_config()))
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional

from elevate.contexts.analysis.cache_store import CacheStore, compute_fingerprint
from elevate.contexts.analysis.completeness import CompletenessResult, calculate_completeness
from elevate.contexts.analysis.config import AnalysisConfig
from elevate.contexts.analysis.data_structures import (
    AnalysisResult,
    ProfileSnapshot,
    RecommendationBuckets,
    ScanResult,
    SectionData,
    SectionResult,
)
from elevate.contexts.analysis.experience import (
    EXPERIENCE_SECTION,
    RoleEvaluation,
    aggregate_role_results,
    summarize_career_trajectory,
)
from elevate.contexts.analysis.exceptions import (
    AnalysisFailedError,
    AnalysisTimeout,
    CorruptCacheEntry,
    IllegalTransitionError,
)
from elevate.contexts.analysis.logger import (
    _log_debug,
    _log_error,
    _log_info,
    _log_warning,
    log_run_result,
    log_run_start,
    log_section_result,
)
from elevate.contexts.analysis.presenters import NullPresenter, Presenter
from elevate.contexts.analysis.section_evaluator import SectionEvaluator
from elevate.contexts.analysis.synthesis import (
    SynthesisResult,
    section_weight,
    synthesize,
    synthesize_with_provider,
)
from elevate.contexts.intake.extractors import SectionExtractor
from elevate.utils.credentials import CredentialStore
from elevate.utils.llm import ErrorCategory, LLMProvider, get_provider
from elevate.utils.rate_limiter import RateLimiter
from elevate.utils.timestamp import now_exact

# Sections with no text content worth sending to a provider
NON_EVALUATED_SECTIONS = frozenset({"photo"})


class AnalysisState(str, Enum):
    SCANNING = "SCANNING"
    EXTRACTING = "EXTRACTING"
    CALCULATING = "CALCULATING"
    AI_ANALYZING = "AI_ANALYZING"
    CACHE_LOADED = "CACHE_LOADED"
    FALLBACK_TO_CACHE = "FALLBACK_TO_CACHE"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


TERMINAL_STATES = frozenset({AnalysisState.COMPLETE, AnalysisState.ERROR})

_RECOVERY = {AnalysisState.FALLBACK_TO_CACHE, AnalysisState.COMPLETE, AnalysisState.ERROR}

ALLOWED_TRANSITIONS: Dict[AnalysisState, frozenset] = {
    AnalysisState.SCANNING: frozenset(
        {AnalysisState.CACHE_LOADED, AnalysisState.EXTRACTING} | _RECOVERY
    ),
    AnalysisState.CACHE_LOADED: frozenset({AnalysisState.COMPLETE}),
    AnalysisState.EXTRACTING: frozenset({AnalysisState.CALCULATING} | _RECOVERY),
    AnalysisState.CALCULATING: frozenset({AnalysisState.AI_ANALYZING} | _RECOVERY),
    # Self-transition carries per-section progress
    AnalysisState.AI_ANALYZING: frozenset({AnalysisState.AI_ANALYZING} | _RECOVERY),
    AnalysisState.FALLBACK_TO_CACHE: frozenset({AnalysisState.COMPLETE}),
    AnalysisState.COMPLETE: frozenset(),
    AnalysisState.ERROR: frozenset(),
}


@dataclass
class _RunContext:
    """Mutable state of a single run."""

    profile_id: str
    presenter: Presenter
    state: Optional[AnalysisState] = None
    fingerprint: Optional[str] = None
    completeness: Optional[CompletenessResult] = None
    section_scores: Dict[str, SectionResult] = field(default_factory=dict)
    role_evaluations: List[RoleEvaluation] = field(default_factory=list)
    provider_calls: int = 0

    def transition(self, new_state: AnalysisState, **payload) -> None:
        if self.state is None:
            allowed = new_state is AnalysisState.SCANNING
        else:
            allowed = new_state in ALLOWED_TRANSITIONS[self.state]
        if not allowed:
            current = self.state.value if self.state else "START"
            raise IllegalTransitionError(f"{current} -> {new_state.value}")

        self.state = new_state
        self.presenter.set_state(new_state, {"profile_id": self.profile_id, **payload})


class ProfileAnalyzer:
    """
    Runs profile analyses end to end.

    Args:
        extractors: Section name -> extractor, in evaluation order
        cache: Cache store shared across runs
        rate_limiter: Rate limiter shared across runs
        credentials: Source of provider API keys
        presenter: Lifecycle sink (default: NullPresenter)
        provider_factory: Builds an LLMProvider from (name, api_key, model)
    """

    def __init__(
        self,
        extractors: Mapping[str, SectionExtractor],
        cache: CacheStore,
        rate_limiter: RateLimiter,
        credentials: CredentialStore,
        presenter: Optional[Presenter] = None,
        provider_factory: Callable[..., LLMProvider] = get_provider,
    ):
        self.extractors = dict(extractors)
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.credentials = credentials
        self.presenter = presenter or NullPresenter()
        self.provider_factory = provider_factory

    async def run_analysis(
        self,
        profile_id: str,
        config: AnalysisConfig,
        force_refresh: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AnalysisResult:
        """
        Analyze a profile.

        Args:
            profile_id: Profile identifier (cache scope)
            config: Settings for this run
            force_refresh: Skip the cache lookup (the result still overwrites it)
            cancel_event: Set to stop issuing provider calls; the partial
                result is returned and not cached

        Returns:
            AnalysisResult (from_cache / fallback / note describe how it was produced)

        Raises:
            AnalysisFailedError: If the run failed and no cached result exists
        """
        ctx = _RunContext(profile_id=profile_id, presenter=self.presenter)
        cancel_event = cancel_event or asyncio.Event()
        start_time = time.time()

        ctx.transition(AnalysisState.SCANNING)

        try:
            provider = self._resolve_provider(config)
            log_run_start(profile_id, force_refresh, ai_active=provider is not None)
            result = await self._run_with_timeout(ctx, config, provider, force_refresh, cancel_event)
        except AnalysisTimeout as exc:
            result = self._handle_timeout(ctx, exc)
        except IllegalTransitionError:
            raise
        except Exception as exc:
            result = self._handle_failure(ctx, exc)

        log_run_result(profile_id, result, time.time() - start_time)
        return result

    async def _run_with_timeout(self, ctx, config, provider, force_refresh, cancel_event):
        try:
            return await asyncio.wait_for(
                self._pipeline(ctx, config, provider, force_refresh, cancel_event),
                timeout=config.run_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise AnalysisTimeout(ctx.profile_id, config.run_timeout_seconds) from exc

    def _resolve_provider(self, config: AnalysisConfig) -> Optional[LLMProvider]:
        """Provider for this run, or None when AI evaluation is inactive."""
        if not config.ai_enabled:
            return None
        api_key = self.credentials.get_api_key(config.provider)
        if not api_key:
            _log_info(f"No API key for {config.provider}; skipping AI evaluation")
            return None
        return self.provider_factory(config.provider, api_key, config.model)

    # --- Pipeline ---

    async def _pipeline(
        self,
        ctx: _RunContext,
        config: AnalysisConfig,
        provider: Optional[LLMProvider],
        force_refresh: bool,
        cancel_event: asyncio.Event,
    ) -> AnalysisResult:
        scans = await self._scan_all()
        ctx.fingerprint = compute_fingerprint(
            ctx.profile_id, scans, config, provider.provider_name if provider else None
        )

        if not force_refresh:
            cached = self._cached_result(ctx.fingerprint)
            if cached is not None:
                result = cached.tagged(from_cache=True)
                ctx.transition(AnalysisState.CACHE_LOADED, result=result)
                ctx.transition(AnalysisState.COMPLETE, result=result)
                return result

        ctx.transition(AnalysisState.EXTRACTING)
        snapshot = await self._extract_all()

        ctx.transition(AnalysisState.CALCULATING)
        ctx.completeness = calculate_completeness(snapshot)
        _log_info(f"Completeness: {ctx.completeness.score}% ({ctx.completeness.level})")

        synthesis = None
        notes: List[str] = []
        if provider is not None:
            if cancel_event.is_set():
                notes.append("Analysis cancelled before AI evaluation.")
            else:
                await self._evaluate_sections(ctx, snapshot, provider, config, cancel_event)
                synthesis = await self._synthesize(ctx, provider, config, cancel_event)
            notes.extend(self._section_notes(ctx, snapshot, cancel_event))

        result = self._build_result(ctx, synthesis, " ".join(notes) or None)

        if cancel_event.is_set():
            _log_warning("Run was cancelled; partial result not cached")
        else:
            self.cache.put(ctx.fingerprint, result)

        ctx.transition(AnalysisState.COMPLETE, result=result)
        return result

    def _cached_result(self, fingerprint: str) -> Optional[AnalysisResult]:
        try:
            return self.cache.get(fingerprint)
        except CorruptCacheEntry as exc:
            _log_warning(f"{exc}; analyzing as a cache miss")
            return None

    async def _scan_all(self) -> Dict[str, ScanResult]:
        names = list(self.extractors)
        outcomes = await asyncio.gather(
            *(self.extractors[name].scan() for name in names), return_exceptions=True
        )
        scans = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                _reraise_cancellation(outcome)
                _log_warning(f"Scan failed for {name}: {outcome}")
                outcome = ScanResult(exists=False)
            scans[name] = outcome
        return scans

    async def _extract_all(self) -> ProfileSnapshot:
        names = list(self.extractors)
        outcomes = await asyncio.gather(
            *(self.extractors[name].extract() for name in names), return_exceptions=True
        )
        sections = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                _reraise_cancellation(outcome)
                _log_warning(f"Extraction failed for {name}: {outcome}")
                outcome = SectionData.absent()
            sections[name] = outcome
        return ProfileSnapshot(sections)

    async def _evaluate_sections(
        self,
        ctx: _RunContext,
        snapshot: ProfileSnapshot,
        provider: LLMProvider,
        config: AnalysisConfig,
        cancel_event: asyncio.Event,
    ) -> None:
        """Evaluate sections one at a time, most heavily weighted first."""
        names = sorted(
            (name for name in snapshot if name not in NON_EVALUATED_SECTIONS),
            key=lambda name: -section_weight(name),
        )
        total = len(names)
        ctx.transition(AnalysisState.AI_ANALYZING, completed=0, total=total)

        evaluator = SectionEvaluator(provider, self.rate_limiter, model_hint=config.model)
        role_context = config.role_context
        auth_failed = False

        for index, name in enumerate(names, start=1):
            if cancel_event.is_set():
                _log_info(f"Cancelled after {index - 1}/{total} sections")
                break

            data = snapshot.get(name)
            section_start = time.time()

            if not data.exists:
                result = SectionResult.missing()
            elif auth_failed:
                result = SectionResult.failed(ErrorCategory.AUTH)
            elif name == EXPERIENCE_SECTION and config.per_role_experience and data.items:
                result = await self._evaluate_roles(
                    ctx, evaluator, data, config, index - 1, total, cancel_event
                )
            else:
                result = await self._paced_call(
                    ctx, config, name, evaluator.evaluate, name, data, role_context
                )

            if result.error is ErrorCategory.AUTH or any(
                e.result.error is ErrorCategory.AUTH for e in ctx.role_evaluations
            ):
                auth_failed = True

            ctx.section_scores[name] = result
            log_section_result(name, result, time.time() - section_start)
            ctx.transition(
                AnalysisState.AI_ANALYZING,
                section=name,
                completed=index,
                total=total,
                retry_after_seconds=result.retry_after_seconds,
            )

        # Existing sections that were never reached stay unscored but present
        for name in names:
            if name not in ctx.section_scores:
                exists = snapshot.get(name).exists
                ctx.section_scores[name] = (
                    SectionResult(exists=True) if exists else SectionResult.missing()
                )

    async def _paced_call(self, ctx, config, label, evaluate, *args) -> SectionResult:
        """Issue one evaluation call, spaced from the previous one by section_delay_seconds."""
        if ctx.provider_calls and config.section_delay_seconds > 0:
            await asyncio.sleep(config.section_delay_seconds)
        ctx.provider_calls += 1
        try:
            return await evaluate(*args)
        except Exception as exc:
            _log_error(f"{label}: unexpected evaluation failure: {exc}")
            return SectionResult.failed(ErrorCategory.GENERIC)

    async def _evaluate_roles(
        self,
        ctx: _RunContext,
        evaluator: SectionEvaluator,
        data: SectionData,
        config: AnalysisConfig,
        completed: int,
        total: int,
        cancel_event: asyncio.Event,
    ) -> SectionResult:
        """Evaluate experience one role at a time and combine the role scores."""
        total_roles = len(data.items)
        for position, role in enumerate(data.items, start=1):
            if cancel_event.is_set():
                _log_info(f"Cancelled after {position - 1}/{total_roles} experience roles")
                break

            result = await self._paced_call(
                ctx,
                config,
                f"experience role {position}",
                evaluator.evaluate_role,
                role,
                position,
                total_roles,
                config.role_context,
            )
            ctx.role_evaluations.append(RoleEvaluation.for_role(position, role, result))
            ctx.transition(
                AnalysisState.AI_ANALYZING,
                section=EXPERIENCE_SECTION,
                role=position,
                total_roles=total_roles,
                completed=completed,
                total=total,
                retry_after_seconds=result.retry_after_seconds,
            )
            if result.error is ErrorCategory.AUTH:
                break

        return aggregate_role_results(ctx.role_evaluations)

    async def _synthesize(
        self,
        ctx: _RunContext,
        provider: LLMProvider,
        config: AnalysisConfig,
        cancel_event: asyncio.Event,
    ) -> SynthesisResult:
        scores = ctx.section_scores
        trajectory = summarize_career_trajectory(ctx.role_evaluations)
        auth_failed = any(r.error is ErrorCategory.AUTH for r in scores.values())
        if not config.use_ai_synthesis or cancel_event.is_set() or auth_failed:
            return synthesize(scores, trajectory)

        decision = self.rate_limiter.check_limit(provider.provider_name)
        if not decision.allowed:
            _log_debug(f"Skipping AI synthesis ({decision.reason})")
            return synthesize(scores, trajectory)
        return await synthesize_with_provider(
            scores,
            provider,
            config.role_context,
            model_hint=config.model,
            career_trajectory=trajectory,
        )

    @staticmethod
    def _section_notes(
        ctx: _RunContext, snapshot: ProfileSnapshot, cancel_event: asyncio.Event
    ) -> List[str]:
        notes = []
        results = ctx.section_scores.values()
        if cancel_event.is_set() and results:
            scored = sum(1 for r in results if r.score is not None)
            notes.append(f"Analysis cancelled; {scored} of {len(results)} sections evaluated.")
        if any(r.error is ErrorCategory.AUTH for r in results):
            notes.append("The API key was rejected; update it to enable AI analysis.")
        waits = [r.retry_after_seconds for r in results if r.error is ErrorCategory.RATE_LIMIT]
        if waits:
            hint = max(w for w in waits if w) if any(waits) else None
            retry = f" Retry in {hint}s." if hint else ""
            notes.append(f"Some sections were skipped due to provider rate limits.{retry}")
        if any(
            r.error is not None and r.error not in (ErrorCategory.AUTH, ErrorCategory.RATE_LIMIT)
            for r in results
        ):
            notes.append("Some sections could not be evaluated.")
        return notes

    def _build_result(
        self, ctx: _RunContext, synthesis: Optional[SynthesisResult], note: Optional[str]
    ) -> AnalysisResult:
        completeness = ctx.completeness
        return AnalysisResult(
            profile_id=ctx.profile_id,
            completeness=completeness.score if completeness else 0,
            content_score=synthesis.overall_score if synthesis else None,
            section_scores=dict(ctx.section_scores),
            recommendations=synthesis.recommendations if synthesis else RecommendationBuckets(),
            insights=synthesis.insights if synthesis else "",
            timestamp=now_exact(),
            fingerprint=ctx.fingerprint,
            note=note,
            completeness_details=completeness.to_dict() if completeness else {},
        )

    # --- Failure handling ---

    def _fallback_candidate(self, profile_id: str) -> Optional[AnalysisResult]:
        try:
            return self.cache.latest(profile_id)
        except Exception as exc:
            _log_warning(f"Cache lookup for fallback failed: {exc}")
            return None

    def _serve_fallback(
        self, ctx: _RunContext, cached: AnalysisResult, reason: str
    ) -> AnalysisResult:
        result = cached.tagged(from_cache=True, fallback=True, note=reason)
        ctx.transition(AnalysisState.FALLBACK_TO_CACHE, result=result, reason=reason)
        ctx.transition(AnalysisState.COMPLETE, result=result)
        return result

    def _handle_timeout(self, ctx: _RunContext, exc: AnalysisTimeout) -> AnalysisResult:
        _log_warning(str(exc))
        cached = self._fallback_candidate(ctx.profile_id)
        if cached is not None:
            return self._serve_fallback(ctx, cached, f"{exc}; showing the previous analysis")

        # Degraded result: completeness only, never cached
        note = (
            f"{exc}; AI evaluation did not finish"
            if ctx.completeness
            else f"{exc} before the profile could be read"
        )
        result = self._build_result(ctx, None, note)
        result = result.tagged(section_scores={})
        ctx.transition(AnalysisState.COMPLETE, result=result)
        return result

    def _handle_failure(self, ctx: _RunContext, exc: Exception) -> AnalysisResult:
        # Failures raised while reporting a terminal state belong to the caller
        if ctx.state in TERMINAL_STATES:
            raise exc

        message = str(exc) or type(exc).__name__
        _log_error(f"Analysis of {ctx.profile_id} failed: {message}")
        cached = self._fallback_candidate(ctx.profile_id)
        if cached is not None:
            return self._serve_fallback(ctx, cached, message)

        ctx.transition(AnalysisState.ERROR, message=message)
        raise AnalysisFailedError(ctx.profile_id, message, cause=exc) from exc


def _reraise_cancellation(outcome: BaseException) -> None:
    if isinstance(outcome, asyncio.CancelledError):
        raise outcome
