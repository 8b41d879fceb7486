"""Execution simulator: traces documentation examples without running them."""

import hashlib
import logging
import time
from typing import Optional

from ..analysis import ASTAnalyzer, StaticModel, detect_language
from ..analysis.summary import iter_statements
from ..constants import (
    AMBIGUOUS_BRANCH_PENALTY,
    DYNAMIC_DISPATCH_PENALTY,
    MIN_CONFIDENCE,
    PARTIAL_PARSE_PENALTY,
    SELF_SIMULATION_PENALTY,
    STATIC_FALLBACK_PENALTY,
    UNRESOLVED_CALL_PENALTY,
    IssueType,
    Language,
    Severity,
)
from ..core.config import ServerConfig
from ..core.errors import AnalysisError, redact_credentials
from ..llm import create_llm_client
from ..models import SimulationOptions
from .call_graph import build_call_graph
from .detectors import detect_issues, filter_reported_issues
from .models import (
    CallGraph,
    ExampleValidationResult,
    ExecutionTrace,
    IssueLocation,
    PotentialIssue,
)
from .strategies import (
    LLMTraceStrategy,
    StaticTraceStrategy,
    TraceDraft,
    TraceRequest,
    TraceStrategy,
)
from .validator import KeywordBehaviorMatcher, LLMBehaviorMatcher, Validator

logger = logging.getLogger(__name__)

_BUDGET_MESSAGES = {
    "steps": ("Step budget exceeded", "Increase maxSteps or simplify the example"),
    "time": ("Time budget exceeded", "Increase timeoutMs or simplify the example"),
}


def generate_example_id(code: str) -> str:
    return "example-" + hashlib.sha256(code.encode("utf-8")).hexdigest()[:12]


def detect_entry_point(example: StaticModel, implementation: StaticModel) -> str:
    """Pick the function an example exercises.

    The first call in the example that resolves in the implementation wins;
    otherwise the first call at all, then the first declared function.
    """
    calls = [call for stmt in iter_statements(example.statements) for call in stmt.calls]
    for call in calls:
        if call.receiver is not None:
            cls = implementation.find_class(call.receiver)
            if cls is not None:
                func = implementation.find_function(call.name, cls.name)
                if func is not None and func.class_name == cls.name:
                    return func.qualified_name
            continue
        func = implementation.find_function(call.name)
        if func is not None:
            return func.qualified_name
        if implementation.find_class(call.name) is not None:
            return call.name
    if calls:
        return calls[0].display_name
    for model in (implementation, example):
        if model.functions:
            return model.functions[0].qualified_name
    return "main"


def score_confidence(draft: TraceDraft, self_simulation: bool, partial: bool) -> float:
    """Confidence in [0, 1]; 0 exactly when there are no steps."""
    if not draft.steps:
        return 0.0
    if draft.static:
        score = 1.0 - STATIC_FALLBACK_PENALTY
    else:
        score = draft.reported_confidence if draft.reported_confidence is not None else 1.0
    score -= UNRESOLVED_CALL_PENALTY * draft.unresolved_calls
    score -= AMBIGUOUS_BRANCH_PENALTY * draft.ambiguous_branches
    score -= DYNAMIC_DISPATCH_PENALTY * draft.dynamic_dispatches
    if self_simulation:
        score -= SELF_SIMULATION_PENALTY
    if partial:
        score -= PARTIAL_PARSE_PENALTY
    return round(min(max(score, MIN_CONFIDENCE), 1.0), 4)


def create_error_trace(example_id: str, entry_point: str, message: str,
                       duration_ms: float = 0.0) -> ExecutionTrace:
    """Zero-confidence trace reporting a failure to simulate."""
    return ExecutionTrace(
        example_id=example_id,
        entry_point=entry_point,
        potential_issues=[PotentialIssue(
            type=IssueType.OTHER,
            severity=Severity.ERROR,
            location=IssueLocation(line=0),
            description=f"Simulation failed: {message}",
            suggestion="Check the example and implementation for syntax errors",
        )],
        confidence_score=0.0,
        reached_end=False,
        simulation_duration=duration_ms,
    )


class ExecutionSimulator:
    """Simulates documentation examples against an implementation.

    The trace strategy is chosen once: LLM-assisted when an LLM client is
    given, static otherwise. Results have the same shape either way.
    """

    def __init__(self, options: Optional[SimulationOptions] = None, llm_client=None,
                 analyzer: Optional[ASTAnalyzer] = None):
        self.options = options or SimulationOptions()
        self.llm_client = llm_client
        self.analyzer = analyzer or ASTAnalyzer()
        self.static_strategy = StaticTraceStrategy()
        if llm_client is not None:
            self.strategy: TraceStrategy = LLMTraceStrategy(llm_client, self.static_strategy)
            self.validator = Validator(LLMBehaviorMatcher(llm_client))
        else:
            self.strategy = self.static_strategy
            self.validator = Validator(KeywordBehaviorMatcher())

    def is_llm_available(self) -> bool:
        return self.llm_client is not None

    def initialize(self) -> None:
        self.analyzer.initialize()

    def _analyze(self, code: str, language: Optional[Language], label: str) -> StaticModel:
        try:
            return self.analyzer.analyze_source(code, language, file_path=label)
        except AnalysisError as e:
            logger.warning("Could not analyze %s: %s", label, e)
            return StaticModel(
                file_path=label,
                language=Language(language).value if language else Language.JAVASCRIPT.value,
                parse_errors=(str(e),),
                partial=True,
            )

    async def simulate_execution(
        self,
        example_code: str,
        implementation_code: Optional[str] = None,
        entry_point: Optional[str] = None,
        options: Optional[SimulationOptions] = None,
        language: Optional[Language] = None,
    ) -> ExecutionTrace:
        """Trace `example_code` against `implementation_code`.

        Without an implementation the example is traced against itself.
        Never raises: internal failures produce a zero-confidence trace.
        """
        started = time.perf_counter()
        example_id = generate_example_id(example_code or "")
        try:
            return await self._simulate(example_code, implementation_code, entry_point,
                                        options, language, example_id, started)
        except Exception as e:
            logger.exception("Simulation of %s failed", example_id)
            return create_error_trace(
                example_id,
                entry_point or "unknown",
                f"{type(e).__name__}: {redact_credentials(str(e))}",
                (time.perf_counter() - started) * 1000,
            )

    async def _simulate(self, example_code, implementation_code, entry_point, options,
                        language, example_id, started) -> ExecutionTrace:
        opts = self.options.merged_with(options)
        if not example_code or not example_code.strip():
            return create_error_trace(example_id, entry_point or "unknown", "example code is empty")

        self_simulation = not implementation_code or not implementation_code.strip()
        if language is None and not self_simulation:
            # Examples share the implementation's language
            language = detect_language(implementation_code)
        example = self._analyze(example_code, language, "<example>")
        if example.parse_errors and not example.statements:
            return create_error_trace(
                example_id,
                entry_point or "unknown",
                f"example could not be parsed: {example.parse_errors[0]}",
                (time.perf_counter() - started) * 1000,
            )
        if self_simulation:
            implementation, implementation_code = example, example_code
        else:
            implementation = self._analyze(implementation_code, language, "<implementation>")

        entry = entry_point or detect_entry_point(example, implementation)
        request = TraceRequest(
            example_code=example_code,
            implementation_code=implementation_code,
            example=example,
            implementation=implementation,
            entry_point=entry,
            options=opts,
            deadline=time.monotonic() + opts.timeout_ms / 1000,
            self_simulation=self_simulation,
        )
        draft = await self.strategy.trace(request)

        if draft.static:
            issues = detect_issues(draft.steps, opts)
        else:
            issues = filter_reported_issues(draft.reported_issues, opts)
        if draft.budget is not None:
            message, suggestion = _BUDGET_MESSAGES[draft.budget]
            issues.append(PotentialIssue(
                type=IssueType.OTHER,
                severity=Severity.INFO,
                location=IssueLocation(line=0),
                description=message,
                suggestion=suggestion,
            ))

        partial = example.partial or implementation.partial
        trace = ExecutionTrace(
            example_id=example_id,
            entry_point=entry,
            execution_steps=draft.steps,
            variables_accessed=draft.variables,
            potential_issues=issues,
            confidence_score=score_confidence(draft, self_simulation, partial),
            execution_path=draft.path,
            reached_end=draft.reached_end and draft.budget is None,
            simulation_duration=round((time.perf_counter() - started) * 1000, 3),
        )
        logger.info(
            "Simulated %s (%s, entry %s): %d steps, %d issues, confidence %.2f",
            example_id, "static" if draft.static else "llm",
            entry, len(trace.execution_steps), len(trace.potential_issues), trace.confidence_score,
        )
        return trace

    async def validate_example(
        self,
        example_code: str,
        implementation_code: Optional[str],
        expected_behavior: Optional[str],
        entry_point: Optional[str] = None,
        options: Optional[SimulationOptions] = None,
        language: Optional[Language] = None,
    ) -> ExampleValidationResult:
        trace = await self.simulate_execution(example_code, implementation_code, entry_point, options, language)
        return await self.validate_trace(trace, expected_behavior, example_code)

    async def validate_trace(self, trace: ExecutionTrace, expected_behavior: Optional[str],
                             example_code: str = "") -> ExampleValidationResult:
        return await self.validator.validate_trace(trace, expected_behavior, example_code)

    def build_call_graph(self, entry_point: str, model: StaticModel,
                         max_depth: Optional[int] = None) -> CallGraph:
        depth = self.options.max_depth if max_depth is None else max_depth
        return build_call_graph(entry_point, model, depth)


def create_execution_simulator(options: Optional[SimulationOptions] = None,
                               config: Optional[ServerConfig] = None,
                               llm_client=None,
                               analyzer: Optional[ASTAnalyzer] = None) -> ExecutionSimulator:
    """Build a simulator from server configuration.

    Per-call `options` override the configured simulation defaults field by
    field. An LLM client is created from ``config.llm`` unless one is given.
    """
    defaults = config.simulation if config is not None else SimulationOptions()
    if llm_client is None and config is not None:
        llm_client = create_llm_client(config.llm)
    return ExecutionSimulator(defaults.merged_with(options), llm_client, analyzer)
