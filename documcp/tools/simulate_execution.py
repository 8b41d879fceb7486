"""Execution simulation tools: single example and batch."""

import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..analysis import language_for_path
from ..constants import (
    CHARACTER_LIMIT,
    HIGH_CONFIDENCE,
    MODERATE_CONFIDENCE,
    IssueType,
    ResponseFormat,
    Severity,
)
from ..core.errors import AnalysisError, redact_credentials
from ..models import BatchSimulateExecutionInput, SimulateExecutionInput
from ..simulation import CallGraph, ExampleValidationResult, ExecutionSimulator, ExecutionTrace

logger = logging.getLogger(__name__)

_ISSUE_RECOMMENDATIONS = [
    (IssueType.NULL_REFERENCE,
     "Add null/undefined checks or use optional chaining (?.) for safer property access"),
    (IssueType.TYPE_MISMATCH,
     "Review type annotations and ensure example types match implementation"),
    (IssueType.UNDEFINED_VARIABLE,
     "Ensure all variables used in examples are properly defined or imported"),
    (IssueType.UNREACHABLE_CODE,
     "Review control flow - some code paths may never execute"),
    (IssueType.INFINITE_LOOP,
     "Check loop conditions - a loop may never terminate"),
    (IssueType.MISSING_ERROR_HANDLING,
     "Add try/catch (or try/except) blocks around calls that can fail"),
]


class _ResultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SimulateExecutionResult(_ResultModel):
    success: bool
    trace: ExecutionTrace
    validation: Optional[ExampleValidationResult] = None
    call_graph: Optional[CallGraph] = None
    summary: str
    recommendations: List[str] = Field(default_factory=list)


class BatchSummary(_ResultModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    average_confidence: float = 0.0


class BatchSimulateExecutionResult(_ResultModel):
    success: bool
    results: List[SimulateExecutionResult] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)


async def _report(ctx: Any, message: str) -> None:
    """Send a progress message to the MCP client, if there is one."""
    if ctx is None:
        return
    await ctx.info(message)


def create_empty_trace() -> ExecutionTrace:
    """Trace returned when no simulation could be run."""
    return ExecutionTrace(example_id="error", entry_point="unknown")


def _failure(summary: str, recommendations: List[str]) -> SimulateExecutionResult:
    return SimulateExecutionResult(
        success=False,
        trace=create_empty_trace(),
        summary=summary,
        recommendations=recommendations,
    )


def confidence_label(score: float) -> str:
    if score >= HIGH_CONFIDENCE:
        return "high"
    if score >= MODERATE_CONFIDENCE:
        return "moderate"
    return "low"


def generate_summary(trace: ExecutionTrace, validation: Optional[ExampleValidationResult] = None) -> str:
    """Human-readable summary derived only from the trace and validation."""
    parts = [
        f"Traced {len(trace.execution_steps)} execution step(s)",
        f"{len(trace.variables_accessed)} variable(s) tracked",
    ]

    percent = round(trace.confidence_score * 100)
    parts.append(f"Confidence: {percent}% ({confidence_label(percent / 100)})")

    if trace.reached_end:
        parts.append("Execution completed normally")
    else:
        parts.append("Execution did not complete (possible early termination or error)")

    if trace.potential_issues:
        counts = []
        for severity, label in ((Severity.ERROR, "error"), (Severity.WARNING, "warning"), (Severity.INFO, "info")):
            n = sum(1 for issue in trace.potential_issues if issue.severity == severity.value)
            if n:
                counts.append(f"{n} {label}(s)")
        parts.append(f"Issues detected: {', '.join(counts)}")
    else:
        parts.append("No issues detected")

    if validation is not None:
        parts.append("Example validation: PASSED" if validation.is_valid else "Example validation: FAILED")
        if validation.matches_documentation:
            parts.append("Behavior matches documentation")

    return ". ".join(parts) + "."


def generate_recommendations(trace: ExecutionTrace,
                             validation: Optional[ExampleValidationResult] = None,
                             confidence_threshold: float = 0.7) -> List[str]:
    recommendations = []

    if trace.confidence_score < MODERATE_CONFIDENCE:
        recommendations.append("Low simulation confidence - manual code review strongly recommended")
        recommendations.append("Consider breaking down the example into smaller, testable units")
    elif trace.confidence_score < confidence_threshold:
        recommendations.append("Moderate simulation confidence - review flagged areas manually")

    issue_types = {issue.type for issue in trace.potential_issues}
    for issue_type, text in _ISSUE_RECOMMENDATIONS:
        if issue_type.value in issue_types:
            recommendations.append(text)

    if not trace.reached_end:
        recommendations.append(
            "Execution did not complete - check for infinite loops, uncaught errors, or early returns"
        )

    if validation is not None and not validation.is_valid:
        for suggestion in validation.suggestions:
            if suggestion not in recommendations:
                recommendations.append(suggestion)

    if not recommendations:
        recommendations.append("Example simulation completed successfully - ready for documentation")
    return recommendations


async def handle_simulate_execution(
    params: SimulateExecutionInput,
    simulator: ExecutionSimulator,
    ctx: Any = None,
) -> SimulateExecutionResult:
    """Simulate one documentation example.

    Input problems (blank example, unreadable implementation file) produce a
    ``success=False`` result; nothing is raised to the caller.
    """
    await _report(ctx, "Starting execution simulation...")

    if not params.example_code or not params.example_code.strip():
        return _failure(
            "No example code provided",
            ["Provide the documentation example to simulate in exampleCode"],
        )

    implementation_code = params.implementation_code
    language = None
    if params.implementation_path:
        language = language_for_path(params.implementation_path)
    if not implementation_code and params.implementation_path:
        try:
            implementation_code = Path(params.implementation_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to load implementation %s: %s", params.implementation_path, e)
            return _failure(
                f"Failed to load implementation file: {params.implementation_path}",
                ["Verify the implementation path exists and is readable"],
            )
        await _report(ctx, f"Loaded implementation from {Path(params.implementation_path).name}")

    if not implementation_code:
        await _report(ctx, "No implementation provided, using example code")

    options = simulator.options.merged_with(params.options)
    if not simulator.is_llm_available():
        await _report(ctx, "LLM not available, using static analysis")

    await _report(ctx, "Simulating execution...")
    trace = await simulator.simulate_execution(
        params.example_code,
        implementation_code,
        params.entry_point,
        params.options,
        language,
    )

    validation = None
    if params.expected_behavior:
        await _report(ctx, "Validating against expected behavior...")
        validation = await simulator.validate_trace(trace, params.expected_behavior, params.example_code)

    call_graph = None
    if options.include_call_graph:
        call_graph = _build_call_graph(simulator, trace, params.implementation_path,
                                       implementation_code or params.example_code, language)
        if call_graph is None:
            await _report(ctx, "Could not build call graph")

    summary = generate_summary(trace, validation)
    recommendations = generate_recommendations(trace, validation, options.confidence_threshold)

    issue_count = len(trace.potential_issues)
    status = "No issues found" if issue_count == 0 else f"{issue_count} issue(s) detected"
    await _report(ctx, f"{status} ({round(trace.confidence_score * 100)}% confidence)")

    return SimulateExecutionResult(
        success=True,
        trace=trace,
        validation=validation,
        call_graph=call_graph,
        summary=summary,
        recommendations=recommendations,
    )


def _build_call_graph(simulator: ExecutionSimulator, trace: ExecutionTrace,
                      implementation_path: Optional[str], implementation_code: str,
                      language) -> Optional[CallGraph]:
    # Optional output: any failure leaves it out
    try:
        if implementation_path:
            model = simulator.analyzer.analyze_file(implementation_path)
        else:
            model = simulator.analyzer.analyze_source(implementation_code, language, file_path="<implementation>")
        if model is None:
            return None
        return simulator.build_call_graph(trace.entry_point, model)
    except AnalysisError as e:
        logger.info("Skipping call graph: %s", e)
    except Exception:
        logger.exception("Call graph construction for %s failed", trace.entry_point)
    return None


async def handle_batch_simulate_execution(
    params: BatchSimulateExecutionInput,
    simulator: ExecutionSimulator,
    ctx: Any = None,
) -> BatchSimulateExecutionResult:
    """Simulate examples one after another, in order.

    A failing example is recorded and the batch continues.
    """
    total = len(params.examples)
    await _report(ctx, f"Starting batch simulation of {total} example(s)...")

    results = []
    for i, example in enumerate(params.examples, start=1):
        await _report(ctx, f"Simulating example {i}/{total}...")
        single = SimulateExecutionInput(
            example_code=example.code,
            implementation_code=example.implementation_code,
            implementation_path=example.implementation_path,
            entry_point=example.entry_point,
            expected_behavior=example.expected_behavior,
            options=params.global_options,
        )
        try:
            result = await handle_simulate_execution(single, simulator, ctx)
        except Exception as e:
            logger.exception("Batch example %d failed", i)
            result = _failure(
                f"Simulation failed: {redact_credentials(str(e))}",
                ["Try with a simpler code example"],
            )
        results.append(result)

    passed = sum(1 for r in results if r.success and not r.trace.error_issues())
    failed = len(results) - passed
    average = sum(r.trace.confidence_score for r in results) / len(results) if results else 0.0

    await _report(ctx, f"Batch simulation complete: {passed} passed, {failed} failed")
    return BatchSimulateExecutionResult(
        success=failed == 0,
        results=results,
        summary=BatchSummary(
            total=len(results),
            passed=passed,
            failed=failed,
            average_confidence=round(average, 4),
        ),
    )


# ============================================================================
# Formatting
# ============================================================================

def _truncate(text: str) -> str:
    if len(text) <= CHARACTER_LIMIT:
        return text
    notice = "\n\n... (truncated, use responseFormat 'json' for the full result)"
    return text[:CHARACTER_LIMIT - len(notice)] + notice


def _trace_markdown(trace: ExecutionTrace, heading: str = "##") -> List[str]:
    lines = [
        f"{heading} Trace: `{trace.entry_point}`",
        f"- Confidence: {round(trace.confidence_score * 100)}% ({confidence_label(trace.confidence_score)})",
        f"- Reached end: {'yes' if trace.reached_end else 'no'}",
        f"- Steps: {len(trace.execution_steps)}",
        "",
    ]
    if trace.execution_steps:
        lines.append(f"{heading}# Steps")
        for step in trace.execution_steps:
            indent = "  " * step.depth
            marker = "" if step.id in trace.execution_path else " _(not taken)_"
            lines.append(f"{indent}- L{step.line_number} `{step.kind}` {step.operation}{marker}")
        lines.append("")
    if trace.potential_issues:
        lines.append(f"{heading}# Issues")
        for issue in trace.potential_issues:
            where = f"line {issue.location.line}"
            if issue.location.function:
                where += f" in {issue.location.function}"
            lines.append(f"- **{issue.severity.upper()}** [{issue.type}] {where}: {issue.description}")
            if issue.suggestion:
                lines.append(f"  - {issue.suggestion}")
        lines.append("")
    return lines


def format_simulation_result(result: SimulateExecutionResult, response_format: ResponseFormat) -> str:
    if response_format == ResponseFormat.JSON:
        return json.dumps(result.model_dump(by_alias=True, exclude_none=True), indent=2)

    lines = ["# Execution Simulation", ""]
    lines.append(f"**Status:** {'success' if result.success else 'failed'}")
    lines.append("")
    lines.append(result.summary)
    lines.append("")
    if result.success:
        lines.extend(_trace_markdown(result.trace))
    if result.call_graph is not None:
        graph = result.call_graph
        lines.append("## Call Graph")
        for edge in graph.edges:
            suffix = " (recursive)" if edge.recursive else ""
            lines.append(f"- {edge.caller} -> {edge.callee}{suffix}")
        lines.append("")
    lines.append("## Recommendations")
    for recommendation in result.recommendations:
        lines.append(f"- {recommendation}")
    return _truncate("\n".join(lines))


def format_batch_result(result: BatchSimulateExecutionResult, response_format: ResponseFormat) -> str:
    if response_format == ResponseFormat.JSON:
        return json.dumps(result.model_dump(by_alias=True, exclude_none=True), indent=2)

    summary = result.summary
    lines = [
        "# Batch Execution Simulation",
        "",
        f"- Total: {summary.total}",
        f"- Passed: {summary.passed}",
        f"- Failed: {summary.failed}",
        f"- Average confidence: {round(summary.average_confidence * 100)}%",
        "",
    ]
    for i, item in enumerate(result.results, start=1):
        status = "PASSED" if item.success and not item.trace.error_issues() else "FAILED"
        lines.append(f"## Example {i}: {status}")
        lines.append(item.summary)
        lines.append("")
    return _truncate("\n".join(lines))
