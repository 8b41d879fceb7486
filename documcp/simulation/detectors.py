"""Issue detection passes over execution steps.

Each pass reads only the steps (and the walker observations attached to
them), so enabling or disabling one never changes what another reports.
"""

from typing import Callable, Iterable, List

from ..analysis.models import NULLISH_TYPES, is_assignable
from ..constants import IssueType, Severity, StepKind
from ..models import SimulationOptions
from .models import ExecutionStep, IssueLocation, PotentialIssue, StepFacts

Pass = Callable[[List[ExecutionStep]], List[PotentialIssue]]


def _observed(steps: Iterable[ExecutionStep]):
    for step in steps:
        if isinstance(step.facts, StepFacts):
            yield step, step.facts


def _issue(step: ExecutionStep, issue_type: IssueType, severity: Severity,
           description: str, suggestion: str) -> PotentialIssue:
    return PotentialIssue(
        type=issue_type,
        severity=severity,
        location=IssueLocation(line=step.line_number, function=step.function),
        description=description,
        suggestion=suggestion,
        code_snippet=step.source_construct,
    )


def detect_undefined_variables(steps: List[ExecutionStep]) -> List[PotentialIssue]:
    issues = []
    for step, facts in _observed(steps):
        for name in facts.undefined:
            issues.append(_issue(
                step,
                IssueType.UNDEFINED_VARIABLE,
                Severity.ERROR if facts.on_path else Severity.WARNING,
                f"'{name}' is used but never defined or imported",
                f"Define or import '{name}' before it is used",
            ))
    return issues


def detect_null_references(steps: List[ExecutionStep]) -> List[PotentialIssue]:
    issues = []
    for step, facts in _observed(steps):
        for nullable in facts.nullable_reads:
            read = nullable.read
            if nullable.value_type in NULLISH_TYPES and nullable.source in ("assignment", "missing argument"):
                severity = Severity.ERROR if facts.on_path else Severity.WARNING
                description = f"'{read.obj}.{read.attr}' accesses a property of {nullable.value_type} ({nullable.source})"
            elif nullable.source == "unbound parameter":
                severity = Severity.INFO
                description = f"'{read.obj}.{read.attr}' reads from parameter '{read.obj}' with no visible value"
            else:
                severity = Severity.WARNING
                description = f"'{read.obj}' may be null or undefined when '{read.obj}.{read.attr}' is read ({nullable.source})"
            issues.append(_issue(
                step,
                IssueType.NULL_REFERENCE,
                severity,
                description,
                f"Check '{read.obj}' before accessing '{read.attr}' or use optional access",
            ))
    return issues


def detect_type_mismatches(steps: List[ExecutionStep]) -> List[PotentialIssue]:
    issues = []
    for step, facts in _observed(steps):
        for arity in facts.arity_checks:
            if arity.maximum is not None and arity.given > arity.maximum:
                expected = f"at most {arity.maximum}"
            else:
                expected = f"at least {arity.required}"
            issues.append(_issue(
                step,
                IssueType.TYPE_MISMATCH,
                Severity.ERROR if arity.strict and facts.on_path else Severity.WARNING,
                f"{arity.callee}() called with {arity.given} argument(s), expects {expected}",
                f"Match the call to the signature of {arity.callee}()",
            ))
        for check in facts.argument_checks:
            if is_assignable(check.actual, check.expected):
                continue
            issues.append(_issue(
                step,
                IssueType.TYPE_MISMATCH,
                Severity.WARNING,
                f"Argument '{check.parameter}' of {check.callee}() expects {check.expected}, got {check.actual}",
                f"Pass a {check.expected} value for '{check.parameter}'",
            ))
        for check in facts.annotation_checks:
            if is_assignable(check.actual, check.expected):
                continue
            issues.append(_issue(
                step,
                IssueType.TYPE_MISMATCH,
                Severity.WARNING,
                f"'{check.target}' is declared as {check.expected} but assigned {check.actual}",
                f"Assign a {check.expected} value or change the declared type",
            ))
    return issues


def detect_unreachable_code(steps: List[ExecutionStep]) -> List[PotentialIssue]:
    issues = []
    for step in steps:
        if step.kind == StepKind.UNREACHABLE:
            issues.append(_issue(
                step,
                IssueType.UNREACHABLE_CODE,
                Severity.WARNING,
                f"Line {step.line_number} can never run: it follows a return, throw, break or continue",
                "Remove the dead code or move it before the exit",
            ))
    for step, facts in _observed(steps):
        if facts.infinite_loop:
            issues.append(_issue(
                step,
                IssueType.INFINITE_LOOP,
                Severity.WARNING,
                "Loop condition is always true and the body never exits",
                "Add a break, return or a terminating condition",
            ))
    return issues


def detect_missing_error_handling(steps: List[ExecutionStep]) -> List[PotentialIssue]:
    issues = []
    for step, facts in _observed(steps):
        if facts.uncaught:
            issues.append(_issue(
                step,
                IssueType.MISSING_ERROR_HANDLING,
                Severity.ERROR,
                f"{facts.uncaught} is thrown and never caught",
                f"Wrap the call in try/catch (or try/except) to handle {facts.uncaught}",
            ))
        for callee, raises in facts.risky_calls:
            issues.append(_issue(
                step,
                IssueType.MISSING_ERROR_HANDLING,
                Severity.WARNING,
                f"{callee}() can raise {', '.join(raises)} but the example does not handle it",
                "Show error handling in the example or document the failure mode",
            ))
    return issues


def passes_for(options: SimulationOptions) -> List[Pass]:
    """The detection passes enabled by `options`, in report order."""
    passes: List[Pass] = [detect_undefined_variables]
    if options.detect_null_refs:
        passes.append(detect_null_references)
    if options.detect_type_mismatches:
        passes.append(detect_type_mismatches)
    if options.detect_unreachable_code:
        passes.append(detect_unreachable_code)
    passes.append(detect_missing_error_handling)
    return passes


def detect_issues(steps: List[ExecutionStep], options: SimulationOptions) -> List[PotentialIssue]:
    issues: List[PotentialIssue] = []
    for detect in passes_for(options):
        issues.extend(detect(steps))
    return deduplicate(issues)


def filter_reported_issues(issues: List[PotentialIssue], options: SimulationOptions) -> List[PotentialIssue]:
    """Apply the detection toggles to issues reported by an LLM."""
    disabled = set()
    if not options.detect_null_refs:
        disabled.add(IssueType.NULL_REFERENCE.value)
    if not options.detect_type_mismatches:
        disabled.add(IssueType.TYPE_MISMATCH.value)
    if not options.detect_unreachable_code:
        disabled.update({IssueType.UNREACHABLE_CODE.value, IssueType.INFINITE_LOOP.value})
    return deduplicate([issue for issue in issues if issue.type not in disabled])


def deduplicate(issues: List[PotentialIssue]) -> List[PotentialIssue]:
    seen = set()
    unique = []
    for issue in issues:
        key = (issue.type, issue.location.line, issue.location.function, issue.description)
        if key in seen:
            continue
        seen.add(key)
        unique.append(issue)
    return unique
