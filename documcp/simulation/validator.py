"""Comparison of a trace against a documented expected behavior.

Matching free text against a trace is heuristic. The matchers here look for
contradictions (an example documented to raise that completes normally, a
documented return type that differs from the inferred one) and never claim
more than that.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

from ..analysis.models import NULLISH_TYPES
from ..constants import IssueType, Severity, StepKind
from ..core.errors import LLMError
from .models import (
    ExampleValidationResult,
    ExecutionStep,
    ExecutionTrace,
    IssueLocation,
    PotentialIssue,
    StepFacts,
)
from .strategies import extract_json

logger = logging.getLogger(__name__)

LOW_CONFIDENCE_STEP = 0.5
LOW_CONFIDENCE_SHARE = 0.3

_ERROR_WORDS = re.compile(r"\b(throws?|raises?|rejects?|fails? with|errors? out)\b", re.IGNORECASE)
_NEGATED_ERROR = re.compile(r"\b(without|never|not|no)\s+(throwing|raising|errors?|exceptions?)\b", re.IGNORECASE)
_RETURNS_NOTHING = re.compile(
    r"\b(returns? (nothing|none|undefined|void)|no return value|does not return)\b", re.IGNORECASE
)
_RETURNS_TYPE = re.compile(
    r"\breturns? (?:an? |the )?(string|str|number|int|integer|float|boolean|bool|true|false|"
    r"list|array|object|dict|dictionary|map|null|none)\b",
    re.IGNORECASE,
)

_TYPE_WORDS = {
    "string": "string", "str": "string",
    "number": "number", "int": "number", "integer": "number", "float": "number",
    "boolean": "boolean", "bool": "boolean", "true": "boolean", "false": "boolean",
    "list": "array", "array": "array",
    "object": "object", "dict": "object", "dictionary": "object", "map": "object",
    "null": "null", "none": "null",
}


def _entry_return(trace: ExecutionTrace) -> Optional[ExecutionStep]:
    """The return step of the outermost traced function on the path."""
    on_path = set(trace.execution_path)
    returns = [
        step for step in trace.execution_steps
        if step.kind == StepKind.RETURN and step.id in on_path
    ]
    if not returns:
        return None
    shallowest = min(step.depth for step in returns)
    return [step for step in returns if step.depth == shallowest][-1]


def _thrown(trace: ExecutionTrace) -> Optional[str]:
    on_path = set(trace.execution_path)
    for step in reversed(trace.execution_steps):
        if step.error_thrown and step.id in on_path:
            return step.error_thrown
    return None


class BehaviorMatcher(ABC):
    """Decides whether a trace contradicts a free-text expected behavior."""

    @abstractmethod
    async def find_contradiction(self, trace: ExecutionTrace, expected_behavior: str) -> Optional[str]:
        """Return a description of the contradiction, or None."""


class KeywordBehaviorMatcher(BehaviorMatcher):
    """Keyword-level comparison of expected behavior and trace outcome."""

    async def find_contradiction(self, trace: ExecutionTrace, expected_behavior: str) -> Optional[str]:
        text = expected_behavior.strip()
        if not text:
            return None

        thrown = _thrown(trace)
        expects_error = bool(_ERROR_WORDS.search(text)) and not _NEGATED_ERROR.search(text)
        if expects_error and thrown is None and trace.reached_end:
            return "Expected behavior describes an error, but the trace completes normally"
        if not expects_error and thrown is not None and not trace.reached_end:
            return f"Expected behavior describes normal completion, but the trace ends with {thrown}"

        returned = _entry_return(trace)
        return_type = None
        if returned is not None and isinstance(returned.facts, StepFacts):
            return_type = returned.facts.extra.get("return_type")

        if _RETURNS_NOTHING.search(text):
            if return_type and return_type not in NULLISH_TYPES and return_type != "unknown":
                return f"Expected no return value, but the trace returns {returned.return_value}"
            return None

        match = _RETURNS_TYPE.search(text)
        if match and return_type and return_type != "unknown":
            expected = _TYPE_WORDS[match.group(1).lower()]
            actual_types = set(return_type.split("|"))
            if expected == "null":
                actual_types = {t if t not in NULLISH_TYPES else "null" for t in actual_types}
            if expected not in actual_types:
                return f"Expected a {expected} return value, but the trace returns {return_type}"
        return None


class LLMBehaviorMatcher(BehaviorMatcher):
    """Semantic comparison through the LLM backend, keyword fallback on failure."""

    def __init__(self, client, fallback: Optional[BehaviorMatcher] = None):
        self.client = client
        self.fallback = fallback or KeywordBehaviorMatcher()

    def build_prompt(self, trace: ExecutionTrace, expected_behavior: str) -> str:
        return f"""Compare the following execution trace with the expected behavior.

## Execution Trace Summary:
- Steps: {len(trace.execution_steps)}
- Variables: {", ".join(trace.variables_accessed)}
- Issues found: {len(trace.potential_issues)}
- Reached end: {str(trace.reached_end).lower()}
- Error thrown: {_thrown(trace) or "none"}

## Expected Behavior:
{expected_behavior}

Does the execution match the expected behavior? Respond with JSON:
{{
  "matches": <boolean>,
  "reason": "<explanation>"
}}"""

    async def find_contradiction(self, trace: ExecutionTrace, expected_behavior: str) -> Optional[str]:
        if not expected_behavior.strip():
            return None
        try:
            reply = extract_json(await self.client.complete(self.build_prompt(trace, expected_behavior)))
            if not isinstance(reply, dict) or "matches" not in reply:
                raise ValueError("reply has no 'matches' field")
        except (LLMError, ValueError) as e:
            logger.warning("LLM behavior comparison failed, using keyword matching: %s", e)
            return await self.fallback.find_contradiction(trace, expected_behavior)
        if bool(reply["matches"]):
            return None
        return str(reply.get("reason") or "LLM judged the trace inconsistent with the expected behavior")


class Validator:
    """Turns a trace into an `ExampleValidationResult`."""

    def __init__(self, matcher: Optional[BehaviorMatcher] = None):
        self.matcher = matcher or KeywordBehaviorMatcher()

    @staticmethod
    def observations(trace: ExecutionTrace) -> List[PotentialIssue]:
        observed = []
        steps = trace.execution_steps
        low = [step for step in steps if step.confidence < LOW_CONFIDENCE_STEP]
        if steps and len(low) > len(steps) * LOW_CONFIDENCE_SHARE:
            observed.append(PotentialIssue(
                type=IssueType.OTHER,
                severity=Severity.WARNING,
                location=IssueLocation(line=0),
                description="Many execution steps have low confidence",
                suggestion="Manual review recommended for this example",
            ))
        if not trace.reached_end:
            observed.append(PotentialIssue(
                type=IssueType.OTHER,
                severity=Severity.WARNING,
                location=IssueLocation(line=0),
                description="Execution simulation did not complete normally",
                suggestion="Check for infinite loops, uncaught errors or early termination",
            ))
        return observed

    async def validate_trace(self, trace: ExecutionTrace, expected_behavior: Optional[str] = None,
                             example_code: str = "") -> ExampleValidationResult:
        issues = [issue.model_copy(deep=True) for issue in trace.potential_issues]
        issues.extend(self.observations(trace))

        is_valid = trace.reached_end and not trace.error_issues()
        contradiction = None
        if expected_behavior:
            contradiction = await self.matcher.find_contradiction(trace, expected_behavior)

        suggestions = []
        if contradiction:
            suggestions.append(f"Documentation mismatch: {contradiction}")
        for issue in issues:
            if issue.severity == Severity.INFO.value or not issue.suggestion:
                continue
            if issue.suggestion not in suggestions:
                suggestions.append(issue.suggestion)

        return ExampleValidationResult(
            example_code=example_code,
            trace=trace,
            is_valid=is_valid,
            issues=issues,
            matches_documentation=is_valid and contradiction is None,
            suggestions=suggestions,
        )
