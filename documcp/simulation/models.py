"""Pydantic models for execution traces, validation results and call graphs.

All models serialize with camelCase keys (``model_dump(by_alias=True)``).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..analysis.models import MemberRead
from ..constants import IssueType, Severity, StepKind


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


# ============================================================================
# Walker observations (never serialized)
# ============================================================================

@dataclass(frozen=True)
class ArgumentCheck:
    """An argument passed to a parameter with a declared type."""
    callee: str
    parameter: str
    expected: str
    actual: str


@dataclass(frozen=True)
class ArityCheck:
    callee: str
    given: int
    required: int
    maximum: Optional[int]  # None when the callee accepts varargs
    strict: bool  # wrong arity raises at runtime (Python)


@dataclass(frozen=True)
class AnnotationCheck:
    target: str
    expected: str
    actual: str


@dataclass(frozen=True)
class NullableRead:
    """A member read together with what was known about its object."""
    read: MemberRead
    value_type: str
    source: str  # literal, parameter, return value, ...


@dataclass
class StepFacts:
    """Raw observations the static walker attaches to a step.

    Detection passes turn these into issues; the walker itself never decides
    whether something is a problem.
    """
    on_path: bool = True
    undefined: Tuple[str, ...] = ()
    nullable_reads: Tuple[NullableRead, ...] = ()
    argument_checks: Tuple[ArgumentCheck, ...] = ()
    arity_checks: Tuple[ArityCheck, ...] = ()
    annotation_checks: Tuple[AnnotationCheck, ...] = ()
    infinite_loop: bool = False
    uncaught: Optional[str] = None
    risky_calls: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()  # (callee, raises) outside any handler
    language: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Trace
# ============================================================================

class ExecutionStep(_CamelModel):
    """A single inferred operation."""
    id: str
    line_number: int = 0
    kind: StepKind = StepKind.STATEMENT
    operation: str = ""
    source_construct: Optional[str] = Field(default=None, alias="construct")
    function: Optional[str] = None
    depth: int = 0
    state_changes: Dict[str, Any] = Field(default_factory=dict)
    calls_made: List[str] = Field(default_factory=list)
    branch_taken: Optional[str] = None
    return_value: Optional[Any] = None
    error_thrown: Optional[str] = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    facts: Optional[Any] = Field(default=None, exclude=True, repr=False)  # StepFacts


class VariableState(_CamelModel):
    name: str
    type: str = "unknown"
    value: Optional[Any] = None
    defined_at: int = 0
    last_modified_at: int = 0
    is_parameter: bool = False


class IssueLocation(_CamelModel):
    line: int = 0
    function: Optional[str] = None


class PotentialIssue(_CamelModel):
    """A potential runtime problem found without executing the code."""
    type: IssueType = IssueType.OTHER
    severity: Severity = Severity.WARNING
    location: IssueLocation = Field(default_factory=IssueLocation)
    description: str
    suggestion: str = ""
    code_snippet: Optional[str] = None


class ExecutionTrace(_CamelModel):
    example_id: str
    entry_point: str
    execution_steps: List[ExecutionStep] = Field(default_factory=list)
    variables_accessed: Dict[str, VariableState] = Field(default_factory=dict)
    potential_issues: List[PotentialIssue] = Field(default_factory=list)
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    execution_path: List[str] = Field(default_factory=list)
    reached_end: bool = False
    simulation_duration: float = 0.0  # milliseconds

    def error_issues(self) -> List[PotentialIssue]:
        return [issue for issue in self.potential_issues if issue.severity == Severity.ERROR.value]


class ExampleValidationResult(_CamelModel):
    example_code: str
    trace: ExecutionTrace
    is_valid: bool
    issues: List[PotentialIssue] = Field(default_factory=list)
    matches_documentation: bool = True
    suggestions: List[str] = Field(default_factory=list)


# ============================================================================
# Call graph
# ============================================================================

class NodeState(str, Enum):
    UNVISITED = "unvisited"
    VISITING = "visiting"
    VISITED = "visited"


class CallGraphNode(_CamelModel):
    name: str
    file: Optional[str] = None
    line: int = 0
    depth: int = 0
    resolved: bool = True
    parameters: List[str] = Field(default_factory=list)
    branches: int = 0
    loops: int = 0
    raises: List[str] = Field(default_factory=list)
    state: NodeState = NodeState.UNVISITED


class CallGraphEdge(_CamelModel):
    caller: str
    callee: str
    lines: List[int] = Field(default_factory=list)
    recursive: bool = False


class CallGraph(_CamelModel):
    entry_point: str
    nodes: Dict[str, CallGraphNode] = Field(default_factory=dict)
    edges: List[CallGraphEdge] = Field(default_factory=list)
    max_depth_reached: int = 0
