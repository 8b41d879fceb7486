"""Execution simulation: static and LLM-assisted tracing of code examples."""

from .call_graph import build_call_graph
from .models import (
    CallGraph,
    CallGraphEdge,
    CallGraphNode,
    ExampleValidationResult,
    ExecutionStep,
    ExecutionTrace,
    NodeState,
    PotentialIssue,
    VariableState,
)
from .simulator import (
    ExecutionSimulator,
    create_error_trace,
    create_execution_simulator,
    detect_entry_point,
    generate_example_id,
    score_confidence,
)
from .validator import BehaviorMatcher, KeywordBehaviorMatcher, LLMBehaviorMatcher, Validator

__all__ = [
    "BehaviorMatcher",
    "CallGraph",
    "CallGraphEdge",
    "CallGraphNode",
    "ExampleValidationResult",
    "ExecutionSimulator",
    "ExecutionStep",
    "ExecutionTrace",
    "KeywordBehaviorMatcher",
    "LLMBehaviorMatcher",
    "NodeState",
    "PotentialIssue",
    "Validator",
    "VariableState",
    "build_call_graph",
    "create_error_trace",
    "create_execution_simulator",
    "detect_entry_point",
    "generate_example_id",
    "score_confidence",
]
