"""MCP tool handlers."""

from .registry import (
    ParameterDoc,
    ToolDefinition,
    ToolMetadata,
    ToolRegistry,
    create_default_registry,
    handle_describe_tools,
)
from .simulate_execution import (
    BatchSimulateExecutionResult,
    BatchSummary,
    SimulateExecutionResult,
    create_empty_trace,
    format_batch_result,
    format_simulation_result,
    generate_recommendations,
    generate_summary,
    handle_batch_simulate_execution,
    handle_simulate_execution,
)

__all__ = [
    "BatchSimulateExecutionResult",
    "BatchSummary",
    "ParameterDoc",
    "SimulateExecutionResult",
    "ToolDefinition",
    "ToolMetadata",
    "ToolRegistry",
    "create_default_registry",
    "create_empty_trace",
    "format_batch_result",
    "format_simulation_result",
    "generate_recommendations",
    "generate_summary",
    "handle_batch_simulate_execution",
    "handle_describe_tools",
    "handle_simulate_execution",
]
