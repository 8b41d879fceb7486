#!/usr/bin/env python3
"""
DocuMCP Execution Simulation Server

An MCP server that validates documentation code examples without running them:
- Execution tracing of an example against its implementation
- Detection of null references, type mismatches, unreachable code and
  missing error handling
- Call graph construction
- Batch validation of many examples
"""

from mcp.server.fastmcp import Context, FastMCP

from documcp.core import configure_logging, handle_error, load_server_config
from documcp.models import BatchSimulateExecutionInput, DescribeToolsInput, SimulateExecutionInput
from documcp.simulation import create_execution_simulator
from documcp.tools import (
    create_default_registry,
    format_batch_result,
    format_simulation_result,
    handle_batch_simulate_execution,
    handle_describe_tools,
    handle_simulate_execution,
)

config = load_server_config()
configure_logging(config.log_level)

# Initialize the MCP server
mcp = FastMCP("documcp")

registry = create_default_registry()
simulator = create_execution_simulator(config=config)

# ============================================================================
# Tool Implementations
# ============================================================================

@mcp.tool(
    name="simulate_execution",
    annotations={
        "title": "Simulate Code Execution",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def simulate_execution(params: SimulateExecutionInput, ctx: Context | None = None) -> str:
    """Trace a documentation code example against its implementation without running it.

    Builds a step-by-step execution trace, detects potential runtime issues
    (null references, type mismatches, unreachable code, missing error
    handling), optionally builds a call graph, and scores confidence.

    Args:
        params (SimulateExecutionInput): Validated input parameters containing:
            - example_code (str): The documentation example
            - implementation_code (Optional[str]): Implementation source
            - implementation_path (Optional[str]): Implementation file (used when no code is given)
            - entry_point (Optional[str]): Function to trace (auto-detected if not specified)
            - expected_behavior (Optional[str]): Behavior to validate against
            - options (Optional[SimulationOptions]): Per-call simulation options
            - response_format (ResponseFormat): Output format (json or markdown)

    Returns:
        str: Simulation result with success, trace, validation, callGraph, summary and recommendations

    Examples:
        - Use when: Checking that a README example still works with the current code
        - Use when: Finding undefined names or null dereferences in an example
        - Don't use when: You need the example's actual runtime output

    Error Handling:
        - Returns success=false if exampleCode is blank
        - Returns success=false if implementationPath cannot be read
    """
    try:
        result = await handle_simulate_execution(params, simulator, ctx)
        return format_simulation_result(result, params.response_format)
    except Exception as e:
        return handle_error(e, "simulate_execution")


@mcp.tool(
    name="batch_simulate_execution",
    annotations={
        "title": "Batch Simulate Code Execution",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def batch_simulate_execution(params: BatchSimulateExecutionInput, ctx: Context | None = None) -> str:
    """Simulate several documentation examples in order.

    Args:
        params (BatchSimulateExecutionInput): Validated input parameters containing:
            - examples (List[BatchExample]): Examples to simulate
            - global_options (Optional[SimulationOptions]): Options applied to every example
            - response_format (ResponseFormat): Output format (json or markdown)

    Returns:
        str: Per-example results plus total, passed, failed and averageConfidence

    Error Handling:
        - A failing example is recorded as failed; the rest of the batch still runs
    """
    try:
        result = await handle_batch_simulate_execution(params, simulator, ctx)
        return format_batch_result(result, params.response_format)
    except Exception as e:
        return handle_error(e, "batch_simulate_execution")


@mcp.tool(
    name="describe_tools",
    annotations={
        "title": "Describe DocuMCP Tools",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False
    }
)
async def describe_tools(params: DescribeToolsInput) -> str:
    """Describe the available tools, their parameters and orchestration metadata."""
    try:
        return handle_describe_tools(params, registry)
    except Exception as e:
        return handle_error(e, "describe_tools")


if __name__ == "__main__":
    mcp.run()
