"""Pydantic models for tool input validation."""

from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_STEPS,
    DEFAULT_TIMEOUT_MS,
    ResponseFormat,
    ToolCategory,
)


class SimulationOptions(BaseModel):
    """Options controlling a single execution simulation."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra='forbid'
    )

    max_depth: int = Field(
        default=DEFAULT_MAX_DEPTH,
        description="Maximum call depth to trace",
        ge=0
    )
    max_steps: int = Field(
        default=DEFAULT_MAX_STEPS,
        description="Maximum execution steps to simulate",
        ge=1
    )
    timeout_ms: int = Field(
        default=DEFAULT_TIMEOUT_MS,
        description="Timeout for simulation in milliseconds",
        ge=1
    )
    include_call_graph: bool = Field(
        default=True,
        description="Include call graph in results"
    )
    detect_null_refs: bool = Field(
        default=True,
        description="Detect potential null/undefined references"
    )
    detect_type_mismatches: bool = Field(
        default=True,
        description="Detect type mismatches"
    )
    detect_unreachable_code: bool = Field(
        default=True,
        description="Detect unreachable code"
    )
    confidence_threshold: float = Field(
        default=DEFAULT_CONFIDENCE_THRESHOLD,
        description="Confidence below which results are flagged for manual review (0-1)",
        ge=0.0,
        le=1.0
    )

    def merged_with(self, overrides: Optional["SimulationOptions"]) -> "SimulationOptions":
        """Return a copy with every field explicitly set on `overrides` applied."""
        if overrides is None:
            return self.model_copy()
        return self.model_copy(update=overrides.model_dump(exclude_unset=True))


class SimulateExecutionInput(BaseModel):
    """Input for simulating execution of a documentation example."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra='forbid'
    )

    # Not min_length-constrained: blank examples are reported as a failed result
    example_code: str = Field(
        ...,
        description="The code example to simulate (from documentation)"
    )
    implementation_code: Optional[str] = Field(
        default=None,
        description="The actual implementation code to trace against (if not using implementationPath)"
    )
    implementation_path: Optional[str] = Field(
        default=None,
        description="Path to the implementation file (alternative to implementationCode)"
    )
    entry_point: Optional[str] = Field(
        default=None,
        description="Function name to start tracing from (auto-detected if not provided)"
    )
    expected_behavior: Optional[str] = Field(
        default=None,
        description="Description of expected behavior for validation"
    )
    options: Optional[SimulationOptions] = Field(
        default=None,
        description="Simulation options; unset fields use the configured defaults"
    )
    response_format: ResponseFormat = Field(
        default=ResponseFormat.JSON,
        description="Output format: 'json' for machine-readable or 'markdown' for human-readable"
    )


class BatchExample(BaseModel):
    """A single example in a batch simulation."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='forbid'
    )

    code: str = Field(..., description="The code example")
    implementation_code: Optional[str] = Field(
        default=None,
        description="Implementation code to trace against"
    )
    implementation_path: Optional[str] = Field(
        default=None,
        description="Path to implementation file"
    )
    entry_point: Optional[str] = Field(
        default=None,
        description="Function name to start tracing from"
    )
    expected_behavior: Optional[str] = Field(
        default=None,
        description="Expected behavior description"
    )


class BatchSimulateExecutionInput(BaseModel):
    """Input for simulating a batch of documentation examples."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        extra='forbid'
    )

    examples: List[BatchExample] = Field(
        ...,
        description="Array of examples to simulate"
    )
    global_options: Optional[SimulationOptions] = Field(
        default=None,
        description="Options applied to all simulations"
    )
    response_format: ResponseFormat = Field(
        default=ResponseFormat.JSON,
        description="Output format"
    )


class DescribeToolsInput(BaseModel):
    """Input for describing the registered tools."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='forbid'
    )

    tool_name: Optional[str] = Field(
        default=None,
        description="Describe a single tool. If not specified, all tools are described"
    )
    category: Optional[ToolCategory] = Field(
        default=None,
        description="Only describe tools in this category"
    )
    response_format: ResponseFormat = Field(
        default=ResponseFormat.MARKDOWN,
        description="Output format"
    )
