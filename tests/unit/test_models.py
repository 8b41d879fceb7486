import pytest
from pydantic import ValidationError

from documcp.constants import ResponseFormat
from documcp.models import (
    BatchSimulateExecutionInput,
    DescribeToolsInput,
    SimulateExecutionInput,
    SimulationOptions,
)
from documcp.simulation import ExecutionStep, ExecutionTrace, PotentialIssue


class TestSimulationOptions:
    """Test simulation option defaults and merging."""

    def test_defaults(self):
        """Test default option values."""
        options = SimulationOptions()
        assert options.max_depth == 10
        assert options.max_steps == 100
        assert options.timeout_ms == 30000
        assert options.include_call_graph is True
        assert options.confidence_threshold == 0.7

    def test_camel_case_aliases(self):
        """Test camel case aliases."""
        options = SimulationOptions.model_validate({"maxSteps": 20, "detectNullRefs": False})
        assert options.max_steps == 20
        assert options.detect_null_refs is False

    def test_merge_applies_only_set_fields(self):
        """Test merge applies only set fields."""
        base = SimulationOptions(max_steps=50, detect_unreachable_code=False)
        merged = base.merged_with(SimulationOptions(max_depth=2))

        assert merged.max_depth == 2
        assert merged.max_steps == 50
        assert merged.detect_unreachable_code is False
        assert base.max_depth == 10

    def test_merge_with_none(self):
        """Test merging with no overrides returns an equal copy."""
        base = SimulationOptions(max_steps=7)
        merged = base.merged_with(None)
        assert merged == base
        assert merged is not base

    def test_range_validation(self):
        """Test range validation."""
        with pytest.raises(ValidationError):
            SimulationOptions(confidence_threshold=1.5)
        with pytest.raises(ValidationError):
            SimulationOptions(max_steps=0)

    def test_unknown_fields_rejected(self):
        """Test unknown fields rejected."""
        with pytest.raises(ValidationError):
            SimulationOptions.model_validate({"maxStep": 5})


class TestToolInputs:
    """Test tool input validation."""

    def test_simulate_execution_input(self):
        """Test simulate execution input."""
        params = SimulateExecutionInput.model_validate({
            "exampleCode": "add(1, 2)",
            "implementationPath": "src/calc.py",
            "options": {"includeCallGraph": False},
        })
        assert params.example_code == "add(1, 2)"
        assert params.implementation_path == "src/calc.py"
        assert params.options.include_call_graph is False
        assert params.response_format == ResponseFormat.JSON

    def test_example_code_required(self):
        """Test example code required."""
        with pytest.raises(ValidationError):
            SimulateExecutionInput.model_validate({"implementationCode": "x = 1"})

    def test_batch_input(self):
        """Test batch input."""
        params = BatchSimulateExecutionInput.model_validate({
            "examples": [{"code": "a()", "implementationCode": "def a(): pass"}, {"code": "b()"}],
            "globalOptions": {"maxSteps": 10},
        })
        assert len(params.examples) == 2
        assert params.examples[0].implementation_code == "def a(): pass"
        assert params.global_options.max_steps == 10

    def test_describe_tools_defaults_to_markdown(self):
        """Test describe tools defaults to markdown."""
        assert DescribeToolsInput().response_format == ResponseFormat.MARKDOWN


class TestTraceModels:
    """Test trace serialization."""

    def test_camel_case_dump(self):
        """Test camel case dump."""
        trace = ExecutionTrace(
            example_id="example-1",
            entry_point="main",
            execution_steps=[ExecutionStep(id="step-1", line_number=3, source_construct="add(1, 2)",
                                          facts={"internal": True})],
            potential_issues=[PotentialIssue(description="Something odd")],
        )
        data = trace.model_dump(by_alias=True)

        assert data["exampleId"] == "example-1"
        assert data["executionSteps"][0]["lineNumber"] == 3
        assert data["executionSteps"][0]["construct"] == "add(1, 2)"
        assert "facts" not in data["executionSteps"][0]
        assert data["potentialIssues"][0]["severity"] == "warning"
        assert data["reachedEnd"] is False

    def test_confidence_bounds(self):
        """Test confidence bounds."""
        with pytest.raises(ValidationError):
            ExecutionTrace(example_id="x", entry_point="main", confidence_score=1.2)

    def test_error_issues(self):
        """Test error issues."""
        trace = ExecutionTrace(
            example_id="x",
            entry_point="main",
            potential_issues=[
                PotentialIssue(description="a", severity="error"),
                PotentialIssue(description="b", severity="info"),
            ],
        )
        assert [issue.description for issue in trace.error_issues()] == ["a"]

    def test_step_construct_alias(self):
        """Test that the step source snippet is read from its camelCase key."""
        step = ExecutionStep.model_validate({"id": "step-1", "construct": "x = 1"})
        assert step.source_construct == "x = 1"
        assert "construct" not in ExecutionStep.model_fields
