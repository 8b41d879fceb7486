"""Integration tests for the simulate_execution tool."""

import json

import pytest

from documcp.analysis import ASTAnalyzer
from documcp.constants import ResponseFormat
from documcp.models import SimulateExecutionInput, SimulationOptions
from documcp.simulation import ExecutionSimulator
from documcp.tools import format_simulation_result, handle_simulate_execution

CALC_SOURCE = '''def add(a: int, b: int) -> int:
    return a + b


def total(values):
    result = 0
    for value in values:
        result = add(result, value)
    return result
'''

CALC_EXAMPLE = '''from calc import add

result = add(2, 3)
print(result)
'''


class RecordingContext:
    """Collects progress messages the way an MCP Context would receive them."""

    def __init__(self):
        self.messages = []

    async def info(self, message):
        self.messages.append(message)


class GraphlessAnalyzer(ASTAnalyzer):
    """Analyzes snippets but fails on files."""

    def analyze_file(self, path):
        raise RecursionError("maximum recursion depth exceeded")


class CrashingAnalyzer(ASTAnalyzer):
    def analyze_source(self, source, language=None, file_path="<snippet>"):
        raise RuntimeError("parser crashed")


@pytest.fixture
def calc_file(tmp_path):
    path = tmp_path / "calc.py"
    path.write_text(CALC_SOURCE)
    return path


@pytest.mark.asyncio
class TestSimulateExecutionTool:
    """Integration tests for single-example simulation."""

    async def test_simulates_against_implementation_file(self, simulator, calc_file):
        """Test simulates against implementation file."""
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_path=str(calc_file),
        ), simulator)

        assert result.success is True
        assert result.trace.entry_point == "add"
        assert result.trace.reached_end is True
        assert result.trace.error_issues() == []
        assert result.call_graph is not None
        assert result.call_graph.nodes["add"].file == str(calc_file)
        assert result.summary.startswith("Traced ")
        assert "Execution completed normally" in result.summary

    async def test_call_graph_from_implementation_code(self, simulator):
        """Test call graph from implementation code."""
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code="print(total([1, 2]))\n",
            implementation_code=CALC_SOURCE,
        ), simulator)

        graph = result.call_graph
        assert graph.entry_point == "total"
        assert [(edge.caller, edge.callee) for edge in graph.edges] == [("total", "add")]

    async def test_call_graph_can_be_disabled(self, simulator, calc_file):
        """Test call graph can be disabled."""
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_path=str(calc_file),
            options=SimulationOptions(include_call_graph=False),
        ), simulator)

        assert result.success is True
        assert result.call_graph is None

    async def test_missing_implementation_file(self, simulator, tmp_path):
        """Test missing implementation file."""
        missing = tmp_path / "missing.py"
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_path=str(missing),
        ), simulator)

        assert result.success is False
        assert "Failed to load implementation file" in result.summary
        assert result.trace.example_id == "error"
        assert result.trace.confidence_score == 0.0
        assert result.recommendations == ["Verify the implementation path exists and is readable"]

    async def test_blank_example(self, simulator):
        """Test blank example."""
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code="   \n",
            implementation_code=CALC_SOURCE,
        ), simulator)

        assert result.success is False
        assert result.summary == "No example code provided"

    async def test_expected_behavior_validation(self, simulator, calc_file):
        """Test expected behavior validation."""
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_path=str(calc_file),
            expected_behavior="Returns a number",
        ), simulator)

        assert result.validation is not None
        assert result.validation.is_valid is True
        assert result.validation.matches_documentation is True
        assert "Example validation: PASSED" in result.summary
        assert "Behavior matches documentation" in result.summary

    async def test_issues_produce_recommendations(self, simulator):
        """Test issues produce recommendations."""
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code="const user = null;\nconsole.log(user.name);\n",
        ), simulator)

        assert result.success is True
        assert "Issues detected: 1 error(s)" in result.summary
        assert any("optional chaining" in text for text in result.recommendations)

    async def test_progress_is_reported(self, simulator, calc_file):
        """Test progress is reported."""
        ctx = RecordingContext()
        await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_path=str(calc_file),
        ), simulator, ctx)

        assert ctx.messages[0] == "Starting execution simulation..."
        assert "Loaded implementation from calc.py" in ctx.messages
        assert "LLM not available, using static analysis" in ctx.messages

    async def test_call_graph_failure_is_omitted(self, calc_file):
        """Test that a failing call graph step still returns a successful result."""
        simulator = ExecutionSimulator(analyzer=GraphlessAnalyzer())
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_path=str(calc_file),
        ), simulator)

        assert result.success is True
        assert result.call_graph is None
        assert result.trace.entry_point == "add"
        data = json.loads(format_simulation_result(result, ResponseFormat.JSON))
        assert "callGraph" not in data

    async def test_call_graph_build_error_is_omitted(self, simulator, monkeypatch):
        """Test that an error while expanding the call graph leaves it out."""
        def explode(entry_point, model, max_depth=None):
            raise RecursionError("maximum recursion depth exceeded")

        monkeypatch.setattr(simulator, "build_call_graph", explode)
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code="print(total([1, 2]))\n",
            implementation_code=CALC_SOURCE,
        ), simulator)

        assert result.success is True
        assert result.call_graph is None
        assert result.trace.entry_point == "total"

    async def test_internal_failure_is_a_zero_confidence_result(self):
        """Test that an analyzer crash yields an empty trace with a single issue."""
        simulator = ExecutionSimulator(analyzer=CrashingAnalyzer())
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_code=CALC_SOURCE,
        ), simulator)

        assert result.call_graph is None
        assert result.trace.execution_steps == []
        assert result.trace.confidence_score == 0.0
        assert len(result.trace.potential_issues) == 1
        assert "Issues detected: 1 error(s)" in result.summary

    async def test_unparseable_example(self, simulator):
        """Test that an example no parser accepts is reported as not completing."""
        result = await handle_simulate_execution(SimulateExecutionInput(example_code="}}}} ((("), simulator)

        assert result.trace.reached_end is False
        assert result.trace.error_issues()
        assert "Execution completed normally" not in result.summary
        assert "Execution did not complete" in result.summary


@pytest.mark.asyncio
class TestSimulationFormatting:
    """Test JSON and markdown rendering."""

    async def test_json_output(self, simulator, calc_file):
        """Test JSON result rendering."""
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_path=str(calc_file),
        ), simulator)
        data = json.loads(format_simulation_result(result, ResponseFormat.JSON))

        assert data["success"] is True
        assert data["trace"]["entryPoint"] == "add"
        assert "callGraph" in data
        assert "validation" not in data
        assert all("facts" not in step for step in data["trace"]["executionSteps"])

    async def test_markdown_output(self, simulator, calc_file):
        """Test markdown output."""
        result = await handle_simulate_execution(SimulateExecutionInput(
            example_code=CALC_EXAMPLE,
            implementation_path=str(calc_file),
        ), simulator)
        text = format_simulation_result(result, ResponseFormat.MARKDOWN)

        assert text.startswith("# Execution Simulation")
        assert "**Status:** success" in text
        assert "## Trace: `add`" in text
        assert "## Call Graph" in text
        assert "## Recommendations" in text

    async def test_failure_markdown_has_no_trace(self, simulator):
        """Test failure markdown has no trace."""
        result = await handle_simulate_execution(SimulateExecutionInput(example_code=""), simulator)
        text = format_simulation_result(result, ResponseFormat.MARKDOWN)

        assert "**Status:** failed" in text
        assert "## Trace" not in text
