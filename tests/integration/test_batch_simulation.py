"""Integration tests for batch simulation."""

import json

import pytest

from documcp.constants import ResponseFormat
from documcp.models import (
    BatchExample,
    BatchSimulateExecutionInput,
    SimulateExecutionInput,
    SimulationOptions,
)
from documcp.tools import format_batch_result, handle_batch_simulate_execution, handle_simulate_execution

PY_IMPLEMENTATION = '''def add(a, b):
    return a + b
'''

JS_IMPLEMENTATION = '''function greet(name) {
  return 'Hello, ' + name;
}
'''


def stable(result):
    """Result dump without wall-clock timing."""
    data = result.model_dump(by_alias=True)
    data["trace"].pop("simulationDuration")
    return data


@pytest.fixture
def examples(tmp_path):
    return [
        BatchExample(code="result = add(2, 3)\n", implementation_code=PY_IMPLEMENTATION),
        BatchExample(code="add(1, 1)\n", implementation_path=str(tmp_path / "missing.py")),
        BatchExample(code="const message = greet('Ann');\n", implementation_code=JS_IMPLEMENTATION),
    ]


@pytest.mark.asyncio
class TestBatchSimulation:
    """Integration tests for batch_simulate_execution."""

    async def test_results_in_input_order(self, simulator, examples):
        """Test results in input order."""
        result = await handle_batch_simulate_execution(
            BatchSimulateExecutionInput(examples=examples), simulator
        )

        assert len(result.results) == 3
        assert result.results[0].trace.entry_point == "add"
        assert result.results[1].success is False
        assert result.results[2].trace.entry_point == "greet"

    async def test_summary_counts(self, simulator, examples):
        """Test summary counts."""
        result = await handle_batch_simulate_execution(
            BatchSimulateExecutionInput(examples=examples), simulator
        )
        summary = result.summary

        assert summary.total == 3
        assert summary.passed == 2
        assert summary.failed == 1
        assert summary.passed + summary.failed == summary.total
        assert 0.0 <= summary.average_confidence <= 1.0
        assert result.success is False

    async def test_failure_does_not_affect_other_examples(self, simulator, examples):
        """Test failure does not affect other examples."""
        batch = await handle_batch_simulate_execution(
            BatchSimulateExecutionInput(examples=examples), simulator
        )

        for index in (0, 2):
            example = examples[index]
            single = await handle_simulate_execution(SimulateExecutionInput(
                example_code=example.code,
                implementation_code=example.implementation_code,
            ), simulator)
            assert stable(batch.results[index]) == stable(single)

    async def test_global_options_apply_to_every_example(self, simulator, examples):
        """Test global options apply to every example."""
        result = await handle_batch_simulate_execution(
            BatchSimulateExecutionInput(
                examples=examples,
                global_options=SimulationOptions(include_call_graph=False),
            ),
            simulator,
        )
        assert all(item.call_graph is None for item in result.results)

    async def test_all_passing_batch(self, simulator, examples):
        """Test all passing batch."""
        result = await handle_batch_simulate_execution(
            BatchSimulateExecutionInput(examples=[examples[0], examples[2]]), simulator
        )
        assert result.success is True
        assert result.summary.failed == 0

    async def test_unparseable_example_fails(self, simulator):
        """Test that an example no parser accepts is counted as failed."""
        result = await handle_batch_simulate_execution(
            BatchSimulateExecutionInput(examples=[BatchExample(code="}}}}")]), simulator
        )

        assert result.summary.total == 1
        assert result.summary.passed == 0
        assert result.summary.failed == 1
        assert result.success is False

    async def test_empty_batch(self, simulator):
        """Test empty batch."""
        result = await handle_batch_simulate_execution(BatchSimulateExecutionInput(examples=[]), simulator)

        assert result.success is True
        assert result.summary.total == 0
        assert result.summary.average_confidence == 0.0

    async def test_formatting(self, simulator, examples):
        """Test JSON and markdown batch output."""
        result = await handle_batch_simulate_execution(
            BatchSimulateExecutionInput(examples=examples), simulator
        )

        data = json.loads(format_batch_result(result, ResponseFormat.JSON))
        assert data["summary"] == {"total": 3, "passed": 2, "failed": 1,
                                   "averageConfidence": result.summary.average_confidence}

        text = format_batch_result(result, ResponseFormat.MARKDOWN)
        assert "- Total: 3" in text
        assert "## Example 2: FAILED" in text
