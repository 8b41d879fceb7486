import asyncio

import pytest

from documcp.constants import IssueType, Severity, StepKind
from documcp.models import SimulationOptions
from documcp.simulation import (
    ExecutionSimulator,
    create_execution_simulator,
    detect_entry_point,
    generate_example_id,
)

CALC_IMPLEMENTATION = '''
def add(a: int, b: int) -> int:
    return a + b
'''

CALC_EXAMPLE = '''
from calc import add
result = add(2, 3)
print(result)
'''

LOADER_IMPLEMENTATION = '''
def load(path):
    if not path:
        raise ValueError("path required")
    return path


def fail():
    raise RuntimeError("boom")
'''


class BrokenAnalyzer:
    """Analyzer that fails with an unexpected error."""

    def initialize(self):
        pass

    def analyze_source(self, source, language=None, file_path="<snippet>"):
        raise RuntimeError("parser crashed")

    def analyze_file(self, path):
        raise RuntimeError("parser crashed")


class SlowLLMClient:
    async def complete(self, prompt):
        await asyncio.sleep(5)
        return "{}"


def _types(trace):
    return [issue.type for issue in trace.potential_issues]


def _comparable(trace):
    data = trace.model_dump(by_alias=True)
    data.pop("simulationDuration")
    return data


@pytest.mark.asyncio
class TestSimulateExecution:
    """Test static execution simulation."""

    async def test_traces_call_into_implementation(self, simulator):
        """Test traces call into implementation."""
        trace = await simulator.simulate_execution(CALC_EXAMPLE, CALC_IMPLEMENTATION)

        assert trace.entry_point == "add"
        assert trace.reached_end is True
        assert trace.error_issues() == []
        assert "result" in trace.variables_accessed
        kinds = [step.kind for step in trace.execution_steps]
        assert StepKind.IMPORT.value in kinds
        assert StepKind.RETURN.value in kinds
        entered = [step for step in trace.execution_steps if step.operation.startswith("Enter add")]
        assert len(entered) == 1
        assert entered[0].depth == 1

    async def test_static_confidence_penalty(self, simulator):
        """Test static confidence penalty."""
        trace = await simulator.simulate_execution(CALC_EXAMPLE, CALC_IMPLEMENTATION)
        assert trace.confidence_score == pytest.approx(0.7)

    async def test_undefined_function_is_an_error(self, simulator):
        """Test undefined function is an error."""
        trace = await simulator.simulate_execution("foo();")

        assert trace.entry_point == "foo"
        assert trace.reached_end is False
        undefined = [i for i in trace.potential_issues if i.type == IssueType.UNDEFINED_VARIABLE.value]
        assert len(undefined) == 1
        assert undefined[0].severity == Severity.ERROR.value
        assert undefined[0].location.line == 1
        assert trace.execution_steps[0].error_thrown == "ReferenceError"

    async def test_simulation_is_deterministic(self, simulator):
        """Test simulation is deterministic."""
        first = await simulator.simulate_execution(CALC_EXAMPLE, CALC_IMPLEMENTATION)
        second = await simulator.simulate_execution(CALC_EXAMPLE, CALC_IMPLEMENTATION)
        assert _comparable(first) == _comparable(second)

    async def test_execution_path_follows_step_order(self, simulator):
        """Test execution path follows step order."""
        trace = await simulator.simulate_execution(
            "value = compute(3)\n",
            "def compute(x):\n    if x > 2:\n        return x\n    else:\n        return 0\n",
        )
        ids = [step.id for step in trace.execution_steps]
        positions = [ids.index(step_id) for step_id in trace.execution_path]
        assert positions == sorted(positions)
        assert len(set(trace.execution_path)) == len(trace.execution_path)

    async def test_off_path_branch_is_recorded_but_not_on_path(self, simulator):
        """Test off-path branch is recorded but not on path."""
        trace = await simulator.simulate_execution(
            "value = compute(3)\n",
            "def compute(x):\n    if x > 2:\n        return x\n    else:\n        return 0\n",
        )
        off_path = [step for step in trace.execution_steps if step.id not in trace.execution_path]
        assert len(off_path) == 1
        assert off_path[0].line_number == 5

    async def test_step_budget(self, simulator):
        """Test step budget."""
        source = "a = 1\nb = 2\nc = 3\nd = 4\ne = 5\n"
        trace = await simulator.simulate_execution(source, options=SimulationOptions(max_steps=3), language="python")

        assert len(trace.execution_steps) == 3
        assert trace.reached_end is False
        budget = [i for i in trace.potential_issues if i.description == "Step budget exceeded"]
        assert len(budget) == 1
        assert budget[0].severity == Severity.INFO.value

    async def test_time_budget(self, simulator):
        """Test that running out of time keeps the partial trace and reports it."""
        example = "x = 1\n" * 3000
        trace = await simulator.simulate_execution(
            example, language="python", options=SimulationOptions(max_steps=10000, timeout_ms=1)
        )

        assert trace.reached_end is False
        assert len(trace.execution_steps) < 3000
        budget = [issue for issue in trace.potential_issues if issue.description == "Time budget exceeded"]
        assert len(budget) == 1
        assert budget[0].severity == Severity.INFO.value

    async def test_unparseable_example_is_an_error(self, simulator):
        """Test that an example no parser accepts never counts as completed."""
        trace = await simulator.simulate_execution("}}}} (((")

        assert trace.execution_steps == []
        assert trace.reached_end is False
        assert trace.confidence_score == 0.0
        assert len(trace.potential_issues) == 1
        issue = trace.potential_issues[0]
        assert issue.severity == Severity.ERROR.value
        assert "could not be parsed" in issue.description

    async def test_python_syntax_error_in_example(self, simulator):
        """Test a Python example with a syntax error on its first line."""
        trace = await simulator.simulate_execution("def broken(:\n", CALC_IMPLEMENTATION)

        assert trace.reached_end is False
        assert trace.error_issues()
        assert "could not be parsed" in trace.potential_issues[0].description

    async def test_marker_free_python_example(self, simulator):
        """Test self-simulation of Python that uses only builtins."""
        trace = await simulator.simulate_execution("total = sum([1, 2])\nresult = total * 2\n")

        assert trace.reached_end is True
        assert IssueType.UNDEFINED_VARIABLE.value not in _types(trace)
        assert "result" in trace.variables_accessed

    async def test_internal_failure_produces_error_trace(self):
        """Test that an unexpected analyzer failure becomes a zero-confidence trace."""
        simulator = ExecutionSimulator(analyzer=BrokenAnalyzer())
        trace = await simulator.simulate_execution(CALC_EXAMPLE, CALC_IMPLEMENTATION, entry_point="add")

        assert trace.execution_steps == []
        assert trace.confidence_score == 0.0
        assert trace.reached_end is False
        assert trace.entry_point == "add"
        assert len(trace.potential_issues) == 1
        assert trace.potential_issues[0].description.startswith("Simulation failed: RuntimeError")

    async def test_empty_example_produces_error_trace(self, simulator):
        """Test empty example produces error trace."""
        trace = await simulator.simulate_execution("   ")

        assert trace.confidence_score == 0.0
        assert trace.reached_end is False
        assert trace.execution_steps == []
        assert trace.potential_issues[0].severity == Severity.ERROR.value

    async def test_no_steps_means_zero_confidence(self, simulator):
        """Test no steps means zero confidence."""
        trace = await simulator.simulate_execution("# nothing to run\n", language="python")

        assert trace.execution_steps == []
        assert trace.confidence_score == 0.0

    async def test_confidence_is_bounded(self, simulator):
        """Test confidence is bounded."""
        for example in (CALC_EXAMPLE, "foo();", "x = undefined_name + 1\n"):
            trace = await simulator.simulate_execution(example, CALC_IMPLEMENTATION)
            assert 0.0 <= trace.confidence_score <= 1.0
            assert (trace.confidence_score == 0.0) == (len(trace.execution_steps) == 0)


@pytest.mark.asyncio
class TestIssueDetection:
    """Test the detection passes and their toggles."""

    NULL_EXAMPLE = "const user = null;\nconsole.log(user.name);\n"

    async def test_null_reference(self, simulator):
        """Test null reference."""
        trace = await simulator.simulate_execution(self.NULL_EXAMPLE)

        nulls = [i for i in trace.potential_issues if i.type == IssueType.NULL_REFERENCE.value]
        assert len(nulls) == 1
        assert nulls[0].location.line == 2
        assert nulls[0].severity == Severity.ERROR.value

    async def test_optional_chaining_is_safe(self, simulator):
        """Test optional chaining is safe."""
        trace = await simulator.simulate_execution("const user = null;\nconsole.log(user?.name);\n")
        assert IssueType.NULL_REFERENCE.value not in _types(trace)

    async def test_disabling_null_refs_leaves_other_issues(self, simulator):
        """Test disabling null refs leaves other issues."""
        example = self.NULL_EXAMPLE + "missing();\n"
        enabled = await simulator.simulate_execution(example)
        disabled = await simulator.simulate_execution(example, options=SimulationOptions(detect_null_refs=False))

        assert IssueType.NULL_REFERENCE.value in _types(enabled)
        assert IssueType.NULL_REFERENCE.value not in _types(disabled)
        others = [i for i in enabled.potential_issues if i.type != IssueType.NULL_REFERENCE.value]
        assert others == disabled.potential_issues

    async def test_unreachable_code(self, simulator):
        """Test unreachable code."""
        implementation = 'def compute(x):\n    return x * 2\n    print("never")\n'
        trace = await simulator.simulate_execution("value = compute(3)\n", implementation)

        unreachable = [i for i in trace.potential_issues if i.type == IssueType.UNREACHABLE_CODE.value]
        assert len(unreachable) == 1
        assert unreachable[0].location.line == 3
        assert trace.reached_end is True

        quiet = await simulator.simulate_execution(
            "value = compute(3)\n", implementation, options=SimulationOptions(detect_unreachable_code=False)
        )
        assert IssueType.UNREACHABLE_CODE.value not in _types(quiet)

    async def test_infinite_loop(self, simulator):
        """Test infinite loop."""
        trace = await simulator.simulate_execution("while True:\n    x = 1\n", language="python")

        assert IssueType.INFINITE_LOOP.value in _types(trace)
        assert trace.reached_end is False

    async def test_python_arity_mismatch_is_an_error(self, simulator):
        """Test Python arity mismatch is an error."""
        implementation = "def greet(name):\n    return 'Hi ' + name\n"
        trace = await simulator.simulate_execution("greet()\n", implementation)

        mismatches = [i for i in trace.potential_issues if i.type == IssueType.TYPE_MISMATCH.value]
        assert len(mismatches) == 1
        assert mismatches[0].severity == Severity.ERROR.value

        quiet = await simulator.simulate_execution(
            "greet()\n", implementation, options=SimulationOptions(detect_type_mismatches=False)
        )
        assert IssueType.TYPE_MISMATCH.value not in _types(quiet)

    async def test_argument_type_mismatch(self, simulator):
        """Test argument type mismatch."""
        implementation = "def repeat(text: str, times: int) -> str:\n    return text * times\n"
        trace = await simulator.simulate_execution('repeat(3, "x")\n', implementation)

        mismatches = [i for i in trace.potential_issues if i.type == IssueType.TYPE_MISMATCH.value]
        assert len(mismatches) == 2
        assert all(i.severity == Severity.WARNING.value for i in mismatches)

    async def test_unhandled_raising_call_is_flagged(self, simulator):
        """Test unhandled raising call is flagged."""
        trace = await simulator.simulate_execution('data = load("config.yml")\n', LOADER_IMPLEMENTATION)

        handling = [i for i in trace.potential_issues if i.type == IssueType.MISSING_ERROR_HANDLING.value]
        assert len(handling) == 1
        assert "ValueError" in handling[0].description
        assert trace.reached_end is True

    async def test_try_block_handles_raising_call(self, simulator):
        """Test try block handles raising call."""
        example = 'try:\n    data = load("config.yml")\nexcept ValueError:\n    data = None\n'
        trace = await simulator.simulate_execution(example, LOADER_IMPLEMENTATION)
        assert IssueType.MISSING_ERROR_HANDLING.value not in _types(trace)

    async def test_uncaught_error(self, simulator):
        """Test uncaught error."""
        trace = await simulator.simulate_execution("fail()\n", LOADER_IMPLEMENTATION)

        assert trace.reached_end is False
        uncaught = [i for i in trace.error_issues() if i.type == IssueType.MISSING_ERROR_HANDLING.value]
        assert len(uncaught) == 1
        assert "RuntimeError" in uncaught[0].description


@pytest.mark.asyncio
class TestLLMAssistedSimulation:
    """Test LLM-assisted tracing with a fake client."""

    REPLY = {
        "steps": [
            {"lineNumber": 2, "operation": "Call add", "callsMade": ["add"], "confidence": 0.9},
            {"lineNumber": 2, "operation": "Assign result", "stateChanges": {"result": 5}, "confidence": 0.9},
        ],
        "variables": {
            "result": {"type": "number", "value": 5, "definedAt": 2, "lastModifiedAt": 2, "isParameter": False},
            "ghost": {"type": "string", "value": "x"},
        },
        "issues": [
            {"severity": "warning", "type": "null-reference", "location": {"line": 2},
             "description": "result may be null", "suggestion": "check it"},
        ],
        "confidence": 0.9,
        "reachedEnd": True,
    }

    async def test_llm_trace_is_used(self, analyzer, fake_llm):
        """Test LLM trace is used."""
        client = fake_llm(self.REPLY)
        simulator = ExecutionSimulator(llm_client=client, analyzer=analyzer)

        trace = await simulator.simulate_execution(CALC_EXAMPLE, CALC_IMPLEMENTATION)

        assert simulator.is_llm_available()
        assert len(client.prompts) == 1
        assert "## Entry Point: add" in client.prompts[0]
        assert len(trace.execution_steps) == 2
        assert trace.execution_path == ["step-1", "step-2"]
        assert list(trace.variables_accessed) == ["result"]
        assert trace.confidence_score == pytest.approx(0.9)
        assert trace.reached_end is True

    async def test_llm_issues_respect_toggles(self, analyzer, fake_llm):
        """Test LLM issues respect toggles."""
        simulator = ExecutionSimulator(llm_client=fake_llm(self.REPLY), analyzer=analyzer)

        trace = await simulator.simulate_execution(
            CALC_EXAMPLE, CALC_IMPLEMENTATION, options=SimulationOptions(detect_null_refs=False)
        )
        assert trace.potential_issues == []

    async def test_llm_failure_falls_back_to_static(self, analyzer, fake_llm):
        """Test LLM failure falls back to static."""
        from documcp.core.errors import LLMError

        simulator = ExecutionSimulator(llm_client=fake_llm(LLMError("backend down")), analyzer=analyzer)
        trace = await simulator.simulate_execution(CALC_EXAMPLE, CALC_IMPLEMENTATION)

        assert trace.reached_end is True
        assert trace.confidence_score == pytest.approx(0.7)

    async def test_unparseable_reply_falls_back_to_static(self, analyzer, fake_llm):
        """Test unparseable reply falls back to static."""
        simulator = ExecutionSimulator(llm_client=fake_llm("I cannot help with that"), analyzer=analyzer)
        trace = await simulator.simulate_execution(CALC_EXAMPLE, CALC_IMPLEMENTATION)

        assert trace.entry_point == "add"
        assert trace.confidence_score == pytest.approx(0.7)

    async def test_llm_steps_are_capped(self, analyzer, fake_llm):
        """Test LLM steps are capped."""
        reply = dict(self.REPLY, steps=self.REPLY["steps"] * 3)
        simulator = ExecutionSimulator(llm_client=fake_llm(reply), analyzer=analyzer)

        trace = await simulator.simulate_execution(
            CALC_EXAMPLE, CALC_IMPLEMENTATION, options=SimulationOptions(max_steps=4)
        )
        assert len(trace.execution_steps) == 4
        assert trace.reached_end is False

    async def test_llm_timeout_is_a_time_budget(self, analyzer):
        """Test that a backend slower than timeoutMs yields a reported time budget."""
        simulator = ExecutionSimulator(llm_client=SlowLLMClient(), analyzer=analyzer)

        trace = await simulator.simulate_execution(
            CALC_EXAMPLE, CALC_IMPLEMENTATION, options=SimulationOptions(timeout_ms=20)
        )
        assert trace.execution_steps == []
        assert trace.reached_end is False
        assert trace.confidence_score == 0.0
        assert [issue.description for issue in trace.potential_issues] == ["Time budget exceeded"]


class TestHelpers:
    """Test module-level helpers."""

    def test_example_id_is_stable(self):
        """Test that example ids are stable."""
        assert generate_example_id("print(1)") == generate_example_id("print(1)")
        assert generate_example_id("print(1)") != generate_example_id("print(2)")
        assert generate_example_id("print(1)").startswith("example-")

    def test_entry_point_prefers_implementation_functions(self, analyzer):
        """Test entry point prefers implementation functions."""
        example = analyzer.analyze_source("x = helper()\ny = add(1, 2)\n", "python")
        implementation = analyzer.analyze_source(CALC_IMPLEMENTATION, "python")
        assert detect_entry_point(example, implementation) == "add"

    def test_entry_point_resolves_methods(self, analyzer):
        """Test entry point resolves methods."""
        implementation = analyzer.analyze_source(
            "class Store:\n    def get(self, key):\n        return key\n", "python"
        )
        example = analyzer.analyze_source("Store.get('a')\n", "python")
        assert detect_entry_point(example, implementation) == "Store.get"

    def test_factory_applies_option_overrides(self):
        """Test factory applies option overrides."""
        simulator = create_execution_simulator(SimulationOptions(max_steps=5))
        assert simulator.options.max_steps == 5
        assert simulator.options.max_depth == 10
        assert not simulator.is_llm_available()
