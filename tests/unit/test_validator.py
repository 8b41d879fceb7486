import pytest

from documcp.constants import Language
from documcp.core.errors import LLMError
from documcp.simulation import KeywordBehaviorMatcher, LLMBehaviorMatcher, Validator

GREET_IMPLEMENTATION = '''
def greet(name):
    return "Hello, " + name


def require(value):
    if value is None:
        raise ValueError("value is required")
    return value
'''


@pytest.fixture
def greet_trace(simulator):
    async def make(example='message = greet("Ann")\n'):
        return await simulator.simulate_execution(example, GREET_IMPLEMENTATION, language=Language.PYTHON)
    return make


@pytest.mark.asyncio
class TestKeywordBehaviorMatcher:
    """Test keyword comparison of expected behavior and trace."""

    async def test_matching_return_type(self, greet_trace):
        """Test matching return type."""
        trace = await greet_trace()
        assert await KeywordBehaviorMatcher().find_contradiction(trace, "Returns a string greeting") is None

    async def test_contradicting_return_type(self, greet_trace):
        """Test contradicting return type."""
        trace = await greet_trace()
        contradiction = await KeywordBehaviorMatcher().find_contradiction(trace, "Returns a number")
        assert contradiction is not None
        assert "number" in contradiction

    async def test_expected_error_but_completes(self, greet_trace):
        """Test expected error but completes."""
        trace = await greet_trace()
        contradiction = await KeywordBehaviorMatcher().find_contradiction(trace, "Throws when called")
        assert "completes normally" in contradiction

    async def test_negated_error_is_not_an_expected_error(self, greet_trace):
        """Test negated error is not an expected error."""
        trace = await greet_trace()
        assert await KeywordBehaviorMatcher().find_contradiction(trace, "Works without throwing") is None

    async def test_unexpected_error(self, greet_trace):
        """Test unexpected error."""
        trace = await greet_trace("greet_everyone()\n")
        contradiction = await KeywordBehaviorMatcher().find_contradiction(trace, "Prints a greeting")
        assert "NameError" in contradiction


@pytest.mark.asyncio
class TestValidator:
    """Test validation results."""

    async def test_valid_example(self, greet_trace):
        """Test valid example."""
        trace = await greet_trace()
        result = await Validator().validate_trace(trace, "Returns a string", 'greet("Ann")')

        assert result.is_valid is True
        assert result.matches_documentation is True
        assert result.example_code == 'greet("Ann")'

    async def test_mismatch_is_reported_as_suggestion(self, greet_trace):
        """Test mismatch is reported as suggestion."""
        trace = await greet_trace()
        result = await Validator().validate_trace(trace, "Returns a number")

        assert result.is_valid is True
        assert result.matches_documentation is False
        assert result.suggestions[0].startswith("Documentation mismatch:")

    async def test_invalid_example(self, greet_trace):
        """Test invalid example."""
        trace = await greet_trace("greet_everyone()\n")
        result = await Validator().validate_trace(trace)

        assert result.is_valid is False
        assert result.matches_documentation is False
        descriptions = [issue.description for issue in result.issues]
        assert "Execution simulation did not complete normally" in descriptions

    async def test_validate_example_through_simulator(self, simulator):
        """Test validate example through simulator."""
        result = await simulator.validate_example(
            'message = greet("Ann")\n', GREET_IMPLEMENTATION, "Returns a string", language=Language.PYTHON
        )
        assert result.is_valid
        assert result.trace.entry_point == "greet"


@pytest.mark.asyncio
class TestLLMBehaviorMatcher:
    """Test LLM comparison with a fake client."""

    async def test_llm_verdict(self, greet_trace, fake_llm):
        """Test LLM verdict."""
        trace = await greet_trace()
        client = fake_llm({"matches": False, "reason": "greeting is missing punctuation"})

        contradiction = await LLMBehaviorMatcher(client).find_contradiction(trace, "Returns a friendly greeting")
        assert contradiction == "greeting is missing punctuation"
        assert "Returns a friendly greeting" in client.prompts[0]

    async def test_llm_match(self, greet_trace, fake_llm):
        """Test LLM match."""
        trace = await greet_trace()
        matcher = LLMBehaviorMatcher(fake_llm('```json\n{"matches": true, "reason": "ok"}\n```'))
        assert await matcher.find_contradiction(trace, "Returns a number") is None

    async def test_llm_failure_uses_keywords(self, greet_trace, fake_llm):
        """Test LLM failure uses keywords."""
        trace = await greet_trace()
        matcher = LLMBehaviorMatcher(fake_llm(LLMError("timeout")))
        contradiction = await matcher.find_contradiction(trace, "Returns a number")
        assert contradiction is not None
