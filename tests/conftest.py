import json

import pytest

from documcp.analysis import ASTAnalyzer
from documcp.core.errors import LLMError
from documcp.simulation import ExecutionSimulator


class FakeLLMClient:
    """Stands in for `LLMClient`; replies from a queue instead of the network."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise LLMError("no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply


@pytest.fixture(scope="session")
def analyzer():
    shared = ASTAnalyzer()
    shared.initialize()
    return shared


@pytest.fixture
def simulator(analyzer):
    return ExecutionSimulator(analyzer=analyzer)


@pytest.fixture
def fake_llm():
    return FakeLLMClient
