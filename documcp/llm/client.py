"""OpenAI-compatible LLM client used for LLM-assisted simulation."""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Deque, Optional

from langchain_openai import ChatOpenAI

from ..constants import DEFAULT_PROVIDER_MODELS, DEFAULT_PROVIDER_URLS, LLMProvider
from ..core.config import LLMConfig
from ..core.errors import LLMError, redact_credentials

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window limiter: at most `max_requests` per `window_seconds`."""

    def __init__(self, max_requests: int = 10, window_seconds: float = 60.0):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._requests: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self.window_seconds:
            self._requests.popleft()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = time.monotonic()
                self._prune(now)
                if len(self._requests) < self.max_requests:
                    self._requests.append(now)
                    return
                wait = self.window_seconds - (now - self._requests[0])
                logger.debug("Rate limit reached, waiting %.1fs", wait)
                await asyncio.sleep(max(wait, 0.01))

    @property
    def pending(self) -> int:
        self._prune(time.monotonic())
        return len(self._requests)


class LLMClient:
    """Thin wrapper around `ChatOpenAI` returning plain text completions."""

    def __init__(self, config: LLMConfig, chat_model: Optional[Any] = None):
        self.config = config
        self.model_name = config.model or DEFAULT_PROVIDER_MODELS[config.provider]
        self.rate_limiter = RateLimiter(config.requests_per_minute, 60.0)
        self._chat = chat_model or ChatOpenAI(
            model=self.model_name,
            api_key=config.api_key or "not-needed",
            base_url=config.base_url or DEFAULT_PROVIDER_URLS[config.provider],
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
            max_retries=1,
        )

    async def complete(self, prompt: str) -> str:
        """Send a single prompt and return the reply text.

        Raises:
            LLMError: if the backend call fails or returns no text
        """
        await self.rate_limiter.acquire()
        try:
            message = await self._chat.ainvoke(prompt)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise LLMError(
                f"{self.config.provider.value} request failed: {redact_credentials(str(e))}"
            ) from e

        content = getattr(message, "content", message)
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        if not isinstance(content, str) or not content.strip():
            raise LLMError(f"{self.config.provider.value} returned an empty response")
        return content


def is_llm_available(config: Optional[LLMConfig]) -> bool:
    """Whether enough configuration exists to reach an LLM backend."""
    if config is None:
        return False
    if config.provider == LLMProvider.OLLAMA:
        return True
    return bool(config.api_key)


def create_llm_client(config: Optional[LLMConfig]) -> Optional[LLMClient]:
    """Create a client, or None when no backend is configured."""
    if not is_llm_available(config):
        logger.info("No LLM backend configured; using static analysis")
        return None
    try:
        client = LLMClient(config)
    except Exception as e:
        logger.warning("Could not create LLM client, using static analysis: %s", redact_credentials(str(e)))
        return None
    logger.info("Using %s model %s for simulation", config.provider.value, client.model_name)
    return client
