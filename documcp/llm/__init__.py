"""LLM backend for LLM-assisted simulation."""

from .client import LLMClient, RateLimiter, create_llm_client, is_llm_available

__all__ = ["LLMClient", "RateLimiter", "create_llm_client", "is_llm_available"]
