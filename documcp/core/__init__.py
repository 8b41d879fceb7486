"""Core utilities: configuration, errors and logging."""

from .config import LLMConfig, ServerConfig, load_config, load_server_config
from .errors import AnalysisError, DocuMCPError, LLMError, handle_error, redact_credentials
from .logging import configure_logging

__all__ = [
    "AnalysisError",
    "DocuMCPError",
    "LLMConfig",
    "LLMError",
    "ServerConfig",
    "configure_logging",
    "handle_error",
    "load_config",
    "load_server_config",
    "redact_credentials",
]
