"""Error types and consistent error formatting."""

import logging
import re

logger = logging.getLogger(__name__)

# Credential-looking tokens are masked before they reach a tool response
_CREDENTIAL_PATTERNS = [
    re.compile(r"sk-or-v1-[a-fA-F0-9]{16,}"),
    re.compile(r"sk-[a-zA-Z0-9-]{20,}"),
    re.compile(r"ghp_[a-zA-Z0-9]{36}"),
]


class DocuMCPError(Exception):
    """Base class for DocuMCP errors."""


class AnalysisError(DocuMCPError):
    """Raised when a source file cannot be read or parsed."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class LLMError(DocuMCPError):
    """Raised when the LLM backend fails or returns an unusable reply."""


def redact_credentials(text: str) -> str:
    """Mask API keys and tokens in a message."""
    for pattern in _CREDENTIAL_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


def handle_error(e: Exception, context: str = "", log_to_stderr: bool = True) -> str:
    """Consistent error formatting across all tools."""
    error_msg = f"Error: {type(e).__name__}"
    if context:
        error_msg += f" in {context}"
    error_msg += f": {redact_credentials(str(e))}"

    if log_to_stderr:
        logger.error(error_msg, exc_info=e)

    return error_msg
