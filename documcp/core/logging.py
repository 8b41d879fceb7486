"""Logging setup for the MCP server.

stdout carries the MCP stdio stream, so all log output goes to stderr.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Route the ``documcp`` loggers to stderr at the given level."""
    root = logging.getLogger("documcp")
    root.setLevel(level.upper())

    if not any(getattr(h, "_documcp", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._documcp = True
        root.addHandler(handler)
    root.propagate = False
