"""Logging setup shared by the bridge server, the MCP server and the scripts."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging to stderr.

    stderr is used everywhere because stdout carries the MCP stdio
    transport when running as an MCP server.
    """
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )


__all__ = ["configure_logging", "LOG_FORMAT"]
