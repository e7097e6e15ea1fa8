"""Shared infrastructure for the MindMate gamification engines.

Logging helpers are re-exported here so callers can write
``from core import get_logger``.
"""

from core.logger import bind_contextvars, clear_contextvars, get_logger

__all__ = [
    "bind_contextvars",
    "clear_contextvars",
    "get_logger",
]
