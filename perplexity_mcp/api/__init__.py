"""API module for the stream, message and monitoring endpoints."""

from . import health, messages, metrics, stream

__all__ = [
    "health",
    "messages",
    "metrics",
    "stream",
]
