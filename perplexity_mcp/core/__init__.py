"""Core module for sessions, streams, routing and the protocol engine."""

from .auth import AuthGate
from .protocol_core import ProtocolCore
from .rate_limit import FixedWindowRateLimiter, RateLimitMiddleware
from .router import MessageRouter
from .session import Session, SessionRegistry, SessionState
from .stream import SSEStream, StreamConnectionHandler

__all__ = [
    "AuthGate",
    "FixedWindowRateLimiter",
    "MessageRouter",
    "ProtocolCore",
    "RateLimitMiddleware",
    "Session",
    "SessionRegistry",
    "SessionState",
    "SSEStream",
    "StreamConnectionHandler",
]
