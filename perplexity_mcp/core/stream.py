"""
Server-sent event streams and their connection handler.

Provides:
- SSE frame formatting
- SSEStream: queue-backed output channel consumed by a StreamingResponse
- StreamConnectionHandler: opens sessions, wires their lifecycle and
  turns a session's stream into the response body
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

from ..observability.metrics import record_session_closed, record_session_opened
from ..protocol.errors import StreamClosedError
from ..protocol.messages import SessionEndReason
from .protocol_core import ProtocolCore
from .session import Session, SessionRegistry

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

PING_FRAME = ": ping\n\n"


def format_sse_event(*, event: str | None, data: str) -> str:
    """
    Format one SSE frame.

    Multi-line data is split over several `data:` lines.
    """
    lines = []
    if event:
        lines.append(f"event: {event}")
    for line in data.splitlines() or [""]:
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


class SSEStream:
    """Queue-backed SSE output channel. A None frame marks end of stream."""

    def __init__(self) -> None:
        self._frames: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = False
        self.session_id: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def send_event(self, event: str, data: str) -> None:
        if self._closed:
            raise StreamClosedError(self.session_id)
        self._frames.put_nowait(format_sse_event(event=event, data=data))

    async def send(self, message: dict[str, Any]) -> None:
        """Write one JSON-RPC message as a `message` event."""
        self.send_event("message", json.dumps(message, separators=(",", ":")))

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._frames.put_nowait(None)

    async def next_frame(self) -> str | None:
        return await self._frames.get()


class DisconnectProbe(Protocol):
    async def is_disconnected(self) -> bool: ...


class StreamConnectionHandler:
    """
    Owns the lifecycle of every outbound event stream.

    `open` registers a session and attaches it to the protocol core;
    `events` yields the session's frames until the stream ends, the
    client disconnects or a transport error occurs, then tears the
    session down.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        core: ProtocolCore,
        *,
        messages_path: str = "/messages",
        ping_interval_seconds: float | None = 15.0,
    ):
        self._registry = registry
        self._core = core
        self._messages_path = messages_path
        self._ping_interval = ping_interval_seconds or None

    def open(self, client: str | None = None) -> Session:
        """Create, register and attach a new session."""
        stream = SSEStream()
        session = self._registry.create(stream)
        stream.session_id = session.session_id
        session.add_observer(self._on_session_closed)
        self._core.attach(session)

        stream.send_event(
            "endpoint", f"{self._messages_path}?sessionId={session.session_id}"
        )
        record_session_opened(self._registry.active_sessions)
        logger.info(
            f"New SSE connection established (ID: {session.session_id}, client: {client or 'unknown'})"
        )
        return session

    def _on_session_closed(self, session: Session, reason: SessionEndReason) -> None:
        record_session_closed(reason.value, self._registry.active_sessions)
        logger.info(
            f"SSE connection closed (ID: {session.session_id}, reason: {reason.value})",
            extra={"session_metrics": session.get_metrics()},
        )

    async def events(
        self, request: DisconnectProbe, session: Session
    ) -> AsyncIterator[str]:
        """Response body for one session's stream."""
        stream = session.stream
        try:
            while True:
                try:
                    frame = await asyncio.wait_for(
                        stream.next_frame(), timeout=self._ping_interval
                    )
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        logger.info(
                            f"Client disconnected from SSE endpoint (connection {session.session_id})"
                        )
                        session.close(SessionEndReason.DISCONNECTED)
                        return
                    yield PING_FRAME
                    continue

                if frame is None:
                    return
                yield frame
        except (asyncio.CancelledError, GeneratorExit):
            session.close(SessionEndReason.DISCONNECTED)
            raise
        except Exception as e:
            logger.error(f"SSE transport error (connection {session.session_id}): {e}")
            session.close(SessionEndReason.ERROR)
        finally:
            session.close(SessionEndReason.CLOSED)
