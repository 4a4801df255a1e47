"""
Session management for the MCP server.

Implements:
- Session with an owned output stream and OPEN -> CLOSED lifecycle
- Ordered reply delivery for work submitted to a session
- Lifecycle observers invoked in registration order on close
- Session registry keyed by monotonic, never reused identifiers
"""

import asyncio
import itertools
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from ..protocol.errors import SessionClosedError
from ..protocol.messages import SessionEndReason

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class EventStream(Protocol):
    """Output channel a session pushes protocol replies onto."""

    async def send(self, message: dict[str, Any]) -> None: ...

    def close(self) -> None: ...


LifecycleObserver = Callable[["Session", SessionEndReason], None]


@dataclass(eq=False)
class Session:
    """
    One open client stream.

    Work submitted with `submit` runs concurrently, but its replies are
    written onto the stream in submission order by a single writer task.
    Closing cancels outstanding work and discards its results.
    """

    session_id: str
    stream: EventStream
    sequence: int = 0

    state: SessionState = field(default=SessionState.OPEN, init=False)
    end_reason: SessionEndReason | None = field(default=None, init=False)
    created_at: float = field(default_factory=time.monotonic, init=False)
    request_count: int = field(default=0, init=False)

    _observers: list[LifecycleObserver] = field(default_factory=list, init=False, repr=False)
    _replies: asyncio.Queue = field(default_factory=asyncio.Queue, init=False, repr=False)
    _pending: set[asyncio.Task] = field(default_factory=set, init=False, repr=False)
    _writer: asyncio.Task | None = field(default=None, init=False, repr=False)

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    @property
    def pending_count(self) -> int:
        """Number of submitted tasks whose reply has not been written yet."""
        return self._replies.qsize() + len(self._pending)

    def add_observer(self, observer: LifecycleObserver) -> None:
        """Register a callback invoked once when the session closes."""
        self._observers.append(observer)

    def submit(
        self, work: Coroutine[Any, Any, dict[str, Any] | None]
    ) -> asyncio.Task:
        """
        Schedule work whose result is written onto this session's stream.

        A result of None writes nothing.

        Raises:
            SessionClosedError: If the session is already closed
        """
        if not self.is_open:
            work.close()
            raise SessionClosedError(self.session_id)

        if self._writer is None:
            self._writer = asyncio.create_task(
                self._write_replies(), name=f"session-{self.session_id}-writer"
            )

        task = asyncio.create_task(work)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._replies.put_nowait(task)
        self.request_count += 1
        return task

    async def drain(self) -> None:
        """Wait until every submitted reply has been written or dropped."""
        if self._writer is not None and self.is_open:
            await self._replies.join()

    async def _write_replies(self) -> None:
        while True:
            task: asyncio.Task = await self._replies.get()
            try:
                try:
                    reply = await task
                except asyncio.CancelledError:
                    if task.cancelled() and self.is_open:
                        continue
                    raise
                except Exception:
                    logger.exception(
                        f"Session {self.session_id}: unhandled error in submitted work"
                    )
                    continue

                if reply is None or not self.is_open:
                    continue

                try:
                    await self.stream.send(reply)
                except Exception as e:
                    logger.error(
                        f"Session {self.session_id}: transport error while writing: {e}"
                    )
                    self.close(SessionEndReason.ERROR)
                    return
            finally:
                self._replies.task_done()

    def close(self, reason: SessionEndReason = SessionEndReason.CLOSED) -> bool:
        """
        Tear the session down.

        Cancels outstanding work, closes the stream and notifies observers
        in registration order. Idempotent: only the first call has effect.

        Returns:
            True if this call closed the session
        """
        if not self.is_open:
            return False

        self.state = SessionState.CLOSED
        self.end_reason = reason

        for task in list(self._pending):
            task.cancel()
        if self._writer is not None and not self._writer.done():
            if self._writer is not _current_task():
                self._writer.cancel()
        while not self._replies.empty():
            self._replies.get_nowait()
            self._replies.task_done()

        self.stream.close()

        for observer in list(self._observers):
            try:
                observer(self, reason)
            except Exception:
                logger.exception(
                    f"Session {self.session_id}: lifecycle observer failed"
                )
        return True

    def get_metrics(self) -> dict[str, Any]:
        return {
            "total_requests": self.request_count,
            "session_duration_seconds": round(time.monotonic() - self.created_at, 2),
        }


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class SessionRegistry:
    """
    Insertion-ordered mapping from session id to open Session.

    Every id present maps to an OPEN session: closing a session removes
    it in the same step through a lifecycle observer.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._sequence = itertools.count(1)

    def create(self, stream: EventStream) -> Session:
        """Allocate the next identifier and register a new OPEN session."""
        sequence = next(self._sequence)
        session = Session(
            session_id=f"{sequence}-{uuid4().hex[:12]}",
            stream=stream,
            sequence=sequence,
        )
        self._sessions[session.session_id] = session
        session.add_observer(self._on_session_closed)
        logger.info(
            f"Session {session.session_id} created (total: {len(self._sessions)})"
        )
        return session

    def _on_session_closed(self, session: Session, reason: SessionEndReason) -> None:
        if self._sessions.get(session.session_id) is session:
            del self._sessions[session.session_id]
            logger.info(
                f"Session {session.session_id} removed: {reason.value} "
                f"(total: {len(self._sessions)})"
            )

    def get(self, session_id: str) -> Session | None:
        """Get session by ID."""
        return self._sessions.get(session_id)

    def latest(self) -> Session | None:
        """Most recently created open session, if any."""
        return next(reversed(self._sessions.values()), None)

    def close_all(self, reason: SessionEndReason) -> int:
        """Close every open session. Returns how many were closed."""
        closed = 0
        for session in list(self._sessions.values()):
            if session.close(reason):
                closed += 1
        return closed

    @property
    def active_sessions(self) -> int:
        """Number of open sessions."""
        return len(self._sessions)

    def get_all_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
