"""
Tests for Session and SessionRegistry.
"""

import asyncio

import pytest

from perplexity_mcp.core.session import Session, SessionRegistry, SessionState
from perplexity_mcp.protocol.errors import SessionClosedError
from perplexity_mcp.protocol.messages import SessionEndReason

from .conftest import RecordingStream, reply


class FailingStream(RecordingStream):
    async def send(self, message):
        raise ConnectionResetError("peer went away")


class TestSessionRegistry:
    """Tests for registry bookkeeping."""

    def test_create_registers_open_sessions_with_distinct_ids(self):
        """N creates should yield N open sessions with N distinct ids."""
        registry = SessionRegistry()
        sessions = [registry.create(RecordingStream()) for _ in range(5)]

        assert len(registry) == 5
        assert registry.active_sessions == 5
        assert len({s.session_id for s in sessions}) == 5
        assert [s.sequence for s in sessions] == [1, 2, 3, 4, 5]
        assert all(s.state is SessionState.OPEN for s in sessions)

    def test_ids_are_never_reused(self):
        """A new session after a close should get a fresh id and sequence."""
        registry = SessionRegistry()
        first = registry.create(RecordingStream())
        second = registry.create(RecordingStream())
        first.close()
        second.close()

        third = registry.create(RecordingStream())

        assert third.sequence == 3
        assert third.session_id not in {first.session_id, second.session_id}

    def test_closing_subset_leaves_others_addressable(self):
        """Closing some sessions should remove exactly those entries."""
        registry = SessionRegistry()
        sessions = [registry.create(RecordingStream()) for _ in range(4)]

        sessions[0].close()
        sessions[2].close(SessionEndReason.ERROR)

        assert len(registry) == 2
        assert registry.get(sessions[0].session_id) is None
        assert registry.get(sessions[2].session_id) is None
        assert registry.get(sessions[1].session_id) is sessions[1]
        assert registry.get(sessions[3].session_id) is sessions[3]
        assert sessions[1].is_open and sessions[3].is_open

    def test_double_close_is_idempotent(self):
        """Signalling closure twice should have the same effect as once."""
        registry = SessionRegistry()
        keep = registry.create(RecordingStream())
        gone = registry.create(RecordingStream())

        assert gone.close(SessionEndReason.DISCONNECTED) is True
        assert gone.close(SessionEndReason.ERROR) is False

        assert gone.end_reason is SessionEndReason.DISCONNECTED
        assert len(registry) == 1
        assert registry.get(keep.session_id) is keep

    def test_latest_is_most_recent_open_session(self):
        """latest() should follow creation order and skip closed sessions."""
        registry = SessionRegistry()
        assert registry.latest() is None

        a = registry.create(RecordingStream())
        b = registry.create(RecordingStream())
        assert registry.latest() is b

        b.close()
        assert registry.latest() is a

    def test_close_all(self):
        """close_all should empty the registry with the given reason."""
        registry = SessionRegistry()
        sessions = [registry.create(RecordingStream()) for _ in range(3)]

        assert registry.close_all(SessionEndReason.SHUTDOWN) == 3
        assert len(registry) == 0
        assert all(s.end_reason is SessionEndReason.SHUTDOWN for s in sessions)


class TestSessionLifecycle:
    """Tests for close semantics and observers."""

    def test_observers_run_once_in_registration_order(self, stream):
        """Observers should fire in order, exactly once."""
        calls = []
        session = Session(session_id="s-1", stream=stream)
        session.add_observer(lambda s, r: calls.append(("first", r)))
        session.add_observer(lambda s, r: calls.append(("second", r)))

        session.close(SessionEndReason.ERROR)
        session.close(SessionEndReason.CLOSED)

        assert calls == [
            ("first", SessionEndReason.ERROR),
            ("second", SessionEndReason.ERROR),
        ]
        assert stream.closed

    def test_failing_observer_does_not_block_others(self, stream):
        """One observer raising should not stop the rest."""
        calls = []

        def broken(session, reason):
            raise RuntimeError("boom")

        session = Session(session_id="s-1", stream=stream)
        session.add_observer(broken)
        session.add_observer(lambda s, r: calls.append(r))

        session.close()

        assert calls == [SessionEndReason.CLOSED]

    @pytest.mark.asyncio
    async def test_submit_after_close_raises(self, stream):
        """Closed sessions should refuse new work."""
        session = Session(session_id="s-1", stream=stream)
        session.close()

        with pytest.raises(SessionClosedError):
            session.submit(reply({"id": 1}))


class TestSessionReplies:
    """Tests for ordered reply delivery."""

    @pytest.mark.asyncio
    async def test_replies_written_in_submission_order(self, stream):
        """A slow first request should still be answered first."""
        session = Session(session_id="s-1", stream=stream)
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return {"id": 1}

        session.submit(slow())
        session.submit(reply({"id": 2}))
        session.submit(reply({"id": 3}))

        await asyncio.sleep(0.01)
        assert stream.messages == []

        release.set()
        await session.drain()

        assert [m["id"] for m in stream.messages] == [1, 2, 3]
        assert session.request_count == 3

    @pytest.mark.asyncio
    async def test_none_result_writes_nothing(self, stream):
        """Work that returns None (notifications) should not write."""
        session = Session(session_id="s-1", stream=stream)
        session.submit(reply(None))
        session.submit(reply({"id": 7}))

        await session.drain()

        assert stream.messages == [{"id": 7}]

    @pytest.mark.asyncio
    async def test_close_discards_outstanding_work(self, stream):
        """Results of work pending at close time should be dropped."""
        session = Session(session_id="s-1", stream=stream)
        started = asyncio.Event()

        async def stalled():
            started.set()
            await asyncio.Event().wait()
            return {"id": 1}

        task = session.submit(stalled())
        await started.wait()

        session.close(SessionEndReason.DISCONNECTED)

        with pytest.raises(asyncio.CancelledError):
            await task
        assert stream.messages == []
        assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_write_failure_tears_session_down(self):
        """A transport error should close the session and deregister it."""
        registry = SessionRegistry()
        healthy = registry.create(RecordingStream())
        broken = registry.create(FailingStream())

        broken.submit(reply({"id": 1}))
        await broken.drain()

        assert broken.state is SessionState.CLOSED
        assert broken.end_reason is SessionEndReason.ERROR
        assert registry.get(broken.session_id) is None
        assert registry.get(healthy.session_id) is healthy
        assert healthy.is_open
