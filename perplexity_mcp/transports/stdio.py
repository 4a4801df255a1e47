"""
Pipe transport.

Newline-delimited JSON-RPC over stdin/stdout for a single implicit
session. No auth gate, rate limiter or registry: the protocol core is
attached to one session for the lifetime of the process.
"""

import asyncio
import json
import logging
import sys
from typing import Any, BinaryIO

from ..core.protocol_core import ProtocolCore, error_response
from ..core.session import Session
from ..protocol.errors import StreamClosedError
from ..protocol.messages import JSONRPCErrorCode, SessionEndReason

logger = logging.getLogger(__name__)

STDIO_SESSION_ID = "stdio"


class PipeStream:
    """Writes one JSON document per line to a binary output."""

    def __init__(self, output: BinaryIO):
        self._output = output
        self._closed = False

    async def send(self, message: dict[str, Any]) -> None:
        if self._closed:
            raise StreamClosedError(STDIO_SESSION_ID)
        line = json.dumps(message, separators=(",", ":")) + "\n"
        self._output.write(line.encode("utf-8"))
        self._output.flush()

    def close(self) -> None:
        self._closed = True


async def connect_stdin() -> asyncio.StreamReader:
    """Wrap the process stdin in an asyncio reader."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=4 * 1024 * 1024)
    await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
    )
    return reader


async def _reply(message: dict[str, Any]) -> dict[str, Any]:
    return message


def _log_closed(session: Session, reason: SessionEndReason) -> None:
    logger.info(f"STDIO connection closed ({reason.value})")


async def serve_stdio(
    core: ProtocolCore,
    reader: asyncio.StreamReader | None = None,
    output: BinaryIO | None = None,
) -> Session:
    """
    Run the pipe transport until stdin reaches EOF.

    Outstanding replies are written before the session closes.

    Returns:
        The (closed) session
    """
    if reader is None:
        reader = await connect_stdin()
    stream = PipeStream(output or sys.stdout.buffer)
    session = Session(session_id=STDIO_SESSION_ID, stream=stream)
    session.add_observer(_log_closed)
    core.attach(session)
    logger.info("Perplexity MCP Server running on stdio")

    reason = SessionEndReason.CLOSED
    try:
        while session.is_open:
            line = await reader.readline()
            if not line:
                break
            line = line.strip()
            if not line:
                continue

            try:
                message = json.loads(line)
            except ValueError:
                session.submit(
                    _reply(error_response(None, JSONRPCErrorCode.PARSE_ERROR, "Parse error"))
                )
                continue

            core.submit(session, message)

        await session.drain()
    except asyncio.CancelledError:
        reason = SessionEndReason.SHUTDOWN
        raise
    except Exception as e:
        logger.error(f"STDIO transport error: {e}")
        reason = SessionEndReason.ERROR
    finally:
        session.close(reason)

    return session
