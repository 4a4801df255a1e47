"""
Tests for the stdio pipe transport.
"""

import asyncio
import io
import json

import pytest

from perplexity_mcp.protocol.messages import JSONRPCErrorCode, SessionEndReason
from perplexity_mcp.transports.stdio import STDIO_SESSION_ID, serve_stdio


def feed(*lines: str) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for line in lines:
        reader.feed_data(line.encode("utf-8") + b"\n")
    reader.feed_eof()
    return reader


def written(output: io.BytesIO) -> list[dict]:
    return [json.loads(line) for line in output.getvalue().decode("utf-8").splitlines()]


class TestStdioTransport:
    """Tests for newline-delimited JSON-RPC over pipes."""

    @pytest.mark.asyncio
    async def test_replies_written_in_order_before_exit(self, core):
        """Every reply should be flushed before the session closes on EOF."""
        output = io.BytesIO()
        reader = feed(
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}),
            json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
            "",
            json.dumps({"jsonrpc": "2.0", "id": 2, "method": "tools/list"}),
        )

        session = await serve_stdio(core, reader=reader, output=output)

        replies = written(output)
        assert [r["id"] for r in replies] == [1, 2]
        assert replies[0]["result"]["serverInfo"]["name"] == "perplexity-api"
        assert session.session_id == STDIO_SESSION_ID
        assert session.end_reason is SessionEndReason.CLOSED
        assert core.attached_count == 0

    @pytest.mark.asyncio
    async def test_parse_error_keeps_position(self, core):
        """A malformed line should be answered in its place in the sequence."""
        output = io.BytesIO()
        reader = feed(
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "ping"}),
            "{broken",
            json.dumps({"jsonrpc": "2.0", "id": 2, "method": "ping"}),
        )

        await serve_stdio(core, reader=reader, output=output)

        replies = written(output)
        assert replies[0]["id"] == 1
        assert replies[1]["id"] is None
        assert replies[1]["error"]["code"] == JSONRPCErrorCode.PARSE_ERROR
        assert replies[2]["id"] == 2

    @pytest.mark.asyncio
    async def test_tool_call_over_stdio(self, core, upstream):
        output = io.BytesIO()
        reader = feed(
            json.dumps(
                {
                    "jsonrpc": "2.0",
                    "id": "q",
                    "method": "tools/call",
                    "params": {"name": "perplexity-query", "arguments": {"prompt": "hi"}},
                }
            )
        )

        await serve_stdio(core, reader=reader, output=output)

        [reply] = written(output)
        assert reply["result"]["content"][0]["text"] == upstream["content"]
