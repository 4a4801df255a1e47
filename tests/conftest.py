"""
Pytest fixtures for the Perplexity MCP server tests.

The upstream API is replaced by an httpx MockTransport, so no network
access or API key is needed.
"""

import json
from typing import Any, AsyncGenerator

import httpx
import pytest
import pytest_asyncio

from perplexity_mcp.config import Settings
from perplexity_mcp.core.protocol_core import ProtocolCore
from perplexity_mcp.inference.perplexity_client import PerplexityClient
from perplexity_mcp.inference.tools import build_tool_registry
from perplexity_mcp.main import create_app
from perplexity_mcp.protocol.errors import StreamClosedError

API_KEY = "test-key"


class RecordingStream:
    """In-memory stream that keeps every message sent to it."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []
        self.closed = False

    async def send(self, message: dict[str, Any]) -> None:
        if self.closed:
            raise StreamClosedError()
        self.messages.append(message)

    def close(self) -> None:
        self.closed = True


async def reply(payload: dict[str, Any] | None) -> dict[str, Any] | None:
    """Submitted work that completes immediately with `payload`."""
    return payload


@pytest.fixture
def stream() -> RecordingStream:
    return RecordingStream()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment's .env file."""
    return Settings(
        _env_file=None,
        api_key=API_KEY,
        perplexity_api_key="pplx-test",
        rate_limit_requests=1000,
        stream_ping_interval_seconds=None,
        upstream_timeout_seconds=5.0,
    )


@pytest.fixture
def upstream() -> dict[str, Any]:
    """
    Controls the fake Perplexity API.

    Tests set `status` or `content`, and read `requests` afterwards.
    """
    return {"status": 200, "content": "Paris is the capital of France.", "requests": []}


@pytest_asyncio.fixture
async def perplexity_client(upstream) -> AsyncGenerator[PerplexityClient, None]:
    def handler(request: httpx.Request) -> httpx.Response:
        upstream["requests"].append(
            {"headers": dict(request.headers), "body": json.loads(request.content)}
        )
        if upstream["status"] != 200:
            return httpx.Response(upstream["status"], text="upstream exploded")
        return httpx.Response(
            200,
            json={
                "choices": [
                    {"message": {"role": "assistant", "content": upstream["content"]}}
                ]
            },
        )

    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler),
        base_url="https://api.perplexity.test",
    )
    client = PerplexityClient(api_key="pplx-test", http_client=http_client)
    yield client
    await client.aclose()


@pytest.fixture
def core(perplexity_client) -> ProtocolCore:
    return ProtocolCore(
        build_tool_registry(perplexity_client),
        tool_timeout_seconds=5.0,
    )


@pytest.fixture
def app(settings, core):
    return create_app(settings, core=core)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client talking to the app in-process."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as http_client:
        yield http_client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"x-api-key": API_KEY}
