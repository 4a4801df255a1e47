"""
Main application entry point for the Perplexity MCP server.

Initializes:
- Perplexity client and tool registry
- Protocol core
- Session registry, stream handler and message router
- Auth gate and rate limiter
- FastAPI application (stream, messages, health and metrics endpoints)

Runs either the SSE transport under uvicorn (`--sse`) or the stdio pipe
transport.
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import health, messages, metrics, stream
from .config import DEFAULT_API_KEY, Settings, get_settings
from .core.auth import AuthGate
from .core.protocol_core import ProtocolCore
from .core.rate_limit import FixedWindowRateLimiter, RateLimitMiddleware
from .core.router import MessageRouter
from .core.session import SessionRegistry
from .core.stream import StreamConnectionHandler
from .inference.perplexity_client import PerplexityClient
from .inference.tools import build_tool_registry
from .observability.logging import configure_logging
from .protocol.errors import ConfigurationError, MCPServerError
from .protocol.messages import ErrorResponse, SessionEndReason
from .transports.stdio import serve_stdio

logger = logging.getLogger(__name__)


def build_protocol_core(settings: Settings) -> tuple[ProtocolCore, PerplexityClient]:
    """
    Create the upstream client and the protocol core that uses it.

    Raises:
        ConfigurationError: If the Perplexity API key is missing
    """
    if not settings.perplexity_api_key:
        raise ConfigurationError("PERPLEXITY_API_KEY is not set")

    client = PerplexityClient(
        api_key=settings.perplexity_api_key,
        base_url=settings.perplexity_base_url,
        timeout=settings.upstream_timeout_seconds,
    )
    core = ProtocolCore(
        build_tool_registry(client),
        name=settings.server_name,
        version=settings.server_version,
        protocol_version=settings.protocol_version,
        tool_timeout_seconds=settings.upstream_timeout_seconds,
    )
    return core, client


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Shutdown closes every open session and the upstream client.
    """
    settings: Settings = app.state.settings
    logger.info(f"Perplexity MCP Server running with SSE transport on port {settings.port}")
    logger.info(f"Connect to SSE endpoint at http://localhost:{settings.port}/sse")
    logger.info(f"Messages endpoint at http://localhost:{settings.port}/messages")

    yield

    logger.info("Shutting down Perplexity MCP Server...")
    closed = app.state.registry.close_all(SessionEndReason.SHUTDOWN)
    if closed:
        logger.info(f"Closed {closed} open sessions")

    client: PerplexityClient | None = app.state.perplexity_client
    if client is not None:
        await client.aclose()

    logger.info("Shutdown complete")


async def handle_server_error(request: Request, exc: MCPServerError) -> JSONResponse:
    """Render MCP server errors as {"error", "code"} JSON bodies."""
    return JSONResponse(
        ErrorResponse(error=exc.message, code=exc.code).model_dump(mode="json"),
        status_code=exc.status_code,
        headers=exc.headers,
    )


def create_app(
    settings: Settings | None = None,
    core: ProtocolCore | None = None,
) -> FastAPI:
    """
    Build the SSE application.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        core: Protocol core to attach sessions to; built from settings if omitted
    """
    settings = settings or get_settings()

    client = None
    if core is None:
        core, client = build_protocol_core(settings)

    if settings.api_key == DEFAULT_API_KEY:
        logger.warning("MCP_API_KEY is not set; using the built-in default key")

    registry = SessionRegistry()
    limiter = FixedWindowRateLimiter(
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    app = FastAPI(
        title="Perplexity MCP Server",
        description="MCP tool server forwarding queries to the Perplexity API",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.registry = registry
    app.state.core = core
    app.state.perplexity_client = client
    app.state.auth_gate = AuthGate(settings.api_key)
    app.state.rate_limiter = limiter
    app.state.stream_handler = StreamConnectionHandler(
        registry,
        core,
        messages_path="/messages",
        ping_interval_seconds=settings.stream_ping_interval_seconds,
    )
    app.state.message_router = MessageRouter(
        registry,
        core,
        allow_untargeted=settings.allow_untargeted_messages,
    )

    # Rate limiting runs before routing; CORS stays outermost
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info("Middleware configured (cors, rate-limiting)")

    app.add_exception_handler(MCPServerError, handle_server_error)

    app.include_router(stream.router)
    app.include_router(messages.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    return app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="perplexity-mcp",
        description="Perplexity MCP server (stdio by default, SSE with --sse)",
    )
    parser.add_argument(
        "-s",
        "--sse",
        action="store_true",
        help="serve the HTTP/SSE transport instead of stdio",
    )
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> None:
    """Process entry point."""
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, stream=sys.stderr)
    logger.info(f"Starting server with {'SSE' if args.sse else 'STDIO'} transport")

    try:
        if args.sse:
            app = create_app(settings)
            uvicorn.run(
                app,
                host=settings.host,
                port=settings.port,
                workers=1,  # Single process: the session registry is in memory
                log_level=settings.log_level.lower(),
            )
        else:
            core, client = build_protocol_core(settings)
            asyncio.run(_run_stdio(core, client))
    except ConfigurationError as e:
        logger.error(f"Failed to start MCP server: {e.message}")
        sys.exit(1)


async def _run_stdio(core: ProtocolCore, client: PerplexityClient) -> None:
    try:
        await serve_stdio(core)
    finally:
        await client.aclose()


if __name__ == "__main__":
    run()
