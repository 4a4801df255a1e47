"""Request dependencies: component lookup and API key checks."""

import logging

from fastapi import Request, Security
from fastapi.security.api_key import APIKeyHeader, APIKeyQuery

from ..config import Settings
from ..core.auth import AuthGate, select_credential
from ..core.router import MessageRouter
from ..core.session import SessionRegistry
from ..core.stream import StreamConnectionHandler
from ..observability.metrics import record_request_rejected
from ..protocol.errors import AuthenticationError

logger = logging.getLogger(__name__)

# API key can be provided via header or query parameter
api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)
api_key_query = APIKeyQuery(name="api_key", auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_stream_handler(request: Request) -> StreamConnectionHandler:
    return request.app.state.stream_handler


def get_message_router(request: Request) -> MessageRouter:
    return request.app.state.message_router


def _authenticate(request: Request, header: str | None, query: str | None) -> None:
    gate: AuthGate = request.app.state.auth_gate
    presented = select_credential(header, query)
    if gate.check(presented):
        return

    record_request_rejected("unauthorized")
    client = request.client.host if request.client else "unknown"
    if presented is None:
        logger.warning(f"Authentication failed: missing API key ({client} {request.url.path})")
    else:
        logger.warning(f"Authentication failed: invalid API key ({client} {request.url.path})")
    raise AuthenticationError()


async def require_api_key(
    request: Request,
    header: str | None = Security(api_key_header),
    query: str | None = Security(api_key_query),
) -> None:
    """Reject the request with 401 unless it carries the configured key."""
    _authenticate(request, header, query)


async def require_message_api_key(
    request: Request,
    header: str | None = Security(api_key_header),
    query: str | None = Security(api_key_query),
) -> None:
    """Like require_api_key, unless message auth is switched off."""
    if not get_settings(request).require_auth_for_messages:
        return
    _authenticate(request, header, query)
