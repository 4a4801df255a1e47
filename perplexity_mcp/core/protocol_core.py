"""
JSON-RPC request/response engine.

Interprets one MCP message at a time and produces the reply that the
owning session writes onto its stream. Sessions are attached on open and
detached automatically when they close.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from ..inference.tools import ToolRegistry
from ..observability.metrics import record_tool_call
from ..protocol.errors import UpstreamError
from ..protocol.messages import (
    CallToolParams,
    CallToolResult,
    ErrorData,
    Implementation,
    InitializeResult,
    JSONRPCError,
    JSONRPCErrorCode,
    JSONRPCRequest,
    JSONRPCResponse,
    ListToolsResult,
    RequestId,
    SessionEndReason,
)
from .session import Session

logger = logging.getLogger(__name__)


class JSONRPCFailure(Exception):
    """Raised by a method handler to answer with a JSON-RPC error."""

    def __init__(self, code: JSONRPCErrorCode, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


def error_response(
    request_id: RequestId | None,
    code: JSONRPCErrorCode,
    message: str,
    data: Any = None,
) -> dict[str, Any]:
    """Build a JSON-RPC error object."""
    payload = JSONRPCError(
        id=request_id,
        error=ErrorData(code=code.value, message=message, data=data),
    ).model_dump()
    if data is None:
        del payload["error"]["data"]
    return payload


Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class ProtocolCore:
    """
    MCP server engine.

    Methods: initialize, ping, tools/list, tools/call and the
    notifications/* family (which never produce a reply).
    """

    def __init__(
        self,
        tools: ToolRegistry,
        *,
        name: str = "perplexity-api",
        version: str = "1.0.0",
        protocol_version: str = "2024-11-05",
        tool_timeout_seconds: float | None = None,
    ):
        self.tools = tools
        self.server_info = Implementation(name=name, version=version)
        self.protocol_version = protocol_version
        self.tool_timeout_seconds = tool_timeout_seconds
        self._attached: dict[str, Session] = {}
        self._handlers: dict[str, Handler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }
        logger.info(
            f"MCP Server initialized with name: {name}, version: {version}"
        )

    # ------------------------------------------------------------------
    # Session wiring
    # ------------------------------------------------------------------

    def attach(self, session: Session) -> None:
        """Connect a session so replies can be written to it."""
        self._attached[session.session_id] = session
        session.add_observer(self._detach)
        logger.info(f"MCP Server connected to transport (connection {session.session_id})")

    def _detach(self, session: Session, reason: SessionEndReason) -> None:
        self._attached.pop(session.session_id, None)

    def is_attached(self, session: Session) -> bool:
        return self._attached.get(session.session_id) is session

    @property
    def attached_count(self) -> int:
        return len(self._attached)

    def submit(self, session: Session, message: Any) -> asyncio.Task:
        """
        Handle a message on behalf of a session.

        The reply is written onto the session's stream in submission
        order; it is dropped if the session closes first.
        """
        return session.submit(self.handle_message(message, session_id=session.session_id))

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle_message(
        self, message: Any, session_id: str | None = None
    ) -> dict[str, Any] | None:
        """Interpret one JSON-RPC message. Returns the reply or None."""
        logger.debug(f"Server received message on {session_id}: {message!r}")

        if not isinstance(message, dict):
            return error_response(
                None, JSONRPCErrorCode.INVALID_REQUEST, "Request must be a JSON object"
            )

        if "method" not in message:
            # A response to a server-initiated request; nothing to answer.
            return None

        try:
            request = JSONRPCRequest.model_validate(message)
        except ValidationError as e:
            return error_response(
                message.get("id"),
                JSONRPCErrorCode.INVALID_REQUEST,
                "Invalid request",
                e.errors(include_url=False, include_context=False),
            )

        if request.is_notification:
            if request.method == "notifications/initialized":
                logger.info(f"Client initialized (connection {session_id})")
            else:
                logger.debug(f"Notification {request.method} ignored")
            return None

        handler = self._handlers.get(request.method)
        if handler is None:
            return error_response(
                request.id,
                JSONRPCErrorCode.METHOD_NOT_FOUND,
                f"Method not found: {request.method}",
            )

        try:
            result = await handler(request.params or {})
        except JSONRPCFailure as e:
            return error_response(request.id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception(f"Server error handling {request.method}")
            return error_response(request.id, JSONRPCErrorCode.INTERNAL_ERROR, str(e))

        return JSONRPCResponse(id=request.id, result=result).model_dump()

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        client_version = params.get("protocolVersion")
        logger.info(f"Client initializing with protocol version: {client_version}")
        logger.debug(f"Client capabilities: {params.get('capabilities')}")
        result = InitializeResult(
            protocolVersion=self.protocol_version,
            capabilities={"resources": {}, "tools": {}},
            serverInfo=self.server_info,
        )
        return result.model_dump()

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return ListToolsResult(tools=self.tools.describe()).model_dump()

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            call = CallToolParams.model_validate(params)
        except ValidationError as e:
            raise JSONRPCFailure(
                JSONRPCErrorCode.INVALID_PARAMS,
                "Invalid tools/call params",
                e.errors(include_url=False, include_context=False),
            )

        tool = self.tools.get(call.name)
        if tool is None:
            raise JSONRPCFailure(
                JSONRPCErrorCode.INVALID_PARAMS, f"Unknown tool: {call.name}"
            )

        try:
            arguments = tool.arguments_model.model_validate(call.arguments)
        except ValidationError as e:
            raise JSONRPCFailure(
                JSONRPCErrorCode.INVALID_PARAMS,
                f"Invalid arguments for tool {call.name}",
                e.errors(include_url=False, include_context=False),
            )

        started = time.monotonic()
        try:
            text = await asyncio.wait_for(
                tool.handler(arguments), timeout=self.tool_timeout_seconds
            )
            result = CallToolResult.text(text)
        except asyncio.TimeoutError:
            result = handle_tool_error(
                UpstreamError(f"Tool {call.name} timed out after {self.tool_timeout_seconds}s")
            )
        except Exception as e:
            result = handle_tool_error(e)

        record_tool_call(call.name, time.monotonic() - started, not result.isError)
        return result.model_dump()


def handle_tool_error(error: Exception) -> CallToolResult:
    """Convert a failed tool call into a textual error result."""
    logger.error(f"Error in tool execution: {error}")
    if isinstance(error, UpstreamError):
        message = error.message
    else:
        message = str(error) or "Unknown error occurred"
    return CallToolResult.text(f"Error: {message}", is_error=True)
