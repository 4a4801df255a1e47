"""Pydantic models for the JSON-RPC protocol and the HTTP error surface."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================


class ErrorCode(str, Enum):
    """Error codes returned in HTTP error bodies."""

    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    NO_ACTIVE_SESSION = "NO_ACTIVE_SESSION"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_CLOSED = "SESSION_CLOSED"
    INVALID_MESSAGE = "INVALID_MESSAGE"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class SessionEndReason(str, Enum):
    """Reasons for a session ending."""

    CLOSED = "closed"
    ERROR = "error"
    DISCONNECTED = "disconnected"
    SHUTDOWN = "shutdown"


class JSONRPCErrorCode(int, Enum):
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


# =============================================================================
# HTTP bodies
# =============================================================================


class ErrorResponse(BaseModel):
    """JSON body for every rejected HTTP request."""

    error: str
    code: ErrorCode


# =============================================================================
# JSON-RPC envelopes
# =============================================================================

RequestId = int | str


class JSONRPCRequest(BaseModel):
    """Inbound request or notification (a notification has no id)."""

    jsonrpc: Literal["2.0"]
    method: str
    id: RequestId | None = None
    params: dict[str, Any] | None = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class ErrorData(BaseModel):
    code: int
    message: str
    data: Any | None = None


class JSONRPCResponse(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId | None
    result: dict[str, Any]


class JSONRPCError(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    id: RequestId | None
    error: ErrorData


# =============================================================================
# MCP payloads
# =============================================================================


class Implementation(BaseModel):
    name: str
    version: str


class InitializeResult(BaseModel):
    protocolVersion: str
    capabilities: dict[str, Any]
    serverInfo: Implementation


class Tool(BaseModel):
    """Tool description as listed by tools/list."""

    name: str
    description: str
    inputSchema: dict[str, Any]


class ListToolsResult(BaseModel):
    tools: list[Tool]


class CallToolParams(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class CallToolResult(BaseModel):
    content: list[TextContent]
    isError: bool = False

    @classmethod
    def text(cls, text: str, *, is_error: bool = False) -> "CallToolResult":
        return cls(content=[TextContent(text=text)], isError=is_error)
