"""Custom exceptions for the MCP server."""

from .messages import ErrorCode


class MCPServerError(Exception):
    """Base exception for MCP server errors."""

    status_code: int = 500

    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(message)

    @property
    def headers(self) -> dict[str, str] | None:
        return None


class AuthenticationError(MCPServerError):
    """Raised when the presented API key is missing or wrong."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized: Invalid API key"):
        super().__init__(ErrorCode.UNAUTHORIZED, message)


class RateLimitError(MCPServerError):
    """Raised when a client exceeds its request window."""

    status_code = 429

    def __init__(self, retry_after_seconds: float | None = None):
        message = "Too many requests, please try again later"
        if retry_after_seconds:
            message += f" (retry after {retry_after_seconds:.0f}s)"
        super().__init__(ErrorCode.RATE_LIMITED, message)
        self.retry_after_seconds = retry_after_seconds

    @property
    def headers(self) -> dict[str, str] | None:
        if self.retry_after_seconds is None:
            return None
        return {"Retry-After": str(max(1, round(self.retry_after_seconds)))}


class NoActiveSessionError(MCPServerError):
    """Raised when a message arrives while no session is open."""

    status_code = 400

    def __init__(self):
        super().__init__(
            ErrorCode.NO_ACTIVE_SESSION,
            "No active SSE connection found",
        )


class SessionNotFoundError(MCPServerError):
    """Raised when a message names a session that is not open."""

    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(
            ErrorCode.SESSION_NOT_FOUND,
            f"Session '{session_id}' not found",
        )


class SessionClosedError(MCPServerError):
    """Raised when work is submitted to a session that already closed."""

    status_code = 410

    def __init__(self, session_id: str):
        super().__init__(
            ErrorCode.SESSION_CLOSED,
            f"Session '{session_id}' is closed",
        )


class InvalidMessageError(MCPServerError):
    """Raised when a submitted message cannot be accepted."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_MESSAGE, message)


class StreamClosedError(MCPServerError):
    """Raised when writing to a stream that is no longer writable."""

    def __init__(self, session_id: str | None = None):
        super().__init__(
            ErrorCode.INTERNAL_ERROR,
            f"Stream for session '{session_id}' is closed",
        )


class UpstreamError(MCPServerError):
    """Raised when the Perplexity API call fails."""

    status_code = 502

    def __init__(self, message: str):
        super().__init__(ErrorCode.UPSTREAM_ERROR, message)


class ConfigurationError(MCPServerError):
    """Raised at startup when required configuration is missing."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.CONFIGURATION_ERROR, message)
