"""
Prometheus metrics for the MCP server.

Exports:
- Active sessions gauge
- Session open/close counters
- Rejected request counter
- Routed message counter
- Tool call counter and upstream latency histogram
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Session metrics
# =============================================================================

mcp_active_sessions = Gauge(
    "mcp_active_sessions",
    "Currently open stream sessions",
)

mcp_sessions_opened_total = Counter(
    "mcp_sessions_opened_total",
    "Total stream sessions opened",
)

mcp_sessions_closed_total = Counter(
    "mcp_sessions_closed_total",
    "Total stream sessions closed",
    ["end_reason"],  # closed, error, disconnected, shutdown
)

# =============================================================================
# Request metrics
# =============================================================================

mcp_requests_rejected = Counter(
    "mcp_requests_rejected_total",
    "Requests rejected before reaching a session",
    ["reason"],  # unauthorized, rate_limited, no_active_session, session_not_found
)

mcp_messages_routed = Counter(
    "mcp_messages_routed_total",
    "Control messages forwarded to a session",
    ["mode"],  # keyed, latest
)

# =============================================================================
# Tool metrics
# =============================================================================

mcp_tool_calls_total = Counter(
    "mcp_tool_calls_total",
    "Tool calls handled",
    ["tool", "status"],  # success, error
)

mcp_upstream_latency = Histogram(
    "mcp_upstream_latency_seconds",
    "Latency of tool calls forwarded to the upstream API",
    ["tool"],
    buckets=(0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
)


# =============================================================================
# Helper functions
# =============================================================================


def record_session_opened(active_sessions: int) -> None:
    """Record a new session and the resulting registry size."""
    mcp_sessions_opened_total.inc()
    mcp_active_sessions.set(active_sessions)


def record_session_closed(reason: str, active_sessions: int) -> None:
    """Record a session ending and the resulting registry size."""
    mcp_sessions_closed_total.labels(end_reason=reason).inc()
    mcp_active_sessions.set(active_sessions)


def record_request_rejected(reason: str) -> None:
    """Record a request rejected before any session work."""
    mcp_requests_rejected.labels(reason=reason).inc()


def record_message_routed(mode: str) -> None:
    mcp_messages_routed.labels(mode=mode).inc()


def record_tool_call(tool: str, latency_seconds: float, success: bool) -> None:
    """
    Record metrics for a completed tool call.

    Args:
        tool: Tool name
        latency_seconds: Wall time of the call including the upstream request
        success: Whether the tool produced a non-error result
    """
    mcp_upstream_latency.labels(tool=tool).observe(latency_seconds)
    status = "success" if success else "error"
    mcp_tool_calls_total.labels(tool=tool, status=status).inc()
