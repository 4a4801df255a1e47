"""Fixed-window rate limiter and the ASGI middleware that applies it.

Each client key (the peer address) gets a window that starts at its
first request and lasts `window_seconds`. Within a window at most
`limit` requests are accepted; later ones are rejected until the window
ends. Windows of different keys are independent.

Example:
    limiter = FixedWindowRateLimiter(limit=100, window_seconds=900)
    decision = limiter.hit("203.0.113.7")
    if not decision.allowed:
        print(f"retry in {decision.reset_after:.0f}s")
"""

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from starlette.datastructures import MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..observability.metrics import record_request_rejected
from ..protocol.errors import RateLimitError
from ..protocol.messages import ErrorResponse

logger = logging.getLogger(__name__)

# Type alias for injectable time functions (used in testing)
TimeFn = Callable[[], float]


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float
    window_seconds: float

    def headers(self) -> dict[str, str]:
        """Standard RateLimit-* response headers."""
        return {
            "RateLimit-Policy": f"{self.limit};w={int(self.window_seconds)}",
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(math.ceil(self.reset_after)),
        }


@dataclass
class _Window:
    started_at: float
    count: int = 0


class FixedWindowRateLimiter:
    """Count requests per key within a fixed window.

    The limiter is disabled when limit or window_seconds is 0, in which
    case every hit is allowed.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        now_fn: TimeFn | None = None,
    ) -> None:
        self.limit = max(0, int(limit))
        self.window_seconds = max(0.0, float(window_seconds))
        self._now = now_fn or time.monotonic
        self._windows: dict[str, _Window] = {}
        self._last_prune = self._now()
        self.enabled = self.limit > 0 and self.window_seconds > 0

    def hit(self, key: str) -> RateLimitDecision:
        """Record one request for `key` and decide whether it may proceed."""
        if not self.enabled:
            return RateLimitDecision(True, self.limit, self.limit, 0.0, self.window_seconds)

        now = self._now()
        self._prune(now)

        window = self._windows.get(key)
        if window is None or now - window.started_at >= self.window_seconds:
            window = _Window(started_at=now)
            self._windows[key] = window

        window.count += 1
        reset_after = max(0.0, window.started_at + self.window_seconds - now)
        return RateLimitDecision(
            allowed=window.count <= self.limit,
            limit=self.limit,
            remaining=max(0, self.limit - window.count),
            reset_after=reset_after,
            window_seconds=self.window_seconds,
        )

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    @property
    def tracked_keys(self) -> int:
        return len(self._windows)

    def _prune(self, now: float) -> None:
        if now - self._last_prune < self.window_seconds:
            return
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._last_prune = now


def client_key(scope: Scope) -> str:
    """Key requests by peer address."""
    client = scope.get("client")
    if client:
        return str(client[0])
    return "unknown"


class RateLimitMiddleware:
    """
    Pure ASGI middleware so streaming responses are passed through untouched.

    Rejected requests get a 429 JSON body before reaching any route.
    """

    def __init__(
        self,
        app: ASGIApp,
        limiter: FixedWindowRateLimiter,
        key_func: Callable[[Scope], str] = client_key,
    ) -> None:
        self.app = app
        self.limiter = limiter
        self.key_func = key_func

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.limiter.enabled:
            await self.app(scope, receive, send)
            return

        key = self.key_func(scope)
        decision = self.limiter.hit(key)
        rate_headers = decision.headers()

        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for {key} on {scope.get('path')}")
            record_request_rejected("rate_limited")
            error = RateLimitError(retry_after_seconds=decision.reset_after)
            response = JSONResponse(
                ErrorResponse(error=error.message, code=error.code).model_dump(mode="json"),
                status_code=error.status_code,
                headers={**rate_headers, **(error.headers or {})},
            )
            await response(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in rate_headers.items():
                    headers.append(name, value)
            await send(message)

        await self.app(scope, receive, send_with_headers)
