"""
Server-sent event endpoint.

Each GET opens one long-lived stream: the first event names the message
endpoint for this session, then every protocol reply for the session is
pushed as a `message` event until the connection ends.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from ..core.session import Session
from ..core.stream import SSE_HEADERS
from ..protocol.messages import SessionEndReason
from .deps import get_stream_handler, require_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stream"])


class SessionStreamingResponse(StreamingResponse):
    """
    Streaming response that owns its session.

    The body generator tears the session down once it runs, but it never
    starts if sending the response head fails. Closing again here covers
    that case and is a no-op otherwise.
    """

    def __init__(self, session: Session, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            if self.session.close(SessionEndReason.DISCONNECTED):
                logger.info(
                    f"Client went away before stream {self.session.session_id} started"
                )


@router.get("/sse", dependencies=[Depends(require_api_key)])
@router.get("/stream", dependencies=[Depends(require_api_key)])
async def open_stream(request: Request) -> StreamingResponse:
    """Open an event stream and register a session for it."""
    handler = get_stream_handler(request)
    client = request.client.host if request.client else None
    session = handler.open(client=client)
    logger.debug(f"SSE connection headers: {dict(request.headers)}")

    return SessionStreamingResponse(
        session,
        handler.events(request, session),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
