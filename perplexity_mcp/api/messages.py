"""
Control channel endpoint.

Accepts one JSON-RPC message per POST. The reply is not returned here:
it is delivered on the resolved session's event stream.
"""

import json
import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from ..protocol.errors import InvalidMessageError
from .deps import get_message_router, require_message_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])


@router.post(
    "/messages",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_message_api_key)],
)
async def post_message(
    request: Request,
    session_id: str | None = Query(default=None, alias="sessionId"),
) -> JSONResponse:
    """Route a protocol message to its session."""
    raw = await request.body()
    try:
        message = json.loads(raw)
    except ValueError:
        raise InvalidMessageError("Invalid JSON body")

    logger.debug(f"Received message: {raw[:500]!r}")

    session = get_message_router(request).dispatch(message, session_id=session_id)
    return JSONResponse(
        {"status": "accepted", "sessionId": session.session_id},
        status_code=status.HTTP_202_ACCEPTED,
    )
