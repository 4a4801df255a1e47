"""Prometheus scrape endpoint."""

from fastapi import APIRouter, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..observability.metrics import mcp_active_sessions
from .deps import get_registry

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    """Registered metrics in exposition format; the session gauge is refreshed first."""
    mcp_active_sessions.set(get_registry(request).active_sessions)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
