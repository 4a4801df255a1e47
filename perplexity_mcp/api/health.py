"""
Health check endpoint.

Reports liveness and the number of open stream sessions.
"""

import logging
from typing import Any

from fastapi import APIRouter, Request

from .deps import get_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Always 200 while the process is serving requests."""
    logger.debug("Health check requested")
    return {
        "status": "ok",
        "activeConnections": get_registry(request).active_sessions,
    }
