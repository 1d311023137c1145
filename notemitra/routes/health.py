"""
NoteMitra Backend — Health Check Route
========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Pings the catalog store chosen at startup and reports which backend
       it is.

Status levels:
    - healthy:   store reachable on the durable backend
    - degraded:  running on the in-memory store (data will not survive a restart)
    - unhealthy: store unreachable, or services not initialized yet
"""

import logging
import time

from fastapi import APIRouter, Request

from notemitra import __version__
from notemitra.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(request: Request) -> HealthResponse:
    services = getattr(request.app.state, "services", None)
    if services is None:
        return HealthResponse(
            status="unhealthy",
            version=__version__,
            storage_backend="none",
            storage="disconnected",
            uptime_seconds=round(time.time() - _start_time, 2),
        )

    store = services.store
    reachable = await store.ping()
    if not reachable:
        overall = "unhealthy"
        logger.warning("Health check: %s store unreachable", store.backend_name)
    elif store.backend_name == "memory":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        storage_backend=store.backend_name,
        storage="connected" if reachable else "disconnected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )
