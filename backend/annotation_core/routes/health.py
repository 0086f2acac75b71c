"""
Annotation Core - Health Check Route
=====================================

What:  GET /health reports service status, per-vendor reachability, and the
       circuit breaker's state.
How:   Each registered ProviderClient gets a lightweight health_check() probe.
       An open breaker reports every vendor as circuit_open without probing.

Status levels:
    - healthy:  every registered vendor reachable, breaker closed
    - degraded: breaker not closed, a vendor unreachable, or no vendor
                registered (processing still works; analysis does not)
"""

import logging
import time

from fastapi import APIRouter, Depends

from annotation_core import __version__
from annotation_core.dependencies import get_provider_orchestrator
from annotation_core.schemas.api import HealthResponse
from annotation_core.services.provider_service import CircuitBreaker, ProviderOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    providers: ProviderOrchestrator = Depends(get_provider_orchestrator),
) -> HealthResponse:
    breaker = providers.circuit_breaker.snapshot()
    overall = "healthy"

    if breaker["state"] == CircuitBreaker.OPEN:
        vendor_status = {vendor.value: "circuit_open" for vendor in providers.clients}
        overall = "degraded"
    else:
        reachable = await providers.health_check()
        vendor_status = {
            vendor: "available" if ok else "unavailable" for vendor, ok in reachable.items()
        }
        if not reachable or not all(reachable.values()):
            overall = "degraded"
        if breaker["state"] != CircuitBreaker.CLOSED:
            overall = "degraded"

    if overall != "healthy":
        logger.warning("Health check degraded: providers=%s breaker=%s", vendor_status, breaker)

    return HealthResponse(
        status=overall,
        version=__version__,
        providers=vendor_status,
        circuit_breaker=breaker,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
