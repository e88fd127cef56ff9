"""
PromptLens Backend - Health Check Route
=========================================

What:  Health check endpoint for monitoring and load balancer health checks.
How:   Resolves the preferred analyzer through the registry (which runs its
       liveness check) and lists the providers that currently resolve.
Who:   Called by Docker health checks, load balancers, and monitoring systems.

Status levels:
    - healthy:   The configured provider is serving requests (HTTP 200)
    - degraded:  Requests are falling back to the mock analyzer (HTTP 200)

The mock analyzer is always available, so the service itself never
reports unhealthy.
"""

import logging
import time

from fastapi import APIRouter, Depends

from promptlens import __version__
from promptlens.routes.analyze import get_analysis_service
from promptlens.schemas.analysis import HealthResponse
from promptlens.services.analysis_service import AnalysisService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Initialized once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    service: AnalysisService = Depends(get_analysis_service),
) -> HealthResponse:
    """
    Report which provider is serving requests and which ones are reachable.

    Remote liveness checks are cheap (list models, no token cost) but may
    take up to 5s each when a provider is unreachable.
    """
    registry = service.registry

    analyzer = await registry.get_preferred_analyzer()
    serving = analyzer.get_provider_name()
    overall = "healthy" if serving == registry.preferred else "degraded"
    if overall == "degraded":
        logger.warning(
            "Health check: preferred provider '%s' unavailable, serving with '%s'",
            registry.preferred,
            serving,
        )

    return HealthResponse(
        status=overall,
        version=__version__,
        provider=serving,
        providers=await registry.get_available_providers(),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
