"""
Health and Prometheus metrics endpoints (public routes)
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from ..models.authorization_models import utc_now
from ..services.prometheus_metrics import get_metrics_instance

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Report graph store connectivity; 503 when the store cannot answer."""
    health_status = {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "version": getattr(request.app, "version", None),
    }

    graph_store = getattr(request.app.state, "graph_store", None)
    if graph_store is None:
        health_status["graph_store"] = "not_configured"
    elif await graph_store.verify_connectivity():
        health_status["graph_store"] = "healthy"
    else:
        health_status["graph_store"] = "unhealthy"
        health_status["status"] = "degraded"
        logger.warning("Health check: graph store unreachable")

    status_code = status.HTTP_200_OK if health_status["status"] == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=health_status)


@router.get("/metrics")
async def metrics() -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    metrics_data = get_metrics_instance().get_metrics()
    return PlainTextResponse(content=metrics_data, media_type="text/plain; version=0.0.4; charset=utf-8")
