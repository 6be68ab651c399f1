"""
Health Check Routes

GET /health reports pool occupancy and subscription states. It answers
503 when the gateway is degraded (a pool is closed or a subscription is
not active) so load balancers can take the instance out of rotation.

GET /metrics exposes the Prometheus registry.
"""

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from pubsub_gateway.application.api.dependencies import GatewayDep
from pubsub_gateway.application.api.models.messaging import HealthResponse
from pubsub_gateway.infrastructure.monitoring.metrics_collector import get_metrics_collector

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health(gateway: GatewayDep):
    report = HealthResponse(**gateway.health())
    if report.status != "healthy":
        return JSONResponse(status_code=503, content=report.model_dump(mode="json"))
    return report


@router.get("/metrics")
async def metrics():
    """Prometheus text exposition."""
    collector = get_metrics_collector()
    return Response(content=collector.get_prometheus_metrics(), media_type=collector.get_content_type())
