"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - document_delete_leg_failures_total{leg}
    - query_transport_fallbacks_total{transport, reason}
    - query_streams_total{transport, outcome}
    - workflow_calls_total{operation, outcome}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
