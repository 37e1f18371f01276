"""
Operational endpoints: liveness, readiness and Prometheus metrics.
"""

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from tutor.core.database import check_connection
from tutor.core.metrics import METRICS

root_router = APIRouter(tags=["health"])


@root_router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz():
    """Readiness check: primary store reachable."""
    if check_connection():
        return {"status": "ok"}
    return JSONResponse(status_code=503, content={"status": "degraded", "db": "unreachable"})


@root_router.get("/metrics")
def metrics_endpoint():
    return Response(content=METRICS.export_prometheus(), media_type="text/plain")
