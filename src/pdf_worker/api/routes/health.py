"""
Health check endpoints.

Provides health status, version information and artifact store
statistics for the worker.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from pdf_worker.api.schemas.responses import HealthResponse
from pdf_worker.artifacts.lifecycle import SchedulerStatus
from pdf_worker.version import __version__

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=HealthResponse)
@router.get("/", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Report worker health.

    The status is ``healthy`` while every background job is running and
    ``degraded`` otherwise; store statistics are always included.
    """
    store = request.app.state.store
    lifecycle = request.app.state.lifecycle

    jobs = lifecycle.status()
    running = all(value == SchedulerStatus.RUNNING.value for value in jobs.values())

    return HealthResponse(
        status="healthy" if running else "degraded",
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        store=store.stats().model_dump(),
        jobs=jobs,
    )
