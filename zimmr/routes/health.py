"""
ZIMMR Backend — Health Check Route
===================================

What:  GET /health for load balancers and container health checks.

Status levels:
    - healthy:    database reachable, mail transport configured
    - degraded:   database reachable, email disabled or its circuit is open
                  (the API works; notifications are skipped)
    - unhealthy:  database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response, status
from sqlalchemy import text

from zimmr import __version__
from zimmr.database import engine
from zimmr.schemas.common import HealthResponse
from zimmr.services.smtp_service import smtp_mailer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", str(e))

    email_status = smtp_mailer.status()

    if db_status != "connected":
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif email_status != "configured":
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        email=email_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
