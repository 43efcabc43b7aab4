"""Liveness and dependency checks."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from credit_server import __version__
from credit_server.api.deps import get_container
from credit_server.core.container import ApplicationContainer
from credit_server.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=HealthResponse, summary="健康检查")
async def health(container: ApplicationContainer = Depends(get_container)) -> HealthResponse:
    database_ok = True
    try:
        async with container.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        database_ok = False

    time_series_ok = await container.time_series.ping()
    return HealthResponse(
        status="ok" if database_ok and time_series_ok else "degraded",
        version=__version__,
        database=database_ok,
        time_series=time_series_ok,
        scheduler_running=container.scheduler.is_running,
    )
