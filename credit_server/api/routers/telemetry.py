"""Sensor reading ingestion."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from credit_server.api.deps import get_telemetry_service
from credit_server.modules.telemetry import TelemetryService
from credit_server.schemas import TelemetryIngestRequest, TelemetryIngestResponse

router = APIRouter()


@router.post(
    "",
    response_model=TelemetryIngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="上报传感器数据",
)
async def ingest_reading(
    payload: TelemetryIngestRequest,
    service: TelemetryService = Depends(get_telemetry_service),
) -> TelemetryIngestResponse:
    result = await service.record(
        api_key=payload.api_key,
        device_id=payload.device_id,
        fields=payload.fields,
        timestamp=payload.timestamp,
    )
    return TelemetryIngestResponse.model_validate(result)
