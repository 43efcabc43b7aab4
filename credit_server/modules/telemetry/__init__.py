"""Telemetry points, the time-series store interface and ingestion."""

from .models import (
    CO2_REDUCED_FIELD,
    ENERGY_SAVED_FIELD,
    HUMIDITY_FIELD,
    TEMPERATURE_FIELD,
    IngestResult,
    TelemetryPoint,
    TelemetryWindow,
)
from .repository import TimeSeriesStore
from .service import TelemetryService

__all__ = [
    "CO2_REDUCED_FIELD",
    "ENERGY_SAVED_FIELD",
    "HUMIDITY_FIELD",
    "TEMPERATURE_FIELD",
    "IngestResult",
    "TelemetryPoint",
    "TelemetryWindow",
    "TimeSeriesStore",
    "TelemetryService",
]
