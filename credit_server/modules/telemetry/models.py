"""Telemetry point model and the restartable window sequence."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Callable, Mapping, Optional

from credit_server.modules.devices.models import DeviceType

CO2_REDUCED_FIELD = "co2_reduced"
ENERGY_SAVED_FIELD = "energy_saved"
TEMPERATURE_FIELD = "temperature"
HUMIDITY_FIELD = "humidity"


@dataclass(slots=True, frozen=True)
class TelemetryPoint:
    device_id: str
    device_type: DeviceType
    timestamp: datetime
    fields: Mapping[str, float] = field(default_factory=dict)
    company_id: Optional[str] = None
    wallet_address: Optional[str] = None

    def value(self, name: str) -> float:
        return float(self.fields.get(name, 0.0))


class TelemetryWindow:
    """Lazy, re-iterable result of a ``[start, end)`` range query.

    Every ``async for`` re-issues the underlying query, so iterating the same window
    twice observes the same stored points.
    """

    def __init__(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
        fetch: Callable[[], AsyncIterator[TelemetryPoint]],
    ) -> None:
        self.device_id = device_id
        self.start = start
        self.end = end
        self._fetch = fetch

    def __aiter__(self) -> AsyncIterator[TelemetryPoint]:
        return self._fetch()

    async def collect(self) -> list[TelemetryPoint]:
        return [point async for point in self]

    def __repr__(self) -> str:
        return f"TelemetryWindow(device_id={self.device_id!r}, start={self.start.isoformat()}, end={self.end.isoformat()})"


@dataclass(slots=True)
class IngestResult:
    device_id: str
    company_id: str
    wallet_address: Optional[str]
    timestamp: datetime
    cached: bool
