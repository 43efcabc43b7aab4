"""Narrow interface to the time-series store."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .models import TelemetryPoint, TelemetryWindow


class TimeSeriesStore(Protocol):
    async def write(self, point: TelemetryPoint) -> None:
        """Persist one point or raise ``UpstreamUnavailable``; never drops silently."""
        ...

    def query_window(self, device_id: str, start: datetime, end: datetime) -> TelemetryWindow:
        ...

    async def close(self) -> None:
        ...

    async def ping(self) -> bool:
        ...
