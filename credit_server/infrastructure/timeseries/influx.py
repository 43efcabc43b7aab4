"""InfluxDB implementation of the time-series store."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Optional

import aiohttp
from influxdb_client import Point, WritePrecision
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync

from credit_server.core.config import InfluxSettings
from credit_server.core.exceptions import UpstreamUnavailable
from credit_server.modules.devices.models import DeviceType
from credit_server.modules.telemetry.models import TelemetryPoint, TelemetryWindow

logger = logging.getLogger(__name__)

_TAG_COLUMNS = {"device_id", "device_type", "company_id", "wallet_address"}
_TRANSPORT_ERRORS = (InfluxDBError, aiohttp.ClientError, OSError)


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _flux_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_window_query(
    bucket: str,
    measurement: str,
    device_id: str,
    start: datetime,
    end: datetime,
) -> str:
    """Flux for every point of one device in ``[start, end)``, one row per timestamp."""
    # range() 的 stop 为开区间，与窗口语义一致
    return (
        f"from(bucket: {_flux_string(bucket)})\n"
        f"  |> range(start: {_rfc3339(start)}, stop: {_rfc3339(end)})\n"
        f"  |> filter(fn: (r) => r._measurement == {_flux_string(measurement)})\n"
        f"  |> filter(fn: (r) => r.device_id == {_flux_string(device_id)})\n"
        '  |> pivot(rowKey: ["_time"], columnKey: ["_field"], valueColumn: "_value")\n'
        '  |> group()\n'
        '  |> sort(columns: ["_time"])'
    )


def record_to_point(values: dict[str, Any], device_id: str) -> TelemetryPoint:
    fields: dict[str, float] = {}
    for key, value in values.items():
        if key.startswith("_") or key in _TAG_COLUMNS or key in {"result", "table"}:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        fields[key] = float(value)

    raw_type = values.get("device_type") or DeviceType.SEQUESTER.value
    try:
        device_type = DeviceType(raw_type)
    except ValueError:
        device_type = DeviceType.SEQUESTER
    return TelemetryPoint(
        device_id=values.get("device_id") or device_id,
        device_type=device_type,
        timestamp=values["_time"],
        fields=fields,
        company_id=values.get("company_id"),
        wallet_address=values.get("wallet_address"),
    )


class InfluxTimeSeriesStore:
    """Writes tagged sensor points and answers windowed queries against InfluxDB 2.x."""

    def __init__(self, settings: InfluxSettings, client: Optional[InfluxDBClientAsync] = None) -> None:
        self.settings = settings
        self._client = client

    def _get_client(self) -> InfluxDBClientAsync:
        # aiohttp 会话必须在事件循环内创建，因此延迟初始化
        if self._client is None:
            self._client = InfluxDBClientAsync(
                url=self.settings.url,
                token=self.settings.token,
                org=self.settings.org,
                timeout=int(max(self.settings.write_timeout_seconds, self.settings.query_timeout_seconds) * 1000),
            )
        return self._client

    def _to_record(self, point: TelemetryPoint) -> Point:
        record = (
            Point(self.settings.measurement)
            .tag("device_id", point.device_id)
            .tag("device_type", point.device_type.value)
            .tag("company_id", point.company_id or "unknown")
            .tag("wallet_address", point.wallet_address or "unknown")
            .time(point.timestamp, WritePrecision.NS)
        )
        for name, value in point.fields.items():
            record = record.field(name, float(value))
        return record

    async def write(self, point: TelemetryPoint) -> None:
        write_api = self._get_client().write_api()
        try:
            accepted = await asyncio.wait_for(
                write_api.write(bucket=self.settings.bucket, record=self._to_record(point)),
                timeout=self.settings.write_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailable(
                f"time-series write for device {point.device_id} timed out",
                device_id=point.device_id,
            ) from exc
        except _TRANSPORT_ERRORS as exc:
            logger.error("Failed to write point for device %s: %s", point.device_id, exc)
            raise UpstreamUnavailable(
                f"time-series write for device {point.device_id} failed: {exc}",
                device_id=point.device_id,
            ) from exc
        if accepted is False:
            raise UpstreamUnavailable(
                f"time-series store rejected point for device {point.device_id}",
                device_id=point.device_id,
            )

    def query_window(self, device_id: str, start: datetime, end: datetime) -> TelemetryWindow:
        query = build_window_query(self.settings.bucket, self.settings.measurement, device_id, start, end)

        async def fetch() -> AsyncIterator[TelemetryPoint]:
            for point in await self._run_query(query, device_id):
                if start <= point.timestamp < end:
                    yield point

        return TelemetryWindow(device_id, start, end, fetch)

    async def _run_query(self, query: str, device_id: str) -> Iterable[TelemetryPoint]:
        query_api = self._get_client().query_api()
        try:
            tables = await asyncio.wait_for(query_api.query(query), timeout=self.settings.query_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailable(f"time-series query for device {device_id} timed out", device_id=device_id) from exc
        except _TRANSPORT_ERRORS as exc:
            logger.error("Time-series query for device %s failed: %s", device_id, exc)
            raise UpstreamUnavailable(
                f"time-series query for device {device_id} failed: {exc}", device_id=device_id
            ) from exc

        points = [record_to_point(record.values, device_id) for table in tables for record in table.records]
        points.sort(key=lambda point: point.timestamp)
        return points

    async def ping(self) -> bool:
        try:
            return await asyncio.wait_for(self._get_client().ping(), timeout=self.settings.query_timeout_seconds)
        except (asyncio.TimeoutError, *_TRANSPORT_ERRORS):
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


__all__ = ["InfluxTimeSeriesStore", "build_window_query", "record_to_point"]
