"""Telemetry ingestion: attribute a reading to its owner and store it."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from credit_server.core.clock import as_utc, utcnow
from credit_server.core.exceptions import ValidationError
from credit_server.modules.devices.service import DeviceService
from credit_server.modules.wallets.service import WalletResolver

from .models import IngestResult, TelemetryPoint
from .repository import TimeSeriesStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TelemetryService:
    store: TimeSeriesStore
    resolver: WalletResolver
    devices: DeviceService

    async def record(
        self,
        *,
        api_key: str,
        device_id: str,
        fields: Mapping[str, float],
        timestamp: Optional[datetime] = None,
    ) -> IngestResult:
        if not fields:
            raise ValidationError("reading has no numeric fields")

        resolution = await self.resolver.resolve(api_key)
        device = await self.devices.require_device(device_id)
        if device.company_id != resolution.company_id:
            raise ValidationError(
                f"device {device_id} is not owned by the company of this api key",
                device_id=device_id,
            )

        observed_at = as_utc(timestamp) or utcnow()
        point = TelemetryPoint(
            device_id=device.id,
            device_type=device.device_type,
            timestamp=observed_at,
            fields={name: float(value) for name, value in fields.items()},
            company_id=resolution.company_id,
            wallet_address=resolution.wallet_address,
        )
        await self.store.write(point)
        await self.devices.mark_seen(device.id, observed_at)
        logger.debug("Stored reading for device %s (%d fields)", device.id, len(point.fields))
        return IngestResult(
            device_id=device.id,
            company_id=resolution.company_id,
            wallet_address=resolution.wallet_address,
            timestamp=observed_at,
            cached=resolution.cached,
        )
