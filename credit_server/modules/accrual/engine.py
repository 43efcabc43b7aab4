"""Credit accrual over a telemetry window."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from credit_server.core.clock import as_utc
from credit_server.core.exceptions import ValidationError
from credit_server.modules.telemetry.models import (
    CO2_REDUCED_FIELD,
    ENERGY_SAVED_FIELD,
    HUMIDITY_FIELD,
    TEMPERATURE_FIELD,
)
from credit_server.modules.telemetry.repository import TimeSeriesStore

from .models import INSUFFICIENT_DATA, NO_REDUCTION, AccrualResult
from .policy import AccrualPolicy, LinearAccrualPolicy, WindowTotals

logger = logging.getLogger(__name__)


def _to_decimal(value: float) -> Decimal:
    # 经 str 转换，避免二进制浮点误差进入余额
    return Decimal(str(value))


@dataclass(slots=True)
class CreditAccrualEngine:
    store: TimeSeriesStore
    policy: AccrualPolicy = LinearAccrualPolicy()
    min_samples: int = 1

    async def compute_credits(self, device_id: str, window_start: datetime, window_end: datetime) -> AccrualResult:
        """Credits earned by ``device_id`` over ``[window_start, window_end)``.

        Reads only; the same window always yields the same result. Store failures
        propagate as ``UpstreamUnavailable`` and are never reported as zero data.
        """
        start = as_utc(window_start)
        end = as_utc(window_end)
        if start is None or end is None or start >= end:
            raise ValidationError("window start must be before window end", device_id=device_id)

        co2_reduced = Decimal(0)
        energy_saved = Decimal(0)
        temperature = Decimal(0)
        humidity = Decimal(0)
        samples = 0
        async for point in self.store.query_window(device_id, start, end):
            co2_reduced += _to_decimal(point.value(CO2_REDUCED_FIELD))
            energy_saved += _to_decimal(point.value(ENERGY_SAVED_FIELD))
            temperature += _to_decimal(point.value(TEMPERATURE_FIELD))
            humidity += _to_decimal(point.value(HUMIDITY_FIELD))
            samples += 1

        required = max(self.min_samples, self.policy.min_samples)
        if samples < required:
            logger.debug("Device %s has %d samples in window, need %d", device_id, samples, required)
            return AccrualResult.no_credit(device_id, start, end, INSUFFICIENT_DATA, samples_used=samples)

        totals = WindowTotals(co2_reduced, energy_saved, temperature, humidity, samples)
        credits = self.policy.credits_for(totals)
        if credits <= 0:
            return AccrualResult.no_credit(
                device_id,
                start,
                end,
                NO_REDUCTION,
                samples_used=samples,
                co2_reduced=co2_reduced,
                energy_saved=energy_saved,
            )
        return AccrualResult(
            device_id=device_id,
            window_start=start,
            window_end=end,
            credits_earned=credits,
            co2_reduced=co2_reduced,
            energy_saved=energy_saved,
            samples_used=samples,
        )
