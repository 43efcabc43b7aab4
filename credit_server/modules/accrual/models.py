"""Accrual results."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

INSUFFICIENT_DATA = "insufficient data"
NO_REDUCTION = "no measurable reduction"

ZERO = Decimal("0")


@dataclass(slots=True, frozen=True)
class AccrualResult:
    device_id: str
    window_start: datetime
    window_end: datetime
    credits_earned: Decimal
    co2_reduced: Decimal
    energy_saved: Decimal
    samples_used: int
    reason: Optional[str] = None

    @property
    def has_credit(self) -> bool:
        return self.credits_earned > ZERO

    @classmethod
    def no_credit(
        cls,
        device_id: str,
        window_start: datetime,
        window_end: datetime,
        reason: str,
        *,
        samples_used: int = 0,
        co2_reduced: Decimal = ZERO,
        energy_saved: Decimal = ZERO,
    ) -> "AccrualResult":
        return cls(
            device_id=device_id,
            window_start=window_start,
            window_end=window_end,
            credits_earned=ZERO,
            co2_reduced=co2_reduced,
            energy_saved=energy_saved,
            samples_used=samples_used,
            reason=reason,
        )
