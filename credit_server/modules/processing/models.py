"""Processing outcomes and tick reports."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

TOO_SOON = "too soon"


class OutcomeStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class DeviceOutcome:
    device_id: str
    status: OutcomeStatus
    reason: Optional[str] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    credits_earned: Decimal = Decimal(0)
    samples_used: int = 0
    transaction_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def skipped(cls, device_id: str, reason: str, **kwargs) -> "DeviceOutcome":
        return cls(device_id, OutcomeStatus.SKIPPED, reason=reason, **kwargs)

    @classmethod
    def failed(cls, device_id: str, error: str, **kwargs) -> "DeviceOutcome":
        return cls(device_id, OutcomeStatus.FAILED, error=error, **kwargs)


@dataclass(slots=True)
class ProcessingReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    expired_transactions: int = 0
    outcomes: list[DeviceOutcome] = field(default_factory=list)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return self._count(OutcomeStatus.SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def credits_earned(self) -> Decimal:
        return sum((outcome.credits_earned for outcome in self.outcomes), Decimal(0))
