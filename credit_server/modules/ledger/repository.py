"""Repository protocols for ledger persistence."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

from credit_server.db.models import (
    CompanyCredit as BalanceModel,
    CreditAccrual as AccrualModel,
    CreditTransaction as TransactionModel,
)


class TransactionRepository(Protocol):
    async def create(
        self,
        *,
        device_id: str,
        company_id: str,
        transaction_type: str,
        amount: Decimal,
        evidence: Optional[dict[str, Any]],
        created_at: datetime,
    ) -> TransactionModel:
        ...

    async def get(self, transaction_id: str) -> TransactionModel | None:
        ...

    async def find_pending(self, device_id: str, transaction_type: str) -> TransactionModel | None:
        ...

    async def transition(
        self,
        transaction_id: str,
        *,
        status: str,
        updated_at: datetime,
        **values: Any,
    ) -> TransactionModel | None:
        ...

    async def list_for_device(self, device_id: str, transaction_type: Optional[str] = None) -> Sequence[TransactionModel]:
        ...

    async def count_by_status(self, device_id: str, transaction_type: Optional[str] = None) -> dict[str, int]:
        ...

    async def sum_by_status(self, device_id: str, transaction_type: str) -> dict[str, Decimal]:
        ...

    async def recent(
        self,
        device_id: str,
        transaction_type: str,
        *,
        exclude_failed: bool = True,
        limit: int = 20,
    ) -> Sequence[TransactionModel]:
        ...

    async def list_pending_before(self, cutoff: datetime) -> Sequence[TransactionModel]:
        ...


class AccrualRepository(Protocol):
    async def add(
        self,
        *,
        device_id: str,
        window_start: datetime,
        window_end: datetime,
        credits_earned: Decimal,
        co2_reduced: Decimal,
        energy_saved: Decimal,
        samples_used: int,
        created_at: datetime,
    ) -> AccrualModel:
        ...

    async def attach_transaction(self, accrual_id: int, transaction_id: str) -> None:
        ...

    async def latest_window_end(self, device_id: str) -> Optional[datetime]:
        ...

    async def total_credits(self, device_id: str) -> Decimal:
        ...


class BalanceRepository(Protocol):
    async def get(self, company_id: str) -> BalanceModel | None:
        ...

    async def credit_mint(self, company_id: str, amount: Decimal, updated_at: datetime) -> BalanceModel | None:
        ...

    async def reserve_burn(self, company_id: str, amount: Decimal, updated_at: datetime) -> BalanceModel | None:
        ...

    async def settle_burn(self, company_id: str, amount: Decimal, updated_at: datetime) -> BalanceModel | None:
        ...

    async def release_burn(self, company_id: str, amount: Decimal, updated_at: datetime) -> BalanceModel | None:
        ...
