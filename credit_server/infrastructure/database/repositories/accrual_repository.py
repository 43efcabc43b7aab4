"""SQLAlchemy repository for accrued credit windows."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import func, select, type_coerce, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.core.amounts import to_decimal
from credit_server.core.exceptions import ConflictError
from credit_server.db.models import CREDIT_AMOUNT, CreditAccrual


class SqlAccrualRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> CreditAccrual:
        model = CreditAccrual(
            device_id=device_id,
            window_start=window_start,
            window_end=window_end,
            credits_earned=credits_earned,
            co2_reduced=co2_reduced,
            energy_saved=energy_saved,
            samples_used=samples_used,
            created_at=created_at,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"window ending {window_end.isoformat()} already accrued for device {device_id}",
                device_id=device_id,
            ) from exc
        return model

    async def attach_transaction(self, accrual_id: int, transaction_id: str) -> None:
        stmt = (
            update(CreditAccrual)
            .where(CreditAccrual.id == accrual_id)
            .values(transaction_id=transaction_id)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.execute(stmt)

    async def latest_window_end(self, device_id: str) -> Optional[datetime]:
        stmt = select(func.max(CreditAccrual.window_end)).where(CreditAccrual.device_id == device_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def total_credits(self, device_id: str) -> Decimal:
        total = type_coerce(func.sum(CreditAccrual.credits_earned), CREDIT_AMOUNT)
        stmt = select(total).where(CreditAccrual.device_id == device_id)
        result = await self.session.execute(stmt)
        return to_decimal(result.scalar_one_or_none())

    async def list_for_device(self, device_id: str, limit: int = 50) -> Sequence[CreditAccrual]:
        stmt = (
            select(CreditAccrual)
            .where(CreditAccrual.device_id == device_id)
            .order_by(CreditAccrual.window_end.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
