"""SQLAlchemy repository for ledger transactions."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, type_coerce, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.core.amounts import to_decimal
from credit_server.core.exceptions import ConflictError, PersistenceError
from credit_server.db.models import CREDIT_AMOUNT, CreditTransaction

PENDING = "PENDING"
FAILED = "FAILED"
MINT = "MINT"


class SqlTransactionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        *,
        device_id: str,
        company_id: str,
        transaction_type: str,
        amount: Decimal,
        evidence: Optional[dict[str, Any]],
        created_at: datetime,
    ) -> CreditTransaction:
        model = CreditTransaction(
            device_id=device_id,
            company_id=company_id,
            transaction_type=transaction_type,
            amount=amount,
            status=PENDING,
            evidence=evidence,
            created_at=created_at,
            updated_at=created_at,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # 部分唯一索引兜底：并发请求同时通过了 PENDING 检查
            if transaction_type == MINT and "unique" in str(exc.orig).lower():
                raise ConflictError(f"device {device_id} already has a pending mint") from exc
            raise PersistenceError(f"failed to record {transaction_type} for device {device_id}") from exc
        await self.session.refresh(model)
        return model

    async def get(self, transaction_id: str) -> CreditTransaction | None:
        stmt = select(CreditTransaction).where(CreditTransaction.id == transaction_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def find_pending(self, device_id: str, transaction_type: str) -> CreditTransaction | None:
        stmt = (
            select(CreditTransaction)
            .where(
                CreditTransaction.device_id == device_id,
                CreditTransaction.transaction_type == transaction_type,
                CreditTransaction.status == PENDING,
            )
            .order_by(CreditTransaction.created_at.asc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def transition(
        self,
        transaction_id: str,
        *,
        status: str,
        updated_at: datetime,
        **values: Any,
    ) -> CreditTransaction | None:
        """Move a PENDING row to ``status``; ``None`` when the row is missing or terminal."""
        stmt = (
            update(CreditTransaction)
            .where(CreditTransaction.id == transaction_id, CreditTransaction.status == PENDING)
            .values(status=status, updated_at=updated_at, **values)
            .execution_options(synchronize_session="fetch")
            .returning(CreditTransaction)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_for_device(
        self,
        device_id: str,
        transaction_type: Optional[str] = None,
    ) -> Sequence[CreditTransaction]:
        stmt = select(CreditTransaction).where(CreditTransaction.device_id == device_id)
        if transaction_type:
            stmt = stmt.where(CreditTransaction.transaction_type == transaction_type)
        stmt = stmt.order_by(CreditTransaction.created_at.asc(), CreditTransaction.id.asc())
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_by_status(self, device_id: str, transaction_type: Optional[str] = None) -> dict[str, int]:
        stmt = (
            select(CreditTransaction.status, func.count(CreditTransaction.id))
            .where(CreditTransaction.device_id == device_id)
            .group_by(CreditTransaction.status)
        )
        if transaction_type:
            stmt = stmt.where(CreditTransaction.transaction_type == transaction_type)
        result = await self.session.execute(stmt)
        return {status: int(count) for status, count in result.all()}

    async def sum_by_status(self, device_id: str, transaction_type: str) -> dict[str, Decimal]:
        stmt = (
            select(CreditTransaction.status, type_coerce(func.sum(CreditTransaction.amount), CREDIT_AMOUNT))
            .where(
                CreditTransaction.device_id == device_id,
                CreditTransaction.transaction_type == transaction_type,
            )
            .group_by(CreditTransaction.status)
        )
        result = await self.session.execute(stmt)
        return {status: to_decimal(total) for status, total in result.all()}

    async def recent(
        self,
        device_id: str,
        transaction_type: str,
        *,
        exclude_failed: bool = True,
        limit: int = 20,
    ) -> Sequence[CreditTransaction]:
        stmt = select(CreditTransaction).where(
            CreditTransaction.device_id == device_id,
            CreditTransaction.transaction_type == transaction_type,
        )
        if exclude_failed:
            stmt = stmt.where(CreditTransaction.status != FAILED)
        stmt = stmt.order_by(CreditTransaction.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_pending_before(self, cutoff: datetime) -> Sequence[CreditTransaction]:
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.status == PENDING, CreditTransaction.created_at < cutoff)
            .order_by(CreditTransaction.created_at.asc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
