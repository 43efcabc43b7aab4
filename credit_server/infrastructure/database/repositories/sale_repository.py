"""Append-only sale history."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.db.models import CreditSaleHistory


class SqlSaleRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(
        self,
        *,
        company_id: str,
        amount: Decimal,
        price: Decimal,
        buyer_info: Optional[str],
        sold_at: datetime,
    ) -> CreditSaleHistory:
        model = CreditSaleHistory(
            company_id=company_id,
            sold_amount=amount,
            sold_price=price,
            buyer_info=buyer_info,
            sold_at=sold_at,
        )
        self.session.add(model)
        await self.session.flush()
        return model

    async def list_for_company(self, company_id: str, limit: int = 50, offset: int = 0) -> Sequence[CreditSaleHistory]:
        stmt = (
            select(CreditSaleHistory)
            .where(CreditSaleHistory.company_id == company_id)
            .order_by(CreditSaleHistory.sold_at.desc(), CreditSaleHistory.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
