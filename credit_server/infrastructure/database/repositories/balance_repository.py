"""SQLAlchemy repository for per-company credit balances.

Every mutation is a single conditional ``UPDATE ... RETURNING``; a ``None`` result
means the guard predicate matched no row and nothing was changed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select, type_coerce, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.db.models import CREDIT_AMOUNT, Company, CompanyCredit


class SqlBalanceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, company_id: str) -> CompanyCredit | None:
        stmt = select(CompanyCredit).where(CompanyCredit.company_id == company_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def company_exists(self, company_id: str) -> bool:
        stmt = select(Company.id).where(Company.id == company_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def ensure(self, company_id: str, updated_at: datetime) -> None:
        """Create the zero balance row if the company has none yet."""
        dialect = self.session.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert(CompanyCredit)
            .values(
                company_id=company_id,
                total_credit=0,
                current_credit=0,
                sold_credit=0,
                pending_burn=0,
                retired_credit=0,
                updated_at=updated_at,
            )
            .on_conflict_do_nothing(index_elements=[CompanyCredit.company_id])
        )
        await self.session.execute(stmt)

    async def _apply(self, company_id: str, guard: Optional[Any], **values: Any) -> CompanyCredit | None:
        stmt = update(CompanyCredit).where(CompanyCredit.company_id == company_id)
        if guard is not None:
            stmt = stmt.where(guard)
        stmt = (
            stmt.values(**values)
            .execution_options(synchronize_session="fetch", populate_existing=True)
            .returning(CompanyCredit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def credit_mint(self, company_id: str, amount: Decimal, updated_at: datetime) -> CompanyCredit | None:
        await self.ensure(company_id, updated_at)
        return await self._apply(
            company_id,
            None,
            total_credit=CompanyCredit.total_credit + amount,
            current_credit=CompanyCredit.current_credit + amount,
            updated_at=updated_at,
        )

    async def debit_sale(self, company_id: str, amount: Decimal, updated_at: datetime) -> CompanyCredit | None:
        return await self._apply(
            company_id,
            CompanyCredit.current_credit >= amount,
            current_credit=CompanyCredit.current_credit - amount,
            sold_credit=CompanyCredit.sold_credit + amount,
            updated_at=updated_at,
        )

    async def reserve_burn(self, company_id: str, amount: Decimal, updated_at: datetime) -> CompanyCredit | None:
        return await self._apply(
            company_id,
            CompanyCredit.current_credit >= amount,
            current_credit=CompanyCredit.current_credit - amount,
            pending_burn=CompanyCredit.pending_burn + amount,
            updated_at=updated_at,
        )

    async def settle_burn(self, company_id: str, amount: Decimal, updated_at: datetime) -> CompanyCredit | None:
        return await self._apply(
            company_id,
            CompanyCredit.pending_burn >= amount,
            pending_burn=CompanyCredit.pending_burn - amount,
            retired_credit=CompanyCredit.retired_credit + amount,
            updated_at=updated_at,
        )

    async def release_burn(self, company_id: str, amount: Decimal, updated_at: datetime) -> CompanyCredit | None:
        return await self._apply(
            company_id,
            CompanyCredit.pending_burn >= amount,
            current_credit=CompanyCredit.current_credit + amount,
            pending_burn=CompanyCredit.pending_burn - amount,
            updated_at=updated_at,
        )

    async def set_offer_price(self, company_id: str, price: Decimal, updated_at: datetime) -> CompanyCredit | None:
        await self.ensure(company_id, updated_at)
        return await self._apply(company_id, None, offer_price=price, updated_at=updated_at)

    async def list_offers(
        self,
        *,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        min_amount: Optional[Decimal] = None,
    ) -> Sequence[tuple[CompanyCredit, Company]]:
        stmt = (
            select(CompanyCredit, Company)
            .join(Company, CompanyCredit.company_id == Company.id)
            .where(CompanyCredit.current_credit > 0)
        )
        # 未报价视为 0
        price = type_coerce(func.coalesce(CompanyCredit.offer_price, 0), CREDIT_AMOUNT)
        if min_price is not None:
            stmt = stmt.where(price >= min_price)
        if max_price is not None:
            stmt = stmt.where(price <= max_price)
        if min_amount is not None:
            stmt = stmt.where(CompanyCredit.current_credit >= min_amount)
        stmt = stmt.order_by(price.asc(), CompanyCredit.company_id.asc())
        result = await self.session.execute(stmt)
        return [(credit, company) for credit, company in result.all()]
