"""Repository protocols used by the marketplace."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol, Sequence

from credit_server.db.models import Company, CompanyCredit, CreditSaleHistory


class MarketBalanceRepository(Protocol):
    async def get(self, company_id: str) -> CompanyCredit | None:
        ...

    async def company_exists(self, company_id: str) -> bool:
        ...

    async def debit_sale(self, company_id: str, amount: Decimal, updated_at: datetime) -> CompanyCredit | None:
        ...

    async def set_offer_price(self, company_id: str, price: Decimal, updated_at: datetime) -> CompanyCredit | None:
        ...

    async def list_offers(
        self,
        *,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        min_amount: Optional[Decimal] = None,
    ) -> Sequence[tuple[CompanyCredit, Company]]:
        ...


class SaleRepository(Protocol):
    async def append(
        self,
        *,
        company_id: str,
        amount: Decimal,
        price: Decimal,
        buyer_info: Optional[str],
        sold_at: datetime,
    ) -> CreditSaleHistory:
        ...

    async def list_for_company(self, company_id: str, limit: int = 50, offset: int = 0) -> Sequence[CreditSaleHistory]:
        ...
