"""Marketplace settlement against company credit balances."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.core.amounts import require_positive
from credit_server.core.clock import Clock, utcnow
from credit_server.core.exceptions import InsufficientCredits, NotFoundError, ValidationError
from credit_server.infrastructure.database.repositories.balance_repository import SqlBalanceRepository
from credit_server.infrastructure.database.repositories.sale_repository import SqlSaleRepository
from credit_server.modules.ledger.models import BalanceView

from .models import Offer, OfferListing, SaleRecord, SaleResult
from .repository import MarketBalanceRepository, SaleRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MarketplaceService:
    balances: MarketBalanceRepository
    sales: SaleRepository
    clock: Clock = utcnow

    @classmethod
    def with_session(cls, session: AsyncSession, *, clock: Clock = utcnow) -> "MarketplaceService":
        return cls(SqlBalanceRepository(session), SqlSaleRepository(session), clock)

    async def sell(
        self,
        company_id: str,
        amount: Decimal,
        price: Decimal,
        buyer_info: Optional[str] = None,
    ) -> SaleResult:
        """Sell ``amount`` credits of ``company_id`` at ``price`` each.

        The availability check is the predicate of the decrementing UPDATE itself; zero
        rows matched means the balance was left untouched.
        """
        if not company_id:
            raise ValidationError("companyId is required", field="companyId")
        amount = require_positive(amount, "amount")
        price = require_positive(price, "price")
        now = self.clock()

        updated = await self.balances.debit_sale(company_id, amount, now)
        if updated is None:
            current = await self.balances.get(company_id)
            if current is None:
                raise NotFoundError(f"no credit balance for company {company_id}", company_id=company_id)
            available = BalanceView.from_orm(current).current_credit
            logger.info("Rejected sale of %s for company %s, %s available", amount, company_id, available)
            raise InsufficientCredits(
                "insufficient credits to sell",
                available=available,
                requested=amount,
            )

        sale = await self.sales.append(
            company_id=company_id,
            amount=amount,
            price=price,
            buyer_info=buyer_info,
            sold_at=now,
        )
        logger.info("Company %s sold %s credits at %s", company_id, amount, price)
        return SaleResult(sale=SaleRecord.from_orm(sale), balance=BalanceView.from_orm(updated))

    async def list_offers(
        self,
        *,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        min_amount: Optional[Decimal] = None,
    ) -> OfferListing:
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("minPrice must not exceed maxPrice")
        rows = await self.balances.list_offers(min_price=min_price, max_price=max_price, min_amount=min_amount)
        return OfferListing(
            offers=[
                Offer(
                    company_id=company.id,
                    company_name=company.name,
                    location=company.location,
                    website=company.website,
                    balance=BalanceView.from_orm(credit),
                )
                for credit, company in rows
            ]
        )

    async def set_offer_price(self, company_id: str, price: Decimal) -> BalanceView:
        price = require_positive(price, "price")
        if not await self.balances.company_exists(company_id):
            raise NotFoundError(f"company {company_id} not found", company_id=company_id)
        updated = await self.balances.set_offer_price(company_id, price, self.clock())
        return BalanceView.from_orm(updated)

    async def get_balance(self, company_id: str) -> BalanceView:
        model = await self.balances.get(company_id)
        if model is None:
            if not await self.balances.company_exists(company_id):
                raise NotFoundError(f"company {company_id} not found", company_id=company_id)
            return BalanceView.empty(company_id)
        return BalanceView.from_orm(model)

    async def list_sales(self, company_id: str, limit: int = 50, offset: int = 0) -> list[SaleRecord]:
        if not await self.balances.company_exists(company_id):
            raise NotFoundError(f"company {company_id} not found", company_id=company_id)
        return [SaleRecord.from_orm(model) for model in await self.sales.list_for_company(company_id, limit, offset)]
