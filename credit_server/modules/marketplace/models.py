"""Marketplace domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from credit_server.core.clock import as_utc
from credit_server.db.models import CreditSaleHistory as SaleModel
from credit_server.modules.ledger.models import BalanceView


@dataclass(slots=True)
class SaleRecord:
    id: int
    company_id: str
    amount: Decimal
    price: Decimal
    buyer_info: Optional[str]
    sold_at: Optional[datetime]

    @property
    def total_value(self) -> Decimal:
        return self.amount * self.price

    @classmethod
    def from_orm(cls, model: SaleModel) -> "SaleRecord":
        return cls(
            id=model.id,
            company_id=model.company_id,
            amount=Decimal(model.sold_amount),
            price=Decimal(model.sold_price),
            buyer_info=model.buyer_info,
            sold_at=as_utc(model.sold_at),
        )


@dataclass(slots=True)
class SaleResult:
    sale: SaleRecord
    balance: BalanceView


@dataclass(slots=True)
class Offer:
    company_id: str
    company_name: str
    location: Optional[str]
    website: Optional[str]
    balance: BalanceView

    @property
    def offer_price(self) -> Decimal:
        return self.balance.offer_price or Decimal(0)

    @property
    def available(self) -> Decimal:
        return self.balance.current_credit

    @property
    def total_value(self) -> Decimal:
        return self.available * self.offer_price


@dataclass(slots=True)
class OfferListing:
    offers: list[Offer] = field(default_factory=list)

    @property
    def total_offers(self) -> int:
        return len(self.offers)

    @property
    def total_available(self) -> Decimal:
        return sum((offer.available for offer in self.offers), Decimal(0))

    @property
    def average_price(self) -> Decimal:
        if not self.offers:
            return Decimal(0)
        return sum((offer.offer_price for offer in self.offers), Decimal(0)) / len(self.offers)
