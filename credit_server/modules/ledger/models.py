"""Ledger domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from credit_server.core.clock import as_utc
from credit_server.db.models import CompanyCredit as BalanceModel, CreditTransaction as TransactionModel

from .evidence import Evidence, parse_evidence


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class TransactionType(str, Enum):
    MINT = "MINT"
    BURN = "BURN"


class WatermarkSource(str, Enum):
    ACCRUAL = "accrual"
    MINT = "mint"
    DEVICE_CREATED = "device_created"
    DEFAULT_LOOKBACK = "default_lookback"


@dataclass(slots=True)
class CreditTransaction:
    id: str
    device_id: str
    company_id: str
    transaction_type: TransactionType
    amount: Decimal
    status: TransactionStatus
    external_ref: Optional[str]
    error_message: Optional[str]
    evidence: Optional[Evidence]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    @classmethod
    def from_orm(cls, model: TransactionModel) -> "CreditTransaction":
        return cls(
            id=model.id,
            device_id=model.device_id,
            company_id=model.company_id,
            transaction_type=TransactionType(model.transaction_type),
            amount=Decimal(model.amount),
            status=TransactionStatus(model.status),
            external_ref=model.external_ref,
            error_message=model.error_message,
            evidence=parse_evidence(model.evidence),
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )


@dataclass(slots=True)
class TransactionListing:
    device_id: str
    transactions: list[CreditTransaction]
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.transactions)


@dataclass(slots=True)
class MintingStatus:
    device_id: str
    total_accrued: Decimal
    minted: Decimal
    pending: Decimal
    available_to_mint: Decimal
    pending_transaction_id: Optional[str]
    last_mint_at: Optional[datetime]
    next_mint_at: Optional[datetime]

    @property
    def can_mint(self) -> bool:
        return self.available_to_mint > 0 and self.pending_transaction_id is None


@dataclass(slots=True, frozen=True)
class Watermark:
    device_id: str
    timestamp: datetime
    source: WatermarkSource


@dataclass(slots=True)
class BalanceView:
    company_id: str
    total_credit: Decimal
    current_credit: Decimal
    sold_credit: Decimal
    pending_burn: Decimal = Decimal(0)
    retired_credit: Decimal = Decimal(0)
    offer_price: Optional[Decimal] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_orm(cls, model: BalanceModel) -> "BalanceView":
        return cls(
            company_id=model.company_id,
            total_credit=Decimal(model.total_credit or 0),
            current_credit=Decimal(model.current_credit or 0),
            sold_credit=Decimal(model.sold_credit or 0),
            pending_burn=Decimal(model.pending_burn or 0),
            retired_credit=Decimal(model.retired_credit or 0),
            offer_price=Decimal(model.offer_price) if model.offer_price is not None else None,
            updated_at=as_utc(model.updated_at),
        )

    @classmethod
    def empty(cls, company_id: str) -> "BalanceView":
        zero = Decimal(0)
        return cls(company_id, zero, zero, zero)


@dataclass(slots=True)
class AccrualRecord:
    id: int
    device_id: str
    window_start: datetime
    window_end: datetime
    credits_earned: Decimal
    samples_used: int
    transaction: Optional[CreditTransaction] = None
