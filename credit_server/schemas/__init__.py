"""Pydantic schemas for the HTTP surface.

Field names are camelCase on the wire; amounts are decimals serialised as strings.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from credit_server.modules.ledger.evidence import Evidence
from credit_server.modules.ledger.models import TransactionStatus, TransactionType
from credit_server.modules.processing.models import OutcomeStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------------------------------------------------------------------------
# Accrual
# ---------------------------------------------------------------------------
class CalculateCreditsRequest(CamelModel):
    device_id: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime


class AccrualResponse(CamelModel):
    device_id: str
    window_start: datetime
    window_end: datetime
    credits_earned: Decimal
    co2_reduced: Decimal
    energy_saved: Decimal
    samples_used: int
    reason: Optional[str] = None


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
class MintRequest(CamelModel):
    device_id: str = Field(..., min_length=1)
    amount: Decimal
    data_hash: Optional[str] = Field(default=None, max_length=255)
    note: Optional[str] = None


class BurnRequest(CamelModel):
    device_id: str = Field(..., min_length=1)
    amount: Decimal
    reason: Optional[str] = None


class ConfirmTransactionRequest(CamelModel):
    external_ref: Optional[str] = Field(default=None, max_length=255)


class FailTransactionRequest(CamelModel):
    error: str = Field(..., min_length=1)
    source: str = "external"


class TransactionResponse(CamelModel):
    id: str
    device_id: str
    company_id: str
    transaction_type: TransactionType
    amount: Decimal
    status: TransactionStatus
    external_ref: Optional[str] = None
    error_message: Optional[str] = None
    evidence: Optional[Evidence] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransactionListResponse(CamelModel):
    device_id: str
    total: int
    counts: dict[str, int]
    transactions: list[TransactionResponse]


class MintingStatusResponse(CamelModel):
    device_id: str
    total_accrued: Decimal
    minted: Decimal
    pending: Decimal
    available_to_mint: Decimal
    pending_transaction_id: Optional[str] = None
    can_mint: bool
    last_mint_at: Optional[datetime] = None
    next_mint_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------
class ProcessRequest(CamelModel):
    process_all: bool = False
    device_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_target(self) -> "ProcessRequest":
        if self.process_all:
            return self
        if not self.device_id or self.start_time is None or self.end_time is None:
            raise ValueError("either processAll or deviceId, startTime and endTime are required")
        return self


class DeviceOutcomeResponse(CamelModel):
    device_id: str
    status: OutcomeStatus
    reason: Optional[str] = None
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    credits_earned: Decimal = Decimal(0)
    samples_used: int = 0
    transaction_id: Optional[str] = None
    error: Optional[str] = None


class ProcessingReportResponse(CamelModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    processed: int
    succeeded: int
    skipped: int
    failed: int
    expired_transactions: int = 0
    credits_earned: Decimal
    outcomes: list[DeviceOutcomeResponse] = Field(default_factory=list)


class ProcessStatusResponse(CamelModel):
    is_running: bool
    is_processing: bool
    interval_minutes: float
    last_report: Optional[ProcessingReportResponse] = None


# ---------------------------------------------------------------------------
# Marketplace
# ---------------------------------------------------------------------------
class SellRequest(CamelModel):
    company_id: str = Field(..., min_length=1)
    amount: Decimal
    price: Decimal
    buyer_info: Optional[str] = Field(default=None, max_length=255)


class BalanceResponse(CamelModel):
    company_id: str
    total_credit: Decimal
    current_credit: Decimal
    sold_credit: Decimal
    pending_burn: Decimal = Decimal(0)
    retired_credit: Decimal = Decimal(0)
    offer_price: Optional[Decimal] = None
    updated_at: Optional[datetime] = None


class SaleRecordResponse(CamelModel):
    id: int
    company_id: str
    amount: Decimal
    price: Decimal
    total_value: Decimal
    buyer_info: Optional[str] = None
    sold_at: Optional[datetime] = None


class SellResponse(CamelModel):
    sale: SaleRecordResponse
    balance: BalanceResponse


class OfferResponse(CamelModel):
    company_id: str
    company_name: str
    location: Optional[str] = None
    website: Optional[str] = None
    offer_price: Decimal
    available: Decimal
    total_value: Decimal
    credits: BalanceResponse = Field(validation_alias="balance")


class OfferListResponse(CamelModel):
    offers: list[OfferResponse]
    total_offers: int
    total_credits_available: Decimal
    average_price: Decimal


class SaleHistoryResponse(CamelModel):
    company_id: str
    sales: list[SaleRecordResponse]


# ---------------------------------------------------------------------------
# Wallet resolution and telemetry
# ---------------------------------------------------------------------------
class WalletResolutionResponse(CamelModel):
    company_id: str
    wallet_address: Optional[str] = None
    application_id: str
    application_name: Optional[str] = None
    company_name: Optional[str] = None
    cached: bool


class TelemetryIngestRequest(CamelModel):
    api_key: str = Field(..., min_length=1)
    device_id: str = Field(..., min_length=1)
    fields: dict[str, float] = Field(..., min_length=1)
    timestamp: Optional[datetime] = None


class TelemetryIngestResponse(CamelModel):
    device_id: str
    company_id: str
    wallet_address: Optional[str] = None
    timestamp: datetime
    cached: bool


class HealthResponse(CamelModel):
    status: str
    version: str
    database: bool
    time_series: bool
    scheduler_running: bool


class ProcessResponse(CamelModel):
    process_all: bool
    report: Optional[ProcessingReportResponse] = None
    outcome: Optional[DeviceOutcomeResponse] = None
