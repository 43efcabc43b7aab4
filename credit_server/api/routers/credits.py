"""Credit accrual, ledger, processing and marketplace endpoints."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from credit_server.api.deps import (
    get_accrual_engine,
    get_device_service,
    get_ledger_service,
    get_marketplace_service,
    get_processor,
    get_scheduler,
    get_settings,
)
from credit_server.core.config import Settings
from credit_server.core.exceptions import ConflictError, ValidationError
from credit_server.modules.accrual import CreditAccrualEngine
from credit_server.modules.devices import DeviceService
from credit_server.modules.ledger import CreditLedgerService, ManualMintEvidence, TransactionType
from credit_server.modules.marketplace import MarketplaceService
from credit_server.modules.processing import CreditProcessor, CreditScheduler
from credit_server.schemas import (
    AccrualResponse,
    BurnRequest,
    CalculateCreditsRequest,
    ConfirmTransactionRequest,
    DeviceOutcomeResponse,
    FailTransactionRequest,
    MintingStatusResponse,
    MintRequest,
    OfferListResponse,
    OfferResponse,
    ProcessingReportResponse,
    ProcessRequest,
    ProcessResponse,
    ProcessStatusResponse,
    SaleHistoryResponse,
    SaleRecordResponse,
    SellRequest,
    SellResponse,
    TransactionListResponse,
    TransactionResponse,
)

router = APIRouter()


@router.post("/calculate", response_model=AccrualResponse, summary="预览设备在时间窗口内的碳积分")
async def calculate_credits(
    payload: CalculateCreditsRequest,
    settings: Settings = Depends(get_settings),
    devices: DeviceService = Depends(get_device_service),
    engine: CreditAccrualEngine = Depends(get_accrual_engine),
) -> AccrualResponse:
    if payload.start_time >= payload.end_time:
        raise ValidationError("startTime must be before endTime")
    max_window = timedelta(days=settings.credits.max_window_days)
    if payload.end_time - payload.start_time > max_window:
        raise ValidationError(f"time window must not exceed {settings.credits.max_window_days} days")

    await devices.require_device(payload.device_id)
    result = await engine.compute_credits(payload.device_id, payload.start_time, payload.end_time)
    return AccrualResponse.model_validate(result)


@router.get("/status/{device_id}", response_model=MintingStatusResponse, summary="查询设备可铸造额度")
async def minting_status(
    device_id: str,
    ledger: CreditLedgerService = Depends(get_ledger_service),
) -> MintingStatusResponse:
    return MintingStatusResponse.model_validate(await ledger.minting_status(device_id))


@router.post(
    "/mint",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="提交铸造请求",
)
async def create_mint_request(
    payload: MintRequest,
    ledger: CreditLedgerService = Depends(get_ledger_service),
) -> TransactionResponse:
    evidence = ManualMintEvidence(data_hash=payload.data_hash, note=payload.note)
    transaction = await ledger.create_mint_request(payload.device_id, payload.amount, evidence)
    return TransactionResponse.model_validate(transaction)


@router.get("/mint", response_model=TransactionListResponse, summary="查询设备铸造记录")
async def list_mint_requests(
    device_id: str = Query(..., alias="deviceId", min_length=1),
    ledger: CreditLedgerService = Depends(get_ledger_service),
) -> TransactionListResponse:
    listing = await ledger.list_transactions(device_id, TransactionType.MINT)
    return TransactionListResponse(
        device_id=listing.device_id,
        total=listing.total,
        counts=listing.counts,
        transactions=[TransactionResponse.model_validate(item) for item in listing.transactions],
    )


@router.post(
    "/transactions/{transaction_id}/confirm",
    response_model=TransactionResponse,
    summary="外部确认交易",
)
async def confirm_transaction(
    transaction_id: str,
    payload: ConfirmTransactionRequest,
    ledger: CreditLedgerService = Depends(get_ledger_service),
) -> TransactionResponse:
    transaction = await ledger.confirm(transaction_id, payload.external_ref)
    return TransactionResponse.model_validate(transaction)


@router.post(
    "/transactions/{transaction_id}/fail",
    response_model=TransactionResponse,
    summary="外部拒绝交易",
)
async def fail_transaction(
    transaction_id: str,
    payload: FailTransactionRequest,
    ledger: CreditLedgerService = Depends(get_ledger_service),
) -> TransactionResponse:
    transaction = await ledger.fail(transaction_id, payload.error, source=payload.source)
    return TransactionResponse.model_validate(transaction)


@router.post(
    "/burn",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="提交销毁请求",
)
async def create_burn_request(
    payload: BurnRequest,
    ledger: CreditLedgerService = Depends(get_ledger_service),
) -> TransactionResponse:
    transaction = await ledger.create_burn_request(payload.device_id, payload.amount, reason=payload.reason)
    return TransactionResponse.model_validate(transaction)


@router.post("/process", response_model=ProcessResponse, summary="手动触发积分处理")
async def trigger_processing(
    payload: ProcessRequest,
    scheduler: CreditScheduler = Depends(get_scheduler),
    processor: CreditProcessor = Depends(get_processor),
) -> ProcessResponse:
    if payload.process_all:
        report = await scheduler.tick()
        if report is None:
            raise ConflictError("credit processing already in progress")
        return ProcessResponse(process_all=True, report=ProcessingReportResponse.model_validate(report))

    outcome = await processor.process_range(payload.device_id, payload.start_time, payload.end_time)
    return ProcessResponse(process_all=False, outcome=DeviceOutcomeResponse.model_validate(outcome))


@router.get("/process", response_model=ProcessStatusResponse, summary="查询积分处理状态")
async def processing_status(scheduler: CreditScheduler = Depends(get_scheduler)) -> ProcessStatusResponse:
    return ProcessStatusResponse.model_validate(scheduler.status())


@router.post("/sell", response_model=SellResponse, summary="出售碳积分")
async def sell_credits(
    payload: SellRequest,
    market: MarketplaceService = Depends(get_marketplace_service),
) -> SellResponse:
    result = await market.sell(payload.company_id, payload.amount, payload.price, payload.buyer_info)
    return SellResponse.model_validate(result)


@router.get("/sell", response_model=OfferListResponse, summary="查询在售碳积分")
async def list_offers(
    min_price: Optional[Decimal] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", ge=0),
    min_amount: Optional[Decimal] = Query(None, alias="minAmount", ge=0),
    market: MarketplaceService = Depends(get_marketplace_service),
) -> OfferListResponse:
    listing = await market.list_offers(min_price=min_price, max_price=max_price, min_amount=min_amount)
    return OfferListResponse(
        offers=[OfferResponse.model_validate(offer) for offer in listing.offers],
        total_offers=listing.total_offers,
        total_credits_available=listing.total_available,
        average_price=listing.average_price,
    )


@router.get("/sales/{company_id}", response_model=SaleHistoryResponse, summary="查询出售记录")
async def sale_history(
    company_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    market: MarketplaceService = Depends(get_marketplace_service),
) -> SaleHistoryResponse:
    sales = await market.list_sales(company_id, limit=limit, offset=offset)
    return SaleHistoryResponse(
        company_id=company_id,
        sales=[SaleRecordResponse.model_validate(sale) for sale in sales],
    )
