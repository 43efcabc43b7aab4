"""Transaction ledger: the mint/burn state machine and company balances.

Only this service mutates transactions and balances. Transitions are conditional
updates on ``status = 'PENDING'``, so a terminal transaction can never move again
even when two confirmations race.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.core.amounts import require_positive
from credit_server.core.clock import Clock, as_utc, utcnow
from credit_server.core.exceptions import (
    ConflictError,
    InsufficientCredits,
    InvalidTransitionError,
    PersistenceError,
)
from credit_server.db.models import CreditTransaction as TransactionModel, Device as DeviceModel
from credit_server.infrastructure.database.repositories.accrual_repository import SqlAccrualRepository
from credit_server.infrastructure.database.repositories.balance_repository import SqlBalanceRepository
from credit_server.infrastructure.database.repositories.device_repository import SqlDeviceRepository
from credit_server.infrastructure.database.repositories.transaction_repository import SqlTransactionRepository
from credit_server.modules.accrual.models import AccrualResult
from credit_server.modules.devices.exceptions import DeviceNotCreditGeneratingError, DeviceNotFoundError
from credit_server.modules.devices.models import Device, DeviceType
from credit_server.modules.devices.repository import DeviceRepository

from .evidence import (
    AccrualEvidence,
    BurnEvidence,
    Evidence,
    ExternalErrorEvidence,
    ManualMintEvidence,
    accrual_window_end,
    dump_evidence,
    parse_evidence,
)
from .exceptions import TransactionNotFoundError
from .models import (
    AccrualRecord,
    BalanceView,
    CreditTransaction,
    MintingStatus,
    TransactionListing,
    TransactionStatus,
    TransactionType,
    Watermark,
    WatermarkSource,
)
from .repository import AccrualRepository, BalanceRepository, TransactionRepository

logger = logging.getLogger(__name__)

CONFIRMATION_TIMEOUT = "confirmation timeout"
DEFAULT_MINT_COOLDOWN = timedelta(hours=24)
DEFAULT_LOOKBACK = timedelta(days=7)


@dataclass(slots=True)
class CreditLedgerService:
    transactions: TransactionRepository
    accruals: AccrualRepository
    balances: BalanceRepository
    devices: DeviceRepository
    clock: Clock = utcnow
    mint_cooldown: timedelta = DEFAULT_MINT_COOLDOWN

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        *,
        clock: Clock = utcnow,
        mint_cooldown: timedelta = DEFAULT_MINT_COOLDOWN,
    ) -> "CreditLedgerService":
        return cls(
            SqlTransactionRepository(session),
            SqlAccrualRepository(session),
            SqlBalanceRepository(session),
            SqlDeviceRepository(session),
            clock,
            mint_cooldown,
        )

    # ------------------------------------------------------------------
    # Mint
    # ------------------------------------------------------------------
    async def available_to_mint(self, device_id: str) -> Decimal:
        """Accrued credits not yet covered by a confirmed or pending MINT."""
        accrued = await self.accruals.total_credits(device_id)
        sums = await self.transactions.sum_by_status(device_id, TransactionType.MINT.value)
        committed = sums.get(TransactionStatus.CONFIRMED.value, Decimal(0)) + sums.get(
            TransactionStatus.PENDING.value, Decimal(0)
        )
        return max(accrued - committed, Decimal(0))

    async def create_mint_request(
        self,
        device_id: str,
        amount: Decimal,
        evidence: Optional[Evidence] = None,
    ) -> CreditTransaction:
        amount = require_positive(amount, "amount")
        device = await self._require_device(device_id)
        if device.device_type != DeviceType.SEQUESTER.value:
            raise DeviceNotCreditGeneratingError(f"device {device_id} does not generate credits", device_id=device_id)

        pending = await self.transactions.find_pending(device_id, TransactionType.MINT.value)
        if pending is not None:
            raise ConflictError(f"device {device_id} already has a pending mint", existing_id=pending.id)

        available = await self.available_to_mint(device_id)
        if amount > available:
            raise InsufficientCredits(
                f"requested {amount} exceeds {available} available to mint",
                available=available,
                requested=amount,
            )

        model = await self.transactions.create(
            device_id=device_id,
            company_id=device.company_id,
            transaction_type=TransactionType.MINT.value,
            amount=amount,
            evidence=dump_evidence(evidence or ManualMintEvidence()),
            created_at=self.clock(),
        )
        logger.info("Created MINT %s for device %s: %s credits", model.id, device_id, amount)
        return CreditTransaction.from_orm(model)

    async def record_accrual(self, result: AccrualResult, *, policy: Optional[str] = None) -> AccrualRecord:
        """Persist an accrued window and, when credits were earned, its PENDING MINT.

        Both rows are written in the caller's transaction; committing it is what
        advances the device watermark to ``result.window_end``.
        """
        accrual = await self.accruals.add(
            device_id=result.device_id,
            window_start=result.window_start,
            window_end=result.window_end,
            credits_earned=result.credits_earned,
            co2_reduced=result.co2_reduced,
            energy_saved=result.energy_saved,
            samples_used=result.samples_used,
            created_at=self.clock(),
        )
        record = AccrualRecord(
            id=accrual.id,
            device_id=result.device_id,
            window_start=result.window_start,
            window_end=result.window_end,
            credits_earned=result.credits_earned,
            samples_used=result.samples_used,
        )
        if not result.has_credit:
            return record

        evidence = AccrualEvidence(
            window_start=result.window_start,
            window_end=result.window_end,
            co2_reduced=result.co2_reduced,
            energy_saved=result.energy_saved,
            samples_used=result.samples_used,
            policy=policy,
        )
        record.transaction = await self.create_mint_request(result.device_id, result.credits_earned, evidence)
        await self.accruals.attach_transaction(accrual.id, record.transaction.id)
        return record

    # ------------------------------------------------------------------
    # Burn
    # ------------------------------------------------------------------
    async def create_burn_request(
        self,
        device_id: str,
        amount: Decimal,
        *,
        reason: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> CreditTransaction:
        """Reserve ``amount`` of the owning company's credit and record a PENDING BURN."""
        amount = require_positive(amount, "amount")
        device = await self._require_device(device_id)
        now = self.clock()

        reserved = await self.balances.reserve_burn(device.company_id, amount, now)
        if reserved is None:
            balance = await self.balances.get(device.company_id)
            available = BalanceView.from_orm(balance).current_credit if balance else Decimal(0)
            raise InsufficientCredits(
                f"cannot burn {amount}, only {available} available",
                available=available,
                requested=amount,
            )

        model = await self.transactions.create(
            device_id=device_id,
            company_id=device.company_id,
            transaction_type=TransactionType.BURN.value,
            amount=amount,
            evidence=dump_evidence(BurnEvidence(reason=reason, requested_by=requested_by)),
            created_at=now,
        )
        logger.info("Created BURN %s for company %s: %s credits", model.id, device.company_id, amount)
        return CreditTransaction.from_orm(model)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def confirm(self, transaction_id: str, external_ref: Optional[str] = None) -> CreditTransaction:
        now = self.clock()
        model = await self._transition(
            transaction_id,
            TransactionStatus.CONFIRMED,
            updated_at=now,
            external_ref=external_ref,
        )
        transaction = CreditTransaction.from_orm(model)

        if transaction.transaction_type is TransactionType.MINT:
            balance = await self.balances.credit_mint(transaction.company_id, transaction.amount, now)
        else:
            balance = await self.balances.settle_burn(transaction.company_id, transaction.amount, now)
        if balance is None:
            raise PersistenceError(
                f"balance of company {transaction.company_id} could not absorb {transaction.transaction_type.value}",
                transaction_id=transaction_id,
            )

        logger.info(
            "Confirmed %s %s (%s credits, ref=%s)",
            transaction.transaction_type.value,
            transaction_id,
            transaction.amount,
            external_ref,
        )
        return transaction

    async def fail(self, transaction_id: str, error: str, *, source: str = "external") -> CreditTransaction:
        existing = await self.transactions.get(transaction_id)
        if existing is None:
            raise TransactionNotFoundError(transaction_id)

        original = parse_evidence(existing.evidence)
        if isinstance(original, ExternalErrorEvidence):
            original = original.original
        evidence = ExternalErrorEvidence(source=source, detail=error, original=original)

        now = self.clock()
        model = await self._transition(
            transaction_id,
            TransactionStatus.FAILED,
            updated_at=now,
            error_message=error,
            evidence=dump_evidence(evidence),
        )
        transaction = CreditTransaction.from_orm(model)

        if transaction.transaction_type is TransactionType.BURN:
            released = await self.balances.release_burn(transaction.company_id, transaction.amount, now)
            if released is None:
                raise PersistenceError(
                    f"burn reservation for company {transaction.company_id} is missing",
                    transaction_id=transaction_id,
                )

        logger.warning("Transaction %s failed (%s): %s", transaction_id, source, error)
        return transaction

    async def expire_pending(self, older_than: datetime) -> list[CreditTransaction]:
        """Fail every PENDING transaction created before ``older_than``."""
        expired: list[CreditTransaction] = []
        for model in await self.transactions.list_pending_before(older_than):
            try:
                expired.append(await self.fail(model.id, CONFIRMATION_TIMEOUT, source="ledger"))
            except InvalidTransitionError:
                # 已被并发确认
                logger.debug("Transaction %s settled before expiry", model.id)
        if expired:
            logger.warning("Expired %d pending transactions created before %s", len(expired), older_than.isoformat())
        return expired

    async def _transition(
        self,
        transaction_id: str,
        target: TransactionStatus,
        **values,
    ) -> TransactionModel:
        model = await self.transactions.transition(transaction_id, status=target.value, **values)
        if model is not None:
            return model
        existing = await self.transactions.get(transaction_id)
        if existing is None:
            raise TransactionNotFoundError(transaction_id)
        raise InvalidTransitionError(transaction_id, existing.status, target.value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_transaction(self, transaction_id: str) -> CreditTransaction:
        model = await self.transactions.get(transaction_id)
        if model is None:
            raise TransactionNotFoundError(transaction_id)
        return CreditTransaction.from_orm(model)

    async def list_transactions(
        self,
        device_id: str,
        transaction_type: Optional[TransactionType] = None,
    ) -> TransactionListing:
        await self._require_device(device_id)
        type_value = transaction_type.value if transaction_type else None
        models = await self.transactions.list_for_device(device_id, type_value)
        counts = {status.value: 0 for status in TransactionStatus}
        counts.update(await self.transactions.count_by_status(device_id, type_value))
        return TransactionListing(
            device_id=device_id,
            transactions=[CreditTransaction.from_orm(model) for model in models],
            counts=counts,
        )

    async def minting_status(self, device_id: str) -> MintingStatus:
        await self._require_device(device_id)
        accrued = await self.accruals.total_credits(device_id)
        sums = await self.transactions.sum_by_status(device_id, TransactionType.MINT.value)
        minted = sums.get(TransactionStatus.CONFIRMED.value, Decimal(0))
        pending_amount = sums.get(TransactionStatus.PENDING.value, Decimal(0))
        pending = await self.transactions.find_pending(device_id, TransactionType.MINT.value)

        recent = await self.transactions.recent(device_id, TransactionType.MINT.value, limit=1)
        last_mint_at = as_utc(recent[0].created_at) if recent else None
        return MintingStatus(
            device_id=device_id,
            total_accrued=accrued,
            minted=minted,
            pending=pending_amount,
            available_to_mint=max(accrued - minted - pending_amount, Decimal(0)),
            pending_transaction_id=pending.id if pending else None,
            last_mint_at=last_mint_at,
            next_mint_at=last_mint_at + self.mint_cooldown if last_mint_at else None,
        )

    async def get_balance(self, company_id: str) -> BalanceView:
        model = await self.balances.get(company_id)
        return BalanceView.from_orm(model) if model else BalanceView.empty(company_id)

    async def resolve_watermark(self, device: Device, *, default_lookback: timedelta = DEFAULT_LOOKBACK) -> Watermark:
        """End of the last committed accrual window for ``device``.

        Falls back to the newest live MINT carrying accrual evidence, then the device
        creation time, then ``now - default_lookback``.
        """
        window_end = as_utc(await self.accruals.latest_window_end(device.id))
        if window_end is not None:
            return Watermark(device.id, window_end, WatermarkSource.ACCRUAL)

        for model in await self.transactions.recent(device.id, TransactionType.MINT.value):
            minted_end = accrual_window_end(parse_evidence(model.evidence))
            if minted_end is not None:
                return Watermark(device.id, as_utc(minted_end), WatermarkSource.MINT)

        if device.created_at is not None:
            return Watermark(device.id, device.created_at, WatermarkSource.DEVICE_CREATED)
        return Watermark(device.id, self.clock() - default_lookback, WatermarkSource.DEFAULT_LOOKBACK)

    async def _require_device(self, device_id: str) -> DeviceModel:
        model = await self.devices.get_by_id(device_id)
        if model is None:
            raise DeviceNotFoundError(device_id)
        return model
