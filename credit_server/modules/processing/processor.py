"""Per-device credit processing: watermark, accrual window, ledger write."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from credit_server.core.clock import Clock, as_utc, utcnow
from credit_server.core.config import Settings
from credit_server.core.exceptions import ConflictError, CreditEngineError
from credit_server.modules.accrual.engine import CreditAccrualEngine
from credit_server.modules.devices.exceptions import DeviceNotCreditGeneratingError
from credit_server.modules.devices.models import Device
from credit_server.modules.devices.service import DeviceService
from credit_server.modules.ledger.service import CreditLedgerService

from .models import TOO_SOON, DeviceOutcome, OutcomeStatus

logger = logging.getLogger(__name__)


class CreditProcessor:
    """Turns elapsed telemetry windows into accrual rows and PENDING mints.

    Each device is handled in its own database session and transaction, so a failure
    rolls back only that device and leaves its watermark where it was. A per-device
    lock keeps two windows of the same device from being in flight at once.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: CreditAccrualEngine,
        *,
        min_interval: timedelta = timedelta(hours=24),
        window_epsilon: timedelta = timedelta(0),
        default_lookback: timedelta = timedelta(days=7),
        advance_on_zero_credit: bool = True,
        pending_timeout: Optional[timedelta] = timedelta(hours=48),
        mint_cooldown: timedelta = timedelta(hours=24),
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self.engine = engine
        self.min_interval = min_interval
        self.window_epsilon = window_epsilon
        self.default_lookback = default_lookback
        self.advance_on_zero_credit = advance_on_zero_credit
        self.pending_timeout = pending_timeout
        self.mint_cooldown = mint_cooldown
        self.clock = clock
        self._device_locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        engine: CreditAccrualEngine,
        clock: Clock = utcnow,
    ) -> "CreditProcessor":
        scheduler = settings.scheduler
        timeout_hours = settings.ledger.pending_timeout_hours
        return cls(
            session_factory,
            engine,
            min_interval=timedelta(hours=scheduler.min_interval_hours),
            window_epsilon=timedelta(seconds=scheduler.window_epsilon_seconds),
            default_lookback=timedelta(days=scheduler.default_lookback_days),
            advance_on_zero_credit=scheduler.advance_on_zero_credit,
            pending_timeout=timedelta(hours=timeout_hours) if timeout_hours else None,
            mint_cooldown=timedelta(hours=settings.ledger.mint_cooldown_hours),
            clock=clock,
        )

    @property
    def policy_name(self) -> str:
        return type(self.engine.policy).__name__

    def _ledger(self, session: AsyncSession) -> CreditLedgerService:
        return CreditLedgerService.with_session(session, clock=self.clock, mint_cooldown=self.mint_cooldown)

    def _lock_for(self, device_id: str) -> asyncio.Lock:
        lock = self._device_locks.get(device_id)
        if lock is None:
            lock = self._device_locks[device_id] = asyncio.Lock()
        return lock

    def is_device_busy(self, device_id: str) -> bool:
        lock = self._device_locks.get(device_id)
        return lock is not None and lock.locked()

    async def list_devices(self) -> list[Device]:
        async with self._session_factory() as session:
            return await DeviceService.with_session(session).list_credit_generators()

    async def expire_stale(self, now: datetime) -> int:
        if self.pending_timeout is None:
            return 0
        async with self._session_factory() as session:
            expired = await self._ledger(session).expire_pending(now - self.pending_timeout)
            await session.commit()
        return len(expired)

    async def process_device(self, device: Device, now: Optional[datetime] = None) -> DeviceOutcome:
        """Accrue ``[watermark + epsilon, now)`` for one device; never raises."""
        now = as_utc(now) or self.clock()
        async with self._lock_for(device.id):
            try:
                return await self._process_due_window(device, now)
            except CreditEngineError as exc:
                logger.warning("Credit processing for device %s failed: %s", device.id, exc.message)
                return DeviceOutcome.failed(device.id, exc.message, reason=exc.kind)
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Unexpected error processing credits for device %s", device.id)
                return DeviceOutcome.failed(device.id, str(exc) or type(exc).__name__)

    async def _process_due_window(self, device: Device, now: datetime) -> DeviceOutcome:
        async with self._session_factory() as session:
            ledger = self._ledger(session)
            watermark = await ledger.resolve_watermark(device, default_lookback=self.default_lookback)
            window_start = watermark.timestamp + self.window_epsilon

            if now - watermark.timestamp < self.min_interval or window_start >= now:
                logger.debug("设备 %s 距上次处理不足 %s，跳过", device.id, self.min_interval)
                return DeviceOutcome.skipped(device.id, TOO_SOON, window_start=watermark.timestamp)

            logger.info(
                "Processing credits for device %s from %s to %s (watermark from %s)",
                device.id,
                window_start.isoformat(),
                now.isoformat(),
                watermark.source.value,
            )
            result = await self.engine.compute_credits(device.id, window_start, now)

            if not result.has_credit and not self.advance_on_zero_credit:
                logger.info("Device %s earned no credits (%s), watermark kept", device.id, result.reason)
                return DeviceOutcome.skipped(
                    device.id,
                    result.reason or "no credit",
                    window_start=window_start,
                    window_end=now,
                    samples_used=result.samples_used,
                )

            record = await ledger.record_accrual(result, policy=self.policy_name)
            await session.commit()

        if record.transaction is not None:
            logger.info(
                "Device %s earned %s credits, MINT %s pending",
                device.id,
                record.credits_earned,
                record.transaction.id,
            )
        else:
            logger.info("Device %s earned no credits (%s), watermark advanced", device.id, result.reason)
        return DeviceOutcome(
            device_id=device.id,
            status=OutcomeStatus.SUCCEEDED,
            reason=result.reason,
            window_start=window_start,
            window_end=now,
            credits_earned=record.credits_earned,
            samples_used=record.samples_used,
            transaction_id=record.transaction.id if record.transaction else None,
        )

    async def process_range(self, device_id: str, start: datetime, end: datetime) -> DeviceOutcome:
        """Backfill an explicit window, ignoring the watermark and minimum interval.

        Errors propagate to the caller. A device with a window already in flight is
        rejected instead of queued.
        """
        if self.is_device_busy(device_id):
            raise ConflictError(f"device {device_id} is already being processed", device_id=device_id)

        async with self._lock_for(device_id):
            async with self._session_factory() as session:
                device = await DeviceService.with_session(session).require_device(device_id)
                if not device.generates_credits:
                    raise DeviceNotCreditGeneratingError(
                        f"device {device_id} does not generate credits", device_id=device_id
                    )
                result = await self.engine.compute_credits(device_id, start, end)
                if not result.has_credit:
                    return DeviceOutcome.skipped(
                        device_id,
                        result.reason or "no credit",
                        window_start=result.window_start,
                        window_end=result.window_end,
                        samples_used=result.samples_used,
                    )
                record = await self._ledger(session).record_accrual(result, policy=self.policy_name)
                await session.commit()

        logger.info("Backfilled device %s %s..%s: %s credits", device_id, start, end, record.credits_earned)
        return DeviceOutcome(
            device_id=device_id,
            status=OutcomeStatus.SUCCEEDED,
            window_start=record.window_start,
            window_end=record.window_end,
            credits_earned=record.credits_earned,
            samples_used=record.samples_used,
            transaction_id=record.transaction.id if record.transaction else None,
        )
