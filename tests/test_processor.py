"""Per-device credit processing."""
import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from credit_server.core.exceptions import ConflictError, NotFoundError
from credit_server.modules.devices import DeviceNotCreditGeneratingError, DeviceService, DeviceType
from credit_server.modules.ledger import CreditLedgerService, TransactionStatus, WatermarkSource
from credit_server.modules.processing import TOO_SOON, CreditProcessor, OutcomeStatus

from .conftest import NOW


@pytest.fixture
def processor(session_factory, accrual_engine, clock):
    return CreditProcessor(session_factory, accrual_engine, clock=clock)


async def _device(session_factory, device_id):
    async with session_factory() as session:
        return await DeviceService.with_session(session).require_device(device_id)


async def _watermark(session_factory, device):
    async with session_factory() as session:
        return await CreditLedgerService.with_session(session).resolve_watermark(device)


async def _transactions(session_factory, device_id):
    async with session_factory() as session:
        return await CreditLedgerService.with_session(session).list_transactions(device_id)


def _fill(store, device_id, *, start, hours, co2=100, energy=60):
    for hour in range(hours):
        store.add(device_id, start + timedelta(hours=hour, minutes=30), co2, energy)


class TestProcessDevice:
    async def test_accrual_scenario(self, processor, session_factory, seed_company, store):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=8))
        _fill(store, seeded.device_id, start=NOW - timedelta(hours=5), hours=5)
        device = await _device(session_factory, seeded.device_id)

        outcome = await processor.process_device(device)

        assert outcome.status is OutcomeStatus.SUCCEEDED
        assert outcome.credits_earned == Decimal("5")
        assert outcome.window_start == NOW - timedelta(days=8)
        assert outcome.window_end == NOW
        assert outcome.transaction_id is not None

        listing = await _transactions(session_factory, seeded.device_id)
        assert listing.total == 1
        tx = listing.transactions[0]
        assert tx.status is TransactionStatus.PENDING
        assert tx.amount == Decimal("5")

        watermark = await _watermark(session_factory, device)
        assert watermark.source is WatermarkSource.ACCRUAL
        assert watermark.timestamp == NOW

    async def test_too_soon_skip(self, processor, session_factory, seed_company, store, clock):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=2))
        device = await _device(session_factory, seeded.device_id)
        await processor.process_device(device)
        clock.advance(timedelta(hours=2))
        _fill(store, seeded.device_id, start=NOW, hours=2)

        outcome = await processor.process_device(device)

        assert outcome.status is OutcomeStatus.SKIPPED
        assert outcome.reason == TOO_SOON
        assert (await _watermark(session_factory, device)).timestamp == NOW
        assert (await _transactions(session_factory, seeded.device_id)).total == 0

    async def test_zero_credit_window_advances_watermark(self, processor, session_factory, seed_company):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=3))
        device = await _device(session_factory, seeded.device_id)

        outcome = await processor.process_device(device)

        assert outcome.status is OutcomeStatus.SUCCEEDED
        assert outcome.credits_earned == 0
        assert outcome.transaction_id is None
        assert (await _watermark(session_factory, device)).timestamp == NOW

    async def test_zero_credit_window_kept_when_not_advancing(
        self, session_factory, accrual_engine, seed_company, clock
    ):
        processor = CreditProcessor(session_factory, accrual_engine, advance_on_zero_credit=False, clock=clock)
        seeded = await seed_company(device_created_at=NOW - timedelta(days=3))
        device = await _device(session_factory, seeded.device_id)

        outcome = await processor.process_device(device)

        assert outcome.status is OutcomeStatus.SKIPPED
        watermark = await _watermark(session_factory, device)
        assert watermark.source is WatermarkSource.DEVICE_CREATED

    async def test_windows_never_overlap(self, processor, session_factory, seed_company, store, clock):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=2))
        device = await _device(session_factory, seeded.device_id)
        _fill(store, seeded.device_id, start=NOW - timedelta(days=2), hours=48)

        first = await processor.process_device(device)
        async with session_factory() as session:
            await CreditLedgerService.with_session(session, clock=clock).confirm(first.transaction_id)
            await session.commit()

        clock.advance(timedelta(days=1))
        _fill(store, seeded.device_id, start=NOW, hours=24)
        second = await processor.process_device(device)

        assert second.status is OutcomeStatus.SUCCEEDED
        assert second.window_start == first.window_end
        assert second.window_end == NOW + timedelta(days=1)
        assert second.samples_used == 24

    async def test_pending_mint_blocks_next_window(self, processor, session_factory, seed_company, store, clock):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=2))
        device = await _device(session_factory, seeded.device_id)
        _fill(store, seeded.device_id, start=NOW - timedelta(days=2), hours=72)
        await processor.process_device(device)
        clock.advance(timedelta(days=1))

        outcome = await processor.process_device(device)

        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.reason == "conflict"
        assert (await _watermark(session_factory, device)).timestamp == NOW

    async def test_upstream_failure_keeps_watermark(self, processor, session_factory, seed_company, store):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=2))
        device = await _device(session_factory, seeded.device_id)
        store.failing_devices.add(seeded.device_id)

        outcome = await processor.process_device(device)

        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.reason == "upstream_unavailable"
        watermark = await _watermark(session_factory, device)
        assert watermark.source is WatermarkSource.DEVICE_CREATED

    async def test_window_epsilon(self, session_factory, accrual_engine, seed_company, clock):
        processor = CreditProcessor(
            session_factory, accrual_engine, window_epsilon=timedelta(seconds=1), clock=clock
        )
        seeded = await seed_company(device_created_at=NOW - timedelta(days=2))
        device = await _device(session_factory, seeded.device_id)

        outcome = await processor.process_device(device)

        assert outcome.window_start == NOW - timedelta(days=2) + timedelta(seconds=1)


class TestProcessRange:
    async def test_backfill_explicit_window(self, processor, session_factory, seed_company, store):
        seeded = await seed_company()
        start = NOW - timedelta(days=5)
        _fill(store, seeded.device_id, start=start, hours=5)

        outcome = await processor.process_range(seeded.device_id, start, start + timedelta(hours=5))

        assert outcome.status is OutcomeStatus.SUCCEEDED
        assert outcome.credits_earned == Decimal("5")
        assert outcome.transaction_id is not None

    async def test_backfill_without_data(self, processor, seed_company):
        seeded = await seed_company()

        outcome = await processor.process_range(seeded.device_id, NOW - timedelta(days=1), NOW)

        assert outcome.status is OutcomeStatus.SKIPPED

    async def test_unknown_device(self, processor):
        with pytest.raises(NotFoundError):
            await processor.process_range("missing", NOW - timedelta(days=1), NOW)

    async def test_emitter_rejected(self, processor, seed_company):
        seeded = await seed_company(device_type=DeviceType.EMITTER)

        with pytest.raises(DeviceNotCreditGeneratingError):
            await processor.process_range(seeded.device_id, NOW - timedelta(days=1), NOW)

    async def test_busy_device_rejected(self, processor, seed_company):
        seeded = await seed_company()
        lock = processor._lock_for(seeded.device_id)

        async with lock:
            assert processor.is_device_busy(seeded.device_id)
            with pytest.raises(ConflictError):
                await processor.process_range(seeded.device_id, NOW - timedelta(days=1), NOW)

    async def test_same_device_is_serialised(self, processor, session_factory, seed_company, store):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=2))
        _fill(store, seeded.device_id, start=NOW - timedelta(days=2), hours=48)
        device = await _device(session_factory, seeded.device_id)

        first, second = await asyncio.gather(processor.process_device(device), processor.process_device(device))

        statuses = sorted([first.status.value, second.status.value])
        assert statuses == ["skipped", "succeeded"]
        assert (await _transactions(session_factory, seeded.device_id)).total == 1


class TestExpireStale:
    async def test_expires_old_pending(self, processor, session_factory, seed_company, store, clock):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=2))
        _fill(store, seeded.device_id, start=NOW - timedelta(days=1), hours=3)
        await processor.process_device(await _device(session_factory, seeded.device_id))
        clock.advance(timedelta(hours=49))

        assert await processor.expire_stale(clock()) == 1

        listing = await _transactions(session_factory, seeded.device_id)
        assert listing.counts["FAILED"] == 1

    async def test_disabled_without_timeout(self, session_factory, accrual_engine, clock):
        processor = CreditProcessor(session_factory, accrual_engine, pending_timeout=None, clock=clock)

        assert await processor.expire_stale(clock()) == 0
