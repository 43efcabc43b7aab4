"""Timer-driven scheduler for the credit processor."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from credit_server.core.clock import Clock, utcnow
from credit_server.core.config import SchedulerSettings

from .models import ProcessingReport
from .processor import CreditProcessor

logger = logging.getLogger(__name__)


class CreditScheduler:
    """Runs :meth:`tick` every ``interval`` until stopped.

    A tick that starts while another is running is skipped, not queued. Stopping only
    suppresses future ticks; a tick in flight runs to completion.
    """

    def __init__(
        self,
        processor: CreditProcessor,
        *,
        interval: timedelta = timedelta(hours=1),
        max_workers: int = 1,
        redis: Optional[Redis] = None,
        lock_name: str = "credits:scheduler",
        lock_ttl: timedelta = timedelta(hours=1),
        clock: Clock = utcnow,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.processor = processor
        self.interval = interval
        self.max_workers = max_workers
        self.redis = redis
        self.lock_name = lock_name
        self.lock_ttl = lock_ttl
        self.clock = clock
        self.last_report: Optional[ProcessingReport] = None
        self._guard = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(
        cls,
        settings: SchedulerSettings,
        processor: CreditProcessor,
        redis: Optional[Redis] = None,
        clock: Clock = utcnow,
    ) -> "CreditScheduler":
        return cls(
            processor,
            interval=timedelta(minutes=settings.interval_minutes),
            max_workers=settings.max_workers,
            redis=redis if settings.distributed_lock else None,
            lock_name=settings.lock_name,
            lock_ttl=timedelta(seconds=settings.lock_ttl_seconds),
            clock=clock,
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_processing(self) -> bool:
        return self._guard.locked()

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "is_processing": self.is_processing,
            "interval_minutes": self.interval.total_seconds() / 60,
            "last_report": self.last_report,
        }

    def start(self) -> None:
        if self.is_running:
            logger.info("Credit scheduler already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="credit-scheduler")
        logger.info("Credit scheduler started, interval %s", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        task, self._task = self._task, None
        await task
        logger.info("Credit scheduler stopped")

    async def _run(self) -> None:
        # 启动后立即执行一次
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Credit processing tick crashed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval.total_seconds())
            except asyncio.TimeoutError:
                continue

    async def tick(self) -> Optional[ProcessingReport]:
        """Process every active credit-generating device once.

        Returns ``None`` when the tick was skipped because another one holds the guard.
        """
        if self._guard.locked():
            logger.info("Credit processing already in progress, skipping tick")
            return None

        async with self._guard:
            token = await self._acquire_distributed_lock()
            if token is None:
                return None
            try:
                report = await self._run_batch()
            finally:
                await self._release_distributed_lock(token)

        self.last_report = report
        return report

    async def _run_batch(self) -> ProcessingReport:
        now = self.clock()
        report = ProcessingReport(started_at=now)
        try:
            report.expired_transactions = await self.processor.expire_stale(now)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Failed to expire stale pending transactions")

        devices = await self.processor.list_devices()
        logger.info("Found %d credit-generating devices to process", len(devices))

        workers = asyncio.Semaphore(self.max_workers)

        async def run_one(device):
            async with workers:
                return await self.processor.process_device(device, now)

        report.outcomes = list(await asyncio.gather(*(run_one(device) for device in devices)))
        report.finished_at = self.clock()
        logger.info(
            "Credit processing completed: %d processed, %d succeeded, %d skipped, %d failed",
            report.processed,
            report.succeeded,
            report.skipped,
            report.failed,
        )
        return report

    async def _acquire_distributed_lock(self) -> Optional[str]:
        token = uuid.uuid4().hex
        if self.redis is None:
            return token
        try:
            acquired = await self.redis.set(self.lock_name, token, nx=True, ex=int(self.lock_ttl.total_seconds()))
        except RedisError as exc:
            logger.warning("Scheduler lock unavailable, skipping tick: %s", exc)
            return None
        if not acquired:
            logger.info("Another scheduler instance holds %s, skipping tick", self.lock_name)
            return None
        return token

    async def _release_distributed_lock(self, token: str) -> None:
        if self.redis is None:
            return
        try:
            if await self.redis.get(self.lock_name) == token:
                await self.redis.delete(self.lock_name)
        except RedisError as exc:
            logger.warning("Failed to release scheduler lock %s: %s", self.lock_name, exc)
