"""Simple dependency container for wiring core services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from credit_server.core.clock import Clock, utcnow
from credit_server.core.config import Settings, get_settings
from credit_server.infrastructure.cache import build_redis_client
from credit_server.infrastructure.database.session import build_engine, build_session_factory, init_db
from credit_server.infrastructure.timeseries import InfluxTimeSeriesStore
from credit_server.modules.accrual import CreditAccrualEngine, build_policy
from credit_server.modules.processing import CreditProcessor, CreditScheduler
from credit_server.modules.telemetry.repository import TimeSeriesStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApplicationContainer:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    time_series: TimeSeriesStore
    redis: Optional[Redis]
    accrual_engine: CreditAccrualEngine
    processor: CreditProcessor
    scheduler: CreditScheduler
    clock: Clock = utcnow

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        engine: Optional[AsyncEngine] = None,
        time_series: Optional[TimeSeriesStore] = None,
        redis: Optional[Redis] = None,
        clock: Clock = utcnow,
    ) -> "ApplicationContainer":
        settings = settings or get_settings()
        engine = engine or build_engine(settings)
        session_factory = build_session_factory(engine)
        time_series = time_series or InfluxTimeSeriesStore(settings.influx)
        if redis is None:
            redis = build_redis_client(settings.redis)

        accrual_engine = CreditAccrualEngine(
            time_series,
            build_policy(settings.credits),
            settings.credits.min_samples,
        )
        processor = CreditProcessor.from_settings(settings, session_factory, accrual_engine, clock)
        scheduler = CreditScheduler.from_settings(settings.scheduler, processor, redis, clock)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            time_series=time_series,
            redis=redis,
            accrual_engine=accrual_engine,
            processor=processor,
            scheduler=scheduler,
            clock=clock,
        )

    async def init_infrastructure(self) -> None:
        """Ensure the schema exists; migrations remain the production path."""
        await init_db(self.engine)

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.time_series.close()
        if self.redis is not None:
            await self.redis.aclose()
        await self.engine.dispose()
        logger.info("Application container closed")


@lru_cache()
def get_container() -> ApplicationContainer:
    return ApplicationContainer.build(get_settings())


__all__ = ["ApplicationContainer", "get_container"]
