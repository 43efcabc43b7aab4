"""FastAPI dependency providers."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import timedelta

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.core.config import Settings
from credit_server.core.container import ApplicationContainer
from credit_server.modules.accrual import CreditAccrualEngine
from credit_server.modules.devices import DeviceService
from credit_server.modules.ledger import CreditLedgerService
from credit_server.modules.marketplace import MarketplaceService
from credit_server.modules.processing import CreditProcessor, CreditScheduler
from credit_server.modules.telemetry import TelemetryService
from credit_server.modules.wallets import WalletResolver


def get_container(request: Request) -> ApplicationContainer:
    return request.app.state.container


def get_settings(container: ApplicationContainer = Depends(get_container)) -> Settings:
    return container.settings


async def get_db_session(
    container: ApplicationContainer = Depends(get_container),
) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: commit on success, roll back on any error."""
    async with container.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_accrual_engine(container: ApplicationContainer = Depends(get_container)) -> CreditAccrualEngine:
    return container.accrual_engine


def get_processor(container: ApplicationContainer = Depends(get_container)) -> CreditProcessor:
    return container.processor


def get_scheduler(container: ApplicationContainer = Depends(get_container)) -> CreditScheduler:
    return container.scheduler


def get_device_service(db: AsyncSession = Depends(get_db_session)) -> DeviceService:
    return DeviceService.with_session(db)


def get_ledger_service(
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_container),
) -> CreditLedgerService:
    return CreditLedgerService.with_session(
        db,
        clock=container.clock,
        mint_cooldown=timedelta(hours=container.settings.ledger.mint_cooldown_hours),
    )


def get_marketplace_service(
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_container),
) -> MarketplaceService:
    return MarketplaceService.with_session(db, clock=container.clock)


def get_wallet_resolver(
    db: AsyncSession = Depends(get_db_session),
    container: ApplicationContainer = Depends(get_container),
) -> WalletResolver:
    redis_settings = container.settings.redis
    return WalletResolver.with_session(
        db,
        container.redis,
        ttl_seconds=redis_settings.wallet_ttl_seconds,
        key_prefix=redis_settings.key_prefix,
    )


def get_telemetry_service(
    resolver: WalletResolver = Depends(get_wallet_resolver),
    devices: DeviceService = Depends(get_device_service),
    container: ApplicationContainer = Depends(get_container),
) -> TelemetryService:
    return TelemetryService(container.time_series, resolver, devices)


__all__ = [
    "get_accrual_engine",
    "get_container",
    "get_db_session",
    "get_device_service",
    "get_ledger_service",
    "get_marketplace_service",
    "get_processor",
    "get_scheduler",
    "get_settings",
    "get_telemetry_service",
    "get_wallet_resolver",
]
