"""Shared fixtures: file-backed sqlite, in-memory time-series store and cache."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncIterator, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from credit_server.core.config import Settings
from credit_server.core.exceptions import UpstreamUnavailable
from credit_server.db.models import CompanyCredit
from credit_server.infrastructure.database.session import build_engine, build_session_factory, init_db
from credit_server.modules.accrual import CreditAccrualEngine
from credit_server.modules.companies import CompanyService
from credit_server.modules.devices import DeviceService, DeviceType
from credit_server.modules.telemetry import TelemetryPoint, TelemetryWindow

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


class FakeTimeSeriesStore:
    """In-memory store honouring the half-open window contract."""

    def __init__(self) -> None:
        self.points: list[TelemetryPoint] = []
        self.failing_devices: set[str] = set()
        self.query_count = 0
        self.closed = False

    async def write(self, point: TelemetryPoint) -> None:
        if point.device_id in self.failing_devices:
            raise UpstreamUnavailable(f"write for {point.device_id} failed")
        self.points.append(point)

    def add(
        self,
        device_id: str,
        timestamp: datetime,
        co2_reduced: float = 0.0,
        energy_saved: float = 0.0,
        **extra: float,
    ) -> None:
        self.points.append(
            TelemetryPoint(
                device_id=device_id,
                device_type=DeviceType.SEQUESTER,
                timestamp=timestamp,
                fields={"co2_reduced": co2_reduced, "energy_saved": energy_saved, **extra},
            )
        )

    def query_window(self, device_id: str, start: datetime, end: datetime) -> TelemetryWindow:
        async def fetch() -> AsyncIterator[TelemetryPoint]:
            self.query_count += 1
            if device_id in self.failing_devices:
                raise UpstreamUnavailable(f"query for {device_id} timed out")
            matching = [p for p in self.points if p.device_id == device_id and start <= p.timestamp < end]
            for point in sorted(matching, key=lambda p: p.timestamp):
                yield point

        return TelemetryWindow(device_id, start, end, fetch)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


class FakeRedis:
    """Subset of ``redis.asyncio.Redis`` used by the service."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttl: dict[str, Optional[int]] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None, nx: bool = False) -> Optional[bool]:
        self._check()
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.ttl[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttl.pop(key, None)
        return removed

    async def aclose(self) -> None:
        return None


@dataclass
class SeededCompany:
    company_id: str
    wallet_address: str
    application_id: str
    api_key: str
    device_id: str


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> FakeTimeSeriesStore:
    return FakeTimeSeriesStore()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'credits.db'}", "connect_timeout": 15.0},
        redis={"url": None},
        scheduler={"enabled": False},
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def accrual_engine(store) -> CreditAccrualEngine:
    return CreditAccrualEngine(store)


@pytest.fixture
def seed_company(session_factory, clock):
    """Factory creating a company, an application and one device."""
    counter = {"n": 0}

    async def _seed(
        *,
        device_type: DeviceType = DeviceType.SEQUESTER,
        device_created_at: Optional[datetime] = None,
        balance: Optional[Decimal] = None,
        offer_price: Optional[Decimal] = None,
    ) -> SeededCompany:
        counter["n"] += 1
        n = counter["n"]
        async with session_factory() as session:
            companies = CompanyService.with_session(session)
            company = await companies.register_company(
                name=f"Company {n}",
                wallet_address=f"0xwallet{n:04d}",
                location="Hangzhou",
            )
            application = await companies.create_application(company.id, f"gateway-{n}", api_key=f"api-key-{n}")
            device = await DeviceService.with_session(session).register_device(
                company_id=company.id,
                device_type=device_type,
                device_id=f"device-{n}",
                application_id=application.id,
                created_at=device_created_at or clock() - timedelta(days=8),
            )
            if balance is not None or offer_price is not None:
                amount = balance or Decimal(0)
                session.add(
                    CompanyCredit(
                        company_id=company.id,
                        total_credit=amount,
                        current_credit=amount,
                        sold_credit=Decimal(0),
                        offer_price=offer_price,
                    )
                )
            await session.commit()
        return SeededCompany(
            company_id=company.id,
            wallet_address=company.wallet_address,
            application_id=application.id,
            api_key=application.api_key,
            device_id=device.id,
        )

    return _seed


async def read_balance(session_factory, company_id: str) -> Optional[CompanyCredit]:
    async with session_factory() as session:
        return await session.get(CompanyCredit, company_id)
