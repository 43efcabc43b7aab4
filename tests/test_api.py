"""HTTP surface, exercised in-process through the ASGI transport."""
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from credit_server.core.container import ApplicationContainer
from credit_server.infrastructure.database.repositories.balance_repository import SqlBalanceRepository
from credit_server.infrastructure.database.session import build_engine
from credit_server.main import create_app

from .conftest import NOW, read_balance


@pytest.fixture
async def client(settings, engine, store, fake_redis, clock):
    container = ApplicationContainer.build(settings, engine=engine, time_series=store, redis=fake_redis, clock=clock)
    app = create_app(container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


def _iso(value):
    return value.isoformat().replace("+00:00", "Z")


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] is True
        assert body["timeSeries"] is True
        assert body["schedulerRunning"] is False


class TestCalculate:
    async def test_preview_credits(self, client, seed_company, store):
        seeded = await seed_company()
        for hour in range(5):
            store.add(seeded.device_id, NOW - timedelta(hours=hour + 1), 100, 60)

        response = await client.post(
            "/api/credits/calculate",
            json={
                "deviceId": seeded.device_id,
                "startTime": _iso(NOW - timedelta(days=1)),
                "endTime": _iso(NOW),
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["creditsEarned"]) == Decimal("5")
        assert Decimal(body["co2Reduced"]) == Decimal("500")
        assert body["samplesUsed"] == 5
        assert body["reason"] is None

    async def test_insufficient_data(self, client, seed_company):
        seeded = await seed_company()

        response = await client.post(
            "/api/credits/calculate",
            json={"deviceId": seeded.device_id, "startTime": _iso(NOW - timedelta(days=1)), "endTime": _iso(NOW)},
        )

        assert response.status_code == 200
        assert response.json()["reason"] == "insufficient data"

    @pytest.mark.parametrize(
        "start, end",
        [(NOW, NOW - timedelta(hours=1)), (NOW - timedelta(days=8), NOW)],
        ids=["inverted", "too-long"],
    )
    async def test_rejects_bad_windows(self, client, seed_company, start, end):
        seeded = await seed_company()

        response = await client.post(
            "/api/credits/calculate",
            json={"deviceId": seeded.device_id, "startTime": _iso(start), "endTime": _iso(end)},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    async def test_unknown_device(self, client):
        response = await client.post(
            "/api/credits/calculate",
            json={"deviceId": "missing", "startTime": _iso(NOW - timedelta(days=1)), "endTime": _iso(NOW)},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_missing_fields(self, client):
        response = await client.post("/api/credits/calculate", json={"deviceId": "x"})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    async def test_upstream_failure(self, client, seed_company, store):
        seeded = await seed_company()
        store.failing_devices.add(seeded.device_id)

        response = await client.post(
            "/api/credits/calculate",
            json={"deviceId": seeded.device_id, "startTime": _iso(NOW - timedelta(days=1)), "endTime": _iso(NOW)},
        )

        assert response.status_code == 503
        assert response.json()["error"] == "upstream_unavailable"


class TestMintLifecycle:
    async def test_process_confirm_and_status(self, client, seed_company, store):
        seeded = await seed_company(device_created_at=NOW - timedelta(days=8))
        for hour in range(5):
            store.add(seeded.device_id, NOW - timedelta(hours=hour + 1), 100, 60)

        processed = await client.post("/api/credits/process", json={"processAll": True})
        assert processed.status_code == 200
        report = processed.json()["report"]
        assert report["processed"] == 1
        assert report["succeeded"] == 1
        tx_id = report["outcomes"][0]["transactionId"]

        mints = (await client.get("/api/credits/mint", params={"deviceId": seeded.device_id})).json()
        assert mints["total"] == 1
        assert mints["counts"]["PENDING"] == 1
        assert mints["transactions"][0]["evidence"]["kind"] == "accrual"

        status = (await client.get(f"/api/credits/status/{seeded.device_id}")).json()
        assert Decimal(status["pending"]) == Decimal("5")
        assert status["canMint"] is False
        assert status["pendingTransactionId"] == tx_id

        confirmed = await client.post(f"/api/credits/transactions/{tx_id}/confirm", json={"externalRef": "0xfeed"})
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "CONFIRMED"

        again = await client.post(f"/api/credits/transactions/{tx_id}/fail", json={"error": "late"})
        assert again.status_code == 409
        assert again.json()["error"] == "invalid_transition"

        status = (await client.get(f"/api/credits/status/{seeded.device_id}")).json()
        assert Decimal(status["minted"]) == Decimal("5")

        listing = (await client.get("/api/credits/sell")).json()
        assert listing["totalOffers"] == 1
        assert Decimal(listing["offers"][0]["available"]) == Decimal("5")

    async def test_process_status(self, client):
        response = await client.get("/api/credits/process")

        assert response.status_code == 200
        body = response.json()
        assert body["isRunning"] is False
        assert body["lastReport"] is None

    async def test_backfill_single_device(self, client, seed_company, store):
        seeded = await seed_company()
        start = NOW - timedelta(days=3)
        store.add(seeded.device_id, start + timedelta(hours=1), 500, 0)

        response = await client.post(
            "/api/credits/process",
            json={"deviceId": seeded.device_id, "startTime": _iso(start), "endTime": _iso(start + timedelta(days=1))},
        )

        assert response.status_code == 200
        outcome = response.json()["outcome"]
        assert outcome["status"] == "succeeded"
        assert Decimal(outcome["creditsEarned"]) == Decimal("2")

    async def test_process_requires_target(self, client):
        response = await client.post("/api/credits/process", json={})

        assert response.status_code == 400

    async def test_manual_mint_without_credit(self, client, seed_company):
        seeded = await seed_company()

        response = await client.post("/api/credits/mint", json={"deviceId": seeded.device_id, "amount": "1"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "insufficient_credits"
        assert Decimal(body["available"]) == 0

    async def test_unknown_transaction(self, client):
        response = await client.post("/api/credits/transactions/missing/confirm", json={})

        assert response.status_code == 404

    async def test_burn(self, client, seed_company):
        seeded = await seed_company(balance=Decimal("10"))

        response = await client.post(
            "/api/credits/burn", json={"deviceId": seeded.device_id, "amount": "4", "reason": "offset"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["transactionType"] == "BURN"
        assert body["status"] == "PENDING"


class TestMarketplace:
    async def test_sell(self, client, seed_company):
        seeded = await seed_company(balance=Decimal("100"))

        response = await client.post(
            "/api/credits/sell",
            json={"companyId": seeded.company_id, "amount": "30", "price": "2.00", "buyerInfo": "buyer-1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["balance"]["currentCredit"]) == Decimal("70")
        assert Decimal(body["balance"]["soldCredit"]) == Decimal("30")
        assert Decimal(body["sale"]["totalValue"]) == Decimal("60")

        history = (await client.get(f"/api/credits/sales/{seeded.company_id}")).json()
        assert len(history["sales"]) == 1
        assert history["sales"][0]["buyerInfo"] == "buyer-1"

    async def test_sell_insufficient(self, client, seed_company):
        seeded = await seed_company(balance=Decimal("10"))

        response = await client.post(
            "/api/credits/sell", json={"companyId": seeded.company_id, "amount": "11", "price": "1"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "insufficient_credits"
        assert Decimal(body["available"]) == Decimal("10")
        assert Decimal(body["requested"]) == Decimal("11")

    async def test_offers_with_filters(self, client, seed_company):
        await seed_company(balance=Decimal("10"), offer_price=Decimal("1.50"))
        dear = await seed_company(balance=Decimal("30"), offer_price=Decimal("4.50"))

        response = await client.get("/api/credits/sell", params={"minPrice": "2"})

        body = response.json()
        assert body["totalOffers"] == 1
        offer = body["offers"][0]
        assert offer["companyId"] == dear.company_id
        assert Decimal(offer["offerPrice"]) == Decimal("4.50")
        assert Decimal(offer["credits"]["currentCredit"]) == Decimal("30")


class TestWalletAndTelemetry:
    async def test_wallet_address_cached_on_second_call(self, client, seed_company):
        seeded = await seed_company()

        first = await client.get("/api/mqtt/wallet-address", params={"apiKey": seeded.api_key})
        second = await client.get("/api/mqtt/wallet-address", params={"apiKey": seeded.api_key})

        assert first.status_code == 200
        assert first.json()["cached"] is False
        assert second.json()["cached"] is True
        assert second.json()["walletAddress"] == seeded.wallet_address

    async def test_wallet_address_unknown_key(self, client):
        response = await client.get("/api/mqtt/wallet-address", params={"apiKey": "nope"})

        assert response.status_code == 404

    async def test_ingest_reading(self, client, seed_company, store):
        seeded = await seed_company()

        response = await client.post(
            "/api/telemetry",
            json={
                "apiKey": seeded.api_key,
                "deviceId": seeded.device_id,
                "fields": {"co2_reduced": 12.5, "energy_saved": 4},
                "timestamp": _iso(NOW - timedelta(minutes=5)),
            },
        )

        assert response.status_code == 201
        assert response.json()["companyId"] == seeded.company_id
        (point,) = store.points
        assert point.wallet_address == seeded.wallet_address
        assert point.fields["co2_reduced"] == 12.5

    async def test_ingest_for_foreign_device(self, client, seed_company, store):
        owner = await seed_company()
        other = await seed_company()

        response = await client.post(
            "/api/telemetry",
            json={"apiKey": other.api_key, "deviceId": owner.device_id, "fields": {"co2_reduced": 1}},
        )

        assert response.status_code == 400
        assert store.points == []


class TestDatabaseErrors:
    @staticmethod
    def _failing(error):
        async def _raise(self, *args, **kwargs):
            raise error

        return _raise

    async def test_locked_database_is_upstream_unavailable(self, client, seed_company, monkeypatch):
        seeded = await seed_company(balance=Decimal("10"))
        locked = OperationalError("UPDATE company_credit", {}, Exception("database is locked"))
        monkeypatch.setattr(SqlBalanceRepository, "debit_sale", self._failing(locked))

        response = await client.post(
            "/api/credits/sell", json={"companyId": seeded.company_id, "amount": "1", "price": "1"}
        )

        assert response.status_code == 503
        assert response.headers["content-type"].startswith("application/json")
        body = response.json()
        assert body["error"] == "upstream_unavailable"
        assert body["path"] == "/api/credits/sell"

    async def test_rejected_write_is_persistence_error(self, client, seed_company, monkeypatch):
        seeded = await seed_company(balance=Decimal("10"))
        rejected = IntegrityError("INSERT INTO credit_sale_history", {}, Exception("CHECK constraint failed"))
        monkeypatch.setattr(SqlBalanceRepository, "debit_sale", self._failing(rejected))

        response = await client.post(
            "/api/credits/sell", json={"companyId": seeded.company_id, "amount": "1", "price": "1"}
        )

        assert response.status_code == 500
        assert response.json()["error"] == "persistence_error"

    async def test_failed_write_leaves_balance(self, client, seed_company, session_factory, monkeypatch):
        seeded = await seed_company(balance=Decimal("10"))
        locked = OperationalError("UPDATE company_credit", {}, Exception("database is locked"))
        monkeypatch.setattr(SqlBalanceRepository, "debit_sale", self._failing(locked))

        await client.post("/api/credits/sell", json={"companyId": seeded.company_id, "amount": "1", "price": "1"})

        stored = await read_balance(session_factory, seeded.company_id)
        assert stored.current_credit == Decimal("10")
        assert stored.sold_credit == 0


class TestContainerLifecycle:
    async def test_close_disposes_owned_engine(self, settings, store, fake_redis, clock):
        engine = build_engine(settings)
        container = ApplicationContainer.build(settings, engine=engine, time_series=store, redis=fake_redis, clock=clock)
        pool = engine.sync_engine.pool

        await container.close()

        assert store.closed
        assert engine.sync_engine.pool is not pool
