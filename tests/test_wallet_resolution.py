"""Cache-aside API key resolution."""
import json

import pytest

from credit_server.core.exceptions import NotFoundError, ValidationError
from credit_server.modules.companies import CompanyService
from credit_server.modules.wallets import WalletResolver


@pytest.fixture
def resolver_for(fake_redis):
    def _make(session, cache=fake_redis):
        return WalletResolver.with_session(session, cache, ttl_seconds=120)

    return _make


class TestResolve:
    async def test_miss_then_hit(self, session, seed_company, resolver_for, fake_redis):
        seeded = await seed_company()
        resolver = resolver_for(session)

        first = await resolver.resolve(seeded.api_key)
        second = await resolver.resolve(seeded.api_key)

        assert first.cached is False
        assert second.cached is True
        assert first.company_id == second.company_id == seeded.company_id
        assert first.wallet_address == second.wallet_address == seeded.wallet_address
        assert first.application_id == second.application_id == seeded.application_id
        assert fake_redis.ttl[resolver.cache_key(seeded.api_key)] == 120

    async def test_cache_key_does_not_contain_api_key(self, session, seed_company, resolver_for, fake_redis):
        seeded = await seed_company()

        await resolver_for(session).resolve(seeded.api_key)

        assert len(fake_redis.data) == 1
        (key,) = fake_redis.data
        assert seeded.api_key not in key
        assert key.startswith("wallet:apikey:")

    async def test_unknown_key(self, session, resolver_for, fake_redis):
        with pytest.raises(NotFoundError):
            await resolver_for(session).resolve("nope")
        assert fake_redis.data == {}

    async def test_empty_key(self, session, resolver_for):
        with pytest.raises(ValidationError):
            await resolver_for(session).resolve("")

    async def test_inactive_application(self, session, seed_company, resolver_for):
        seeded = await seed_company()
        await CompanyService.with_session(session).deactivate_application(seeded.application_id)

        with pytest.raises(NotFoundError):
            await resolver_for(session).resolve(seeded.api_key)

    async def test_without_cache(self, session, seed_company, resolver_for):
        seeded = await seed_company()
        resolver = resolver_for(session, cache=None)

        assert (await resolver.resolve(seeded.api_key)).cached is False
        assert (await resolver.resolve(seeded.api_key)).cached is False


class TestCacheFailures:
    async def test_redis_down_falls_back_to_database(self, session, seed_company, resolver_for, fake_redis):
        seeded = await seed_company()
        fake_redis.fail = True

        resolution = await resolver_for(session).resolve(seeded.api_key)

        assert resolution.cached is False
        assert resolution.company_id == seeded.company_id

    async def test_malformed_entry_is_ignored(self, session, seed_company, resolver_for, fake_redis):
        seeded = await seed_company()
        resolver = resolver_for(session)
        fake_redis.data[resolver.cache_key(seeded.api_key)] = "{not json"

        resolution = await resolver.resolve(seeded.api_key)

        assert resolution.cached is False
        cached = json.loads(fake_redis.data[resolver.cache_key(seeded.api_key)])
        assert cached["company_id"] == seeded.company_id

    async def test_invalidate(self, session, seed_company, resolver_for, fake_redis):
        seeded = await seed_company()
        resolver = resolver_for(session)
        await resolver.resolve(seeded.api_key)

        await resolver.invalidate(seeded.api_key)

        assert fake_redis.data == {}
        assert (await resolver.resolve(seeded.api_key)).cached is False

    async def test_invalidate_tolerates_redis_failure(self, session, seed_company, resolver_for, fake_redis):
        seeded = await seed_company()
        fake_redis.fail = True

        await resolver_for(session).invalidate(seeded.api_key)
