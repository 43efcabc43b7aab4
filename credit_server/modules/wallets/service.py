"""Cache-aside resolution of device API keys to their owning company and wallet."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.core.exceptions import NotFoundError, ValidationError
from credit_server.db.models import Application as ApplicationModel, Company as CompanyModel
from credit_server.infrastructure.database.repositories.wallet_repository import SqlWalletRepository

from .models import WalletResolution
from .repository import WalletRepository

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_KEY_PREFIX = "wallet:apikey:"


@dataclass(slots=True)
class WalletResolver:
    repository: WalletRepository
    cache: Optional[Redis] = None
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    key_prefix: str = DEFAULT_KEY_PREFIX

    @classmethod
    def with_session(
        cls,
        session: AsyncSession,
        cache: Optional[Redis] = None,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> "WalletResolver":
        return cls(SqlWalletRepository(session), cache, ttl_seconds, key_prefix)

    def cache_key(self, api_key: str) -> str:
        # 不在缓存键中保存明文 API key
        digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()
        return f"{self.key_prefix}{digest}"

    async def resolve(self, api_key: str) -> WalletResolution:
        if not api_key:
            raise ValidationError("api key is required")

        cached = await self._read_cache(api_key)
        if cached is not None:
            return cached

        row = await self.repository.find_by_api_key(api_key)
        if row is None:
            raise NotFoundError("api key not found")

        resolution = self._to_resolution(*row)
        await self._write_cache(api_key, resolution)
        return resolution

    async def invalidate(self, api_key: str) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.delete(self.cache_key(api_key))
        except RedisError as exc:
            logger.warning("Failed to invalidate wallet cache entry: %s", exc)

    async def _read_cache(self, api_key: str) -> WalletResolution | None:
        if self.cache is None:
            return None
        try:
            raw = await self.cache.get(self.cache_key(api_key))
        except RedisError as exc:
            logger.warning("Wallet cache read failed, falling back to database: %s", exc)
            return None
        if raw is None:
            return None
        try:
            return WalletResolution.from_cache(json.loads(raw))
        except (TypeError, ValueError) as exc:
            logger.warning("Discarding malformed wallet cache entry: %s", exc)
            return None

    async def _write_cache(self, api_key: str, resolution: WalletResolution) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(
                self.cache_key(api_key),
                json.dumps(resolution.to_cache()),
                ex=self.ttl_seconds,
            )
        except RedisError as exc:
            logger.warning("Wallet cache write failed: %s", exc)

    @staticmethod
    def _to_resolution(application: ApplicationModel, company: CompanyModel) -> WalletResolution:
        return WalletResolution(
            company_id=company.id,
            wallet_address=company.wallet_address,
            application_id=application.id,
            application_name=application.name,
            company_name=company.name,
        )
