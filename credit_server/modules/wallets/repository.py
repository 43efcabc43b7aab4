"""Repository protocol for API key lookups."""

from __future__ import annotations

from typing import Protocol

from credit_server.db.models import Application as ApplicationModel, Company as CompanyModel


class WalletRepository(Protocol):
    async def find_by_api_key(self, api_key: str) -> tuple[ApplicationModel, CompanyModel] | None:
        ...
