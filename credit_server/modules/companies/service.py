"""Registration of companies and the applications that hold device API keys."""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.core.exceptions import ConflictError, NotFoundError
from credit_server.infrastructure.database.repositories.company_repository import SqlCompanyRepository

from .models import Application, Company

logger = logging.getLogger(__name__)


class CompanyService:
    def __init__(self, repository: SqlCompanyRepository) -> None:
        self._repository = repository

    @classmethod
    def with_session(cls, session: AsyncSession) -> "CompanyService":
        return cls(SqlCompanyRepository(session))

    async def get_company(self, company_id: str) -> Company | None:
        model = await self._repository.get_company(company_id)
        return Company.from_orm(model) if model else None

    async def get_by_wallet(self, wallet_address: str) -> Company | None:
        model = await self._repository.get_by_wallet(wallet_address)
        return Company.from_orm(model) if model else None

    async def register_company(
        self,
        *,
        name: str,
        wallet_address: Optional[str] = None,
        location: Optional[str] = None,
        website: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> Company:
        if wallet_address and await self._repository.get_by_wallet(wallet_address):
            raise ConflictError(f"wallet {wallet_address} already registered")
        model = await self._repository.create_company(
            company_id=company_id,
            name=name,
            wallet_address=wallet_address,
            location=location,
            website=website,
        )
        logger.info("Registered company %s (%s)", model.id, name)
        return Company.from_orm(model)

    async def create_application(
        self,
        company_id: str,
        name: str,
        api_key: Optional[str] = None,
    ) -> Application:
        if await self._repository.get_company(company_id) is None:
            raise NotFoundError(f"company {company_id} not found", company_id=company_id)
        model = await self._repository.create_application(
            company_id=company_id,
            name=name,
            api_key=api_key or secrets.token_urlsafe(32),
        )
        return Application.from_orm(model)

    async def deactivate_application(self, application_id: str) -> Application:
        model = await self._repository.set_application_active(application_id, False)
        if model is None:
            raise NotFoundError(f"application {application_id} not found", application_id=application_id)
        return Application.from_orm(model)
