"""SQLAlchemy repository for companies and their applications."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.db.models import Application, Company


class SqlCompanyRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_company(self, company_id: str) -> Company | None:
        return await self._session.get(Company, company_id)

    async def get_by_wallet(self, wallet_address: str) -> Company | None:
        stmt = select(Company).where(Company.wallet_address == wallet_address)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_company(
        self,
        *,
        company_id: Optional[str],
        name: str,
        wallet_address: Optional[str],
        location: Optional[str],
        website: Optional[str],
    ) -> Company:
        model = Company(name=name, wallet_address=wallet_address, location=location, website=website)
        if company_id:
            model.id = company_id
        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        return model

    async def create_application(self, *, company_id: str, name: str, api_key: str) -> Application:
        model = Application(company_id=company_id, name=name, api_key=api_key, is_active=True)
        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        return model

    async def set_application_active(self, application_id: str, is_active: bool) -> Application | None:
        model = await self._session.get(Application, application_id)
        if model is None:
            return None
        model.is_active = is_active
        await self._session.flush()
        return model
