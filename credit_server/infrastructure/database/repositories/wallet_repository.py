"""SQLAlchemy implementation for API key to wallet lookups"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.core.exceptions import UpstreamUnavailable
from credit_server.db.models import Application, Company


class SqlWalletRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_api_key(self, api_key: str) -> tuple[Application, Company] | None:
        stmt = (
            select(Application, Company)
            .join(Company, Application.company_id == Company.id)
            .where(Application.api_key == api_key, Application.is_active.is_(True))
            .limit(1)
        )
        try:
            result = await self.session.execute(stmt)
        except OperationalError as exc:
            raise UpstreamUnavailable(f"api key lookup failed: {exc.orig}") from exc
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]
