"""SQLAlchemy powered repository for device persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.db.models import Device as DeviceModel


class SqlDeviceRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, device_id: str) -> DeviceModel | None:
        stmt = select(DeviceModel).where(DeviceModel.id == device_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(self, device_type: Optional[str]) -> Sequence[DeviceModel]:
        stmt = select(DeviceModel).where(DeviceModel.is_active.is_(True))
        if device_type:
            stmt = stmt.where(DeviceModel.device_type == device_type)
        stmt = stmt.order_by(DeviceModel.created_at.asc(), DeviceModel.id.asc())
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def create_device(
        self,
        *,
        device_id: str,
        company_id: str,
        device_type: str,
        application_id: Optional[str],
        name: Optional[str],
        location: Optional[str],
        created_at: Optional[datetime],
    ) -> DeviceModel:
        model = DeviceModel(
            id=device_id,
            company_id=company_id,
            device_type=device_type,
            application_id=application_id,
            name=name,
            location=location,
        )
        if created_at is not None:
            model.created_at = created_at
        self._session.add(model)
        await self._session.flush()
        await self._session.refresh(model)
        return model

    async def touch(self, device_id: str, seen_at: datetime) -> bool:
        stmt = (
            update(DeviceModel)
            .where(DeviceModel.id == device_id)
            .values(last_seen_at=seen_at)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0
