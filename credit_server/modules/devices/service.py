"""Domain service for the device registry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from credit_server.db.models import generate_uuid
from credit_server.infrastructure.database.repositories.device_repository import SqlDeviceRepository

from .exceptions import DeviceNotFoundError
from .models import Device, DeviceType
from .repository import DeviceRepository


@dataclass(slots=True)
class DeviceService:
    repository: DeviceRepository

    @classmethod
    def with_session(cls, session: AsyncSession) -> "DeviceService":
        return cls(SqlDeviceRepository(session))

    async def register_device(
        self,
        *,
        company_id: str,
        device_type: DeviceType = DeviceType.SEQUESTER,
        device_id: Optional[str] = None,
        application_id: Optional[str] = None,
        name: Optional[str] = None,
        location: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Device:
        model = await self.repository.create_device(
            device_id=device_id or generate_uuid(),
            company_id=company_id,
            device_type=device_type.value,
            application_id=application_id,
            name=name,
            location=location,
            created_at=created_at,
        )
        return Device.from_orm(model)

    async def get_device(self, device_id: str) -> Device | None:
        model = await self.repository.get_by_id(device_id)
        return Device.from_orm(model) if model else None

    async def require_device(self, device_id: str) -> Device:
        device = await self.get_device(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    async def list_credit_generators(self) -> list[Device]:
        """Active SEQUESTER devices, oldest first."""
        models = await self.repository.list_active(DeviceType.SEQUESTER.value)
        return [Device.from_orm(model) for model in models]

    async def mark_seen(self, device_id: str, seen_at: datetime) -> None:
        if not await self.repository.touch(device_id, seen_at):
            raise DeviceNotFoundError(device_id)
