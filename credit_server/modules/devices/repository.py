"""Repository protocol for device persistence operations."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence

from credit_server.db.models import Device as DeviceModel


class DeviceRepository(Protocol):
    async def get_by_id(self, device_id: str) -> DeviceModel | None:
        ...

    async def list_active(self, device_type: str | None) -> Sequence[DeviceModel]:
        ...

    async def create_device(
        self,
        *,
        device_id: str,
        company_id: str,
        device_type: str,
        application_id: str | None,
        name: str | None,
        location: str | None,
        created_at: datetime | None,
    ) -> DeviceModel:
        ...

    async def touch(self, device_id: str, seen_at: datetime) -> bool:
        ...
