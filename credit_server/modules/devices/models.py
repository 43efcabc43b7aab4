"""Device domain models."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from credit_server.core.clock import as_utc
from credit_server.db import models as orm


class DeviceType(str, enum.Enum):
    SEQUESTER = "SEQUESTER"  # generates credits
    EMITTER = "EMITTER"  # consumes / offsets credits


@dataclass(slots=True)
class Device:
    id: str
    company_id: str
    device_type: DeviceType
    is_active: bool
    created_at: Optional[datetime]
    application_id: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    last_seen_at: Optional[datetime] = None

    @property
    def generates_credits(self) -> bool:
        return self.device_type is DeviceType.SEQUESTER

    @classmethod
    def from_orm(cls, instance: orm.Device) -> "Device":
        return cls(
            id=str(instance.id),
            company_id=instance.company_id,
            device_type=DeviceType(instance.device_type),
            is_active=bool(instance.is_active),
            created_at=as_utc(instance.created_at),
            application_id=instance.application_id,
            name=instance.name,
            location=instance.location,
            last_seen_at=as_utc(instance.last_seen_at),
        )
