"""Company and application domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from credit_server.core.clock import as_utc
from credit_server.db import models as orm


@dataclass(slots=True)
class Company:
    id: str
    name: str
    wallet_address: Optional[str]
    location: Optional[str] = None
    website: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_orm(cls, instance: orm.Company) -> "Company":
        return cls(
            id=instance.id,
            name=instance.name,
            wallet_address=instance.wallet_address,
            location=instance.location,
            website=instance.website,
            created_at=as_utc(instance.created_at),
        )


@dataclass(slots=True)
class Application:
    id: str
    company_id: str
    name: str
    api_key: str
    is_active: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_orm(cls, instance: orm.Application) -> "Application":
        return cls(
            id=instance.id,
            company_id=instance.company_id,
            name=instance.name,
            api_key=instance.api_key,
            is_active=bool(instance.is_active),
            created_at=as_utc(instance.created_at),
        )
