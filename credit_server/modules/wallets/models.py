"""Domain models for wallet resolution."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional


@dataclass(slots=True, frozen=True)
class WalletResolution:
    """Owner of an API key; a projection used only to attribute telemetry."""

    company_id: str
    wallet_address: Optional[str]
    application_id: str
    application_name: Optional[str] = None
    company_name: Optional[str] = None
    cached: bool = False

    def to_cache(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("cached")
        return payload

    @classmethod
    def from_cache(cls, payload: dict[str, Any]) -> "WalletResolution":
        return cls(**payload, cached=True)
