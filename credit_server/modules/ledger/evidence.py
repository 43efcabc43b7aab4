"""Typed evidence attached to ledger transactions.

Every producer of a transaction has its own variant, tagged by ``kind``, so readers
can match on the variant instead of probing an open JSON bag.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Evidence(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class AccrualEvidence(_Evidence):
    """Produced by the credit processor for one accrued window."""

    kind: Literal["accrual"] = "accrual"
    window_start: datetime
    window_end: datetime
    co2_reduced: Decimal
    energy_saved: Decimal
    samples_used: int
    policy: Optional[str] = None


class ManualMintEvidence(_Evidence):
    """Produced by an explicit mint request."""

    kind: Literal["manual_mint"] = "manual_mint"
    data_hash: Optional[str] = None
    requested_by: Optional[str] = None
    note: Optional[str] = None


class BurnEvidence(_Evidence):
    kind: Literal["burn"] = "burn"
    reason: Optional[str] = None
    requested_by: Optional[str] = None


ProducerEvidence = Annotated[
    Union[AccrualEvidence, ManualMintEvidence, BurnEvidence],
    Field(discriminator="kind"),
]


class ExternalErrorEvidence(_Evidence):
    """Attached when a transaction fails; keeps what the producer recorded."""

    kind: Literal["external_error"] = "external_error"
    source: str
    detail: str
    original: Optional[ProducerEvidence] = None


Evidence = Annotated[
    Union[AccrualEvidence, ManualMintEvidence, BurnEvidence, ExternalErrorEvidence],
    Field(discriminator="kind"),
]

_EVIDENCE_ADAPTER: TypeAdapter[Evidence] = TypeAdapter(Evidence)


def parse_evidence(raw: Any) -> Optional[Evidence]:
    if raw is None:
        return None
    return _EVIDENCE_ADAPTER.validate_python(raw)


def dump_evidence(evidence: Optional[Evidence]) -> Optional[dict[str, Any]]:
    if evidence is None:
        return None
    return evidence.model_dump(mode="json")


def accrual_window_end(evidence: Optional[Evidence]) -> Optional[datetime]:
    """Window end recorded by accrual evidence, looking through failure wrappers."""
    if isinstance(evidence, ExternalErrorEvidence):
        evidence = evidence.original
    if isinstance(evidence, AccrualEvidence):
        return evidence.window_end
    return None


__all__ = [
    "AccrualEvidence",
    "BurnEvidence",
    "Evidence",
    "ExternalErrorEvidence",
    "ManualMintEvidence",
    "ProducerEvidence",
    "accrual_window_end",
    "dump_evidence",
    "parse_evidence",
]
