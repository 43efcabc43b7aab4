"""Transaction ledger and company balances."""

from .evidence import AccrualEvidence, BurnEvidence, Evidence, ExternalErrorEvidence, ManualMintEvidence
from .exceptions import TransactionNotFoundError
from .models import (
    AccrualRecord,
    BalanceView,
    CreditTransaction,
    MintingStatus,
    TransactionListing,
    TransactionStatus,
    TransactionType,
    Watermark,
    WatermarkSource,
)
from .service import CONFIRMATION_TIMEOUT, CreditLedgerService

__all__ = [
    "AccrualEvidence",
    "AccrualRecord",
    "BalanceView",
    "BurnEvidence",
    "CONFIRMATION_TIMEOUT",
    "CreditLedgerService",
    "CreditTransaction",
    "Evidence",
    "ExternalErrorEvidence",
    "ManualMintEvidence",
    "MintingStatus",
    "TransactionListing",
    "TransactionNotFoundError",
    "TransactionStatus",
    "TransactionType",
    "Watermark",
    "WatermarkSource",
]
