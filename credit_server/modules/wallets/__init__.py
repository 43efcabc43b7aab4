"""Wallet resolution exports"""

from .models import WalletResolution
from .service import WalletResolver

__all__ = [
    "WalletResolution",
    "WalletResolver",
]
