"""SQLAlchemy-backed repository implementations."""

from .accrual_repository import SqlAccrualRepository
from .balance_repository import SqlBalanceRepository
from .company_repository import SqlCompanyRepository
from .device_repository import SqlDeviceRepository
from .sale_repository import SqlSaleRepository
from .transaction_repository import SqlTransactionRepository
from .wallet_repository import SqlWalletRepository

__all__ = [
    "SqlAccrualRepository",
    "SqlBalanceRepository",
    "SqlCompanyRepository",
    "SqlDeviceRepository",
    "SqlSaleRepository",
    "SqlTransactionRepository",
    "SqlWalletRepository",
]
