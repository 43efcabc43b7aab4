"""功能模块聚合与公共导出。"""

from . import accrual, companies, devices, ledger, marketplace, processing, telemetry, wallets

__all__ = [
    "accrual",
    "companies",
    "devices",
    "ledger",
    "marketplace",
    "processing",
    "telemetry",
    "wallets",
]
