"""Credit accrual: telemetry windows to credits."""

from .engine import CreditAccrualEngine
from .models import INSUFFICIENT_DATA, NO_REDUCTION, AccrualResult
from .policy import AccrualPolicy, ClimateAccrualPolicy, LinearAccrualPolicy, WindowTotals, build_policy

__all__ = [
    "AccrualPolicy",
    "AccrualResult",
    "ClimateAccrualPolicy",
    "CreditAccrualEngine",
    "INSUFFICIENT_DATA",
    "LinearAccrualPolicy",
    "NO_REDUCTION",
    "WindowTotals",
    "build_policy",
]
