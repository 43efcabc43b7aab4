"""Scheduled credit processing."""

from .models import TOO_SOON, DeviceOutcome, OutcomeStatus, ProcessingReport
from .processor import CreditProcessor
from .scheduler import CreditScheduler

__all__ = [
    "CreditProcessor",
    "CreditScheduler",
    "DeviceOutcome",
    "OutcomeStatus",
    "ProcessingReport",
    "TOO_SOON",
]
