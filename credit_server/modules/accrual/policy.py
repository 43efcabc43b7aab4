"""Formulas mapping measured impact to credits."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_FLOOR, Decimal
from typing import Optional, Protocol

from credit_server.core.config import CreditPolicySettings

CREDIT_QUANTUM = Decimal("0.000001")


@dataclass(slots=True, frozen=True)
class WindowTotals:
    """Field sums over one telemetry window."""

    co2_reduced: Decimal = Decimal(0)
    energy_saved: Decimal = Decimal(0)
    temperature: Decimal = Decimal(0)
    humidity: Decimal = Decimal(0)
    samples: int = 0


class AccrualPolicy(Protocol):
    min_samples: int

    def credits_for(self, totals: WindowTotals) -> Decimal:
        """Must be deterministic and monotone in every total."""
        ...


def _cap(credits: Decimal, limit: Optional[Decimal]) -> Decimal:
    if limit is not None:
        credits = min(credits, limit)
    return credits.quantize(CREDIT_QUANTUM, rounding=ROUND_DOWN)


@dataclass(slots=True, frozen=True)
class LinearAccrualPolicy:
    """One credit per ``co2_per_credit`` CO2 reduced plus one per ``energy_per_credit`` energy saved.

    Negative totals contribute nothing, the sum is capped per window and truncated to
    six decimal places so repeated evaluation never drifts.
    """

    co2_per_credit: Decimal = Decimal("250")
    energy_per_credit: Decimal = Decimal("100")
    max_credits_per_window: Optional[Decimal] = Decimal("100")
    min_samples: int = 1

    def __post_init__(self) -> None:
        if self.co2_per_credit <= 0 or self.energy_per_credit <= 0:
            raise ValueError("credit divisors must be positive")

    @classmethod
    def from_settings(cls, settings: CreditPolicySettings) -> "LinearAccrualPolicy":
        return cls(
            co2_per_credit=settings.co2_per_credit,
            energy_per_credit=settings.energy_per_credit,
            max_credits_per_window=settings.max_credits_per_window,
            min_samples=settings.min_samples,
        )

    def credits_for(self, totals: WindowTotals) -> Decimal:
        co2_part = max(totals.co2_reduced, Decimal(0)) / self.co2_per_credit
        energy_part = max(totals.energy_saved, Decimal(0)) / self.energy_per_credit
        return _cap(co2_part + energy_part, self.max_credits_per_window)


@dataclass(slots=True, frozen=True)
class ClimateAccrualPolicy:
    """Whole credits per threshold crossed, plus temperature and humidity terms.

    Each term is floored to whole credits separately, so 999 CO2 earns nothing. The
    climate terms are the window sums times their multiplier; negative sums count as
    zero. Windows with fewer than ``min_samples`` readings earn nothing.
    """

    co2_threshold: Decimal = Decimal("1000")
    energy_threshold: Decimal = Decimal("100")
    temperature_multiplier: Decimal = Decimal("0.1")
    humidity_multiplier: Decimal = Decimal("0.05")
    max_credits_per_window: Optional[Decimal] = Decimal("100")
    min_samples: int = 10

    def __post_init__(self) -> None:
        if self.co2_threshold <= 0 or self.energy_threshold <= 0:
            raise ValueError("credit thresholds must be positive")
        if self.temperature_multiplier < 0 or self.humidity_multiplier < 0:
            raise ValueError("climate multipliers must not be negative")

    @classmethod
    def from_settings(cls, settings: CreditPolicySettings) -> "ClimateAccrualPolicy":
        return cls(
            co2_threshold=settings.co2_threshold,
            energy_threshold=settings.energy_per_credit,
            temperature_multiplier=settings.temperature_multiplier,
            humidity_multiplier=settings.humidity_multiplier,
            max_credits_per_window=settings.max_credits_per_window,
            min_samples=max(settings.min_samples, settings.climate_min_samples),
        )

    def credits_for(self, totals: WindowTotals) -> Decimal:
        if totals.samples < self.min_samples:
            return Decimal(0)
        terms = (
            totals.co2_reduced / self.co2_threshold,
            totals.energy_saved / self.energy_threshold,
            totals.temperature * self.temperature_multiplier,
            totals.humidity * self.humidity_multiplier,
        )
        credits = sum((max(term, Decimal(0)).to_integral_value(rounding=ROUND_FLOOR) for term in terms), Decimal(0))
        return _cap(credits, self.max_credits_per_window)


def build_policy(settings: CreditPolicySettings) -> AccrualPolicy:
    if settings.formula == "climate":
        return ClimateAccrualPolicy.from_settings(settings)
    return LinearAccrualPolicy.from_settings(settings)
