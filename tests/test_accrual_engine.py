"""Credit accrual over telemetry windows."""
from datetime import timedelta
from decimal import Decimal

import pytest

from credit_server.core.config import CreditPolicySettings
from credit_server.core.exceptions import UpstreamUnavailable, ValidationError
from credit_server.modules.accrual import (
    INSUFFICIENT_DATA,
    NO_REDUCTION,
    ClimateAccrualPolicy,
    CreditAccrualEngine,
    LinearAccrualPolicy,
    WindowTotals,
    build_policy,
)

from .conftest import NOW

DEVICE = "sequester-001"


def _fill_last_day(store, device_id=DEVICE):
    # 五个读数：CO2 合计 500，节能合计 300
    for hours_ago, co2, energy in [(23, 100, 60), (18, 100, 60), (12, 100, 60), (6, 100, 60), (1, 100, 60)]:
        store.add(device_id, NOW - timedelta(hours=hours_ago), co2, energy)


class TestLinearAccrualPolicy:
    def test_sums_both_contributions(self):
        policy = LinearAccrualPolicy()
        assert policy.credits_for(WindowTotals(Decimal("500"), Decimal("300"))) == Decimal("5")

    def test_negative_totals_contribute_nothing(self):
        policy = LinearAccrualPolicy()
        assert policy.credits_for(WindowTotals(Decimal("-1000"), Decimal("100"))) == Decimal("1")
        assert policy.credits_for(WindowTotals(Decimal("-1"), Decimal("-1"))) == Decimal("0")

    def test_caps_per_window(self):
        policy = LinearAccrualPolicy(max_credits_per_window=Decimal("10"))
        assert policy.credits_for(WindowTotals(Decimal("250000"), Decimal("0"))) == Decimal("10")

    def test_truncates_to_six_places(self):
        policy = LinearAccrualPolicy(co2_per_credit=Decimal("3"))
        assert policy.credits_for(WindowTotals(Decimal("1"), Decimal("0"))) == Decimal("0.333333")

    def test_rejects_non_positive_divisor(self):
        with pytest.raises(ValueError):
            LinearAccrualPolicy(co2_per_credit=Decimal("0"))


class TestClimateAccrualPolicy:
    def test_floors_each_term(self):
        policy = ClimateAccrualPolicy()
        totals = WindowTotals(
            co2_reduced=Decimal("2999"),
            energy_saved=Decimal("150"),
            temperature=Decimal("25"),
            humidity=Decimal("39"),
            samples=10,
        )
        # 2 (CO2) + 1 (能耗) + 2 (温度) + 1 (湿度)
        assert policy.credits_for(totals) == Decimal("6")

    def test_below_threshold_earns_nothing(self):
        policy = ClimateAccrualPolicy()
        assert policy.credits_for(WindowTotals(Decimal("999"), Decimal("99"), samples=10)) == 0

    def test_requires_min_samples(self):
        policy = ClimateAccrualPolicy()
        assert policy.credits_for(WindowTotals(Decimal("5000"), samples=9)) == 0
        assert policy.credits_for(WindowTotals(Decimal("5000"), samples=10)) == Decimal("5")

    def test_negative_climate_sums_count_as_zero(self):
        policy = ClimateAccrualPolicy()
        totals = WindowTotals(Decimal("1000"), temperature=Decimal("-80"), humidity=Decimal("-40"), samples=10)
        assert policy.credits_for(totals) == Decimal("1")

    def test_caps_per_window(self):
        policy = ClimateAccrualPolicy(max_credits_per_window=Decimal("3"))
        assert policy.credits_for(WindowTotals(Decimal("10000"), samples=10)) == Decimal("3")

    def test_rejects_invalid_parameters(self):
        with pytest.raises(ValueError):
            ClimateAccrualPolicy(co2_threshold=Decimal("0"))
        with pytest.raises(ValueError):
            ClimateAccrualPolicy(humidity_multiplier=Decimal("-0.1"))


class TestBuildPolicy:
    def test_linear_by_default(self):
        policy = build_policy(CreditPolicySettings())
        assert isinstance(policy, LinearAccrualPolicy)
        assert policy.min_samples == 1

    def test_climate_formula(self):
        policy = build_policy(CreditPolicySettings(formula="climate", co2_threshold=Decimal("500")))
        assert isinstance(policy, ClimateAccrualPolicy)
        assert policy.co2_threshold == Decimal("500")
        assert policy.energy_threshold == Decimal("100")
        assert policy.min_samples == 10


class TestComputeCredits:
    async def test_last_day_scenario(self, store, accrual_engine):
        _fill_last_day(store)

        result = await accrual_engine.compute_credits(DEVICE, NOW - timedelta(days=1), NOW)

        assert result.credits_earned == Decimal("5")
        assert result.co2_reduced == Decimal("500")
        assert result.energy_saved == Decimal("300")
        assert result.samples_used == 5
        assert result.reason is None
        assert result.has_credit

    async def test_same_window_same_result(self, store, accrual_engine):
        _fill_last_day(store)
        start, end = NOW - timedelta(days=1), NOW

        first = await accrual_engine.compute_credits(DEVICE, start, end)
        second = await accrual_engine.compute_credits(DEVICE, start, end)

        assert first == second
        assert store.query_count == 2

    async def test_empty_window_reports_insufficient_data(self, accrual_engine):
        result = await accrual_engine.compute_credits(DEVICE, NOW - timedelta(days=1), NOW)

        assert result.credits_earned == 0
        assert result.samples_used == 0
        assert result.reason == INSUFFICIENT_DATA
        assert not result.has_credit

    async def test_min_samples_threshold(self, store):
        engine = CreditAccrualEngine(store, min_samples=3)
        store.add(DEVICE, NOW - timedelta(hours=2), 250, 0)
        store.add(DEVICE, NOW - timedelta(hours=1), 250, 0)

        result = await engine.compute_credits(DEVICE, NOW - timedelta(days=1), NOW)

        assert result.reason == INSUFFICIENT_DATA
        assert result.samples_used == 2

    async def test_climate_policy_reads_temperature_and_humidity(self, store):
        engine = CreditAccrualEngine(store, ClimateAccrualPolicy())
        for minutes in range(10):
            store.add(DEVICE, NOW - timedelta(minutes=5 * minutes + 1), 150, 12, temperature=2.5, humidity=4)

        result = await engine.compute_credits(DEVICE, NOW - timedelta(days=1), NOW)

        # CO2 1500 -> 1, 能耗 120 -> 1, 温度 25 * 0.1 -> 2, 湿度 40 * 0.05 -> 2
        assert result.credits_earned == Decimal("6")
        assert result.co2_reduced == Decimal("1500")
        assert result.samples_used == 10

    async def test_policy_min_samples_applies(self, store):
        engine = CreditAccrualEngine(store, ClimateAccrualPolicy())
        for minutes in range(9):
            store.add(DEVICE, NOW - timedelta(minutes=minutes + 1), 5000, 0)

        result = await engine.compute_credits(DEVICE, NOW - timedelta(days=1), NOW)

        assert result.reason == INSUFFICIENT_DATA
        assert result.samples_used == 9

    async def test_samples_without_reduction(self, store, accrual_engine):
        store.add(DEVICE, NOW - timedelta(hours=2), -40, 0)

        result = await accrual_engine.compute_credits(DEVICE, NOW - timedelta(days=1), NOW)

        assert result.credits_earned == 0
        assert result.samples_used == 1
        assert result.reason == NO_REDUCTION

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(hours=1)])
    async def test_rejects_empty_or_inverted_window(self, accrual_engine, offset):
        with pytest.raises(ValidationError):
            await accrual_engine.compute_credits(DEVICE, NOW + offset, NOW)

    async def test_window_is_half_open(self, store, accrual_engine):
        start, end = NOW - timedelta(hours=4), NOW
        store.add(DEVICE, start, 250, 0)
        store.add(DEVICE, end, 2500, 0)

        result = await accrual_engine.compute_credits(DEVICE, start, end)

        assert result.samples_used == 1
        assert result.credits_earned == Decimal("1")

    async def test_ignores_other_devices(self, store, accrual_engine):
        store.add("other-device", NOW - timedelta(hours=1), 2500, 0)

        result = await accrual_engine.compute_credits(DEVICE, NOW - timedelta(days=1), NOW)

        assert result.reason == INSUFFICIENT_DATA

    async def test_naive_bounds_are_treated_as_utc(self, store, accrual_engine):
        _fill_last_day(store)
        start = (NOW - timedelta(days=1)).replace(tzinfo=None)
        end = NOW.replace(tzinfo=None)

        result = await accrual_engine.compute_credits(DEVICE, start, end)

        assert result.credits_earned == Decimal("5")
        assert result.window_end == NOW

    async def test_store_failure_is_not_zero_credit(self, store, accrual_engine):
        store.failing_devices.add(DEVICE)

        with pytest.raises(UpstreamUnavailable):
            await accrual_engine.compute_credits(DEVICE, NOW - timedelta(days=1), NOW)
