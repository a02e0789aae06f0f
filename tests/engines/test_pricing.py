"""
Tests for the Pricing Policy (venue_engines.pricing).

First hour billed in full per individual; every started hour after that
at hour_3_plus_price, capped in aggregate at max_additional_charge.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from venue_engines.pricing import SessionPricing, time_cost
from venue_kernel.exceptions import InvalidArgumentError

prices = st.decimals(min_value=0, max_value=1000, places=2, allow_nan=False, allow_infinity=False)


@st.composite
def pricings(draw):
    return SessionPricing(
        hour_1_price=draw(prices),
        hour_2_price=draw(prices),
        hour_3_plus_price=draw(prices),
        max_additional_charge=draw(prices),
    )


class TestSessionPricing:
    """SessionPricing value object."""

    def test_negative_tier_rejected(self):
        with pytest.raises(ValueError, match="hour_1_price"):
            SessionPricing(
                hour_1_price=Decimal("-1"),
                hour_2_price=Decimal("30"),
                hour_3_plus_price=Decimal("30"),
                max_additional_charge=Decimal("100"),
            )

    def test_negative_cap_rejected(self):
        with pytest.raises(ValueError, match="max_additional_charge"):
            SessionPricing(
                hour_1_price=Decimal("40"),
                hour_2_price=Decimal("30"),
                hour_3_plus_price=Decimal("30"),
                max_additional_charge=Decimal("-0.01"),
            )

    def test_float_tier_rejected(self):
        with pytest.raises(TypeError):
            SessionPricing(
                hour_1_price=40.0,
                hour_2_price=Decimal("30"),
                hour_3_plus_price=Decimal("30"),
                max_additional_charge=Decimal("100"),
            )

    def test_from_mapping_accepts_strings(self):
        pricing = SessionPricing.from_mapping({
            "hour_1_price": "40",
            "hour_2_price": "30",
            "hour_3_plus_price": "30",
            "max_additional_charge": "100",
        })
        assert pricing.hour_1_price == Decimal("40")
        assert pricing.to_dict()["max_additional_charge"] == "100"


class TestTimeCost:
    """Worked examples of the formula."""

    def test_reference_example(self, pricing):
        # 2 people, 1h 1m 1s: 2x40 base + min(2x1x30, 100)
        assert time_cost(2, 3661, pricing) == Decimal("140.00")

    def test_zero_elapsed_is_free(self, pricing):
        assert time_cost(3, 0, pricing) == Decimal("0")

    def test_zero_individuals_is_free(self, pricing):
        assert time_cost(0, 7200, pricing) == Decimal("0")

    def test_first_second_bills_first_hour(self, pricing):
        assert time_cost(1, 1, pricing) == Decimal("40.00")

    def test_exactly_one_hour(self, pricing):
        assert time_cost(4, 3600, pricing) == Decimal("160.00")

    def test_exactly_two_hours(self, pricing):
        assert time_cost(1, 7200, pricing) == Decimal("70.00")

    def test_started_hour_counts_in_full(self, pricing):
        # 2h 0m 1s: two additional started hours
        assert time_cost(1, 7201, pricing) == Decimal("100.00")

    def test_cap_is_aggregate_not_per_person(self, pricing):
        # 3 people, 3 additional hours: 3x3x30 = 270, capped to 100 in total
        assert time_cost(3, 4 * 3600, pricing) == Decimal("220.00")

    def test_hour_2_price_not_consulted(self):
        base = dict(
            hour_1_price=Decimal("40"),
            hour_3_plus_price=Decimal("30"),
            max_additional_charge=Decimal("500"),
        )
        cheap = SessionPricing(hour_2_price=Decimal("1"), **base)
        dear = SessionPricing(hour_2_price=Decimal("999"), **base)
        assert time_cost(2, 9000, cheap) == time_cost(2, 9000, dear)

    def test_decimal_elapsed_accepted(self, pricing):
        assert time_cost(1, Decimal("3600.5"), pricing) == Decimal("70.00")

    def test_negative_count_rejected(self, pricing):
        with pytest.raises(InvalidArgumentError) as exc_info:
            time_cost(-1, 60, pricing)
        assert exc_info.value.argument == "individual_count"

    def test_negative_elapsed_rejected(self, pricing):
        with pytest.raises(InvalidArgumentError) as exc_info:
            time_cost(1, -1, pricing)
        assert exc_info.value.argument == "elapsed_seconds"

    def test_float_elapsed_accepted(self, pricing):
        # monotonic clocks report float seconds
        assert time_cost(2, 1800.5, pricing) == Decimal("80.00")
        assert time_cost(1, 3600.25, pricing) == Decimal("70.00")

    @pytest.mark.parametrize("elapsed", [float("nan"), float("inf"), "NaN", -0.5])
    def test_non_finite_or_negative_float_elapsed_rejected(self, pricing, elapsed):
        with pytest.raises(InvalidArgumentError) as exc_info:
            time_cost(1, elapsed, pricing)
        assert exc_info.value.argument == "elapsed_seconds"

    def test_bool_count_rejected(self, pricing):
        with pytest.raises(InvalidArgumentError):
            time_cost(True, 60, pricing)

    def test_emits_engine_trace(self, pricing, captured_logs):
        time_cost(2, 3661, pricing)
        traces = [r for r in captured_logs() if r["message"] == "VENUE_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "pricing"
        assert len(traces[-1]["input_fingerprint"]) == 16


class TestTimeCostProperties:
    """Properties that hold for every tier set."""

    @given(pricing=pricings(), count=st.integers(min_value=0, max_value=50))
    @settings(max_examples=100, deadline=None)
    def test_zero_elapsed_is_always_zero(self, pricing, count):
        assert time_cost(count, 0, pricing) == 0

    @given(
        pricing=pricings(),
        count=st.integers(min_value=1, max_value=50),
        seconds=st.integers(min_value=1, max_value=3600),
    )
    @settings(max_examples=100, deadline=None)
    def test_within_first_hour_is_base_price(self, pricing, count, seconds):
        assert time_cost(count, seconds, pricing) == count * pricing.hour_1_price

    @given(
        pricing=pricings(),
        count=st.integers(min_value=0, max_value=50),
        seconds=st.integers(min_value=0, max_value=48 * 3600),
    )
    @settings(max_examples=200, deadline=None)
    def test_never_negative_and_bounded_by_cap(self, pricing, count, seconds):
        cost = time_cost(count, seconds, pricing)
        assert cost >= 0
        if count:
            assert cost <= count * pricing.hour_1_price + pricing.max_additional_charge

    @given(
        pricing=pricings(),
        count=st.integers(min_value=1, max_value=20),
        seconds=st.integers(min_value=0, max_value=24 * 3600),
        extra=st.integers(min_value=0, max_value=24 * 3600),
    )
    @settings(max_examples=200, deadline=None)
    def test_monotonic_in_elapsed_time(self, pricing, count, seconds, extra):
        assert time_cost(count, seconds, pricing) <= time_cost(count, seconds + extra, pricing)
