"""Tests for BarrierValuation dispatch, contract validation and engine parameters."""

import datetime as dt

import pytest

from barrier_analytics.enums import (
    BarrierType,
    DigitalPayoff,
    ExerciseType,
    OptionType,
    PDEMethod,
    PricingMethod,
    TouchType,
)
from barrier_analytics.exceptions import (
    BarrierAnalyticsError,
    ConfigurationError,
    UnsupportedFeatureError,
)
from barrier_analytics.tests.helpers import PRICING_DATE, build_market, years_after
from barrier_analytics.valuation import (
    AutocallSpec,
    BarrierSchedule,
    BarrierValuation,
    BinaryBarrierSpec,
    DigitalSpec,
    MonteCarloParams,
    PDEParams,
    TouchOptionSpec,
)


def _digital_spec(**overrides):
    terms = dict(
        option_type=OptionType.CALL,
        payoff=DigitalPayoff.CASH_OR_NOTHING,
        strike=100.0,
        maturity=years_after(1.0),
        cash_payoff=1.0,
    )
    terms.update(overrides)
    return DigitalSpec(**terms)


def _touch_spec():
    return TouchOptionSpec(
        touch_type=TouchType.ONE_TOUCH_UP,
        maturity=years_after(0.5),
        barrier_high=110.0,
        rebate_high=1.0,
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    def test_unsupported_method(self):
        with pytest.raises(UnsupportedFeatureError, match="does not support MONTE_CARLO"):
            BarrierValuation(
                "t", build_market(), _touch_spec(), PricingMethod.MONTE_CARLO,
                MonteCarloParams(time_steps=10, required_samples=100),
            )

    def test_currency_mismatch(self):
        with pytest.raises(UnsupportedFeatureError, match="Cross-currency"):
            BarrierValuation(
                "d", build_market(), _digital_spec(currency="EUR"), PricingMethod.ANALYTIC
            )

    def test_touch_requires_american_exercise(self):
        spec = TouchOptionSpec(
            touch_type=TouchType.ONE_TOUCH_UP,
            maturity=years_after(0.5),
            barrier_high=110.0,
            rebate_high=1.0,
            exercise_type=ExerciseType.EUROPEAN,
        )
        with pytest.raises(ConfigurationError, match="requires AMERICAN exercise"):
            BarrierValuation("t", build_market(), spec, PricingMethod.PDE_FD)

    def test_maturity_must_follow_pricing_date(self):
        with pytest.raises(ConfigurationError, match="maturity must be after pricing_date"):
            BarrierValuation(
                "d", build_market(), _digital_spec(maturity=PRICING_DATE), PricingMethod.ANALYTIC
            )

    def test_analytic_rejects_params(self):
        with pytest.raises(ConfigurationError, match="does not accept"):
            BarrierValuation(
                "d", build_market(), _digital_spec(), PricingMethod.ANALYTIC, PDEParams()
            )

    def test_wrong_params_type(self):
        with pytest.raises(ConfigurationError, match="expected PDEParams"):
            BarrierValuation(
                "t", build_market(), _touch_spec(), PricingMethod.PDE_FD,
                MonteCarloParams(time_steps=10, required_samples=100),
            )

    def test_pricing_method_must_be_enum(self):
        with pytest.raises(ConfigurationError, match="PricingMethod"):
            BarrierValuation("d", build_market(), _digital_spec(), "analytic")

    def test_market_must_be_market_state(self):
        with pytest.raises(ConfigurationError, match="MarketState"):
            BarrierValuation("d", object(), _digital_spec(), PricingMethod.ANALYTIC)

    def test_result_is_cached(self):
        valuation = BarrierValuation("d", build_market(), _digital_spec(), PricingMethod.ANALYTIC)
        assert valuation.calculate() is valuation.calculate()
        assert valuation.present_value() == valuation.calculate().value

    def test_time_to_maturity(self):
        valuation = BarrierValuation("d", build_market(), _digital_spec(), PricingMethod.ANALYTIC)
        assert valuation.time_to_maturity == pytest.approx(1.0)

    def test_errors_share_a_base_class(self):
        with pytest.raises(BarrierAnalyticsError):
            BarrierValuation(
                "d", build_market(), _digital_spec(currency="EUR"), PricingMethod.ANALYTIC
            )


# ---------------------------------------------------------------------------
# Contract terms
# ---------------------------------------------------------------------------


class TestContractTerms:
    def test_schedule_accepts_dates(self):
        schedule = BarrierSchedule((years_after(0.5), years_after(1.0)))
        assert len(schedule) == 2
        assert list(schedule.times(build_market())) == pytest.approx([0.5, 1.0])

    def test_schedule_needs_dates(self):
        with pytest.raises(ConfigurationError, match="at least one date"):
            BarrierSchedule(())

    def test_schedule_rejects_plain_dates(self):
        with pytest.raises(ConfigurationError, match="datetimes"):
            BarrierSchedule((dt.date(2025, 6, 1),))

    def test_autocall_needs_positive_barriers(self):
        with pytest.raises(ConfigurationError, match="ko_barrier must be positive"):
            AutocallSpec(
                fixing_dates=[years_after(1.0)],
                ki_barrier=80.0,
                ko_barrier=0.0,
                strike=100.0,
                rebate=0.05,
                coupon=0.05,
                margin=1.0,
                maturity=years_after(1.0),
            )

    def test_cash_digital_needs_amount(self):
        with pytest.raises(ConfigurationError, match="cash_payoff must be provided"):
            _digital_spec(cash_payoff=None)

    def test_asset_digital_needs_no_amount(self):
        spec = _digital_spec(payoff=DigitalPayoff.ASSET_OR_NOTHING, cash_payoff=None)
        assert spec.cash_payoff is None

    def test_enum_fields_are_checked(self):
        with pytest.raises(ConfigurationError, match="barrier_type must be BarrierType"):
            BinaryBarrierSpec(
                barrier_type="down_in",
                barrier=90.0,
                strike=100.0,
                option_type=OptionType.CALL,
                payoff=DigitalPayoff.CASH_OR_NOTHING,
                maturity=years_after(1.0),
                rebate=0.0,
                cash_payoff=1.0,
            )

    def test_binary_barrier_rebate_is_required(self):
        terms = dict(
            barrier_type=BarrierType.DOWN_OUT,
            barrier=90.0,
            strike=100.0,
            option_type=OptionType.CALL,
            payoff=DigitalPayoff.CASH_OR_NOTHING,
            maturity=years_after(1.0),
            cash_payoff=1.0,
        )
        with pytest.raises(TypeError, match="rebate"):
            BinaryBarrierSpec(**terms)
        with pytest.raises(ConfigurationError, match="rebate must be provided"):
            BinaryBarrierSpec(rebate=None, **terms)

    def test_touch_scalar_levels_become_tuples(self):
        spec = _touch_spec()
        assert spec.barrier_high == (110.0,)
        assert spec.rebate_high == (1.0,)
        assert spec.barrier_low == ()

    def test_touch_barriers_must_be_ordered(self):
        with pytest.raises(ConfigurationError, match="below barrier_high"):
            TouchOptionSpec(
                touch_type=TouchType.DOUBLE_ONE_TOUCH,
                maturity=years_after(1.0),
                barrier_high=90.0,
                barrier_low=110.0,
                rebate_high=1.0,
                rebate_low=1.0,
            )

    def test_touch_discrete_levels_must_match_dates(self):
        with pytest.raises(ConfigurationError, match="one entry per observation date"):
            TouchOptionSpec(
                touch_type=TouchType.ONE_TOUCH_DOWN,
                maturity=years_after(1.0),
                barrier_low=[90.0, 95.0, 99.0],
                rebate_low=1.0,
                observation_dates=[years_after(0.5), years_after(1.0)],
            )

    def test_touch_several_levels_need_dates(self):
        with pytest.raises(ConfigurationError, match="need observation_dates"):
            TouchOptionSpec(
                touch_type=TouchType.ONE_TOUCH_DOWN,
                maturity=years_after(1.0),
                barrier_low=[90.0, 95.0],
                rebate_low=1.0,
            )

    def test_touch_discrete_scalar_is_broadcast(self):
        spec = TouchOptionSpec(
            touch_type=TouchType.ONE_TOUCH_DOWN,
            maturity=years_after(1.0),
            barrier_low=90.0,
            rebate_low=2.0,
            observation_dates=[years_after(0.5), years_after(1.0)],
        )
        assert spec.barrier_low == (90.0, 90.0)
        assert spec.rebate_low == (2.0, 2.0)
        assert isinstance(spec.observation_dates, BarrierSchedule)

    def test_binary_barrier_in_out_flags(self):
        assert BarrierType.DOWN_IN.is_down and BarrierType.DOWN_IN.is_knock_in
        assert not BarrierType.UP_OUT.is_down and not BarrierType.UP_OUT.is_knock_in


# ---------------------------------------------------------------------------
# Engine parameters
# ---------------------------------------------------------------------------


class TestMonteCarloParams:
    def test_steps_required(self):
        with pytest.raises(ConfigurationError, match="number of steps not given"):
            MonteCarloParams(required_samples=100)

    def test_steps_overspecified(self):
        with pytest.raises(ConfigurationError, match="overspecified"):
            MonteCarloParams(time_steps=10, time_steps_per_year=12, required_samples=100)

    def test_sample_policy_required(self):
        with pytest.raises(ConfigurationError, match="neither required_samples nor required_tolerance"):
            MonteCarloParams(time_steps=10)

    def test_sample_policies_exclusive(self):
        with pytest.raises(ConfigurationError, match="exclusive"):
            MonteCarloParams(time_steps=10, required_samples=100, required_tolerance=0.01)

    def test_required_samples_above_max(self):
        with pytest.raises(ConfigurationError, match="exceeds max_samples"):
            MonteCarloParams(time_steps=10, required_samples=1000, max_samples=100)

    @pytest.mark.parametrize(
        "field, value",
        [("workers", 0), ("batch_size", 0), ("min_samples", 1), ("time_steps", 0)],
    )
    def test_positive_fields(self, field, value):
        kwargs = dict(time_steps=10, required_samples=100)
        kwargs[field] = value
        with pytest.raises(ConfigurationError, match=field):
            MonteCarloParams(**kwargs)

    def test_frozen(self):
        params = MonteCarloParams(time_steps=10, required_samples=100)
        with pytest.raises(AttributeError):
            params.seed = 3  # type: ignore[misc]


class TestPDEParams:
    def test_defaults(self):
        params = PDEParams()
        assert params.method is PDEMethod.CRANK_NICOLSON
        assert params.time_steps == 100 and params.space_steps == 100

    def test_method_from_string(self):
        assert PDEParams(method="implicit").method is PDEMethod.IMPLICIT

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError, match="unknown PDE method"):
            PDEParams(method="adi")

    def test_damping_bounded_by_time_steps(self):
        with pytest.raises(ConfigurationError, match="damping_steps"):
            PDEParams(time_steps=10, damping_steps=11)

    def test_smax_mult(self):
        with pytest.raises(ConfigurationError, match="smax_mult"):
            PDEParams(smax_mult=1.0)

    def test_space_steps(self):
        with pytest.raises(ConfigurationError, match="space_steps"):
            PDEParams(space_steps=2)
