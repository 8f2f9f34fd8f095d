"""Tests for the closed-form European digital."""

import numpy as np
import pytest
from scipy.stats import norm

from barrier_analytics.enums import DigitalPayoff, ExerciseType, OptionType, PricingMethod
from barrier_analytics.exceptions import ConfigurationError
from barrier_analytics.tests.helpers import build_market, years_after
from barrier_analytics.valuation import BarrierValuation, DigitalInputs, DigitalSpec, digital_value

CASH = DigitalPayoff.CASH_OR_NOTHING
ASSET = DigitalPayoff.ASSET_OR_NOTHING


def _digital(spot=100.0, strike=100.0, option_type=OptionType.CALL, payoff=CASH, q=0.0, years=1.0):
    market = build_market(spot=spot, rate=0.05, vol=0.20, q=q)
    spec = DigitalSpec(
        option_type=option_type,
        payoff=payoff,
        strike=strike,
        maturity=years_after(years),
        cash_payoff=10.0,
    )
    return BarrierValuation("digital", market, spec, PricingMethod.ANALYTIC)


def test_cash_or_nothing_call_formula():
    pv = _digital(strike=105.0).present_value()
    sd = 0.20
    d2 = (np.log(100.0 / 105.0) + 0.05 - 0.5 * sd**2) / sd
    assert pv == pytest.approx(10.0 * np.exp(-0.05) * norm.cdf(d2), rel=1e-12)


def test_asset_or_nothing_put_formula():
    pv = _digital(strike=95.0, option_type=OptionType.PUT, payoff=ASSET, q=0.02).present_value()
    sd = 0.20
    d1 = (np.log(100.0 / 95.0) + 0.05 - 0.02 + 0.5 * sd**2) / sd
    assert pv == pytest.approx(100.0 * np.exp(-0.02) * norm.cdf(-d1), rel=1e-12)


@pytest.mark.parametrize("payoff", [CASH, ASSET])
def test_call_plus_put_is_forward_leg(payoff):
    call = _digital(strike=103.0, payoff=payoff, q=0.01).present_value()
    put = _digital(strike=103.0, payoff=payoff, q=0.01, option_type=OptionType.PUT).present_value()
    expected = 10.0 * np.exp(-0.05) if payoff is CASH else 100.0 * np.exp(-0.01)
    assert call + put == pytest.approx(expected, rel=1e-12)


@pytest.mark.parametrize("payoff", [CASH, ASSET])
@pytest.mark.parametrize("option_type", [OptionType.CALL, OptionType.PUT])
def test_analytic_delta_gamma_match_bumps(payoff, option_type):
    h = 0.01
    base = _digital(spot=100.0, strike=102.0, payoff=payoff, option_type=option_type).calculate()
    up = _digital(spot=100.0 + h, strike=102.0, payoff=payoff, option_type=option_type).present_value()
    down = _digital(spot=100.0 - h, strike=102.0, payoff=payoff, option_type=option_type).present_value()
    assert base.delta == pytest.approx((up - down) / (2 * h), rel=1e-4, abs=1e-8)
    assert base.gamma == pytest.approx((up - 2 * base.value + down) / h**2, rel=1e-3, abs=1e-6)


def test_theta_vega_rho_are_reported():
    result = _digital(strike=100.0).calculate()
    assert np.isfinite(result.theta)
    assert np.isfinite(result.vega)
    assert result.rho != 0.0


def test_zero_variance_is_deterministic():
    inputs = DigitalInputs(spot=100.0, strike=90.0, variance=0.0, df_r=0.95, df_q=1.0)
    assert digital_value(inputs, OptionType.CALL, CASH, cash=1.0) == pytest.approx(0.95)
    assert digital_value(inputs, OptionType.PUT, CASH, cash=1.0) == 0.0
    assert digital_value(inputs, OptionType.CALL, ASSET) == pytest.approx(100.0)


def test_digital_requires_european_exercise():
    market = build_market()
    spec = DigitalSpec(
        option_type=OptionType.CALL,
        payoff=CASH,
        strike=100.0,
        maturity=years_after(1.0),
        cash_payoff=1.0,
        exercise_type=ExerciseType.AMERICAN,
    )
    with pytest.raises(ConfigurationError, match="EUROPEAN"):
        BarrierValuation("digital", market, spec, PricingMethod.ANALYTIC)
