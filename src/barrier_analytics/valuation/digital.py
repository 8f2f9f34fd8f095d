"""Closed-form European cash-or-nothing / asset-or-nothing options."""

from __future__ import annotations
from typing import TYPE_CHECKING, NamedTuple
import numpy as np
from scipy.stats import norm
from ..enums import DigitalPayoff, OptionType
from ..exceptions import ValidationError
from ..stochastic_processes import BlackScholesProcess
from .results import PricingResult

if TYPE_CHECKING:
    from .core import BarrierValuation

ONE_DAY = 1.0 / 365.0
VOL_BUMP = 0.01
RATE_BUMP = 0.01


class DigitalInputs(NamedTuple):
    """Market inputs of a European digital, already reduced to scalars."""

    spot: float
    strike: float
    variance: float
    df_r: float
    df_q: float


def _d_values(inputs: DigitalInputs) -> tuple[float, float]:
    """d1 and d2 from total variance and discount factors.

    Zero variance gives the deterministic limit (+/-inf, or 0 at the forward).
    """
    forward = inputs.spot * inputs.df_q / inputs.df_r
    std_dev = np.sqrt(inputs.variance)
    if std_dev < 1e-300:
        if forward > inputs.strike:
            return np.inf, np.inf
        if forward < inputs.strike:
            return -np.inf, -np.inf
        return 0.0, 0.0
    d1 = np.log(forward / inputs.strike) / std_dev + 0.5 * std_dev
    return d1, d1 - std_dev


def digital_value(
    inputs: DigitalInputs,
    option_type: OptionType,
    payoff: DigitalPayoff,
    cash: float | None = None,
) -> float:
    """Present value of a European digital.

    - cash-or-nothing: ``cash * P(0,T) * N(phi d2)``
    - asset-or-nothing: ``S * Q(0,T) * N(phi d1)``
    """
    phi = 1.0 if option_type is OptionType.CALL else -1.0
    d1, d2 = _d_values(inputs)
    if payoff is DigitalPayoff.CASH_OR_NOTHING:
        if cash is None:
            raise ValidationError("cash-or-nothing digital needs a cash amount")
        return float(cash * inputs.df_r * norm.cdf(phi * d2))
    return float(inputs.spot * inputs.df_q * norm.cdf(phi * d1))


def digital_spot_greeks(
    inputs: DigitalInputs,
    option_type: OptionType,
    payoff: DigitalPayoff,
    cash: float | None = None,
) -> tuple[float, float]:
    """Analytic (delta, gamma) of a European digital."""
    phi = 1.0 if option_type is OptionType.CALL else -1.0
    d1, d2 = _d_values(inputs)
    if not np.isfinite(d1):
        # deterministic payoff: locally flat in spot
        if payoff is DigitalPayoff.ASSET_OR_NOTHING and phi * d1 > 0:
            return float(inputs.df_q), 0.0
        return 0.0, 0.0
    S = inputs.spot
    std_dev = np.sqrt(inputs.variance)
    if payoff is DigitalPayoff.CASH_OR_NOTHING:
        scale = cash * inputs.df_r * norm.pdf(d2)
        delta = phi * scale / (S * std_dev)
        gamma = -phi * scale * d1 / (S**2 * inputs.variance)
    else:
        scale = inputs.df_q * norm.pdf(d1)
        delta = inputs.df_q * norm.cdf(phi * d1) + phi * scale / std_dev
        gamma = -phi * scale * d2 / (S * inputs.variance)
    return float(delta), float(gamma)


def rolled_inputs(
    process: BlackScholesProcess, spot: float, strike: float, maturity: float, roll: float
) -> DigitalInputs:
    """Inputs seen from time ``roll`` with today's market (used for theta)."""
    return DigitalInputs(
        spot=spot,
        strike=strike,
        variance=process.black_variance(maturity) - process.black_variance(roll),
        df_r=float(process.risk_free_discount(maturity) / process.risk_free_discount(roll)),
        df_q=float(process.dividend_discount(maturity) / process.dividend_discount(roll)),
    )


def bumped_vol_inputs(inputs: DigitalInputs, maturity: float) -> DigitalInputs:
    """Inputs with the implied vol to maturity shifted by ``VOL_BUMP``."""
    vol = np.sqrt(inputs.variance / maturity)
    return inputs._replace(variance=(vol + VOL_BUMP) ** 2 * maturity)


def bumped_rate_inputs(inputs: DigitalInputs, maturity: float) -> DigitalInputs:
    """Inputs with the risk-free zero rate shifted by ``RATE_BUMP``."""
    return inputs._replace(df_r=inputs.df_r * np.exp(-RATE_BUMP * maturity))


def theta_roll(maturity: float) -> float:
    """Time roll used for theta: one day, or half the life for very short trades."""
    return min(ONE_DAY, 0.5 * maturity)


class _AnalyticDigitalValuation:
    """European digital valuation with analytic delta/gamma."""

    def __init__(self, parent: BarrierValuation) -> None:
        self.parent = parent
        self.process = BlackScholesProcess(parent.market)

    def triggered(self) -> bool:
        return False

    def inputs(self) -> DigitalInputs:
        maturity = self.process.time(self.parent.spec.maturity)
        return DigitalInputs(
            spot=self.process.spot(),
            strike=self.parent.spec.strike,
            variance=self.process.black_variance(maturity),
            df_r=float(self.process.risk_free_discount(maturity)),
            df_q=float(self.process.dividend_discount(maturity)),
        )

    def calculate(self) -> PricingResult:
        spec = self.parent.spec
        maturity = self.process.time(spec.maturity)
        inputs = self.inputs()

        def value(x: DigitalInputs) -> float:
            return digital_value(x, spec.option_type, spec.payoff, spec.cash_payoff)

        pv = value(inputs)
        delta, gamma = digital_spot_greeks(inputs, spec.option_type, spec.payoff, spec.cash_payoff)
        roll = theta_roll(maturity)
        rolled = rolled_inputs(self.process, inputs.spot, inputs.strike, maturity, roll)
        theta = (value(rolled) - pv) * ONE_DAY / roll
        return PricingResult(
            value=pv,
            delta=delta,
            gamma=gamma,
            theta=theta,
            vega=value(bumped_vol_inputs(inputs, maturity)) - pv,
            rho=value(bumped_rate_inputs(inputs, maturity)) - pv,
        )
