"""Binary barrier options: closed-form valuation.

Cash-or-nothing and asset-or-nothing options with a continuously monitored
barrier, following the binary barrier formulas in Haug, *The Complete Guide to
Option Pricing Formulas* (2nd ed., 2007), cases 1-4 and 13-28.

Every case is a signed sum of the building blocks

    A1..A4  asset-or-nothing terms (asset discounted by the dividend curve)
    B1..B4  cash-or-nothing terms (cash discounted by the risk-free curve)
    A5      amount paid when the barrier is hit (pay-at-hit knock-ins, rebates)

with ``phi`` = +1/-1 for call/put orientation and ``eta`` = +1/-1 for a
barrier below/above spot. The formula for each contract lives in an explicit
table keyed by ``(barrier type, payoff, option type, strike >= barrier)``;
the strike/barrier ordering picks between the two expansions of a case.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Callable, NamedTuple
import logging
import numpy as np
from scipy.stats import norm
from ..enums import BarrierType, DigitalPayoff, OptionType
from ..exceptions import UnsupportedFeatureError, ValidationError
from ..stochastic_processes import BlackScholesProcess
from .digital import (
    ONE_DAY,
    DigitalInputs,
    bumped_rate_inputs,
    bumped_vol_inputs,
    digital_spot_greeks,
    digital_value,
    rolled_inputs,
    theta_roll,
)
from .results import PricingResult

if TYPE_CHECKING:
    from .core import BarrierValuation, BinaryBarrierSpec


logger = logging.getLogger(__name__)

CASH = DigitalPayoff.CASH_OR_NOTHING
ASSET = DigitalPayoff.ASSET_OR_NOTHING
CALL = OptionType.CALL
PUT = OptionType.PUT


class _Blocks:
    """Building blocks A1..A5 and B1..B4 for one set of inputs."""

    def __init__(
        self,
        inputs: DigitalInputs,
        barrier: float,
        cash: float | None,
    ) -> None:
        if inputs.variance <= 0.0:
            raise ValidationError("binary barrier formulas need a positive variance to maturity")
        self.spot = inputs.spot
        self.barrier = barrier
        self.cash = cash
        self.df_r = inputs.df_r
        self.df_q = inputs.df_q
        self.variance = inputs.variance
        self.std_dev = np.sqrt(inputs.variance)
        self.mu = np.log(inputs.df_q / inputs.df_r) / inputs.variance - 0.5

        S, K, H = inputs.spot, inputs.strike, barrier
        self.log_s_k = np.log(S / K)
        self.log_s_h = np.log(S / H)
        self.log_h_s = np.log(H / S)
        self.log_h2_sk = np.log(H * H / (S * K))
        self.h_s_2mu = (H / S) ** (2.0 * self.mu)
        self.h_s_2mu_1 = (H / S) ** (2.0 * (self.mu + 1.0))

    def _asset(self, sign: float, log_ratio: float) -> float:
        sd = self.std_dev
        return self.spot * self.df_q * norm.cdf(sign * (log_ratio / sd + (self.mu + 1.0) * sd))

    def _cash(self, sign: float, log_ratio: float) -> float:
        if self.cash is None:
            raise ValidationError("cash-or-nothing terms need a cash amount")
        sd = self.std_dev
        return self.cash * self.df_r * norm.cdf(sign * (log_ratio / sd + self.mu * sd))

    def A1(self, phi: float) -> float:
        return self._asset(phi, self.log_s_k)

    def A2(self, phi: float) -> float:
        return self._asset(phi, self.log_s_h)

    def A3(self, eta: float) -> float:
        return self.h_s_2mu_1 * self._asset(eta, self.log_h2_sk)

    def A4(self, eta: float) -> float:
        return self.h_s_2mu_1 * self._asset(eta, self.log_h_s)

    def B1(self, phi: float) -> float:
        return self._cash(phi, self.log_s_k)

    def B2(self, phi: float) -> float:
        return self._cash(phi, self.log_s_h)

    def B3(self, eta: float) -> float:
        return self.h_s_2mu * self._cash(eta, self.log_h2_sk)

    def B4(self, eta: float) -> float:
        return self.h_s_2mu * self._cash(eta, self.log_h_s)

    def A5(self, eta: float, amount: float) -> float:
        """Value of ``amount`` paid at the first hit of the barrier."""
        sd = self.std_dev
        lam = np.sqrt(self.mu**2 - 2.0 * np.log(self.df_r) / self.variance)
        z = self.log_h_s / sd + lam * sd
        ratio = self.barrier / self.spot
        return amount * (
            ratio ** (self.mu + lam) * norm.cdf(eta * z)
            + ratio ** (self.mu - lam) * norm.cdf(eta * z - 2.0 * eta * lam * sd)
        )

    def no_hit_at_expiry(self, eta: float, amount: float) -> float:
        """Value of ``amount`` paid at expiry if the barrier is never hit."""
        sd = self.std_dev
        return (
            amount
            * self.df_r
            * (
                norm.cdf(eta * (self.log_s_h / sd + self.mu * sd))
                - self.h_s_2mu * norm.cdf(eta * (self.log_h_s / sd + self.mu * sd))
            )
        )


_Formula = Callable[[_Blocks], float]


def _zero(_: _Blocks) -> float:
    return 0.0


# (barrier type, payoff, option type, strike >= barrier) -> closed form.
# Comments give the case number in Haug (2007).
_CASE_TABLE: dict[tuple[BarrierType, DigitalPayoff, OptionType, bool], _Formula] = {
    # 13: down-and-in cash-or-nothing call
    (BarrierType.DOWN_IN, CASH, CALL, True): lambda b: b.B3(1),
    (BarrierType.DOWN_IN, CASH, CALL, False): lambda b: b.B1(1) - b.B2(1) + b.B4(1),
    # 14: up-and-in cash-or-nothing call
    (BarrierType.UP_IN, CASH, CALL, True): lambda b: b.B1(1),
    (BarrierType.UP_IN, CASH, CALL, False): lambda b: b.B2(1) - b.B3(-1) + b.B4(-1),
    # 15: down-and-in asset-or-nothing call
    (BarrierType.DOWN_IN, ASSET, CALL, True): lambda b: b.A3(1),
    (BarrierType.DOWN_IN, ASSET, CALL, False): lambda b: b.A1(1) - b.A2(1) + b.A4(1),
    # 16: up-and-in asset-or-nothing call
    (BarrierType.UP_IN, ASSET, CALL, True): lambda b: b.A1(1),
    (BarrierType.UP_IN, ASSET, CALL, False): lambda b: b.A2(1) - b.A3(-1) + b.A4(-1),
    # 17: down-and-in cash-or-nothing put
    (BarrierType.DOWN_IN, CASH, PUT, True): lambda b: b.B2(-1) - b.B3(1) + b.B4(1),
    (BarrierType.DOWN_IN, CASH, PUT, False): lambda b: b.B1(-1),
    # 18: up-and-in cash-or-nothing put
    (BarrierType.UP_IN, CASH, PUT, True): lambda b: b.B1(-1) - b.B2(-1) + b.B4(-1),
    (BarrierType.UP_IN, CASH, PUT, False): lambda b: b.B3(-1),
    # 19: down-and-in asset-or-nothing put
    (BarrierType.DOWN_IN, ASSET, PUT, True): lambda b: b.A2(-1) - b.A3(1) + b.A4(1),
    (BarrierType.DOWN_IN, ASSET, PUT, False): lambda b: b.A1(-1),
    # 20: up-and-in asset-or-nothing put
    (BarrierType.UP_IN, ASSET, PUT, True): lambda b: b.A1(-1) - b.A2(-1) + b.A4(-1),
    (BarrierType.UP_IN, ASSET, PUT, False): lambda b: b.A3(-1),
    # 21: down-and-out cash-or-nothing call
    (BarrierType.DOWN_OUT, CASH, CALL, True): lambda b: b.B1(1) - b.B3(1),
    (BarrierType.DOWN_OUT, CASH, CALL, False): lambda b: b.B2(1) - b.B4(1),
    # 22: up-and-out cash-or-nothing call
    (BarrierType.UP_OUT, CASH, CALL, True): _zero,
    (BarrierType.UP_OUT, CASH, CALL, False): lambda b: b.B1(1) - b.B2(1) + b.B3(-1) - b.B4(-1),
    # 23: down-and-out asset-or-nothing call
    (BarrierType.DOWN_OUT, ASSET, CALL, True): lambda b: b.A1(1) - b.A3(1),
    (BarrierType.DOWN_OUT, ASSET, CALL, False): lambda b: b.A2(1) - b.A4(1),
    # 24: up-and-out asset-or-nothing call
    (BarrierType.UP_OUT, ASSET, CALL, True): _zero,
    (BarrierType.UP_OUT, ASSET, CALL, False): lambda b: b.A1(1) - b.A2(1) + b.A3(-1) - b.A4(-1),
    # 25: down-and-out cash-or-nothing put
    (BarrierType.DOWN_OUT, CASH, PUT, True): lambda b: b.B1(-1) - b.B2(-1) + b.B3(1) - b.B4(1),
    (BarrierType.DOWN_OUT, CASH, PUT, False): _zero,
    # 26: up-and-out cash-or-nothing put
    (BarrierType.UP_OUT, CASH, PUT, True): lambda b: b.B2(-1) - b.B4(-1),
    (BarrierType.UP_OUT, CASH, PUT, False): lambda b: b.B1(-1) - b.B3(-1),
    # 27: down-and-out asset-or-nothing put
    (BarrierType.DOWN_OUT, ASSET, PUT, True): lambda b: b.A1(-1) - b.A2(-1) + b.A3(1) - b.A4(1),
    (BarrierType.DOWN_OUT, ASSET, PUT, False): _zero,
    # 28: up-and-out asset-or-nothing put
    (BarrierType.UP_OUT, ASSET, PUT, True): lambda b: b.A2(-1) - b.A4(-1),
    (BarrierType.UP_OUT, ASSET, PUT, False): lambda b: b.A1(-1) - b.A3(-1),
}


def _eta(barrier_type: BarrierType) -> float:
    return 1.0 if barrier_type.is_down else -1.0


def is_knocked(barrier_type: BarrierType, spot: float, barrier: float) -> bool:
    """Whether spot is at or beyond the barrier on the barrier's side."""
    if barrier_type.is_down:
        return spot <= barrier
    return spot >= barrier


def binary_barrier_value(inputs: DigitalInputs, spec: BinaryBarrierSpec) -> float:
    """Closed-form value for a spot strictly on the live side of the barrier."""
    blocks = _Blocks(inputs, spec.barrier, spec.cash_payoff)
    eta = _eta(spec.barrier_type)

    if not spec.pay_at_expiry:
        # cases 1-4: cash (or the asset, worth the barrier level) paid at hit
        if not spec.barrier_type.is_knock_in:
            raise UnsupportedFeatureError(
                "pay-at-hit is only defined for knock-in binary barriers, "
                f"got {spec.barrier_type.name}"
            )
        amount = spec.cash_payoff if spec.payoff is CASH else spec.barrier
        value = blocks.A5(eta, amount)
    else:
        key = (spec.barrier_type, spec.payoff, spec.option_type, spec.strike >= spec.barrier)
        formula = _CASE_TABLE.get(key)
        if formula is None:
            raise UnsupportedFeatureError(f"Binary barrier case {key} is not supported")
        value = formula(blocks)

    if spec.rebate != 0.0:
        if spec.barrier_type.is_knock_in:
            value += blocks.no_hit_at_expiry(eta, spec.rebate)
        else:
            value += blocks.A5(eta, spec.rebate)
    return float(value)


class _AnalyticBinaryBarrierValuation:
    """Binary barrier valuation: closed form for value, bumps for greeks."""

    def __init__(self, parent: BarrierValuation) -> None:
        self.parent = parent
        self.process = BlackScholesProcess(parent.market)

    def triggered(self) -> bool:
        spec = self.parent.spec
        return is_knocked(spec.barrier_type, self.process.spot(), spec.barrier)

    def _inputs(self, maturity: float) -> DigitalInputs:
        return DigitalInputs(
            spot=self.process.spot(),
            strike=self.parent.spec.strike,
            variance=self.process.black_variance(maturity),
            df_r=float(self.process.risk_free_discount(maturity)),
            df_q=float(self.process.dividend_discount(maturity)),
        )

    def _settled(self, inputs: DigitalInputs, maturity: float) -> PricingResult:
        spec = self.parent.spec
        if not spec.barrier_type.is_knock_in:
            # knocked out: worthless whatever the rebate and payment mode
            return PricingResult.settled(0.0)

        # knocked in: a plain European digital remains, in either payment mode
        def value(x: DigitalInputs) -> float:
            return digital_value(x, spec.option_type, spec.payoff, spec.cash_payoff)

        pv = value(inputs)
        delta, gamma = digital_spot_greeks(inputs, spec.option_type, spec.payoff, spec.cash_payoff)
        roll = theta_roll(maturity)
        rolled = rolled_inputs(self.process, inputs.spot, inputs.strike, maturity, roll)
        return PricingResult(
            value=pv,
            delta=delta,
            gamma=gamma,
            theta=(value(rolled) - pv) * ONE_DAY / roll,
            vega=value(bumped_vol_inputs(inputs, maturity)) - pv,
            rho=value(bumped_rate_inputs(inputs, maturity)) - pv,
        )

    def calculate(self) -> PricingResult:
        spec = self.parent.spec
        maturity = self.process.time(spec.maturity)
        inputs = self._inputs(maturity)

        if self.triggered():
            logger.debug(
                "Binary barrier %s already hit (spot=%.6g, barrier=%.6g)",
                spec.barrier_type.name,
                inputs.spot,
                spec.barrier,
            )
            return self._settled(inputs, maturity)

        pv = binary_barrier_value(inputs, spec)

        # central bumps, kept on the live side of the barrier
        S = inputs.spot
        h = min(1e-3 * S, 0.5 * abs(S - spec.barrier))
        up = binary_barrier_value(inputs._replace(spot=S + h), spec)
        down = binary_barrier_value(inputs._replace(spot=S - h), spec)
        delta = (up - down) / (2.0 * h)
        gamma = (up - 2.0 * pv + down) / (h * h)

        roll = theta_roll(maturity)
        rolled = rolled_inputs(self.process, S, inputs.strike, maturity, roll)
        theta = (binary_barrier_value(rolled, spec) - pv) * ONE_DAY / roll

        vega = binary_barrier_value(bumped_vol_inputs(inputs, maturity), spec) - pv
        rho = binary_barrier_value(bumped_rate_inputs(inputs, maturity), spec) - pv
        return PricingResult(value=pv, delta=delta, gamma=gamma, theta=theta, vega=vega, rho=rho)
