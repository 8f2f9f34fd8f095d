"""Finite difference (PDE) valuation of touch and no-touch options.

The Black-Scholes PDE is solved backwards from maturity on a uniform log-spot
mesh with a theta scheme:
- time stepping: implicit, explicit (stability-checked) or Crank-Nicolson
- optional damping: the first steps from maturity are fully implicit
- first-order upwinding wherever the central drift term would lose positivity

Continuously monitored barriers sit on the mesh boundaries (Dirichlet
conditions). Discretely monitored barriers are applied as knock-out step
conditions at the observation times, with free (linearly extrapolated)
boundaries.
"""

from __future__ import annotations
from typing import TYPE_CHECKING
import logging
import math
import numpy as np
from ..enums import PDEMethod, TouchType
from ..exceptions import ConfigurationError, StabilityError, ValidationError
from ..stochastic_processes import BlackScholesProcess
from ..utils import log_timing
from .digital import ONE_DAY, theta_roll
from .params import PDEParams
from .results import PricingResult

if TYPE_CHECKING:
    from .core import BarrierValuation, TouchOptionSpec


logger = logging.getLogger(__name__)

_THETA = {
    PDEMethod.IMPLICIT: 1.0,
    PDEMethod.CRANK_NICOLSON: 0.5,
    PDEMethod.EXPLICIT: 0.0,
}
# tolerance for "at the barrier" comparisons in log space
_LOG_TOL = 1e-12


def _solve_tridiagonal_thomas(
    lower: np.ndarray,
    diag: np.ndarray,
    upper: np.ndarray,
    rhs: np.ndarray,
) -> np.ndarray:
    """Solve ``A x = rhs`` for tridiagonal A (Thomas algorithm).

    ``lower`` holds A[i, i-1] and ``upper`` holds A[i, i+1], both of length n-1.
    """
    n = diag.size
    if rhs.size != n:
        raise ValidationError("rhs length must match diag length")
    if lower.size != n - 1 or upper.size != n - 1:
        raise ValidationError("lower/upper must have length n-1")

    d = diag.astype(float, copy=True)
    y = rhs.astype(float, copy=True)
    for i in range(1, n):
        w = lower[i - 1] / d[i - 1]
        d[i] -= w * upper[i - 1]
        y[i] -= w * y[i - 1]

    x = np.empty(n, dtype=float)
    x[-1] = y[-1] / d[-1]
    for i in range(n - 2, -1, -1):
        x[i] = (y[i] - upper[i] * x[i + 1]) / d[i]
    return x


def _log_operator_coeffs(
    *,
    dx: float,
    variance_rate: float,
    risk_free_rate: float,
    dividend_rate: float,
) -> tuple[float, float, float]:
    """(lower, diag, upper) of the log-spot Black-Scholes operator.

    Central differences for the drift, switching to first-order upwinding when
    ``sigma^2 < |mu| dx`` so that both off-diagonals stay non-negative.
    Handles zero volatility.
    """
    mu = risk_free_rate - dividend_rate - 0.5 * variance_rate
    diffusion = variance_rate / dx**2
    if variance_rate < abs(mu) * dx:
        lower = 0.5 * diffusion + max(-mu, 0.0) / dx
        upper = 0.5 * diffusion + max(mu, 0.0) / dx
    else:
        lower = 0.5 * (diffusion - mu / dx)
        upper = 0.5 * (diffusion + mu / dx)
    diag = -(lower + upper) - risk_free_rate
    return lower, diag, upper


def _theta_step(
    V_old: np.ndarray,
    lower: float,
    diag: float,
    upper: float,
    d_tau: float,
    theta: float,
    left: float | None,
    right: float | None,
) -> np.ndarray:
    """One theta-scheme step over ``d_tau``.

    ``left``/``right`` are Dirichlet values, or None for a free boundary where
    the value is extrapolated linearly from the two neighbouring nodes.
    """
    n = V_old.size - 2
    a = np.full(n, -d_tau * lower)
    b = np.full(n, -d_tau * diag)
    c = np.full(n, -d_tau * upper)
    # fold V_0 = 2 V_1 - V_2 (and its mirror) into the first/last row
    if left is None:
        b[0] += 2.0 * a[0]
        c[0] -= a[0]
        a[0] = 0.0
    if right is None:
        b[-1] += 2.0 * c[-1]
        a[-1] -= c[-1]
        c[-1] = 0.0

    rhs = V_old[1:-1] - (1.0 - theta) * (a * V_old[:-2] + b * V_old[1:-1] + c * V_old[2:])

    if theta == 0.0:
        x = rhs
    else:
        A_lower = theta * a
        A_diag = 1.0 + theta * b
        A_upper = theta * c
        if left is not None:
            rhs[0] -= A_lower[0] * left
        if right is not None:
            rhs[-1] -= A_upper[-1] * right
        x = _solve_tridiagonal_thomas(A_lower[1:], A_diag, A_upper[:-1], rhs)

    V_new = np.empty_like(V_old)
    V_new[1:-1] = x
    V_new[0] = left if left is not None else 2.0 * x[0] - x[1]
    V_new[-1] = right if right is not None else 2.0 * x[-1] - x[-2]
    return V_new


def _check_explicit_stability(
    *,
    d_tau: float,
    diag: float,
    time_to_maturity: float,
) -> None:
    """Raise StabilityError when an explicit step would lose positivity.

    The explicit update keeps non-negative weights iff ``1 + d_tau * diag >= 0``.
    """
    if 1.0 + d_tau * diag >= 0.0:
        return
    dt_max = -1.0 / diag
    min_steps = int(math.ceil(time_to_maturity / dt_max))
    raise StabilityError(
        "Explicit scheme unstable: time step too large. "
        f"d_tau={d_tau:.4g} exceeds dt_max={dt_max:.4g}. "
        f"Increase time_steps to >= {min_steps} or use implicit/CN."
    )


def _build_tau_grid(
    time_to_maturity: float,
    time_steps: int,
    stop_taus: list[float],
) -> np.ndarray:
    """Uniform tau (time remaining) grid with the stopping taus merged in."""
    base = np.linspace(0.0, time_to_maturity, time_steps + 1)
    if not stop_taus:
        return base
    stops = np.array([tau for tau in stop_taus if 0.0 < tau < time_to_maturity], dtype=float)
    grid = np.unique(np.round(np.concatenate([base, stops]), 12))
    grid[-1] = time_to_maturity
    return grid


def _build_time_step_schedule(
    tau_grid: np.ndarray,
    method: PDEMethod,
    damping_steps: int,
) -> list[tuple[float, float, float]]:
    """(tau_start, tau_end, theta) per step; the first ``damping_steps`` are implicit."""
    steps: list[tuple[float, float, float]] = []
    for n in range(1, tau_grid.size):
        theta = _THETA[PDEMethod.IMPLICIT] if n <= damping_steps else _THETA[method]
        steps.append((float(tau_grid[n - 1]), float(tau_grid[n]), theta))
    return steps


def _mesh_bounds(spot: float, spec: TouchOptionSpec, smax_mult: float) -> tuple[float, float]:
    """Log-spot mesh bounds; continuous barriers sit exactly on the boundary."""
    touch = spec.touch_type
    if spec.observation_dates is not None:
        if touch.has_upper_barrier:
            return min(0.0, np.log(spot / smax_mult)), np.log(smax_mult * max(max(spec.barrier_high), spot))
        return np.log(min(min(spec.barrier_low), spot) / smax_mult), np.log(
            smax_mult * max(max(spec.barrier_low), spot)
        )

    if touch.has_upper_barrier and touch.has_lower_barrier:
        return np.log(spec.barrier_low[0]), np.log(spec.barrier_high[0])
    if touch.has_upper_barrier:
        return min(0.0, np.log(spot / smax_mult)), np.log(spec.barrier_high[0])
    return np.log(spec.barrier_low[0]), np.log(smax_mult * max(spot, spec.barrier_low[0]))


def _inner_value(x: np.ndarray, spec: TouchOptionSpec) -> np.ndarray:
    """Payoff of a continuously monitored touch/no-touch on the log-spot mesh."""
    touch = spec.touch_type
    above = (
        x >= np.log(spec.barrier_high[0]) - _LOG_TOL
        if touch.has_upper_barrier
        else np.zeros_like(x, dtype=bool)
    )
    below = (
        x <= np.log(spec.barrier_low[0]) + _LOG_TOL
        if touch.has_lower_barrier
        else np.zeros_like(x, dtype=bool)
    )
    if touch.is_no_touch:
        rebate = spec.rebate_high[0] if touch.has_upper_barrier else spec.rebate_low[0]
        return np.where(above | below, 0.0, rebate)
    values = np.zeros_like(x)
    if touch.has_upper_barrier:
        values = np.where(above, spec.rebate_high[0], values)
    if touch.has_lower_barrier:
        values = np.where(below, spec.rebate_low[0], values)
    return values


def _knockout_inner_value(
    x: np.ndarray, level: float, rebate: float, *, upper: bool
) -> np.ndarray:
    """Rebate on the nodes at or beyond one discrete barrier level, zero elsewhere."""
    if upper:
        hit = x >= np.log(level) - _LOG_TOL
    else:
        hit = x <= np.log(level) + _LOG_TOL
    return np.where(hit, rebate, 0.0)


class _FDTouchValuation:
    """Touch / no-touch valuation using PDE finite differences."""

    def __init__(self, parent: BarrierValuation) -> None:
        self.parent = parent
        self.process = BlackScholesProcess(parent.market)

    # ── settlement at the pricing date ──────────────────────────────

    def _observation_times(self) -> np.ndarray | None:
        schedule = self.parent.spec.observation_dates
        if schedule is None:
            return None
        return schedule.times(self.parent.market)

    def _touched_rebate(self) -> float | None:
        """Rebate locked in by a barrier already hit today, None if none was hit."""
        spec = self.parent.spec
        touch = spec.touch_type
        spot = self.process.spot()

        obs_times = self._observation_times()
        if obs_times is not None:
            upper = touch.has_upper_barrier
            levels = spec.barrier_high if upper else spec.barrier_low
            rebates = spec.rebate_high if upper else spec.rebate_low
            for t, level, rebate in zip(obs_times, levels, rebates):
                if abs(t) > _LOG_TOL:
                    continue
                if (upper and spot >= level) or (not upper and spot <= level):
                    return rebate
            return None

        if touch.has_upper_barrier and spot >= spec.barrier_high[0]:
            return 0.0 if touch.is_no_touch else spec.rebate_high[0]
        if touch.has_lower_barrier and spot <= spec.barrier_low[0]:
            return 0.0 if touch.is_no_touch else spec.rebate_low[0]
        return None

    def triggered(self) -> bool:
        return self._touched_rebate() is not None

    def _settled_result(self, rebate: float) -> PricingResult:
        spec = self.parent.spec
        if not spec.payoff_at_expiry:
            return PricingResult.settled(rebate)
        maturity = self.process.time(spec.maturity)
        value = rebate * float(self.process.risk_free_discount(maturity))
        roll = theta_roll(maturity)
        theta = value * (1.0 / float(self.process.risk_free_discount(roll)) - 1.0) * ONE_DAY / roll
        return PricingResult.settled(value, theta=theta)

    # ── solver ──────────────────────────────────────────────────────

    def _boundary_values(
        self, t: float, time_to_maturity: float
    ) -> tuple[float | None, float | None]:
        """Dirichlet values at calendar time ``t`` (None: free boundary)."""
        spec = self.parent.spec
        if spec.observation_dates is not None:
            return None, None
        touch = spec.touch_type
        if spec.payoff_at_expiry:
            df_tT = float(self.process.risk_free_discount(time_to_maturity)) / float(
                self.process.risk_free_discount(t)
            )
        else:
            df_tT = 1.0

        left = right = None
        if touch.has_upper_barrier:
            right = 0.0 if touch.is_no_touch else spec.rebate_high[0] * df_tT
        if touch.has_lower_barrier:
            left = 0.0 if touch.is_no_touch else spec.rebate_low[0] * df_tT
        return left, right

    def _knockout_conditions(
        self, x: np.ndarray, time_to_maturity: float
    ) -> dict[float, np.ndarray]:
        """Inner values to enforce at each observation tau (rounded key)."""
        spec = self.parent.spec
        obs_times = self._observation_times()
        if obs_times is None:
            return {}
        upper = spec.touch_type.has_upper_barrier
        levels = spec.barrier_high if upper else spec.barrier_low
        rebates = spec.rebate_high if upper else spec.rebate_low
        df_T = float(self.process.risk_free_discount(time_to_maturity))

        conditions: dict[float, np.ndarray] = {}
        for t, level, rebate in zip(obs_times, levels, rebates):
            if t <= _LOG_TOL:
                continue
            amount = rebate * df_T / float(self.process.risk_free_discount(t)) if spec.payoff_at_expiry else rebate
            inner = _knockout_inner_value(x, level, amount, upper=upper)
            key = round(float(time_to_maturity - t), 12)
            if key in conditions:
                inner = np.maximum(conditions[key], inner)
            conditions[key] = inner
        return conditions

    def _step_rates(self, t0: float, t1: float) -> tuple[float, float, float]:
        """(sigma^2, r, q) averaged over ``[t0, t1]``."""
        dt = t1 - t0
        variance_rate = (self.process.black_variance(t1) - self.process.black_variance(t0)) / dt
        r = float(
            np.log(self.process.risk_free_discount(t0) / self.process.risk_free_discount(t1))
        ) / dt
        q = float(
            np.log(self.process.dividend_discount(t0) / self.process.dividend_discount(t1))
        ) / dt
        return variance_rate, r, q

    def solve(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return the log-spot mesh, values at the pricing date and values one theta roll later."""
        params = self.parent.params
        if not isinstance(params, PDEParams):
            raise ConfigurationError("PDE valuation requires PDEParams on BarrierValuation")
        spec = self.parent.spec
        spot = self.process.spot()
        time_to_maturity = self.process.time(spec.maturity)
        logger.debug(
            "PDE touch %s method=%s space_steps=%d time_steps=%d damping_steps=%d",
            spec.touch_type.name,
            params.method.value,
            params.space_steps,
            params.time_steps,
            params.damping_steps,
        )

        xmin, xmax = _mesh_bounds(spot, spec, float(params.smax_mult))
        x = np.linspace(xmin, xmax, int(params.space_steps) + 1)
        dx = float(x[1] - x[0])

        conditions = self._knockout_conditions(x, time_to_maturity)
        if spec.observation_dates is not None:
            V = np.zeros_like(x)
            inner = conditions.get(0.0)
            if inner is not None:
                V = np.where(inner > 0.0, inner, V)
        else:
            V = _inner_value(x, spec)

        roll = theta_roll(time_to_maturity)
        roll_tau = round(time_to_maturity - roll, 12)
        tau_grid = _build_tau_grid(
            time_to_maturity, int(params.time_steps), list(conditions) + [roll_tau]
        )
        steps = _build_time_step_schedule(tau_grid, params.method, int(params.damping_steps))

        V_roll = V
        for tau_prev, tau_curr, theta in steps:
            d_tau = tau_curr - tau_prev
            t_prev = time_to_maturity - tau_prev
            t_curr = max(time_to_maturity - tau_curr, 0.0)
            variance_rate, r, q = self._step_rates(t_curr, t_prev)
            lower, diag, upper = _log_operator_coeffs(
                dx=dx, variance_rate=variance_rate, risk_free_rate=r, dividend_rate=q
            )
            if theta == 0.0:
                _check_explicit_stability(
                    d_tau=d_tau, diag=diag, time_to_maturity=time_to_maturity
                )
            left, right = self._boundary_values(t_curr, time_to_maturity)
            V = _theta_step(V, lower, diag, upper, d_tau, theta, left, right)

            key = round(tau_curr, 12)
            inner = conditions.get(key)
            if inner is not None:
                V = np.where(inner > 0.0, inner, V)
            if key == roll_tau:
                V_roll = V.copy()

        return x, V, V_roll

    def calculate(self) -> PricingResult:
        rebate = self._touched_rebate()
        if rebate is not None:
            logger.debug("Touch barrier already hit at pricing date; returning settled value")
            return self._settled_result(rebate)

        params = self.parent.params
        with log_timing(logger, "PDE touch calculate", params.log_timings):
            x, V, V_roll = self.solve()

        spot = self.process.spot()
        x0 = np.log(spot)
        value = float(np.interp(x0, x, V))

        dx = x[1] - x[0]
        V_x = (V[2:] - V[:-2]) / (2.0 * dx)
        V_xx = (V[2:] - 2.0 * V[1:-1] + V[:-2]) / dx**2
        first = float(np.interp(x0, x[1:-1], V_x))
        second = float(np.interp(x0, x[1:-1], V_xx))
        delta = first / spot
        gamma = (second - first) / spot**2

        roll = theta_roll(self.process.time(self.parent.spec.maturity))
        theta = (float(np.interp(x0, x, V_roll)) - value) * ONE_DAY / roll
        return PricingResult(value=value, delta=delta, gamma=gamma, theta=theta)
