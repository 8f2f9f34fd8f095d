"Black-Scholes process adapter, time grids and Brownian-bridge path generation"

from __future__ import annotations
from dataclasses import dataclass
import datetime as dt
import numpy as np
from .market_environment import MarketState
from .utils import calculate_year_fraction
from .exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class TimeGrid:
    """Time grid starting at 0, in year fractions."""

    times: np.ndarray

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=float)
        if t.ndim != 1 or t.size < 2:
            raise ValidationError("a time grid needs at least two nodes")
        if not np.isclose(t[0], 0.0):
            raise ValidationError("time grid must start at 0.0")
        if np.any(np.diff(t) <= 0.0):
            raise ValidationError("time grid must be strictly increasing")
        object.__setattr__(self, "times", t)

    @classmethod
    def uniform(cls, end_time: float, steps: int) -> "TimeGrid":
        """``steps`` equal intervals over ``[0, end_time]``."""
        if end_time <= 0.0:
            raise ValidationError("end_time must be positive")
        if steps < 1:
            raise ValidationError("steps must be >= 1")
        return cls(np.linspace(0.0, float(end_time), int(steps) + 1))

    @classmethod
    def from_steps_per_year(cls, end_time: float, steps_per_year: int) -> "TimeGrid":
        """Uniform grid with ``max(int(steps_per_year * end_time), 1)`` intervals."""
        if steps_per_year < 1:
            raise ValidationError("steps_per_year must be >= 1")
        return cls.uniform(end_time, max(int(steps_per_year * end_time), 1))

    @property
    def dt(self) -> np.ndarray:
        return np.diff(self.times)

    @property
    def steps(self) -> int:
        return self.times.size - 1

    @property
    def end_time(self) -> float:
        return float(self.times[-1])

    def __len__(self) -> int:
        return self.times.size


class BlackScholesProcess:
    """Generalised Black-Scholes process read from a :class:`MarketState`.

    Exposes the numeric services the engines consume: spot, local volatility,
    year fractions and the risk-free/dividend discount factors.
    """

    def __init__(self, market: MarketState) -> None:
        self.market = market

    def spot(self) -> float:
        return self.market.spot

    def time(self, date: dt.datetime) -> float:
        """Year fraction from the pricing date to ``date``."""
        return calculate_year_fraction(self.market.pricing_date, date, self.market.day_count)

    def diffusion(self, t: float, spot: float | None = None) -> float:
        """Local volatility at time ``t``.

        The volatility term structure carries no smile, so the level does not
        depend on ``spot``.
        """
        return self.market.volatility.local_vol(t)

    def black_variance(self, t: float) -> float:
        return float(self.market.volatility.black_variance(t))

    def risk_free_discount(self, t: float | np.ndarray) -> np.ndarray:
        return self.market.discount_curve.df(t)

    def dividend_discount(self, t: float | np.ndarray) -> np.ndarray:
        if self.market.dividend_curve is None:
            return np.ones_like(np.asarray(t, dtype=float))
        return self.market.dividend_curve.df(t)

    def step_variances(self, grid: TimeGrid) -> np.ndarray:
        """Local variance ``sigma(t_{i-1})^2 * dt_i`` on each grid interval."""
        vols = np.array([self.diffusion(t, self.spot()) for t in grid.times[:-1]], dtype=float)
        return vols**2 * grid.dt

    def step_log_drifts(self, grid: TimeGrid) -> np.ndarray:
        """Risk-neutral ``(r - q) * dt`` on each interval, from the curves."""
        log_dr = np.log(self.risk_free_discount(grid.times))
        log_dq = np.log(self.dividend_discount(grid.times))
        return (log_dr[:-1] - log_dr[1:]) - (log_dq[:-1] - log_dq[1:])


class BrownianBridge:
    """Brownian-bridge construction of Wiener increments on a time grid.

    The first gaussian draw sets the terminal point, the following ones fill
    in mid-points by bisection. ``transform`` returns normalised increments
    (unit variance per step), so the output can stand in for iid normals.
    This concentrates the variance of the path in the first draws.
    """

    def __init__(self, grid: TimeGrid) -> None:
        t = grid.times[1:]
        size = t.size
        self.size = size
        self._sqrt_dt = np.sqrt(grid.dt)
        self._bridge_index = np.zeros(size, dtype=int)
        self._left_index = np.zeros(size, dtype=int)
        self._right_index = np.zeros(size, dtype=int)
        self._left_weight = np.zeros(size)
        self._right_weight = np.zeros(size)
        self._std_dev = np.zeros(size)

        filled = np.zeros(size, dtype=int)
        filled[-1] = 1
        self._bridge_index[0] = size - 1
        self._std_dev[0] = np.sqrt(t[-1])

        j = 0
        for i in range(1, size):
            while filled[j]:
                j += 1
            k = j
            while not filled[k]:
                k += 1
            # filled[k - 1] == 0 and filled[k] != 0
            l = j + ((k - 1 - j) >> 1)
            filled[l] = i
            self._bridge_index[i] = l
            self._left_index[i] = j
            self._right_index[i] = k
            if j != 0:
                span = t[k] - t[j - 1]
                self._left_weight[i] = (t[k] - t[l]) / span
                self._right_weight[i] = (t[l] - t[j - 1]) / span
                self._std_dev[i] = np.sqrt((t[l] - t[j - 1]) * (t[k] - t[l]) / span)
            else:
                self._left_weight[i] = (t[k] - t[l]) / t[k]
                self._right_weight[i] = t[l] / t[k]
                self._std_dev[i] = np.sqrt(t[l] * (t[k] - t[l]) / t[k])
            j = k + 1
            if j >= size:
                j = 0

    def transform(self, normals: np.ndarray) -> np.ndarray:
        """Map ``(n, steps)`` iid normals to bridge-ordered normalised increments."""
        z = np.atleast_2d(np.asarray(normals, dtype=float))
        if z.shape[1] != self.size:
            raise ValidationError(f"expected {self.size} draws per path, got {z.shape[1]}")
        w = np.empty_like(z)
        w[:, -1] = self._std_dev[0] * z[:, 0]
        for i in range(1, self.size):
            j = self._left_index[i]
            k = self._right_index[i]
            l = self._bridge_index[i]
            if j != 0:
                w[:, l] = (
                    self._left_weight[i] * w[:, j - 1]
                    + self._right_weight[i] * w[:, k]
                    + self._std_dev[i] * z[:, i]
                )
            else:
                w[:, l] = self._right_weight[i] * w[:, k] + self._std_dev[i] * z[:, i]
        increments = np.diff(w, axis=1, prepend=0.0)
        return increments / self._sqrt_dt


@dataclass(frozen=True, slots=True)
class SimulatedPath:
    """One simulated asset path: values aligned to the nodes of ``times``."""

    times: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=float)
        v = np.asarray(self.values, dtype=float)
        if v.ndim != 1 or v.size <= 1:
            raise ValidationError("a path needs at least two nodes")
        if t.shape != v.shape:
            raise ValidationError("path times and values must have the same length")
        object.__setattr__(self, "times", t)
        object.__setattr__(self, "values", v)

    def __len__(self) -> int:
        return self.values.size


class PathGenerator:
    """Exact log-normal paths of a :class:`BlackScholesProcess` on a time grid.

    Drift is integrated per interval from the curves. Variance is the local
    volatility at the start of each interval times its length, so a vol pillar
    inside an interval only takes effect from the next one. With ``brownian_bridge=True`` the gaussian draws
    are consumed in bridge order; the distribution of the paths is unchanged.
    """

    def __init__(
        self,
        process: BlackScholesProcess,
        grid: TimeGrid,
        *,
        brownian_bridge: bool = False,
    ) -> None:
        self.process = process
        self.grid = grid
        self.variances = process.step_variances(grid)
        self._drifts = process.step_log_drifts(grid) - 0.5 * self.variances
        self._bridge = BrownianBridge(grid) if brownian_bridge else None

    @property
    def dimension(self) -> int:
        return self.grid.steps

    def generate(self, normals: np.ndarray, *, antithetic: bool = False) -> np.ndarray:
        """Paths for a ``(n, steps)`` block of normals, shape ``(n, steps + 1)``.

        With ``antithetic=True`` the output has ``2n`` rows: rows ``2i`` and
        ``2i + 1`` are the path and its mirror driven by ``-normals[i]``.
        """
        z = np.atleast_2d(np.asarray(normals, dtype=float))
        if self._bridge is not None:
            z = self._bridge.transform(z)
        if antithetic:
            z = np.stack([z, -z], axis=1).reshape(-1, z.shape[1])
        log_steps = self._drifts + np.sqrt(self.variances) * z
        log_paths = np.concatenate(
            [np.zeros((z.shape[0], 1)), np.cumsum(log_steps, axis=1)], axis=1
        )
        return self.process.spot() * np.exp(log_paths)

    def path(self, normals: np.ndarray) -> SimulatedPath:
        """Single path from one vector of ``steps`` normals."""
        values = self.generate(np.asarray(normals, dtype=float).reshape(1, -1))[0]
        return SimulatedPath(times=self.grid.times, values=values)
