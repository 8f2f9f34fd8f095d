"""Interest-rate and dividend discount curves."""

import warnings
from dataclasses import dataclass

import numpy as np

from .exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class DiscountCurve:
    """Deterministic discount curve with log-linear interpolation.

    times are year fractions and must be strictly increasing.
    dfs are positive discount factors, typically with df(0)=1.
    Values > 1 are permitted (negative rates) but trigger a warning.

    The same class serves as a dividend curve: ``df(t)`` is then the
    dividend discount factor ``exp(-q t)``.

    A curve built with ``flat_rate`` evaluates ``exp(-flat_rate * t)``
    exactly for every ``t``; other curves hold the log-DF slope of the last
    segment flat outside the quoted range and warn.
    """

    times: np.ndarray
    dfs: np.ndarray
    flat_rate: float | None = None

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=float)
        df = np.asarray(self.dfs, dtype=float)
        if t.ndim != 1 or df.ndim != 1 or t.shape != df.shape:
            raise ValidationError("times and dfs must be 1D arrays of the same length")
        if t.size < 1:
            raise ValidationError("curve needs at least one node")
        if np.any(np.diff(t) <= 0.0):
            raise ValidationError("times must be strictly increasing")
        if np.any(df <= 0.0):
            raise ValidationError("discount factors must be positive")
        if np.any(df > 1.0 + 1e-12):
            warnings.warn(
                "Discount factors > 1 detected (negative rates)",
                stacklevel=2,
            )
        if self.flat_rate is not None and not np.isfinite(float(self.flat_rate)):
            raise ValidationError("flat_rate must be finite when provided")
        if self.flat_rate is not None:
            implied = np.exp(-float(self.flat_rate) * t)
            if not np.allclose(df, implied, rtol=1e-10, atol=1e-12):
                raise ValidationError(
                    "flat_rate is only allowed when consistent with the provided discount factors"
                )
        object.__setattr__(self, "times", t)
        object.__setattr__(self, "dfs", df)

    @classmethod
    def flat(cls, rate: float, end_time: float = 1.0) -> "DiscountCurve":
        """Flat continuously-compounded curve.

        ``end_time`` only sets the quoted nodes; a flat curve is exact beyond it.
        """
        if end_time <= 0.0:
            raise ValidationError("end_time must be positive")
        times = np.array([0.0, float(end_time)])
        return cls(times=times, dfs=np.exp(-float(rate) * times), flat_rate=float(rate))

    @classmethod
    def from_zero_rates(cls, times: np.ndarray, zero_rates: np.ndarray) -> "DiscountCurve":
        """Build a curve from continuously-compounded zero rates.

        Parameters
        ----------
        times
            Year-fraction grid starting at 0.  Shape ``(N,)``.
        zero_rates
            Zero rate at each time.  The rate at ``times[0] = 0`` is cosmetic.
        """
        times = np.asarray(times, dtype=float)
        zero_rates = np.asarray(zero_rates, dtype=float)
        if times.ndim != 1 or zero_rates.ndim != 1 or times.size != zero_rates.size:
            raise ValidationError("times and zero_rates must be 1-D arrays of the same length")
        if times.size < 2:
            raise ValidationError("times must include at least [0, T]")
        if not np.isclose(times[0], 0.0):
            raise ValidationError("times must start at 0.0")
        return cls(times=times, dfs=np.exp(-zero_rates * times))

    @classmethod
    def from_forwards(cls, times: np.ndarray, forwards: np.ndarray) -> "DiscountCurve":
        """Build a curve from piecewise-constant forward rates (``len(times) - 1`` of them)."""
        times = np.asarray(times, dtype=float)
        forwards = np.asarray(forwards, dtype=float)
        if times.ndim != 1 or forwards.ndim != 1:
            raise ValidationError("times and forwards must be 1-D arrays")
        if times.size < 2:
            raise ValidationError("times must include at least [0, T]")
        if forwards.size != times.size - 1:
            raise ValidationError("forwards must have length len(times) - 1")
        if not np.isclose(times[0], 0.0):
            raise ValidationError("times must start at 0.0")
        cum_rate = np.concatenate([[0.0], np.cumsum(forwards * np.diff(times))])
        return cls(times=times, dfs=np.exp(-cum_rate))

    def df(self, t: float | np.ndarray) -> np.ndarray:
        """Discount factor(s) at year fraction(s) ``t``."""
        t = np.asarray(t, dtype=float)
        if self.flat_rate is not None:
            return np.exp(-self.flat_rate * t)

        log_df = np.log(self.dfs)
        if self.times.size == 1:
            return np.exp(np.full_like(t, log_df[0]))
        t_min, t_max = float(self.times[0]), float(self.times[-1])
        outside = (t < t_min - 1e-12) | (t > t_max + 1e-12)
        if np.any(outside):
            warnings.warn(
                f"Extrapolating discount curve outside [{t_min:.4f}, {t_max:.4f}]",
                stacklevel=2,
            )
        out = np.interp(t, self.times, log_df)
        # extend the edge forward rates beyond the quoted range
        slope_lo = (log_df[1] - log_df[0]) / (self.times[1] - self.times[0])
        slope_hi = (log_df[-1] - log_df[-2]) / (self.times[-1] - self.times[-2])
        out = np.where(t < t_min, log_df[0] + slope_lo * (t - t_min), out)
        out = np.where(t > t_max, log_df[-1] + slope_hi * (t - t_max), out)
        return np.exp(out)

    def discount(self, t0: float, t1: float) -> float:
        """Discount factor from ``t1`` back to ``t0``: ``P(0,t1) / P(0,t0)``."""
        return float(self.df(t1)) / float(self.df(t0))

    def zero_rate(self, t: float) -> float:
        """Continuously-compounded zero rate to ``t``."""
        if t <= 0.0:
            raise ValidationError("zero_rate needs t > 0")
        return -float(np.log(self.df(t))) / t

    def forward_rate(self, t0: float, t1: float) -> float:
        """Return continuously-compounded forward rate on ``[t0, t1]``."""
        if t1 <= t0:
            raise ValidationError("Need t1 > t0")
        if self.flat_rate is not None:
            return float(self.flat_rate)
        return float(np.log(self.df(t0)) - np.log(self.df(t1))) / (t1 - t0)

    def step_forward_rates(self, grid: np.ndarray) -> np.ndarray:
        """Return forward rates on each interval of a time grid."""
        grid = np.asarray(grid, dtype=float)
        if np.any(np.diff(grid) <= 0.0):
            raise ValidationError("grid must be strictly increasing")
        log_df = np.log(self.df(grid))
        return (log_df[:-1] - log_df[1:]) / np.diff(grid)
