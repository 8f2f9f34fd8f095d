"""Black volatility term structure."""

from dataclasses import dataclass

import numpy as np

from .exceptions import ArbitrageViolationError, ValidationError


@dataclass(frozen=True, slots=True)
class BlackVolatility:
    """Term structure of Black (implied) volatilities.

    Total variance ``w(t) = vol(t)^2 * t`` is interpolated linearly in ``t``
    between pillars (``w(0) = 0``), so the instantaneous (local) volatility is
    piecewise constant.  Beyond the last pillar the last implied volatility is
    held flat.

    Parameters
    ----------
    times : np.ndarray
        Strictly increasing, positive pillar times in years.
    vols : np.ndarray
        Implied volatilities at the pillars (non-negative).
    """

    times: np.ndarray
    vols: np.ndarray

    def __post_init__(self) -> None:
        t = np.asarray(self.times, dtype=float)
        v = np.asarray(self.vols, dtype=float)
        if t.ndim != 1 or v.ndim != 1 or t.shape != v.shape or t.size < 1:
            raise ValidationError("times and vols must be non-empty 1D arrays of the same length")
        if np.any(t <= 0.0):
            raise ValidationError("volatility pillar times must be positive")
        if np.any(np.diff(t) <= 0.0):
            raise ValidationError("volatility pillar times must be strictly increasing")
        if np.any(~np.isfinite(v)) or np.any(v < 0.0):
            raise ValidationError("volatilities must be finite and non-negative")
        w = v**2 * t
        if np.any(np.diff(w) < -1e-14):
            raise ArbitrageViolationError("total implied variance must be non-decreasing in time")
        object.__setattr__(self, "times", t)
        object.__setattr__(self, "vols", v)

    @classmethod
    def flat(cls, vol: float, end_time: float = 1.0) -> "BlackVolatility":
        """Constant volatility."""
        if end_time <= 0.0:
            raise ValidationError("end_time must be positive")
        return cls(times=np.array([float(end_time)]), vols=np.array([float(vol)]))

    @property
    def is_flat(self) -> bool:
        return bool(np.all(self.vols == self.vols[0]))

    def _pillars(self) -> tuple[np.ndarray, np.ndarray]:
        t = np.concatenate([[0.0], self.times])
        w = np.concatenate([[0.0], self.vols**2 * self.times])
        return t, w

    def black_variance(self, t: float | np.ndarray) -> np.ndarray:
        """Total variance ``w(t)`` to time ``t``."""
        t = np.asarray(t, dtype=float)
        if np.any(t < 0.0):
            raise ValidationError("black_variance needs t >= 0")
        pillars_t, pillars_w = self._pillars()
        last_vol = float(self.vols[-1])
        inside = np.interp(t, pillars_t, pillars_w)
        return np.where(t > pillars_t[-1], last_vol**2 * t, inside)

    def black_vol(self, t: float) -> float:
        """Implied volatility to time ``t``."""
        if t <= 0.0:
            return float(self.vols[0])
        return float(np.sqrt(self.black_variance(t) / t))

    def forward_variance(self, t0: float, t1: float) -> float:
        """Integrated variance over ``[t0, t1]``."""
        if t1 < t0:
            raise ValidationError("Need t1 >= t0")
        return float(self.black_variance(t1) - self.black_variance(t0))

    def local_vol(self, t: float) -> float:
        """Instantaneous volatility at ``t`` (right-continuous at pillars)."""
        if self.is_flat:
            return float(self.vols[0])
        pillars_t, pillars_w = self._pillars()
        if t >= pillars_t[-1]:
            # flat extrapolation of the last implied vol: w = v^2 t
            return float(self.vols[-1])
        k = int(np.searchsorted(pillars_t, t, side="right"))
        slope = (pillars_w[k] - pillars_w[k - 1]) / (pillars_t[k] - pillars_t[k - 1])
        return float(np.sqrt(max(slope, 0.0)))
