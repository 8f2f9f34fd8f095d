"""Parameter classes for method-specific valuation configuration.

Each numerical engine (Monte Carlo, PDE finite differences) has its own parameter
class documenting the options available for that method. Analytic engines take
no parameters.
"""

from dataclasses import dataclass

from ..enums import PDEMethod
from ..exceptions import ConfigurationError


@dataclass(frozen=True, slots=True)
class MonteCarloParams:
    """Parameters for Monte Carlo valuation.

    Attributes
    ==========
    time_steps:
        Total number of time steps on the simulation grid.
        Exactly one of ``time_steps`` and ``time_steps_per_year`` must be set.
    time_steps_per_year:
        Steps per year; the grid gets ``max(int(time_steps_per_year * T), 1)`` steps.
    brownian_bridge:
        Consume the gaussian draws in Brownian-bridge order.
    antithetic:
        Use antithetic pairs; each pair counts as one sample.
    required_samples:
        Fixed number of samples. Exclusive with ``required_tolerance``.
    required_tolerance:
        Target standard error of the estimate. Samples are added until it is met
        or ``max_samples`` is reached (a warning is logged in that case).
    max_samples:
        Hard cap on the number of samples. None means unbounded.
    min_samples:
        Size of the first batch in tolerance mode.
    seed:
        Seed of the random sequences. None draws fresh entropy.
    batch_size:
        Samples per random block. Results are reproducible for a given
        ``(seed, batch_size)`` independently of ``workers``.
    workers:
        Number of threads evaluating blocks concurrently.
    calculate_greeks:
        Also estimate delta/gamma (spot bumps) and theta (one-day roll) using
        common random numbers. Triples to quadruples the run time.
    std_error_warn_ratio:
        Log a warning when standard error / |value| exceeds this ratio.
        None disables the check.
    log_timings:
        Log wall-clock timings at DEBUG level.
    """

    time_steps: int | None = None
    time_steps_per_year: int | None = None
    brownian_bridge: bool = False
    antithetic: bool = False
    required_samples: int | None = None
    required_tolerance: float | None = None
    max_samples: int | None = None
    min_samples: int = 1023
    seed: int | None = 42
    batch_size: int = 4096
    workers: int = 1
    calculate_greeks: bool = False
    std_error_warn_ratio: float | None = 0.05
    log_timings: bool = False

    def __post_init__(self):
        if self.time_steps is None and self.time_steps_per_year is None:
            raise ConfigurationError("number of steps not given")
        if self.time_steps is not None and self.time_steps_per_year is not None:
            raise ConfigurationError("number of steps overspecified")
        if self.time_steps is not None and self.time_steps < 1:
            raise ConfigurationError(f"time_steps must be >= 1, got {self.time_steps}")
        if self.time_steps_per_year is not None and self.time_steps_per_year < 1:
            raise ConfigurationError(
                f"time_steps_per_year must be >= 1, got {self.time_steps_per_year}"
            )
        if self.required_samples is None and self.required_tolerance is None:
            raise ConfigurationError("neither required_samples nor required_tolerance given")
        if self.required_samples is not None and self.required_tolerance is not None:
            raise ConfigurationError("required_samples and required_tolerance are exclusive")
        if self.required_samples is not None and self.required_samples < 2:
            raise ConfigurationError(
                f"required_samples must be >= 2, got {self.required_samples}"
            )
        if self.required_tolerance is not None and self.required_tolerance <= 0:
            raise ConfigurationError(
                f"required_tolerance must be positive, got {self.required_tolerance}"
            )
        if self.max_samples is not None:
            if self.max_samples < 2:
                raise ConfigurationError(f"max_samples must be >= 2, got {self.max_samples}")
            if self.required_samples is not None and self.required_samples > self.max_samples:
                raise ConfigurationError(
                    f"required_samples ({self.required_samples}) exceeds "
                    f"max_samples ({self.max_samples})"
                )
        if self.min_samples < 2:
            raise ConfigurationError(f"min_samples must be >= 2, got {self.min_samples}")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")
        if self.std_error_warn_ratio is not None and self.std_error_warn_ratio <= 0:
            raise ConfigurationError(
                f"std_error_warn_ratio must be positive, got {self.std_error_warn_ratio}"
            )


@dataclass(frozen=True, slots=True)
class PDEParams:
    """Parameters for PDE finite difference valuation.

    Attributes:
        time_steps: Number of time steps between maturity and pricing date
                    (stopping times are merged in on top). Default: 100.
        space_steps: Number of intervals of the log-price mesh. Default: 100.
        damping_steps: Number of fully implicit steps taken first from maturity to
                       damp oscillations from the discontinuous terminal condition.
                       Default: 0.
        method: Time-stepping scheme for the FD solver. Default: Crank-Nicolson.
        smax_mult: Multiplier placing a mesh bound that is not set by a barrier:
                   ``smax_mult * max(spot, barrier)`` above, ``min(spot, barrier) / smax_mult``
                   below. Default: 4.0
        log_timings: Log wall-clock timings at DEBUG level.
    """

    time_steps: int = 100
    space_steps: int = 100
    damping_steps: int = 0
    method: PDEMethod | str = PDEMethod.CRANK_NICOLSON
    smax_mult: float = 4.0
    log_timings: bool = False

    def __post_init__(self):
        if isinstance(self.method, str):
            try:
                object.__setattr__(self, "method", PDEMethod(self.method))
            except ValueError as exc:
                raise ConfigurationError(f"unknown PDE method {self.method!r}") from exc
        if not isinstance(self.method, PDEMethod):
            raise ConfigurationError(f"method must be a PDEMethod, got {self.method}")
        if self.time_steps < 1:
            raise ConfigurationError(f"time_steps must be >= 1, got {self.time_steps}")
        if self.space_steps < 3:
            raise ConfigurationError(f"space_steps must be >= 3, got {self.space_steps}")
        if not 0 <= self.damping_steps <= self.time_steps:
            raise ConfigurationError(
                f"damping_steps must be in [0, time_steps], got {self.damping_steps}"
            )
        if self.smax_mult <= 1.0:
            raise ConfigurationError(f"smax_mult must be > 1, got {self.smax_mult}")


# Type alias for any valuation parameters
ValuationParams = MonteCarloParams | PDEParams
