"""Monte Carlo valuation of autocallable notes.

Paths are simulated on a uniform grid. Barrier crossings between grid nodes
are accounted for with the Brownian-bridge extremum of each step: given the
log move ``x`` and local variance ``v`` of a step, and a uniform ``u``,

    y_max = (x + sqrt(x^2 - 2 v ln u)) / 2
    y_min = (x - sqrt(x^2 - 2 v ln u)) / 2

are draws of the conditional maximum and minimum of the log price inside the
step. The knock-out is checked against ``y_max`` on steps that contain a fixing
date, the knock-in against ``y_min`` on every step.

Sampling is organised in blocks of ``batch_size`` trials. Block ``k`` always
draws the same random numbers for a given seed, so estimates do not depend on
how many threads evaluate the blocks.
"""

from __future__ import annotations
from typing import TYPE_CHECKING
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import datetime as dt
import logging
import numpy as np

from ..exceptions import ConfigurationError, ValidationError
from ..market_environment import MarketState
from ..sequences import GaussianSequenceGenerator, UniformSequenceGenerator
from ..stochastic_processes import BlackScholesProcess, PathGenerator, SimulatedPath, TimeGrid
from ..utils import log_timing
from .params import MonteCarloParams
from .results import PricingResult

if TYPE_CHECKING:
    from .core import AutocallSpec, BarrierValuation


logger = logging.getLogger(__name__)

# fixings closer than this to a grid node count as on the node
_TIME_TOL = 1e-12
SPOT_BUMP = 0.01
# streams of the two random sequences built from one seed
_UNIFORM_STREAM = 0
_GAUSSIAN_STREAM = 1


class RunningStatistics:
    """Mergeable sample count, mean and sum of squared deviations.

    ``merge`` uses the pairwise update of Chan, Golub and LeVeque, so partial
    statistics computed per block can be combined without keeping the samples.
    """

    def __init__(self) -> None:
        self.count = 0
        self.mean = 0.0
        self.m2 = 0.0

    @classmethod
    def from_samples(cls, samples: np.ndarray) -> "RunningStatistics":
        stats = cls()
        samples = np.asarray(samples, dtype=float)
        if samples.size:
            stats.count = int(samples.size)
            stats.mean = float(np.mean(samples))
            stats.m2 = float(np.sum((samples - stats.mean) ** 2))
        return stats

    def merge(self, other: "RunningStatistics") -> None:
        if other.count == 0:
            return
        if self.count == 0:
            self.count, self.mean, self.m2 = other.count, other.mean, other.m2
            return
        n = self.count + other.count
        delta = other.mean - self.mean
        self.mean += delta * other.count / n
        self.m2 += other.m2 + delta**2 * self.count * other.count / n
        self.count = n

    @property
    def variance(self) -> float:
        if self.count < 2:
            return 0.0
        return self.m2 / (self.count - 1)

    @property
    def error_estimate(self) -> float:
        """Standard error of the mean."""
        if self.count < 2:
            return float("inf")
        return float(np.sqrt(self.variance / self.count))


def _warn_if_high_std_error(
    *,
    stats: RunningStatistics,
    params: MonteCarloParams,
    label: str,
) -> None:
    """Emit a warning log if MC standard error is high relative to the PV estimate."""
    if params.std_error_warn_ratio is None or stats.count < 2:
        return
    std_error = stats.error_estimate
    scale = max(abs(stats.mean), 1.0e-12)
    ratio = std_error / scale
    logger.debug(
        "MC %s std_error=%.6g ratio=%.6g samples=%d",
        label,
        std_error,
        ratio,
        stats.count,
    )
    if ratio > params.std_error_warn_ratio:
        logger.warning(
            "MC %s standard error high: std_error=%.6g ratio=%.6g (>%.3g) samples=%d",
            label,
            std_error,
            ratio,
            params.std_error_warn_ratio,
            stats.count,
        )


class AutocallPathPricer:
    """Discounted autocall payoff of simulated paths.

    Parameters
    ==========
    grid: TimeGrid
        Simulation grid; paths have one value per grid node.
    fixing_times: np.ndarray
        Knock-out observation times; only those after 0 are used.
    ki_barrier, ko_barrier, strike, rebate, coupon, margin: float
        Contract terms, see ``AutocallSpec``.
    discounts: np.ndarray
        Risk-free discount factor at every grid node.
    variances: np.ndarray
        Local variance ``sigma(t_{i-1})^2 * dt_i`` of every step.
    """

    def __init__(
        self,
        grid: TimeGrid,
        fixing_times: np.ndarray,
        *,
        ki_barrier: float,
        ko_barrier: float,
        strike: float,
        rebate: float,
        coupon: float,
        margin: float,
        discounts: np.ndarray,
        variances: np.ndarray,
    ) -> None:
        fixing_times = np.sort(np.asarray(fixing_times, dtype=float))
        self.fixing_times = fixing_times[fixing_times > _TIME_TOL]
        self.times = grid.times
        self.ki_barrier = float(ki_barrier)
        self.ko_barrier = float(ko_barrier)
        self.strike = float(strike)
        self.rebate = float(rebate)
        self.coupon = float(coupon)
        self.margin = float(margin)
        self.discounts = np.asarray(discounts, dtype=float)
        self.variances = np.asarray(variances, dtype=float)
        if self.discounts.shape != self.times.shape:
            raise ValidationError("one discount factor per grid node is required")
        if self.variances.size != grid.steps:
            raise ValidationError("one local variance per grid step is required")

    def _observation_steps(self) -> np.ndarray:
        """Mask of the steps ``(t_{i-1}, t_i]`` containing at least one fixing."""
        steps = np.zeros(self.times.size - 1, dtype=bool)
        nodes = np.searchsorted(self.times, self.fixing_times - _TIME_TOL, side="left")
        nodes = nodes[(nodes >= 1) & (nodes < self.times.size)]
        steps[nodes - 1] = True
        return steps

    def _maturity_payoff(self, final_price, knocked_in):
        maturity = self.times[-1]
        put = np.maximum(self.strike - final_price, 0.0)
        return np.where(
            knocked_in,
            self.margin - put,
            self.coupon * maturity + self.margin,
        ) * self.discounts[-1]

    def __call__(self, path: SimulatedPath, uniforms: np.ndarray) -> float:
        """Discounted payoff of one path, walking it step by step."""
        values = np.asarray(path.values, dtype=float)
        times = np.asarray(path.times, dtype=float)
        if values.size <= 1:
            raise ValidationError("the path cannot be empty")
        if values.size != self.times.size:
            raise ValidationError("path length does not match the simulation grid")

        knocked_in = values[0] <= self.ki_barrier
        k = 0
        for i in range(1, values.size):
            x = np.log(values[i] / values[i - 1])
            root = np.sqrt(x * x - 2.0 * self.variances[i - 1] * np.log(uniforms[i - 1]))

            if k < self.fixing_times.size and times[i] >= self.fixing_times[k] - _TIME_TOL:
                # consume every fixing inside (t_{i-1}, t_i]
                while k < self.fixing_times.size and self.fixing_times[k] <= times[i] + _TIME_TOL:
                    k += 1
                if values[i - 1] * np.exp(0.5 * (x + root)) >= self.ko_barrier:
                    return float((self.rebate * times[i] + self.margin) * self.discounts[i])

            if not knocked_in and values[i - 1] * np.exp(0.5 * (x - root)) <= self.ki_barrier:
                knocked_in = True

        return float(self._maturity_payoff(values[-1], knocked_in))

    def price_paths(self, values: np.ndarray, uniforms: np.ndarray) -> np.ndarray:
        """Discounted payoffs of a ``(paths, nodes)`` block with ``(paths, steps)`` uniforms."""
        values = np.atleast_2d(np.asarray(values, dtype=float))
        uniforms = np.atleast_2d(np.asarray(uniforms, dtype=float))
        if values.shape[1] <= 1:
            raise ValidationError("the path cannot be empty")
        if values.shape[1] != self.times.size:
            raise ValidationError("path length does not match the simulation grid")
        if uniforms.shape != (values.shape[0], values.shape[1] - 1):
            raise ValidationError("one uniform per path step is required")

        start = values[:, :-1]
        x = np.log(values[:, 1:] / start)
        root = np.sqrt(x * x - 2.0 * self.variances * np.log(uniforms))
        path_max = start * np.exp(0.5 * (x + root))
        path_min = start * np.exp(0.5 * (x - root))

        ko_hits = (path_max >= self.ko_barrier) & self._observation_steps()
        knocked_out = ko_hits.any(axis=1)
        ko_node = np.argmax(ko_hits, axis=1) + 1
        knocked_in = (values[:, 0] <= self.ki_barrier) | (path_min <= self.ki_barrier).any(axis=1)

        ko_payoff = (self.rebate * self.times[ko_node] + self.margin) * self.discounts[ko_node]
        return np.where(knocked_out, ko_payoff, self._maturity_payoff(values[:, -1], knocked_in))


@dataclass(frozen=True, slots=True)
class _Simulation:
    """Everything needed to evaluate any block of trials for one market."""

    generator: PathGenerator
    pricer: AutocallPathPricer
    gaussians: GaussianSequenceGenerator
    uniforms: UniformSequenceGenerator
    antithetic: bool
    batch_size: int

    def block_samples(self, block: int, lo: int, hi: int) -> np.ndarray:
        """Samples ``lo:hi`` (offsets inside the block) of block ``block``."""
        normals = self.gaussians.block(block, self.batch_size)[lo:hi]
        uniforms = self.uniforms.block(block, self.batch_size)[lo:hi]
        paths = self.generator.generate(normals, antithetic=self.antithetic)
        if not self.antithetic:
            return self.pricer.price_paths(paths, uniforms)
        pv = self.pricer.price_paths(paths, np.repeat(uniforms, 2, axis=0))
        return pv.reshape(-1, 2).mean(axis=1)

    def segments(self, start: int, stop: int) -> list[tuple[int, int, int]]:
        """(block, lo, hi) pieces covering trial indices ``start:stop``."""
        out = []
        i = start
        while i < stop:
            block, lo = divmod(i, self.batch_size)
            hi = min(self.batch_size, lo + stop - i)
            out.append((block, lo, hi))
            i += hi - lo
        return out


class _MCAutocallValuation:
    """Autocall valuation using Monte Carlo with Brownian-bridge barrier checks."""

    def __init__(self, parent: BarrierValuation) -> None:
        self.parent = parent
        if not isinstance(parent.params, MonteCarloParams):
            raise ConfigurationError(
                "Monte Carlo valuation requires MonteCarloParams on BarrierValuation"
            )
        self.mc_params: MonteCarloParams = parent.params
        self.process = BlackScholesProcess(parent.market)
        # resolved once so that bumped revaluations reuse the same draws
        if self.mc_params.seed is None:
            self._seed = int(np.random.SeedSequence().entropy)
        else:
            self._seed = int(self.mc_params.seed)

    # ── settlement at the pricing date ──────────────────────────────

    def _triggered_at(self, market: MarketState) -> bool:
        spec: AutocallSpec = self.parent.spec
        fixing_times = spec.fixing_dates.times(market)
        on_pricing_date = np.any(np.abs(fixing_times) <= _TIME_TOL)
        return bool(on_pricing_date and market.spot >= spec.ko_barrier)

    def triggered(self) -> bool:
        """True when a fixing falls on the pricing date and spot is at/above the knock-out."""
        return self._triggered_at(self.parent.market)

    # ── simulation set-up ───────────────────────────────────────────

    def _time_grid(self, maturity: float) -> TimeGrid:
        params = self.mc_params
        if params.time_steps is not None:
            return TimeGrid.uniform(maturity, params.time_steps)
        return TimeGrid.from_steps_per_year(maturity, params.time_steps_per_year)

    def _simulation(self, market: MarketState) -> _Simulation:
        spec: AutocallSpec = self.parent.spec
        params = self.mc_params
        process = BlackScholesProcess(market)
        maturity = process.time(spec.maturity)
        grid = self._time_grid(maturity)
        generator = PathGenerator(process, grid, brownian_bridge=params.brownian_bridge)
        pricer = AutocallPathPricer(
            grid,
            spec.fixing_dates.times(market),
            ki_barrier=spec.ki_barrier,
            ko_barrier=spec.ko_barrier,
            strike=spec.strike,
            rebate=spec.rebate,
            coupon=spec.coupon,
            margin=spec.margin,
            discounts=process.risk_free_discount(grid.times),
            variances=generator.variances,
        )
        return _Simulation(
            generator=generator,
            pricer=pricer,
            gaussians=GaussianSequenceGenerator(grid.steps, self._seed, stream=_GAUSSIAN_STREAM),
            uniforms=UniformSequenceGenerator(grid.steps, self._seed, stream=_UNIFORM_STREAM),
            antithetic=params.antithetic,
            batch_size=params.batch_size,
        )

    def _run(self, sim: _Simulation, start: int, stop: int) -> RunningStatistics:
        """Statistics of trials ``start:stop``; blocks are merged in order."""
        segments = sim.segments(start, stop)

        def evaluate(segment: tuple[int, int, int]) -> RunningStatistics:
            return RunningStatistics.from_samples(sim.block_samples(*segment))

        if self.mc_params.workers > 1 and len(segments) > 1:
            with ThreadPoolExecutor(max_workers=self.mc_params.workers) as pool:
                partials = list(pool.map(evaluate, segments))
        else:
            partials = [evaluate(s) for s in segments]

        stats = RunningStatistics()
        for partial in partials:
            stats.merge(partial)
        return stats

    def _run_to_tolerance(self, sim: _Simulation) -> RunningStatistics:
        params = self.mc_params
        tolerance = params.required_tolerance
        max_samples = params.max_samples

        first = params.min_samples
        if max_samples is not None:
            first = min(first, max_samples)
        stats = self._run(sim, 0, first)
        while stats.error_estimate > tolerance:
            n = stats.count
            if max_samples is not None and n >= max_samples:
                logger.warning(
                    "MC autocall reached max_samples=%d with error %.6g > tolerance %.6g",
                    max_samples,
                    stats.error_estimate,
                    tolerance,
                )
                break
            order = stats.error_estimate**2 / tolerance**2
            next_batch = max(int(n * order * 0.8 - n), params.min_samples)
            if max_samples is not None:
                next_batch = min(next_batch, max_samples - n)
            logger.debug(
                "MC autocall error=%.6g after %d samples, adding %d", stats.error_estimate, n, next_batch
            )
            stats.merge(self._run(sim, n, n + next_batch))
        return stats

    def _value(self, market: MarketState, samples: int | None = None) -> RunningStatistics:
        """Estimate for ``market``; fixed ``samples`` or the configured sample policy."""
        if self._triggered_at(market):
            stats = RunningStatistics()
            stats.count, stats.mean = 1, float(self.parent.spec.margin)
            return stats
        sim = self._simulation(market)
        if samples is not None:
            return self._run(sim, 0, samples)
        if self.mc_params.required_samples is not None:
            return self._run(sim, 0, self.mc_params.required_samples)
        return self._run_to_tolerance(sim)

    # ── results ─────────────────────────────────────────────────────

    def _greeks(self, base: RunningStatistics) -> tuple[float, float, float | None]:
        """Bump-and-revalue delta/gamma and one-day theta on common random numbers."""
        market = self.parent.market
        n = base.count
        h = SPOT_BUMP * market.spot
        up = self._value(market.replace(spot=market.spot + h), n).mean
        down = self._value(market.replace(spot=market.spot - h), n).mean
        delta = (up - down) / (2.0 * h)
        gamma = (up - 2.0 * base.mean + down) / h**2

        rolled_date = market.pricing_date + dt.timedelta(days=1)
        if rolled_date >= self.parent.spec.maturity:
            return delta, gamma, None
        theta = self._value(market.replace(pricing_date=rolled_date), n).mean - base.mean
        return delta, gamma, theta

    def calculate(self) -> PricingResult:
        spec: AutocallSpec = self.parent.spec
        if self.triggered():
            logger.debug("Autocall knocked out at the pricing date; value is the margin")
            return PricingResult.settled(spec.margin)

        params = self.mc_params
        with log_timing(logger, "MC autocall calculate", params.log_timings):
            stats = self._value(self.parent.market)
            logger.debug(
                "MC autocall samples=%d mean=%.6g error=%.6g",
                stats.count,
                stats.mean,
                stats.error_estimate,
            )
            _warn_if_high_std_error(stats=stats, params=params, label="autocall")

            delta = gamma = theta = None
            if params.calculate_greeks:
                delta, gamma, theta = self._greeks(stats)

        return PricingResult(
            value=stats.mean,
            delta=delta,
            gamma=gamma,
            theta=theta,
            error_estimate=stats.error_estimate,
            samples=stats.count,
        )
