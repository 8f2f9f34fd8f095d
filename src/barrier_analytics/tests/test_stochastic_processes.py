"""Tests for time grids, the Black-Scholes process adapter and path generation."""

import numpy as np
import pytest

from barrier_analytics.exceptions import ValidationError
from barrier_analytics.market_environment import MarketState
from barrier_analytics.rates import DiscountCurve
from barrier_analytics.sequences import GaussianSequenceGenerator
from barrier_analytics.stochastic_processes import (
    BlackScholesProcess,
    BrownianBridge,
    PathGenerator,
    TimeGrid,
)
from barrier_analytics.tests.helpers import PRICING_DATE, build_market, years_after
from barrier_analytics.volatility import BlackVolatility


# ---------------------------------------------------------------------------
# TimeGrid
# ---------------------------------------------------------------------------


class TestTimeGrid:
    def test_uniform(self):
        grid = TimeGrid.uniform(2.0, 8)
        assert grid.steps == 8
        assert len(grid) == 9
        np.testing.assert_allclose(grid.dt, 0.25)
        assert grid.end_time == 2.0

    @pytest.mark.parametrize(
        "end_time, per_year, steps",
        [(1.0, 12, 12), (0.5, 12, 6), (2.0, 52, 104), (0.01, 12, 1), (1.5, 1, 1)],
    )
    def test_from_steps_per_year(self, end_time, per_year, steps):
        assert TimeGrid.from_steps_per_year(end_time, per_year).steps == steps

    def test_must_start_at_zero(self):
        with pytest.raises(ValidationError, match="start at 0"):
            TimeGrid(np.array([0.1, 0.5]))

    def test_must_increase(self):
        with pytest.raises(ValidationError, match="strictly increasing"):
            TimeGrid(np.array([0.0, 0.5, 0.5]))

    def test_needs_two_nodes(self):
        with pytest.raises(ValidationError, match="at least two nodes"):
            TimeGrid(np.array([0.0]))

    def test_non_positive_end_time(self):
        with pytest.raises(ValidationError, match="end_time must be positive"):
            TimeGrid.uniform(0.0, 4)


# ---------------------------------------------------------------------------
# BlackScholesProcess
# ---------------------------------------------------------------------------


class TestBlackScholesProcess:
    def test_reads_market(self):
        process = BlackScholesProcess(build_market(spot=90.0, rate=0.03, vol=0.25, q=0.01))
        assert process.spot() == 90.0
        assert process.time(years_after(1.0)) == pytest.approx(1.0)
        assert process.diffusion(0.3) == pytest.approx(0.25)
        assert float(process.risk_free_discount(2.0)) == pytest.approx(np.exp(-0.06))
        assert float(process.dividend_discount(2.0)) == pytest.approx(np.exp(-0.02))

    def test_no_dividend_curve(self):
        process = BlackScholesProcess(build_market())
        np.testing.assert_array_equal(process.dividend_discount(np.array([0.5, 1.0])), 1.0)

    def test_step_drifts_follow_the_curves(self):
        market = MarketState(
            pricing_date=PRICING_DATE,
            spot=100.0,
            discount_curve=DiscountCurve.from_forwards(
                np.array([0.0, 0.5, 1.0]), np.array([0.02, 0.06])
            ),
            volatility=BlackVolatility.flat(0.2),
        )
        grid = TimeGrid.uniform(1.0, 2)
        np.testing.assert_allclose(
            BlackScholesProcess(market).step_log_drifts(grid), [0.01, 0.03], rtol=1e-12
        )

    def test_step_variances_use_local_vol(self):
        market = build_market().replace(
            volatility=BlackVolatility(times=np.array([0.5, 1.0]), vols=np.array([0.1, 0.2]))
        )
        grid = TimeGrid.uniform(1.0, 2)
        variances = BlackScholesProcess(market).step_variances(grid)
        # w(0.5) = 0.005, w(1) = 0.04
        np.testing.assert_allclose(variances, [0.005, 0.035], rtol=1e-12)

    def test_pillar_inside_a_step_uses_the_start_of_step_vol(self):
        market = build_market().replace(
            volatility=BlackVolatility(times=np.array([0.5, 1.0]), vols=np.array([0.1, 0.2]))
        )
        grid = TimeGrid.uniform(1.0, 1)
        process = BlackScholesProcess(market)
        # sigma(0)^2 * 1, not the integrated w(1) = 0.04
        np.testing.assert_allclose(process.step_variances(grid), [0.01], rtol=1e-12)
        np.testing.assert_allclose(PathGenerator(process, grid).variances, [0.01], rtol=1e-12)


# ---------------------------------------------------------------------------
# Brownian bridge
# ---------------------------------------------------------------------------


class TestBrownianBridge:
    @pytest.mark.parametrize("steps", [1, 2, 5, 16])
    def test_increments_are_standard_and_uncorrelated(self, steps):
        grid = TimeGrid.uniform(1.0, steps)
        z = GaussianSequenceGenerator(steps, seed=17).block(0, 40000)
        out = BrownianBridge(grid).transform(z)
        cov = np.atleast_2d(np.cov(out, rowvar=False))
        np.testing.assert_allclose(cov, np.eye(steps), atol=0.03)

    def test_non_uniform_grid(self):
        grid = TimeGrid(np.array([0.0, 0.1, 0.5, 0.6, 1.5]))
        z = GaussianSequenceGenerator(4, seed=2).block(0, 40000)
        cov = np.cov(BrownianBridge(grid).transform(z), rowvar=False)
        np.testing.assert_allclose(cov, np.eye(4), atol=0.03)

    def test_first_draw_sets_the_terminal_point(self):
        grid = TimeGrid.uniform(2.0, 8)
        z = np.zeros((1, 8))
        z[0, 0] = 1.0
        increments = BrownianBridge(grid).transform(z) * np.sqrt(grid.dt)
        # W(T) = sqrt(T) * z_0, spread linearly over the grid
        np.testing.assert_allclose(increments.sum(), np.sqrt(2.0), rtol=1e-12)
        np.testing.assert_allclose(increments, np.sqrt(2.0) / 8, rtol=1e-12)

    def test_wrong_dimension(self):
        with pytest.raises(ValidationError, match="expected 4 draws"):
            BrownianBridge(TimeGrid.uniform(1.0, 4)).transform(np.zeros((2, 3)))


# ---------------------------------------------------------------------------
# PathGenerator
# ---------------------------------------------------------------------------


class TestPathGenerator:
    def test_paths_start_at_spot(self):
        generator = PathGenerator(BlackScholesProcess(build_market(spot=80.0)), TimeGrid.uniform(1.0, 4))
        paths = generator.generate(np.zeros((3, 4)))
        np.testing.assert_array_equal(paths[:, 0], 80.0)
        assert paths.shape == (3, 5)

    @pytest.mark.parametrize("bridge", [False, True])
    def test_terminal_mean_is_the_forward(self, bridge):
        market = build_market(spot=100.0, rate=0.05, vol=0.3, q=0.02)
        grid = TimeGrid.uniform(1.0, 8)
        generator = PathGenerator(BlackScholesProcess(market), grid, brownian_bridge=bridge)
        z = GaussianSequenceGenerator(8, seed=21).block(0, 50000)
        paths = generator.generate(z, antithetic=True)
        assert paths[:, -1].mean() == pytest.approx(100.0 * np.exp(0.03), rel=5e-3)

    def test_antithetic_rows_mirror(self):
        market = build_market(spot=100.0, rate=0.05, vol=0.2)
        grid = TimeGrid.uniform(1.0, 4)
        generator = PathGenerator(BlackScholesProcess(market), grid)
        z = GaussianSequenceGenerator(4, seed=8).block(0, 3)
        paths = generator.generate(z, antithetic=True)
        assert paths.shape == (6, 5)
        np.testing.assert_allclose(paths[0::2], generator.generate(z), rtol=1e-12)
        drift = np.concatenate([[0.0], np.cumsum(np.full(4, (0.05 - 0.5 * 0.2**2) * 0.25))])
        log_sum = np.log(paths[0::2] / 100.0) + np.log(paths[1::2] / 100.0)
        np.testing.assert_allclose(log_sum, np.broadcast_to(2.0 * drift, log_sum.shape), atol=1e-12)

    def test_single_path(self):
        grid = TimeGrid.uniform(1.0, 3)
        path = PathGenerator(BlackScholesProcess(build_market()), grid).path(np.zeros(3))
        assert len(path) == 4
        np.testing.assert_array_equal(path.times, grid.times)
