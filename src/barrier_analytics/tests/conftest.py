"""Shared pytest fixtures for barrier_analytics tests."""

import datetime as dt

import pytest

from barrier_analytics.market_environment import MarketState
from barrier_analytics.tests.helpers import PRICING_DATE, build_market, years_after


# ---------------------------------------------------------------------------
# Scalar constants
# ---------------------------------------------------------------------------

SPOT = 100.0
RATE = 0.05
VOL = 0.20


@pytest.fixture()
def pricing_date() -> dt.datetime:
    return PRICING_DATE


@pytest.fixture()
def maturity() -> dt.datetime:
    return years_after(1.0)


@pytest.fixture()
def spot() -> float:
    return SPOT


# ---------------------------------------------------------------------------
# Markets
# ---------------------------------------------------------------------------


@pytest.fixture()
def market() -> MarketState:
    """Flat 5% rate, 20% vol, no dividends, spot 100."""
    return build_market(spot=SPOT, rate=RATE, vol=VOL)


@pytest.fixture()
def haug_market():
    """Market of the binary barrier reference tables (r=10%, q=0, vol=20%)."""

    def _make(spot: float, q: float = 0.0) -> MarketState:
        return build_market(spot=spot, rate=0.10, vol=0.20, q=q)

    return _make
