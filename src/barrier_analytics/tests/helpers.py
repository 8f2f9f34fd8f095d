import datetime as dt

from barrier_analytics.market_environment import MarketState
from barrier_analytics.rates import DiscountCurve
from barrier_analytics.volatility import BlackVolatility

PRICING_DATE = dt.datetime(2025, 1, 1)


def flat_curve(rate: float, end_time: float = 1.0) -> DiscountCurve:
    """Flat continuously-compounded curve."""
    return DiscountCurve.flat(rate, end_time=end_time)


def years_after(years: float, start: dt.datetime = PRICING_DATE) -> dt.datetime:
    """Date ``years`` ACT/365F year fractions after ``start``."""
    return start + dt.timedelta(days=365.0 * years)


def build_market(
    spot: float = 100.0,
    rate: float = 0.05,
    vol: float = 0.20,
    q: float = 0.0,
    pricing_date: dt.datetime = PRICING_DATE,
    end_time: float = 5.0,
) -> MarketState:
    return MarketState(
        pricing_date=pricing_date,
        spot=spot,
        discount_curve=flat_curve(rate, end_time),
        volatility=BlackVolatility.flat(vol, end_time),
        dividend_curve=flat_curve(q, end_time) if q != 0.0 else None,
    )
