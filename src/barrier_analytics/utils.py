"""Helper functions for barrier derivative valuation."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from collections.abc import Iterator, Sequence
import time
import numpy as np
import pandas as pd

from .enums import DayCountConvention
from .exceptions import ValidationError

__all__ = [
    "log_timing",
    "calculate_year_fraction",
    "year_fractions",
    "fixing_schedule",
]

SECONDS_IN_DAY = 86400


@contextmanager
def log_timing(logger, label: str, enabled: bool) -> Iterator[None]:
    """Log timing for a code block when enabled is True."""
    if not enabled:
        yield
        return
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.debug("Timing %s: %.6fs", label, elapsed)


def _day_count_30_360_us(start_date: datetime, end_date: datetime) -> float:
    """30/360 (US) day-count fraction between two dates."""
    y1, m1, d1 = start_date.year, start_date.month, start_date.day
    y2, m2, d2 = end_date.year, end_date.month, end_date.day

    if d1 == 31:
        d1 = 30
    if d2 == 31 and d1 in (30, 31):
        d2 = 30

    return (360 * (y2 - y1) + 30 * (m2 - m1) + (d2 - d1)) / 360.0


def calculate_year_fraction(
    start_date,
    end_date,
    day_count_convention: DayCountConvention = DayCountConvention.ACT_365F,
) -> float:
    """Calculate year fraction between two dates.

    Parameters
    ==========
    start_date: datetime
        starting date
    end_date: datetime
        ending date
    day_count_convention: DayCountConvention, default DayCountConvention.ACT_365F
        Day-count basis.

    Returns
    =======
    year_fraction: float
        year fraction between start_date and end_date (negative if end_date
        precedes start_date)

    Examples
    ========
    >>> from datetime import datetime
    >>> calculate_year_fraction(datetime(2025, 1, 1), datetime(2025, 7, 2))  # doctest: +SKIP
    0.49863...
    """
    if day_count_convention is DayCountConvention.THIRTY_360_US:
        return _day_count_30_360_us(start_date, end_date)
    if day_count_convention is DayCountConvention.ACT_360:
        denom = 360.0
    elif day_count_convention is DayCountConvention.ACT_365_25:
        denom = 365.25
    elif day_count_convention is DayCountConvention.ACT_365F:
        denom = 365.0
    else:
        raise ValidationError(f"Unsupported day_count_convention: {day_count_convention}")

    delta_days = (end_date - start_date).total_seconds() / SECONDS_IN_DAY
    return delta_days / denom


def year_fractions(
    start_date: datetime,
    dates: Sequence[datetime],
    day_count_convention: DayCountConvention = DayCountConvention.ACT_365F,
) -> np.ndarray:
    """Vectorised :func:`calculate_year_fraction` from one start date."""
    return np.array(
        [calculate_year_fraction(start_date, d, day_count_convention) for d in dates],
        dtype=float,
    )


def fixing_schedule(
    start_date: datetime,
    end_date: datetime,
    frequency: str = "MS",
    *,
    include_start: bool = False,
) -> list[datetime]:
    """Regular fixing dates between start_date and end_date (inclusive of end_date).

    A thin wrapper around ``pd.date_range``; see
    https://pandas.pydata.org/pandas-docs/stable/user_guide/timeseries.html#timeseries-offset-aliases
    for frequency strings. No holiday adjustment is made.
    """
    if end_date <= start_date:
        raise ValidationError("end_date must be after start_date")
    dates = list(pd.date_range(start=start_date, end=end_date, freq=frequency).to_pydatetime())
    if not include_start:
        dates = [d for d in dates if d > start_date]
    if not dates or dates[-1] != end_date:
        dates.append(end_date)
    return dates
