"""Market data snapshot consumed by the pricing engines."""

from __future__ import annotations
from dataclasses import dataclass, replace as dc_replace
import datetime as dt
import numpy as np
from .enums import DayCountConvention
from .rates import DiscountCurve
from .volatility import BlackVolatility
from .exceptions import ConfigurationError, ValidationError


@dataclass(frozen=True, slots=True)
class MarketState:
    """Immutable market snapshot for one pricing call.

    Attributes
    ==========
    pricing_date: datetime
        Valuation date; curve times are measured from here.
    spot: float
        Underlying spot price (strictly positive).
    discount_curve: DiscountCurve
        Risk-free discount curve.
    volatility: BlackVolatility
        Black volatility term structure.
    dividend_curve: DiscountCurve, optional
        Dividend discount curve. None means zero dividend yield.
    day_count: DayCountConvention
        Basis used to turn dates into year fractions.
    currency: str
        Currency of the underlying.
    """

    pricing_date: dt.datetime
    spot: float
    discount_curve: DiscountCurve
    volatility: BlackVolatility
    dividend_curve: DiscountCurve | None = None
    day_count: DayCountConvention = DayCountConvention.ACT_365F
    currency: str = "USD"

    def __post_init__(self) -> None:
        if not isinstance(self.pricing_date, dt.datetime):
            raise ConfigurationError(
                f"pricing_date must be a datetime, got {type(self.pricing_date).__name__}"
            )
        try:
            spot = float(self.spot)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("spot must be numeric") from exc
        if not np.isfinite(spot) or spot <= 0.0:
            raise ValidationError(f"spot must be positive and finite, got {self.spot}")
        object.__setattr__(self, "spot", spot)
        if not isinstance(self.discount_curve, DiscountCurve):
            raise ConfigurationError(
                f"discount_curve must be a DiscountCurve, got {type(self.discount_curve).__name__}"
            )
        if self.dividend_curve is not None and not isinstance(self.dividend_curve, DiscountCurve):
            raise ConfigurationError(
                f"dividend_curve must be a DiscountCurve, got {type(self.dividend_curve).__name__}"
            )
        if not isinstance(self.volatility, BlackVolatility):
            raise ConfigurationError(
                f"volatility must be a BlackVolatility, got {type(self.volatility).__name__}"
            )
        if not isinstance(self.day_count, DayCountConvention):
            raise ConfigurationError(
                f"day_count must be DayCountConvention enum, got {type(self.day_count).__name__}"
            )
        if not isinstance(self.currency, str) or not self.currency:
            raise ValidationError("currency must be a non-empty string")

    def replace(self, **kwargs: object) -> "MarketState":
        """Return a copy with some fields replaced (used for bump-and-revalue greeks)."""
        return dc_replace(self, **kwargs)
