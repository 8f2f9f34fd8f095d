"""Pricing results written once per ``calculate()`` call."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PricingResult:
    """Value and sensitivities of one instrument.

    Attributes
    ==========
    value:
        Present value.
    delta, gamma:
        First and second derivative with respect to spot.
    theta:
        Value change over one calendar day with the market held fixed.
    vega:
        Value change for a +1% (absolute) shift of volatility.
    rho:
        Value change for a +1% (absolute) shift of the risk-free rate.
    error_estimate:
        Monte Carlo standard error of ``value``.
    samples:
        Number of Monte Carlo samples behind ``value``.

    Sensitivities an engine does not produce are None.
    """

    value: float
    delta: float | None = None
    gamma: float | None = None
    theta: float | None = None
    vega: float | None = None
    rho: float | None = None
    error_estimate: float | None = None
    samples: int | None = None

    @classmethod
    def settled(cls, value: float, theta: float = 0.0) -> "PricingResult":
        """Result for a contract whose payoff is already fixed."""
        return cls(value=float(value), delta=0.0, gamma=0.0, theta=float(theta), vega=0.0, rho=0.0)
