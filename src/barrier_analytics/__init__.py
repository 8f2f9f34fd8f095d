from .market_environment import MarketState
from .rates import DiscountCurve
from .volatility import BlackVolatility
from .stochastic_processes import BlackScholesProcess, TimeGrid, PathGenerator, SimulatedPath
from .sequences import UniformSequenceGenerator, GaussianSequenceGenerator
from .utils import calculate_year_fraction, fixing_schedule
from .valuation import (
    BarrierValuation,
    AutocallSpec,
    TouchOptionSpec,
    BinaryBarrierSpec,
    DigitalSpec,
    MonteCarloParams,
    PDEParams,
    PricingResult,
)


__all__ = [
    "MarketState",
    "DiscountCurve",
    "BlackVolatility",
    "BlackScholesProcess",
    "TimeGrid",
    "PathGenerator",
    "SimulatedPath",
    "UniformSequenceGenerator",
    "GaussianSequenceGenerator",
    "calculate_year_fraction",
    "fixing_schedule",
    "BarrierValuation",
    "AutocallSpec",
    "TouchOptionSpec",
    "BinaryBarrierSpec",
    "DigitalSpec",
    "MonteCarloParams",
    "PDEParams",
    "PricingResult",
]
