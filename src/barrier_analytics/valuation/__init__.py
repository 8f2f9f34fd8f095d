"""Barrier-style derivative valuation engines.

This module provides a single dispatcher for pricing barrier-style contracts
with the engine registered for each contract type: Monte Carlo for autocalls,
PDE finite differences for touch options and closed forms for binary barriers
and European digitals.

Public API
----------
Core classes:
    BarrierValuation: Main dispatcher for pricing
    AutocallSpec: Autocallable note terms
    TouchOptionSpec: One/double touch and no-touch terms
    BinaryBarrierSpec: Cash/asset-or-nothing option with a barrier
    DigitalSpec: European cash/asset-or-nothing option
    BarrierSchedule: Ordered monitoring dates

Parameter classes:
    MonteCarloParams: Configuration for Monte Carlo pricing
    PDEParams: Configuration for PDE finite difference pricing
    ValuationParams: Union type for all parameter classes

Results and building blocks:
    PricingResult: Value and sensitivities
    AutocallPathPricer: Bridge-corrected autocall payoff of simulated paths
    RunningStatistics: Mergeable Monte Carlo accumulator
    binary_barrier_value, digital_value: Closed-form values
"""

from .core import (
    BarrierValuation,
    AutocallSpec,
    TouchOptionSpec,
    BinaryBarrierSpec,
    DigitalSpec,
    BarrierSchedule,
)
from .params import (
    MonteCarloParams,
    PDEParams,
    ValuationParams,
)
from .results import PricingResult
from .monte_carlo import AutocallPathPricer, RunningStatistics
from .binary_barrier import binary_barrier_value
from .digital import DigitalInputs, digital_value

__all__ = [
    # Core valuation classes
    "BarrierValuation",
    "AutocallSpec",
    "TouchOptionSpec",
    "BinaryBarrierSpec",
    "DigitalSpec",
    "BarrierSchedule",
    # Parameter classes
    "MonteCarloParams",
    "PDEParams",
    "ValuationParams",
    # Results and building blocks
    "PricingResult",
    "AutocallPathPricer",
    "RunningStatistics",
    "binary_barrier_value",
    "DigitalInputs",
    "digital_value",
]
