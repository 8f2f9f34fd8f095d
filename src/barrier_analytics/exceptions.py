"""Exception hierarchy for the barrier_analytics library.

Every error raised by the pricing engines derives from :class:`BarrierAnalyticsError`,
so callers can guard a whole pricing run with one handler::

    try:
        result = BarrierValuation(...).calculate()
    except BarrierAnalyticsError as exc:
        log.error("Pricing failed: %s", exc)

None of these errors is retried internally: each one is a deterministic function
of the inputs.
"""

from __future__ import annotations


class BarrierAnalyticsError(Exception):
    """Base exception for all library errors."""


# ── Inputs and set-up ───────────────────────────────────────────────


class ValidationError(BarrierAnalyticsError):
    """Invalid numeric input (non-positive spot, too-short path, malformed curve, etc.)."""


class ConfigurationError(BarrierAnalyticsError):
    """Contract terms or engine settings are missing, conflicting or of the wrong type."""


# ── Feature support ─────────────────────────────────────────────────


class UnsupportedFeatureError(BarrierAnalyticsError):
    """Requested contract/engine combination is not covered."""


# ── Numerical issues ────────────────────────────────────────────────


class NumericalError(BarrierAnalyticsError):
    """Base for errors arising from numerical computation."""


class ArbitrageViolationError(NumericalError):
    """Market inputs imply an arbitrage (e.g. decreasing total implied variance)."""


class StabilityError(NumericalError):
    """A finite-difference scheme's stability condition is violated."""
