"""Enums for barrier-style derivative valuation."""

from enum import Enum

__all__ = [
    "OptionType",
    "ExerciseType",
    "PricingMethod",
    "BarrierType",
    "TouchType",
    "DigitalPayoff",
    "PDEMethod",
    "DayCountConvention",
]


class OptionType(Enum):
    CALL = "call"
    PUT = "put"


class ExerciseType(Enum):
    EUROPEAN = "european"
    AMERICAN = "american"


class PricingMethod(Enum):
    MONTE_CARLO = "monte_carlo"
    PDE_FD = "pde_fd"
    ANALYTIC = "analytic"


class BarrierType(Enum):
    DOWN_IN = "down_in"
    UP_IN = "up_in"
    DOWN_OUT = "down_out"
    UP_OUT = "up_out"

    @property
    def is_down(self) -> bool:
        return self in (BarrierType.DOWN_IN, BarrierType.DOWN_OUT)

    @property
    def is_knock_in(self) -> bool:
        return self in (BarrierType.DOWN_IN, BarrierType.UP_IN)


class TouchType(Enum):
    ONE_TOUCH_UP = "one_touch_up"
    ONE_TOUCH_DOWN = "one_touch_down"
    NO_TOUCH_UP = "no_touch_up"
    NO_TOUCH_DOWN = "no_touch_down"
    DOUBLE_ONE_TOUCH = "double_one_touch"
    DOUBLE_NO_TOUCH = "double_no_touch"

    @property
    def has_upper_barrier(self) -> bool:
        return self in (
            TouchType.ONE_TOUCH_UP,
            TouchType.NO_TOUCH_UP,
            TouchType.DOUBLE_ONE_TOUCH,
            TouchType.DOUBLE_NO_TOUCH,
        )

    @property
    def has_lower_barrier(self) -> bool:
        return self in (
            TouchType.ONE_TOUCH_DOWN,
            TouchType.NO_TOUCH_DOWN,
            TouchType.DOUBLE_ONE_TOUCH,
            TouchType.DOUBLE_NO_TOUCH,
        )

    @property
    def is_no_touch(self) -> bool:
        return self in (TouchType.NO_TOUCH_UP, TouchType.NO_TOUCH_DOWN, TouchType.DOUBLE_NO_TOUCH)


class DigitalPayoff(Enum):
    CASH_OR_NOTHING = "cash_or_nothing"
    ASSET_OR_NOTHING = "asset_or_nothing"


class PDEMethod(Enum):
    IMPLICIT = "implicit"
    EXPLICIT = "explicit"
    CRANK_NICOLSON = "crank_nicolson"


class DayCountConvention(Enum):
    ACT_360 = "ACT/360"
    ACT_365F = "ACT/365F"
    ACT_365_25 = "ACT/365.25"
    THIRTY_360_US = "30/360 US"
