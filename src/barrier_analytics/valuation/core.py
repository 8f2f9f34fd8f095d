from dataclasses import dataclass
from collections.abc import Sequence
import datetime as dt
import logging
import numpy as np
from ..exceptions import ConfigurationError, UnsupportedFeatureError
from ..enums import (
    BarrierType,
    DigitalPayoff,
    ExerciseType,
    OptionType,
    PricingMethod,
    TouchType,
)
from ..market_environment import MarketState
from ..utils import year_fractions
from .monte_carlo import _MCAutocallValuation
from .pde import _FDTouchValuation
from .binary_barrier import _AnalyticBinaryBarrierValuation
from .digital import _AnalyticDigitalValuation
from .params import MonteCarloParams, PDEParams, ValuationParams
from .results import PricingResult

logger = logging.getLogger(__name__)


# ── Validation helpers ──────────────────────────────────────────────


def _required_float(owner: str, field_name: str, value: object) -> float:
    if value is None:
        raise ConfigurationError(f"{owner}.{field_name} must be provided")
    try:
        out = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{owner}.{field_name} must be numeric") from exc
    if not np.isfinite(out):
        raise ConfigurationError(f"{owner}.{field_name} must be finite")
    return out


def _positive_float(owner: str, field_name: str, value: object) -> float:
    out = _required_float(owner, field_name, value)
    if out <= 0.0:
        raise ConfigurationError(f"{owner}.{field_name} must be positive, got {out}")
    return out


def _float_tuple(owner: str, field_name: str, values: object, *, positive: bool) -> tuple:
    if values is None:
        return ()
    if isinstance(values, (int, float, np.floating, np.integer)):
        values = (values,)
    check = _positive_float if positive else _required_float
    return tuple(check(owner, f"{field_name}[{i}]", v) for i, v in enumerate(values))


def _check_enum(owner: str, field_name: str, value: object, enum_cls: type) -> None:
    if not isinstance(value, enum_cls):
        raise ConfigurationError(
            f"{owner}.{field_name} must be {enum_cls.__name__} enum, got {type(value).__name__}"
        )


# ── Contract terms ──────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class BarrierSchedule:
    """Ordered monitoring (fixing) dates.

    Dates must be strictly increasing.
    """

    dates: tuple[dt.datetime, ...]

    def __post_init__(self) -> None:
        dates = tuple(self.dates)
        if not dates:
            raise ConfigurationError("BarrierSchedule needs at least one date")
        if not all(isinstance(d, dt.datetime) for d in dates):
            raise ConfigurationError("BarrierSchedule dates must be datetimes")
        if any(d1 <= d0 for d0, d1 in zip(dates[:-1], dates[1:])):
            raise ConfigurationError("BarrierSchedule dates must be strictly increasing")
        object.__setattr__(self, "dates", dates)

    def __len__(self) -> int:
        return len(self.dates)

    def times(self, market: MarketState) -> np.ndarray:
        """Year fractions of every date from the market's pricing date."""
        return year_fractions(market.pricing_date, self.dates, market.day_count)


def _as_schedule(owner: str, dates: object) -> BarrierSchedule:
    if isinstance(dates, BarrierSchedule):
        return dates
    if dates is None:
        raise ConfigurationError(f"{owner} needs monitoring dates")
    return BarrierSchedule(tuple(dates))


@dataclass(frozen=True, slots=True)
class AutocallSpec:
    """Autocallable note with a knock-out (autocall) and a knock-in (capital-at-risk) barrier.

    Knock-out is monitored on the fixing dates, knock-in continuously.

    Payoffs (per unit of ``margin`` notional):
    - knocked out at t: ``rebate * t + margin`` paid at t
    - never knocked in: ``coupon * T + margin`` paid at maturity
    - knocked in: ``margin - max(strike - S_T, 0)`` paid at maturity

    Parameters
    ----------
    fixing_dates : Sequence[datetime] | BarrierSchedule
        Knock-out observation dates; strictly increasing, last one on or before maturity.
    ki_barrier, ko_barrier : float
        Knock-in and knock-out barrier levels.
    strike : float
        Strike of the short put that applies once knocked in.
    rebate : float
        Annualised coupon paid on knock-out.
    coupon : float
        Annualised coupon paid at maturity when neither barrier is hit.
    margin : float
        Capital redeemed.
    """

    fixing_dates: Sequence[dt.datetime] | BarrierSchedule
    ki_barrier: float
    ko_barrier: float
    strike: float
    rebate: float
    coupon: float
    margin: float
    maturity: dt.datetime
    exercise_type: ExerciseType = ExerciseType.EUROPEAN
    currency: str = "USD"

    def __post_init__(self) -> None:
        owner = "AutocallSpec"
        object.__setattr__(self, "fixing_dates", _as_schedule(owner, self.fixing_dates))
        for name in ("ki_barrier", "ko_barrier", "strike"):
            object.__setattr__(self, name, _positive_float(owner, name, getattr(self, name)))
        for name in ("rebate", "coupon", "margin"):
            object.__setattr__(self, name, _required_float(owner, name, getattr(self, name)))
        if not isinstance(self.maturity, dt.datetime):
            raise ConfigurationError(f"{owner}.maturity must be a datetime")
        _check_enum(owner, "exercise_type", self.exercise_type, ExerciseType)
        if self.fixing_dates.dates[-1] > self.maturity:
            raise ConfigurationError(f"{owner}: last fixing date is after maturity")


@dataclass(frozen=True, slots=True)
class TouchOptionSpec:
    """One/double touch and no-touch options.

    ``barrier_high``/``rebate_high`` apply to the upper side and
    ``barrier_low``/``rebate_low`` to the lower side; each accepts a scalar or a
    sequence. A touch pays the rebate of the side that is hit, at hit time or
    at expiry (``payoff_at_expiry``). A no-touch pays at expiry when no barrier
    was hit (the double no-touch pays ``rebate_high``).

    Without ``observation_dates`` the barriers are monitored continuously and
    each side takes one level. With ``observation_dates`` (one-touch up/down
    only) the barriers are checked on those dates; there is one barrier (and
    rebate) per date, or a single one broadcast to all dates.
    """

    touch_type: TouchType
    maturity: dt.datetime
    barrier_high: float | Sequence[float] | None = None
    barrier_low: float | Sequence[float] | None = None
    rebate_high: float | Sequence[float] | None = None
    rebate_low: float | Sequence[float] | None = None
    payoff_at_expiry: bool = False
    observation_dates: Sequence[dt.datetime] | BarrierSchedule | None = None
    exercise_type: ExerciseType = ExerciseType.AMERICAN
    currency: str = "USD"

    def __post_init__(self) -> None:
        owner = "TouchOptionSpec"
        _check_enum(owner, "touch_type", self.touch_type, TouchType)
        _check_enum(owner, "exercise_type", self.exercise_type, ExerciseType)
        if not isinstance(self.maturity, dt.datetime):
            raise ConfigurationError(f"{owner}.maturity must be a datetime")
        for name, positive in (
            ("barrier_high", True),
            ("barrier_low", True),
            ("rebate_high", False),
            ("rebate_low", False),
        ):
            object.__setattr__(
                self, name, _float_tuple(owner, name, getattr(self, name), positive=positive)
            )

        touch = self.touch_type
        sides = []
        if touch.has_upper_barrier:
            sides.append(("barrier_high", "rebate_high"))
        if touch.has_lower_barrier:
            sides.append(("barrier_low", "rebate_low"))
        for barrier_name, rebate_name in sides:
            if not getattr(self, barrier_name):
                raise ConfigurationError(f"{owner}.{barrier_name} must be provided for {touch.name}")
        # no-touch payouts: the rebate of the single side, rebate_high for the double
        rebate_sides = [r for _, r in sides]
        if touch is TouchType.DOUBLE_NO_TOUCH:
            rebate_sides = ["rebate_high"]
        for rebate_name in rebate_sides:
            if not getattr(self, rebate_name):
                raise ConfigurationError(f"{owner}.{rebate_name} must be provided for {touch.name}")

        if touch.is_no_touch and not self.payoff_at_expiry:
            raise ConfigurationError(f"{owner}: no-touch options pay at expiry")
        if self.barrier_low and self.barrier_high and min(self.barrier_high) <= max(self.barrier_low):
            raise ConfigurationError(f"{owner}: barrier_low must lie below barrier_high")

        if self.observation_dates is None:
            for barrier_name, rebate_name in sides:
                if len(getattr(self, barrier_name)) != 1:
                    raise ConfigurationError(
                        f"{owner}: several {barrier_name} levels need observation_dates"
                    )
            return

        if touch not in (TouchType.ONE_TOUCH_UP, TouchType.ONE_TOUCH_DOWN):
            raise UnsupportedFeatureError(
                f"discretely monitored barriers are only supported for one-touch options, "
                f"got {touch.name}"
            )
        schedule = _as_schedule(owner, self.observation_dates)
        object.__setattr__(self, "observation_dates", schedule)
        if schedule.dates[-1] > self.maturity:
            raise ConfigurationError(f"{owner}: last observation date is after maturity")
        barrier_name, rebate_name = sides[0]
        for name in (barrier_name, rebate_name):
            levels = getattr(self, name)
            if len(levels) == 1:
                object.__setattr__(self, name, levels * len(schedule))
            elif len(levels) != len(schedule):
                raise ConfigurationError(
                    f"{owner}.{name} needs one entry per observation date "
                    f"({len(schedule)}), got {len(levels)}"
                )


@dataclass(frozen=True, slots=True)
class BinaryBarrierSpec:
    """Cash-or-nothing / asset-or-nothing option with a continuously monitored barrier.

    With ``pay_at_expiry=False`` (knock-in only) the cash amount, or the asset
    (worth the barrier level), is paid when the barrier is hit; strike and
    option type are then irrelevant. ``rebate`` is paid at hit for knock-outs
    and at expiry for knock-ins that never knocked in; it must be given even
    when zero.
    """

    barrier_type: BarrierType
    barrier: float
    strike: float
    option_type: OptionType
    payoff: DigitalPayoff
    maturity: dt.datetime
    rebate: float
    cash_payoff: float | None = None
    pay_at_expiry: bool = True
    exercise_type: ExerciseType = ExerciseType.AMERICAN
    currency: str = "USD"

    def __post_init__(self) -> None:
        owner = "BinaryBarrierSpec"
        _check_enum(owner, "barrier_type", self.barrier_type, BarrierType)
        _check_enum(owner, "option_type", self.option_type, OptionType)
        _check_enum(owner, "payoff", self.payoff, DigitalPayoff)
        _check_enum(owner, "exercise_type", self.exercise_type, ExerciseType)
        if not isinstance(self.maturity, dt.datetime):
            raise ConfigurationError(f"{owner}.maturity must be a datetime")
        object.__setattr__(self, "barrier", _positive_float(owner, "barrier", self.barrier))
        object.__setattr__(self, "strike", _positive_float(owner, "strike", self.strike))
        object.__setattr__(self, "rebate", _required_float(owner, "rebate", self.rebate))
        if self.payoff is DigitalPayoff.CASH_OR_NOTHING:
            object.__setattr__(
                self, "cash_payoff", _required_float(owner, "cash_payoff", self.cash_payoff)
            )


@dataclass(frozen=True, slots=True)
class DigitalSpec:
    """European cash-or-nothing / asset-or-nothing option."""

    option_type: OptionType
    payoff: DigitalPayoff
    strike: float
    maturity: dt.datetime
    cash_payoff: float | None = None
    exercise_type: ExerciseType = ExerciseType.EUROPEAN
    currency: str = "USD"

    def __post_init__(self) -> None:
        owner = "DigitalSpec"
        _check_enum(owner, "option_type", self.option_type, OptionType)
        _check_enum(owner, "payoff", self.payoff, DigitalPayoff)
        _check_enum(owner, "exercise_type", self.exercise_type, ExerciseType)
        if not isinstance(self.maturity, dt.datetime):
            raise ConfigurationError(f"{owner}.maturity must be a datetime")
        object.__setattr__(self, "strike", _positive_float(owner, "strike", self.strike))
        if self.payoff is DigitalPayoff.CASH_OR_NOTHING:
            object.__setattr__(
                self, "cash_payoff", _required_float(owner, "cash_payoff", self.cash_payoff)
            )


ContractSpec = AutocallSpec | TouchOptionSpec | BinaryBarrierSpec | DigitalSpec


# ── Implementation registry ─────────────────────────────────────────
# Maps (spec type, PricingMethod) → (implementation class, required exercise, params type).
_REGISTRY: dict[tuple[type, PricingMethod], tuple[type, ExerciseType, type | None]] = {
    (AutocallSpec, PricingMethod.MONTE_CARLO): (
        _MCAutocallValuation,
        ExerciseType.EUROPEAN,
        MonteCarloParams,
    ),
    (TouchOptionSpec, PricingMethod.PDE_FD): (
        _FDTouchValuation,
        ExerciseType.AMERICAN,
        PDEParams,
    ),
    (BinaryBarrierSpec, PricingMethod.ANALYTIC): (
        _AnalyticBinaryBarrierValuation,
        ExerciseType.AMERICAN,
        None,
    ),
    (DigitalSpec, PricingMethod.ANALYTIC): (
        _AnalyticDigitalValuation,
        ExerciseType.EUROPEAN,
        None,
    ),
}


class BarrierValuation:
    """Single-instrument valuation dispatcher.

    Routes a contract to the engine registered for ``(type(spec), pricing_method)``.

    Attributes
    ==========
    name: str
        Name of the valuation object/trade.
    market: MarketState
        Market snapshot (spot, curves, volatility). Never mutated.
    spec: AutocallSpec | TouchOptionSpec | BinaryBarrierSpec | DigitalSpec
        Contract terms.
    pricing_method: PricingMethod
        MONTE_CARLO for autocalls, PDE_FD for touch options, ANALYTIC for binary
        barriers and European digitals.
    params: MonteCarloParams | PDEParams | None
        Engine configuration. Required for Monte Carlo; PDE falls back to
        ``PDEParams()``; analytic engines take none.

    Methods
    =======
    calculate:
        Returns the PricingResult (computed once, then cached).
    present_value:
        Returns ``calculate().value``.
    triggered:
        True when the barrier is already hit at the pricing date and the
        payoff is settled; the engine then returns the settled value without
        building paths, grids or closed-form inputs.
    """

    def __init__(
        self,
        name: str,
        market: MarketState,
        spec: ContractSpec,
        pricing_method: PricingMethod,
        params: ValuationParams | None = None,
    ) -> None:
        self.name = name
        if not isinstance(market, MarketState):
            raise ConfigurationError(
                f"market must be a MarketState, got {type(market).__name__}"
            )
        if not isinstance(pricing_method, PricingMethod):
            raise ConfigurationError(
                f"pricing_method must be PricingMethod enum, got {type(pricing_method).__name__}"
            )
        self.market = market
        self.spec = spec
        self.pricing_method = pricing_method

        entry = _REGISTRY.get((type(spec), pricing_method))
        if entry is None:
            raise UnsupportedFeatureError(
                f"{type(spec).__name__} does not support {pricing_method.name} pricing."
            )
        impl_cls, exercise_type, params_cls = entry

        if spec.currency != market.currency:
            raise UnsupportedFeatureError(
                "Cross-currency valuation is not supported. "
                "Contract currency must match the market currency."
            )
        if spec.exercise_type is not exercise_type:
            raise ConfigurationError(
                f"{pricing_method.name} pricing of {type(spec).__name__} requires "
                f"{exercise_type.name} exercise, got {spec.exercise_type.name}"
            )
        if spec.maturity <= market.pricing_date:
            raise ConfigurationError("maturity must be after pricing_date")

        self.params = self._validate_and_default_params(params_cls=params_cls, params=params)
        self._impl = impl_cls(self)
        self._result: PricingResult | None = None

    @staticmethod
    def _validate_and_default_params(
        *,
        params_cls: type | None,
        params: ValuationParams | None,
    ) -> ValuationParams | None:
        if params_cls is None:
            if params is not None:
                raise ConfigurationError("analytic pricing does not accept valuation params")
            return None
        if params is None:
            if params_cls is MonteCarloParams:
                raise ConfigurationError(
                    "Monte Carlo pricing requires MonteCarloParams "
                    "(time steps and sample policy have no defaults)"
                )
            return params_cls()
        if not isinstance(params, params_cls):
            raise ConfigurationError(
                f"expected {params_cls.__name__}, got {type(params).__name__}"
            )
        return params

    @property
    def time_to_maturity(self) -> float:
        return self._impl.process.time(self.spec.maturity)

    def triggered(self) -> bool:
        """Whether the payoff is already settled at the pricing date."""
        return self._impl.triggered()

    def calculate(self) -> PricingResult:
        """Run the engine once and return its (cached) PricingResult."""
        if self._result is None:
            logger.debug(
                "Pricing %s (%s) with %s",
                self.name,
                type(self.spec).__name__,
                self.pricing_method.name,
            )
            self._result = self._impl.calculate()
        return self._result

    def present_value(self) -> float:
        """Present value of the instrument."""
        return self.calculate().value
