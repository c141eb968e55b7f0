"""
Strategy descriptors: signals, parameter schemas and strategy definitions.

**Conceptual**: A strategy in this engine is a pure function from a bar
series (plus a few tunable parameters) to a sequence of trade intents, one per
bar. This module defines the vocabulary those functions speak:

  - Signal: the per-bar intent (BUY, SELL, HOLD).
  - StrategyParameter: one tunable knob with a type, default and bounds.
  - StrategyKind: the closed set of strategies the catalog knows about.
  - StrategyDefinition: everything the engine and a selection UI need to know
    about one strategy (display name, parameter schema, signal generator,
    warm-up requirement, cross-parameter constraints).

**Why signals instead of target weights?**
  - The engine trades a single symbol with an all-in / all-out position, so
    the only decisions are "enter", "exit" or "do nothing".
  - Signals are level-triggered intents. A BUY while already invested is not
    an error; the simulator simply ignores it. Strategies never need to know
    the portfolio state, which keeps them pure and trivially testable.

**Teaching note**: Parameters are validated, never clamped. A caller asking
for a 500-day moving average on a strategy capped at 200 gets an
InvalidParameterError naming the bound, not a silently different backtest.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping, Protocol

import pandas as pd

from backtester.utils.errors import InvalidParameterError

if TYPE_CHECKING:
    from backtester.data.schemas import BarSeries


class Signal(Enum):
    """Per-bar trade intent emitted by a signal generator."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class ParameterType(Enum):
    """Value type of a strategy parameter."""
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"


class StrategyKind(Enum):
    """
    Closed set of strategies known to the catalog.

    The catalog checks at import time that every member has exactly one
    definition, so adding a member without a generator fails immediately.
    """
    MA_CROSSOVER = "ma_crossover"
    RSI = "rsi"
    MACD = "macd"
    BOLLINGER_BANDS = "bollinger_bands"
    MEAN_REVERSION = "mean_reversion"


Parameters = Mapping[str, Any]


class SignalGenerator(Protocol):
    """Callable turning a bar series and resolved parameters into signals."""

    def __call__(self, bars: "BarSeries", params: Parameters) -> pd.Series:
        ...


_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


@dataclass(frozen=True)
class StrategyParameter:
    """
    Schema for one tunable strategy parameter.

    Attributes:
        name: Machine name used in parameter mappings (snake_case).
        type: NUMBER, BOOLEAN or ENUM.
        default: Value used when the caller does not override it.
        min_value: Inclusive lower bound (NUMBER only).
        max_value: Inclusive upper bound (NUMBER only).
        step: UI increment hint (NUMBER only). Not enforced on input.
        label: Human-readable label for a selection UI.
        options: Allowed values (ENUM only).
        integer: If True, NUMBER values must be whole numbers and are
                returned as int.
    """
    name: str
    type: ParameterType
    default: Any
    min_value: float | None = None
    max_value: float | None = None
    step: float | None = None
    label: str = ""
    options: tuple[Any, ...] = ()
    integer: bool = False

    def validate(self, value: Any) -> Any:
        """
        Coerce and bound-check one caller-supplied value.

        Numeric strings (as typed on a command line) are accepted for NUMBER
        parameters; "true"/"false" style strings for BOOLEAN parameters.

        Returns:
            The coerced value (int for integer parameters, float for other
            numbers, bool for booleans, the matching option for enums).

        Raises:
            InvalidParameterError: If the value has the wrong type, is not a
                                  whole number where one is required, or lies
                                  outside [min_value, max_value].
        """
        if self.type is ParameterType.NUMBER:
            return self._validate_number(value)
        if self.type is ParameterType.BOOLEAN:
            return self._validate_boolean(value)
        return self._validate_enum(value)

    def _validate_number(self, value: Any) -> int | float:
        if isinstance(value, bool):
            raise InvalidParameterError(
                f"Parameter '{self.name}' must be a number, got boolean {value!r}."
            )
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise InvalidParameterError(
                f"Parameter '{self.name}' must be a number, got: {value!r}."
            )
        if not math.isfinite(number):
            raise InvalidParameterError(
                f"Parameter '{self.name}' must be finite, got: {value!r}."
            )
        if self.integer and not number.is_integer():
            raise InvalidParameterError(
                f"Parameter '{self.name}' must be a whole number, got: {value!r}."
            )
        if self.min_value is not None and number < self.min_value:
            raise InvalidParameterError(
                f"Parameter '{self.name}' = {value!r} is below the minimum {self.min_value}."
            )
        if self.max_value is not None and number > self.max_value:
            raise InvalidParameterError(
                f"Parameter '{self.name}' = {value!r} is above the maximum {self.max_value}."
            )
        return int(number) if self.integer else number

    def _validate_boolean(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise InvalidParameterError(
            f"Parameter '{self.name}' must be a boolean, got: {value!r}."
        )

    def _validate_enum(self, value: Any) -> Any:
        if value in self.options:
            return value
        raise InvalidParameterError(
            f"Parameter '{self.name}' must be one of {list(self.options)}, got: {value!r}."
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible schema entry for a selection UI."""
        entry: dict[str, Any] = {
            'name': self.name,
            'label': self.label or self.name,
            'type': self.type.value,
            'default': self.default,
        }
        if self.type is ParameterType.NUMBER:
            entry['min'] = self.min_value
            entry['max'] = self.max_value
            entry['step'] = self.step
            entry['integer'] = self.integer
        if self.type is ParameterType.ENUM:
            entry['options'] = list(self.options)
        return entry


@dataclass(frozen=True)
class StrategyDefinition:
    """
    Catalog entry describing one strategy.

    Attributes:
        kind: StrategyKind member this definition implements.
        name: Display name (e.g. "RSI Strategy").
        description: One-sentence summary for a selection UI.
        parameters: Parameter schemas in display order.
        generate: Signal generator ``(bars, params) -> Series[Signal]``.
        warmup_bars: ``params -> int``, the number of bars needed before the
                    strategy's indicators are first defined.
        constraints: Pairs ``(lower, upper)`` of parameter names where the
                    resolved value of ``lower`` must be strictly less than
                    that of ``upper`` (e.g. short period < long period).
    """
    kind: StrategyKind
    name: str
    description: str
    parameters: tuple[StrategyParameter, ...]
    generate: SignalGenerator
    warmup_bars: Callable[[Parameters], int]
    constraints: tuple[tuple[str, str], ...] = field(default=())

    def parameter(self, name: str) -> StrategyParameter:
        """Look up one parameter schema by name."""
        for param in self.parameters:
            if param.name == name:
                return param
        raise InvalidParameterError(
            f"Strategy '{self.name}' has no parameter '{name}'. "
            f"Known parameters: {self.parameter_names}."
        )

    @property
    def parameter_names(self) -> list[str]:
        return [param.name for param in self.parameters]

    def defaults(self) -> dict[str, Any]:
        """Default value for every parameter."""
        return {param.name: param.default for param in self.parameters}

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible descriptor: kind, name, description, parameter schema."""
        return {
            'kind': self.kind.value,
            'name': self.name,
            'description': self.description,
            'parameters': [param.to_dict() for param in self.parameters],
        }
