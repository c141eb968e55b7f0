"""
Strategy catalog: the registry of every strategy the engine can run.

**Conceptual**: The catalog is an immutable mapping from StrategyKind to
StrategyDefinition. It is the single place that knows display names,
parameter defaults and bounds, which generator implements which strategy, and
how much warm-up history each one needs.

**Lookup**: ``get_strategy`` accepts a StrategyKind, a kind value ("rsi") or a
display name ("RSI Strategy"). Matching ignores case, spaces, hyphens and
underscores, so "ma crossover", "MA_CROSSOVER" and
"Moving Average Crossover" all resolve.

**Parameter resolution** (``resolve_parameters``):
  1. Start from every parameter's default.
  2. Reject override names the strategy does not declare.
  3. Validate each override against its schema (type, whole number, bounds).
  4. Check cross-parameter constraints on the merged values
     (short < long, fast < slow, oversold < overbought).

Nothing is ever clamped; the first violation raises InvalidParameterError.
"""

from types import MappingProxyType
from typing import Any, Mapping

from backtester.strategies.base import (
    ParameterType,
    StrategyDefinition,
    StrategyKind,
    StrategyParameter,
)
from backtester.strategies.signals import (
    bollinger_signals,
    bollinger_warmup,
    ma_crossover_signals,
    ma_crossover_warmup,
    macd_signals,
    macd_warmup,
    mean_reversion_signals,
    mean_reversion_warmup,
    rsi_signals,
    rsi_warmup,
)
from backtester.utils.errors import InvalidParameterError, UnknownStrategyError

__all__ = [
    'StrategyKind',
    'describe_strategy',
    'get_strategy',
    'list_strategies',
    'resolve_parameters',
]


def _int_param(name: str, label: str, default: int, lo: int, hi: int) -> StrategyParameter:
    return StrategyParameter(
        name=name,
        type=ParameterType.NUMBER,
        default=default,
        min_value=lo,
        max_value=hi,
        step=1,
        label=label,
        integer=True,
    )


def _float_param(name: str, label: str, default: float, lo: float, hi: float, step: float) -> StrategyParameter:
    return StrategyParameter(
        name=name,
        type=ParameterType.NUMBER,
        default=default,
        min_value=lo,
        max_value=hi,
        step=step,
        label=label,
    )


_DEFINITIONS = (
    StrategyDefinition(
        kind=StrategyKind.MA_CROSSOVER,
        name="Moving Average Crossover",
        description="Buy when the short-term moving average crosses above the long-term average; sell on the reverse cross.",
        parameters=(
            _int_param('short_period', "Short Period", 10, 2, 50),
            _int_param('long_period', "Long Period", 50, 10, 200),
        ),
        generate=ma_crossover_signals,
        warmup_bars=ma_crossover_warmup,
        constraints=(('short_period', 'long_period'),),
    ),
    StrategyDefinition(
        kind=StrategyKind.RSI,
        name="RSI Strategy",
        description="Buy when RSI falls below the oversold level; sell when it rises above the overbought level.",
        parameters=(
            _int_param('period', "RSI Period", 14, 5, 30),
            _int_param('oversold', "Oversold Level", 30, 10, 40),
            _int_param('overbought', "Overbought Level", 70, 60, 90),
        ),
        generate=rsi_signals,
        warmup_bars=rsi_warmup,
        constraints=(('oversold', 'overbought'),),
    ),
    StrategyDefinition(
        kind=StrategyKind.MACD,
        name="MACD Strategy",
        description="Buy when the MACD line crosses above its signal line; sell when it crosses below.",
        parameters=(
            _int_param('fast_period', "Fast Period", 12, 5, 20),
            _int_param('slow_period', "Slow Period", 26, 15, 50),
            _int_param('signal_period', "Signal Period", 9, 5, 15),
        ),
        generate=macd_signals,
        warmup_bars=macd_warmup,
        constraints=(('fast_period', 'slow_period'),),
    ),
    StrategyDefinition(
        kind=StrategyKind.BOLLINGER_BANDS,
        name="Bollinger Bands Strategy",
        description="Buy when price touches the lower band; sell when it touches the upper band.",
        parameters=(
            _int_param('period', "Period", 20, 10, 50),
            _float_param('std_dev', "Standard Deviations", 2.0, 1.0, 3.0, 0.1),
        ),
        generate=bollinger_signals,
        warmup_bars=bollinger_warmup,
    ),
    StrategyDefinition(
        kind=StrategyKind.MEAN_REVERSION,
        name="Mean Reversion",
        description="Buy when price is far below its moving average; sell when it is far above.",
        parameters=(
            _int_param('period', "Period", 50, 20, 100),
            _float_param('threshold', "Threshold (%)", 5.0, 1.0, 20.0, 0.5),
        ),
        generate=mean_reversion_signals,
        warmup_bars=mean_reversion_warmup,
    ),
)

_CATALOG: Mapping[StrategyKind, StrategyDefinition] = MappingProxyType(
    {definition.kind: definition for definition in _DEFINITIONS}
)

# Every kind must be registered exactly once
_missing = set(StrategyKind) - set(_CATALOG)
if _missing or len(_CATALOG) != len(_DEFINITIONS):
    raise RuntimeError(
        f"Strategy catalog is inconsistent: missing={sorted(k.value for k in _missing)}, "
        f"definitions={len(_DEFINITIONS)}, kinds={len(StrategyKind)}"
    )


def _normalize(name: str) -> str:
    return ''.join(ch for ch in name.lower() if ch not in ' _-')


_LOOKUP: Mapping[str, StrategyDefinition] = MappingProxyType(
    {
        **{_normalize(d.name): d for d in _DEFINITIONS},
        **{_normalize(d.kind.value): d for d in _DEFINITIONS},
    }
)


def list_strategies() -> tuple[StrategyDefinition, ...]:
    """All strategy definitions in catalog order."""
    return _DEFINITIONS


def get_strategy(name_or_kind: StrategyKind | str) -> StrategyDefinition:
    """
    Resolve a strategy by kind, kind value, or display name.

    Raises:
        UnknownStrategyError: If nothing in the catalog matches.
    """
    if isinstance(name_or_kind, StrategyKind):
        return _CATALOG[name_or_kind]
    if not isinstance(name_or_kind, str) or not name_or_kind.strip():
        raise UnknownStrategyError(f"Strategy name must be a non-empty string, got: {name_or_kind!r}.")

    definition = _LOOKUP.get(_normalize(name_or_kind))
    if definition is None:
        known = ', '.join(f"'{d.name}'" for d in _DEFINITIONS)
        raise UnknownStrategyError(
            f"Unknown strategy: '{name_or_kind}'. Known strategies: {known}."
        )
    return definition


def resolve_parameters(
    definition: StrategyDefinition,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Merge caller overrides into a strategy's defaults and validate the result.

    Args:
        definition: Strategy whose schema applies.
        overrides: Caller-supplied values by parameter name (may be None/empty).

    Returns:
        New dict with a validated value for every declared parameter.

    Raises:
        InvalidParameterError: Unknown name, wrong type, out of bounds, or a
                              violated cross-parameter constraint.
    """
    overrides = dict(overrides or {})

    unknown = sorted(set(overrides) - set(definition.parameter_names))
    if unknown:
        raise InvalidParameterError(
            f"Unknown parameter(s) for '{definition.name}': {unknown}. "
            f"Known parameters: {definition.parameter_names}."
        )

    resolved = definition.defaults()
    for name, value in overrides.items():
        resolved[name] = definition.parameter(name).validate(value)

    for lower, upper in definition.constraints:
        if not resolved[lower] < resolved[upper]:
            raise InvalidParameterError(
                f"'{definition.name}' requires {lower} < {upper}, "
                f"got {lower}={resolved[lower]}, {upper}={resolved[upper]}."
            )

    return resolved


def describe_strategy(name_or_kind: StrategyKind | str | StrategyDefinition) -> dict[str, Any]:
    """JSON-compatible descriptor (name, description, parameter schema) for a selection UI."""
    if isinstance(name_or_kind, StrategyDefinition):
        return name_or_kind.to_dict()
    return get_strategy(name_or_kind).to_dict()
