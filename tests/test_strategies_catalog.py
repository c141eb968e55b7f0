"""
Tests for the strategy catalog: lookup, parameter schemas and resolution.
"""

import json

import pytest

from backtester.strategies.base import ParameterType, StrategyKind, StrategyParameter
from backtester.strategies.catalog import (
    describe_strategy,
    get_strategy,
    list_strategies,
    resolve_parameters,
)
from backtester.utils.errors import (
    ConfigurationError,
    InvalidParameterError,
    UnknownStrategyError,
)


def test_catalog_covers_every_kind_once():
    kinds = [d.kind for d in list_strategies()]

    assert sorted(kinds, key=lambda k: k.value) == sorted(StrategyKind, key=lambda k: k.value)
    assert len(kinds) == len(set(kinds))


@pytest.mark.parametrize(
    "name",
    ["rsi", "RSI", "RSI Strategy", "rsi_strategy", StrategyKind.RSI],
)
def test_get_strategy_accepts_kind_value_and_display_name(name):
    assert get_strategy(name).kind is StrategyKind.RSI


def test_get_strategy_normalizes_spaces_and_underscores():
    assert get_strategy("moving average crossover").kind is StrategyKind.MA_CROSSOVER
    assert get_strategy("MA_CROSSOVER").kind is StrategyKind.MA_CROSSOVER
    assert get_strategy("Bollinger Bands Strategy").kind is StrategyKind.BOLLINGER_BANDS


def test_get_strategy_unknown_name_raises():
    with pytest.raises(UnknownStrategyError, match="Unknown strategy"):
        get_strategy("Turtle Breakout")


def test_unknown_strategy_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        get_strategy("")


def test_catalog_defaults_and_bounds():
    ma = get_strategy(StrategyKind.MA_CROSSOVER)
    assert ma.name == "Moving Average Crossover"
    assert ma.defaults() == {'short_period': 10, 'long_period': 50}
    assert ma.parameter('long_period').min_value == 10
    assert ma.parameter('long_period').max_value == 200

    bollinger = get_strategy(StrategyKind.BOLLINGER_BANDS)
    assert bollinger.defaults() == {'period': 20, 'std_dev': 2.0}
    assert bollinger.parameter('std_dev').step == pytest.approx(0.1)

    mr = get_strategy(StrategyKind.MEAN_REVERSION)
    assert mr.defaults() == {'period': 50, 'threshold': 5.0}
    assert mr.parameter('threshold').max_value == 20.0


@pytest.mark.parametrize("definition", list_strategies(), ids=lambda d: d.kind.value)
def test_every_strategy_validates_its_own_defaults(definition):
    assert resolve_parameters(definition, {}) == definition.defaults()
    assert resolve_parameters(definition, definition.defaults()) == definition.defaults()


def test_warmup_bars_per_strategy():
    assert get_strategy("ma_crossover").warmup_bars({'short_period': 10, 'long_period': 50}) == 50
    assert get_strategy("rsi").warmup_bars({'period': 14}) == 15
    assert get_strategy("macd").warmup_bars({'fast_period': 12, 'slow_period': 26, 'signal_period': 9}) == 34
    assert get_strategy("bollinger_bands").warmup_bars({'period': 20}) == 20
    assert get_strategy("mean_reversion").warmup_bars({'period': 50}) == 50


def test_resolve_parameters_merges_overrides():
    definition = get_strategy("rsi")

    resolved = resolve_parameters(definition, {'oversold': 25})

    assert resolved == {'period': 14, 'oversold': 25, 'overbought': 70}


def test_resolve_parameters_coerces_numeric_strings():
    definition = get_strategy("bollinger_bands")

    resolved = resolve_parameters(definition, {'period': "30", 'std_dev': "2.5"})

    assert resolved == {'period': 30, 'std_dev': 2.5}
    assert isinstance(resolved['period'], int)


def test_resolve_parameters_rejects_unknown_name():
    with pytest.raises(InvalidParameterError, match="Unknown parameter"):
        resolve_parameters(get_strategy("rsi"), {'lookback': 10})


@pytest.mark.parametrize(
    "overrides, fragment",
    [
        ({'long_period': 500}, "above the maximum"),
        ({'short_period': 1}, "below the minimum"),
        ({'short_period': 10.5}, "whole number"),
        ({'short_period': "ten"}, "must be a number"),
        ({'short_period': True}, "must be a number"),
    ],
)
def test_resolve_parameters_rejects_out_of_bounds_without_clamping(overrides, fragment):
    with pytest.raises(InvalidParameterError, match=fragment):
        resolve_parameters(get_strategy("ma_crossover"), overrides)


@pytest.mark.parametrize(
    "strategy, overrides",
    [
        ("ma_crossover", {'short_period': 50, 'long_period': 20}),
        ("ma_crossover", {'short_period': 30, 'long_period': 30}),
        ("macd", {'fast_period': 20, 'slow_period': 15}),
    ],
)
def test_resolve_parameters_enforces_cross_parameter_constraints(strategy, overrides):
    with pytest.raises(InvalidParameterError, match="requires"):
        resolve_parameters(get_strategy(strategy), overrides)


def test_boolean_and_enum_parameters_validate():
    flag = StrategyParameter(name='enabled', type=ParameterType.BOOLEAN, default=False)
    mode = StrategyParameter(name='mode', type=ParameterType.ENUM, default='close', options=('close', 'open'))

    assert flag.validate("true") is True
    assert flag.validate(False) is False
    assert mode.validate('open') == 'open'
    with pytest.raises(InvalidParameterError):
        flag.validate("maybe")
    with pytest.raises(InvalidParameterError):
        mode.validate('high')


def test_describe_strategy_is_json_serializable():
    descriptor = describe_strategy("macd")

    assert descriptor['name'] == "MACD Strategy"
    assert [p['name'] for p in descriptor['parameters']] == ['fast_period', 'slow_period', 'signal_period']
    assert descriptor['parameters'][0] == {
        'name': 'fast_period',
        'label': 'Fast Period',
        'type': 'number',
        'default': 12,
        'min': 5,
        'max': 20,
        'step': 1,
        'integer': True,
    }
    json.dumps([d.to_dict() for d in list_strategies()])
