"""Unit tests for configuration."""
import pytest
from pydantic import ValidationError

from smc_prop_engine.config import Settings, StrategyConfig


def test_defaults():
    """Test default strategy parameters."""
    config = StrategyConfig()

    assert config.risk_pct == 1.0
    assert config.min_rr == 2.0
    assert config.atr_multiplier == 1.5
    assert config.displacement_close == 0.7
    assert config.sl_buffer == 0.3
    assert config.strategy == 'all'
    assert config.only_longs is True
    assert config.session_filter is False
    assert config.initial_equity == 10000.0
    assert config.mc_iterations == 1000


def test_camel_case_blob():
    """Test stored camelCase keys are accepted."""
    config = StrategyConfig.model_validate({
        'riskPct': '2',
        'minRR': 3,
        'enableS2': 'false',
        'onlyLongs': 0,
        'maxHoldBars': '50',
        'unknownKey': 'ignored',
    })

    assert config.risk_pct == 2.0
    assert config.min_rr == 3.0
    assert config.enable_s2 is False
    assert config.only_longs is False
    assert config.max_hold_bars == 50


@pytest.mark.parametrize("value", [None, float('nan'), 'abc', True, [1]])
def test_bad_numbers_fall_back_to_default(value):
    """Test missing or unparseable numbers use the default."""
    config = StrategyConfig.model_validate({'slBuffer': value, 'maxHoldBars': value})

    assert config.sl_buffer == 0.3
    assert config.max_hold_bars == 100


def test_out_of_range_rejected():
    """Test parseable values outside their bounds raise."""
    with pytest.raises(ValidationError):
        StrategyConfig(mc_iterations=0)
    with pytest.raises(ValidationError):
        StrategyConfig(risk_pct=-1)
    with pytest.raises(ValidationError):
        StrategyConfig(displacement_close=1.5)


@pytest.mark.parametrize("value", ['S4', 's1', 3, None])
def test_unknown_strategy_falls_back_to_all(value):
    """Test an unknown strategy name selects every scanner."""
    assert StrategyConfig(strategy=value).strategy == 'all'
    assert StrategyConfig.model_validate({'strategy': value}).strategy == 'all'


def test_blob_round_trip():
    """Test to_blob uses camelCase and loads back unchanged."""
    config = StrategyConfig(risk_pct=2.5, enable_s3=False)

    blob = config.to_blob()

    assert blob['riskPct'] == 2.5
    assert blob['enableS3'] is False
    assert 'warmup' in blob
    assert StrategyConfig.model_validate(blob) == config


def test_with_overrides():
    """Test overrides ignore None and return a new config."""
    config = StrategyConfig()

    updated = config.with_overrides(symbol='ETHUSDT', timeframe=None, warmup=0)

    assert updated.symbol == 'ETHUSDT'
    assert updated.timeframe == '15m'
    assert updated.warmup == 0
    assert config.symbol == 'BTCUSDT'


def test_frozen():
    """Test configs are immutable."""
    with pytest.raises(ValidationError):
        StrategyConfig().risk_pct = 5


def test_settings_symbol_list():
    """Test live symbol parsing."""
    settings = Settings(live_symbols='btcusdt, ethusdt,', log_level='debug')

    assert settings.symbol_list() == ['BTCUSDT', 'ETHUSDT']
    assert settings.log_level == 'DEBUG'
