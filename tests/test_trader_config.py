"""
Tests for trader_config defaults and trader.yaml overrides.
"""
from trader_config import TRADER_CONFIG, get_risk_config, get_trader_config


def test_defaults_without_override_file(tmp_path):
    config = get_trader_config(tmp_path / 'missing.yaml')
    assert config == TRADER_CONFIG
    assert config is not TRADER_CONFIG


def test_yaml_overrides_merge_per_section(tmp_path):
    path = tmp_path / 'trader.yaml'
    path.write_text(
        "risk:\n"
        "  min_score: 3.5\n"
        "  excluded_chains: [bsc]\n"
        "rate_limit:\n"
        "  preset: conservative\n"
    )

    config = get_trader_config(path)

    assert config['risk']['min_score'] == 3.5
    assert config['risk']['max_signals_per_scan'] == 10
    assert config['rate_limit']['preset'] == 'conservative'
    assert TRADER_CONFIG['risk']['min_score'] == 2.0

    risk = get_risk_config(path)
    assert risk.min_score == 3.5
    assert risk.excluded_chains == ['bsc']
