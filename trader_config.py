"""
SMART MONEY TRADER CONFIGURATION

Defaults for the signal pipeline. Every component takes its own section:

- cache       -> ResponseCache
- rate_limit  -> RateLimiter (or a preset name)
- signal_log  -> SignalStore
- risk        -> RiskConfig
- scan        -> ScanOrchestrator
- monitor     -> monitor loop

Per-deployment overrides can be put in trader.yaml next to this file
(same section names, only the keys you want to change).
"""

import copy
from pathlib import Path

import yaml

from signal_intel.risk_engine import RiskConfig

TRADER_CONFIG_PATH = Path(__file__).parent / "trader.yaml"

TRADER_CONFIG = {
    # ================================================================
    # RESPONSE CACHE
    # ================================================================
    'cache': {
        'default_ttl_seconds': 60,
    },

    # ================================================================
    # RATE LIMIT (Nansen credits are metered per request)
    # ================================================================
    'rate_limit': {
        'preset': 'standard',      # conservative | standard | aggressive | burst
    },

    # ================================================================
    # SIGNAL LOG
    # ================================================================
    'signal_log': {
        'path': '.nansen/signals.json',
        'auto_save': True,
    },

    # ================================================================
    # RISK FILTERS
    # ================================================================
    'risk': {
        'min_score': 2.0,
        'max_signals_per_scan': 10,
        'dedupe_window_seconds': 60 * 60,    # 1h
        'min_smart_money_buyers': 3,
        'min_netflow_usd': 10000,
        'min_fresh_wallets': 5,
        'allowed_chains': None,              # None = all
        'excluded_chains': None,
    },

    # ================================================================
    # SCANNING
    # ================================================================
    'scan': {
        'enable_rate_limit': True,
        'default_chains': ['ethereum', 'base', 'arbitrum'],
        'default_modes': ['accumulation'],
    },

    # ================================================================
    # MONITOR
    # ================================================================
    'monitor': {
        'interval_seconds': 60,
    },
}


def load_overrides(path: Path = TRADER_CONFIG_PATH) -> dict:
    """Load trader.yaml overrides (empty dict if the file is absent)."""
    if path.exists():
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}
    return {}


def get_trader_config(path: Path = TRADER_CONFIG_PATH) -> dict:
    """
    Get the trader configuration with trader.yaml overrides applied.

    Returns:
        Fresh dict; safe to mutate
    """
    config = copy.deepcopy(TRADER_CONFIG)
    for section, values in load_overrides(path).items():
        if isinstance(values, dict) and isinstance(config.get(section), dict):
            config[section].update(values)
        else:
            config[section] = values
    return config


def get_risk_config(path: Path = TRADER_CONFIG_PATH) -> RiskConfig:
    """Risk section as a RiskConfig."""
    return RiskConfig.from_dict(get_trader_config(path)['risk'])
