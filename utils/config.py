"""
Engine Configuration
Loads config/engine_config.json over built-in defaults and reads .env
"""

import copy
import json
import os
from typing import Dict, Optional

from dotenv import load_dotenv
from loguru import logger

from .errors import ConfigError

load_dotenv()


DEFAULT_CONFIG_PATH = "config/engine_config.json"

DEFAULT_CONFIG: Dict = {
    'network': {
        'rpc_url_env': 'RPC_URL',
        'request_timeout_seconds': 30
    },
    'gas_settings': {
        'price_multiplier_numerator': 12,
        'price_multiplier_denominator': 10,
        'gas_limit_transfer': 21000,
        'gas_limit_contract': 300000,
        'min_balance_wei': 0
    },
    'confirmation': {
        'poll_interval_seconds': 1.0,
        'timeout_seconds': 120
    },
    'artifacts': {
        'abi_path': 'build/Counter.abi',
        'bin_path': 'build/Counter.bin',
        'contract_address_file': 'contract_address.txt'
    },
    'logging': {
        'level': 'INFO',
        'file': 'data/logs/engine.log',
        'file_level': 'DEBUG',
        'rotation': '1 day',
        'retention': '7 days'
    }
}


def _merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into a copy of base"""
    merged = copy.deepcopy(base)

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value

    return merged


def validate_config(config: Dict):
    """
    Check the values the engine relies on

    Args:
        config: Merged configuration

    Raises:
        ConfigError: If a value is out of range
    """
    gas = config['gas_settings']

    if gas['price_multiplier_numerator'] <= 0 or gas['price_multiplier_denominator'] <= 0:
        raise ConfigError("Gas price multiplier terms must be positive")

    if gas['gas_limit_transfer'] < 21000 or gas['gas_limit_contract'] < 21000:
        raise ConfigError("Gas limits must be at least 21000")

    if gas['min_balance_wei'] < 0:
        raise ConfigError("min_balance_wei cannot be negative")

    confirmation = config['confirmation']

    if confirmation['poll_interval_seconds'] <= 0:
        raise ConfigError("poll_interval_seconds must be positive")

    if confirmation['timeout_seconds'] <= 0:
        raise ConfigError("timeout_seconds must be positive")


def load_config(path: Optional[str] = DEFAULT_CONFIG_PATH) -> Dict:
    """
    Load engine configuration

    A missing file is not an error: built-in defaults are used.

    Args:
        path: JSON config path (None = defaults only)

    Returns:
        Configuration dict

    Raises:
        ConfigError: If the file is unreadable or holds invalid values
    """
    overrides = {}

    if path and os.path.exists(path):
        try:
            with open(path, 'r') as f:
                overrides = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e

        if not isinstance(overrides, dict):
            raise ConfigError(f"Config {path} must hold a JSON object")

        logger.debug(f"Loaded config from {path}")
    elif path:
        logger.debug(f"Config {path} not found, using defaults")

    config = _merge(DEFAULT_CONFIG, overrides)
    validate_config(config)

    return config


def get_rpc_url(config: Dict) -> str:
    """
    Read the node URL from the environment variable named in config

    Raises:
        ConfigError: If the variable is not set
    """
    env_name = config['network']['rpc_url_env']
    rpc_url = os.getenv(env_name)

    if not rpc_url:
        raise ConfigError(f"{env_name} must be set in the environment or .env")

    return rpc_url
