"""
Watcher Configuration

Loads deposit_config.yaml into a WatcherConfig, applying defaults for
missing keys and validating the result.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import ccxt.async_support as ccxt
import yaml
from loguru import logger

from .errors import ConfigError
from .retry import RetryPolicy

DEFAULT_INTERVAL_SECONDS = 5 * 60
DEFAULT_TRANSFER_DELAY_SECONDS = 3.0
DEFAULT_LOOKBACK_SECONDS = 4 * 60 * 60
DEFAULT_BALANCE_RATE_LIMIT_SECONDS = 3.0

CREDENTIAL_ENV_VARS = {
    'apiKey': 'DEPOSIT_TRANSFER_API_KEY',
    'secret': 'DEPOSIT_TRANSFER_API_SECRET',
    'password': 'DEPOSIT_TRANSFER_API_PASSWORD',
}

_DURATION_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$')
_DURATION_UNITS = {'ms': 0.001, 's': 1, 'm': 60, 'h': 3600, None: 1}


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds

    Accepts numbers (seconds) or strings like '500ms', '3s', '5m', '4h'.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            return float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    raise ConfigError(f"Invalid duration: {value!r}")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None
    rotation: str = "10 MB"
    retention: str = "7 days"


@dataclass
class WatcherConfig:
    """Deposit transfer watcher settings"""
    exchange: str = "binance"
    assets: List[str] = field(default_factory=list)
    interval: float = DEFAULT_INTERVAL_SECONDS
    transfer_delay: float = DEFAULT_TRANSFER_DELAY_SECONDS
    lookback: float = DEFAULT_LOOKBACK_SECONDS
    balance_rate_limit: float = DEFAULT_BALANCE_RATE_LIMIT_SECONDS
    requeue_on_balance_failure: bool = True
    margin_account: str = "margin"
    credentials: Dict[str, str] = field(default_factory=dict)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    webhook_url: Optional[str] = None
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        self.assets = normalize_assets(self.assets)
        self.validate()

    def validate(self):
        if not self.exchange:
            raise ConfigError("exchange is required")
        if self.exchange not in ccxt.exchanges:
            raise ConfigError(f"unknown exchange: {self.exchange}")
        if not self.assets:
            raise ConfigError("at least one asset is required")
        if self.interval <= 0:
            raise ConfigError(f"interval must be positive, got {self.interval}")
        if self.transfer_delay < 0:
            raise ConfigError(f"transfer_delay must not be negative, got {self.transfer_delay}")
        if self.lookback <= 0:
            raise ConfigError(f"lookback must be positive, got {self.lookback}")
        if self.balance_rate_limit < 0:
            raise ConfigError(f"balance_rate_limit must not be negative, got {self.balance_rate_limit}")
        if self.retry.max_attempts < 1:
            raise ConfigError(f"retry.max_attempts must be at least 1, got {self.retry.max_attempts}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WatcherConfig':
        """
        Build config from a parsed YAML mapping

        Args:
            data: Parsed YAML content

        Returns:
            WatcherConfig

        Raises:
            ConfigError: wrong types or values
        """
        if not isinstance(data, dict):
            raise ConfigError("config must be a mapping")

        retry_data = _section(data, 'retry')
        retry = RetryPolicy(
            max_attempts=_to_number(int, retry_data, 'max_attempts', RetryPolicy.max_attempts, 'retry.'),
            initial_delay=parse_duration(retry_data.get('initial_delay', RetryPolicy.initial_delay)),
            backoff_multiplier=_to_number(
                float, retry_data, 'backoff_multiplier', RetryPolicy.backoff_multiplier, 'retry.'
            ),
            max_delay=parse_duration(retry_data.get('max_delay', RetryPolicy.max_delay)),
        )

        logging_data = _section(data, 'logging')
        logging_config = LoggingConfig(
            level=str(logging_data.get('level', LoggingConfig.level)).upper(),
            file=logging_data.get('file'),
            rotation=str(logging_data.get('rotation', LoggingConfig.rotation)),
            retention=str(logging_data.get('retention', LoggingConfig.retention)),
        )

        notifications = _section(data, 'notifications')
        webhook_url = notifications.get('webhook_url')
        if webhook_url is not None and not isinstance(webhook_url, str):
            raise ConfigError(f"notifications.webhook_url must be a string, got {webhook_url!r}")

        return cls(
            exchange=str(data.get('exchange', 'binance')).lower(),
            assets=data.get('assets') or [],
            interval=parse_duration(data.get('interval', DEFAULT_INTERVAL_SECONDS)),
            transfer_delay=parse_duration(data.get('transfer_delay', DEFAULT_TRANSFER_DELAY_SECONDS)),
            lookback=parse_duration(data.get('lookback', DEFAULT_LOOKBACK_SECONDS)),
            balance_rate_limit=parse_duration(data.get('balance_rate_limit', DEFAULT_BALANCE_RATE_LIMIT_SECONDS)),
            requeue_on_balance_failure=bool(data.get('requeue_on_balance_failure', True)),
            margin_account=str(data.get('margin_account', 'margin')),
            credentials=load_credentials(data.get('credentials')),
            retry=retry,
            webhook_url=webhook_url,
            logging=logging_config,
        )


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Nested mapping of the config, {} when absent"""
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping, got {value!r}")
    return value


def _to_number(convert, data: Dict[str, Any], key: str, default: Any, prefix: str = ''):
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{prefix}{key} must be a number, got {value!r}")
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{prefix}{key} must be a number, got {value!r}") from e


def normalize_assets(assets: Any) -> List[str]:
    """Upper-case asset symbols and drop duplicates, keeping order"""
    if assets is None:
        return []
    if isinstance(assets, str):
        assets = [assets]
    if not isinstance(assets, (list, tuple)):
        raise ConfigError(f"assets must be a list of symbols, got {assets!r}")

    normalized = []
    for asset in assets:
        if not isinstance(asset, str):
            raise ConfigError(f"asset symbol must be a string, got {asset!r}")
        symbol = asset.strip().upper()
        if symbol and symbol not in normalized:
            normalized.append(symbol)
    return normalized


def load_credentials(credentials: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Credentials from config, falling back to environment variables"""
    if credentials is not None and not isinstance(credentials, dict):
        raise ConfigError("credentials must be a mapping")
    result = {k: str(v) for k, v in (credentials or {}).items() if v is not None}

    for key, env_var in CREDENTIAL_ENV_VARS.items():
        if key not in result and os.environ.get(env_var):
            result[key] = os.environ[env_var]

    return result


def load_config(config_path: str = "deposit_config.yaml") -> WatcherConfig:
    """
    Load configuration from YAML

    Args:
        config_path: Path to config file

    Returns:
        WatcherConfig

    Raises:
        ConfigError: missing file, invalid YAML or invalid settings
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Config file not found: {config_file}")

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

    config = WatcherConfig.from_dict(data)
    logger.info(f"Loaded config from {config_file}: {config.exchange} {config.assets}")
    return config
