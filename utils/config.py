"""
Configuration loading for the trading bot.

Values come from ``config.yaml`` at the project root (optional) and are
overridden by environment variables (``.env`` is loaded by ``main.py``).
The telegram token is the only required value; without it the process must
not start.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import yaml  # type: ignore
from pydantic import BaseModel, ValidationError

from utils.errors import ConfigError

# clave de AppConfig -> variable de entorno
_ENV_MAP = {
    "telegram_token": "TELEGRAM_BOT_TOKEN",
    "rpc_url": "SOLANA_RPC_URL",
    "jupiter_api": "JUPITER_API_URL",
    "dexscreener_api": "DEXSCREENER_API_URL",
    "rugcheck_api": "RUGCHECK_API_URL",
    "db_path": "DB_PATH",
    "http_timeout_secs": "HTTP_TIMEOUT_SECS",
    "rpc_timeout_secs": "RPC_TIMEOUT_SECS",
    "rpc_retries": "RPC_RETRIES",
    "rpc_retry_backoff_secs": "RPC_RETRY_BACKOFF_SECS",
    "broadcast_retries": "BROADCAST_RETRIES",
    "confirm_timeout_secs": "CONFIRM_TIMEOUT_SECS",
    "confirm_poll_secs": "CONFIRM_POLL_SECS",
    "alert_interval_secs": "ALERT_INTERVAL_SECS",
    "copy_interval_secs": "COPY_INTERVAL_SECS",
    "snapshot_interval_secs": "SNAPSHOT_INTERVAL_SECS",
    "copy_lookback": "COPY_LOOKBACK",
    "copy_seen_cap": "COPY_SEEN_CAP",
}


class AppConfig(BaseModel):
    telegram_token: str
    rpc_url: str = "https://api.mainnet-beta.solana.com"
    jupiter_api: str = "https://lite-api.jup.ag/swap/v1"
    dexscreener_api: str = "https://api.dexscreener.com"
    rugcheck_api: str = "https://api.rugcheck.xyz/v1"
    db_path: str = "./data/tradebot.db"

    http_timeout_secs: float = 10.0
    rpc_timeout_secs: float = 30.0
    rpc_retries: int = 3
    rpc_retry_backoff_secs: float = 0.4
    broadcast_retries: int = 3
    confirm_timeout_secs: float = 60.0
    confirm_poll_secs: float = 2.0

    alert_interval_secs: float = 60.0
    copy_interval_secs: float = 30.0
    snapshot_interval_secs: float = 30.0
    copy_lookback: int = 5
    copy_seen_cap: int = 20000


def _read_yaml(path: str) -> Dict[str, Any]:
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    return {}


def load_config(path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> AppConfig:
    """Load ``config.yaml`` plus environment overrides.

    :raises ConfigError: if the telegram token is missing or a value has the
        wrong type.
    """
    base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
    data = _read_yaml(path or os.path.join(base_dir, "config.yaml"))
    env = os.environ if env is None else env

    for key, var in _ENV_MAP.items():
        value = env.get(var)
        if value not in (None, ""):
            data[key] = value

    if not data.get("telegram_token"):
        raise ConfigError("Falta TELEGRAM_BOT_TOKEN")
    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"config inválida: {e}") from e
