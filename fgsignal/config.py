#!/usr/bin/env python3
"""
CENTRALIZED CONFIG - Single source of truth for all configuration.

Loads from .env file and provides typed access to all settings.
"""

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Tuple
from dotenv import load_dotenv

# Load .env from project root
BASE_DIR = Path(__file__).parent.parent
load_dotenv(BASE_DIR / ".env")


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class SupabaseConfig:
    url: str
    anon_key: str
    service_role_key: str


@dataclass(frozen=True)
class TradingConfig:
    default_symbol: str = "SPY"
    sma_periods: Tuple[int, ...] = (20, 50, 100, 200)
    bollinger_period: int = 20
    bollinger_stddev: float = 2.0
    # Entry: price within 1% above an SMA / the lower band still counts
    entry_buffer: float = 0.01
    # Exit: price within 1% below the ATH / upper band counts as reached
    exit_buffer: float = 0.01
    min_price_points: int = 20
    # History window requested from the price source
    history_period: str = "1y"


@dataclass(frozen=True)
class RequestConfig:
    timeout_seconds: float = 10.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    retryable_statuses: Tuple[int, ...] = (408, 429, 500, 502, 503, 504)


@dataclass(frozen=True)
class CacheConfig:
    sentiment_ttl_seconds: int = 300     # 5 min
    cache_dir: Path = BASE_DIR / "cache"


class Config:
    """Centralized configuration with typed access."""

    def __init__(self):
        self.supabase = SupabaseConfig(
            url=os.getenv("SUPABASE_URL", ""),
            anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
            service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        )
        self.trading = TradingConfig(
            default_symbol=os.getenv("FGSIGNAL_DEFAULT_SYMBOL", "SPY").upper(),
            history_period=os.getenv("FGSIGNAL_HISTORY_PERIOD", "1y"),
        )
        self.requests = RequestConfig(
            timeout_seconds=_env_float("FGSIGNAL_REQUEST_TIMEOUT", 10.0),
            max_retries=_env_int("FGSIGNAL_MAX_RETRIES", 3),
            retry_delay_seconds=_env_float("FGSIGNAL_RETRY_DELAY", 1.0),
        )
        self.cache = CacheConfig(
            sentiment_ttl_seconds=_env_int("FGSIGNAL_SENTIMENT_TTL", 300),
        )
        self.base_dir = BASE_DIR
        self.db_path = os.getenv("FGSIGNAL_DB_PATH", str(BASE_DIR / "fgsignal.db"))
        self.fear_greed_url = os.getenv(
            "FEAR_GREED_URL",
            "https://production.dataviz.cnn.io/index/fearandgreed/current",
        )

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase.url and self.supabase.service_role_key)


# Singleton
_config: Optional[Config] = None


def get_config() -> Config:
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment."""
    global _config
    _config = None
