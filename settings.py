from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict

from dotenv import load_dotenv

load_dotenv()

_DATABASE_URL_ENV = "TELEMETRY_DATABASE_URL"
_RETENTION_DAYS_ENV = "TELEMETRY_RETENTION_DAYS"
_ACCOUNT_RETENTION_ENV = "ACCOUNT_RETENTION_MINUTES"
_TELEMETRY_PURGE_INTERVAL_ENV = "TELEMETRY_PURGE_INTERVAL_SECONDS"
_ACCOUNT_PURGE_INTERVAL_ENV = "ACCOUNT_PURGE_INTERVAL_SECONDS"
_RETENTION_ENABLED_ENV = "RETENTION_ENABLED"
_STORE_TIMEOUT_ENV = "STORE_TIMEOUT_SECONDS"
_STORE_POOL_SIZE_ENV = "STORE_POOL_SIZE"
_ACCESS_TOKENS_ENV = "TELEMETRY_ACCESS_TOKENS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    database_url: str
    telemetry_retention_days: float
    account_retention_minutes: float
    telemetry_purge_interval: float
    account_purge_interval: float
    retention_enabled: bool
    store_timeout: float
    store_pool_size: int
    access_tokens: Dict[str, str] = field(default_factory=dict)
    log_level: str = "INFO"


def _read_raw(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _read_str_env(name: str, default: str) -> str:
    return _read_raw(name) or default


def _read_positive_float(name: str, default: float) -> float:
    candidate = _read_raw(name)
    if candidate is None:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_int(name: str, default: int) -> int:
    candidate = _read_raw(name)
    if candidate is None:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    candidate = _read_raw(name)
    if candidate is None:
        return default
    lowered = candidate.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _read_access_tokens(name: str) -> Dict[str, str]:
    """Parse ``token:owner`` pairs separated by commas; malformed pairs are skipped."""
    candidate = _read_raw(name)
    if candidate is None:
        return {}
    tokens: Dict[str, str] = {}
    for pair in candidate.split(","):
        token, sep, owner = pair.partition(":")
        token, owner = token.strip(), owner.strip()
        if sep and token and owner:
            tokens[token] = owner
    return tokens


def _read_log_level(default: str) -> str:
    return _read_str_env(_LOG_LEVEL_ENV, default).upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=_read_str_env(_DATABASE_URL_ENV, "sqlite:///./tmp/telemetry.db"),
        telemetry_retention_days=_read_positive_float(_RETENTION_DAYS_ENV, 1.0),
        account_retention_minutes=_read_positive_float(_ACCOUNT_RETENTION_ENV, 1.0),
        telemetry_purge_interval=_read_positive_float(_TELEMETRY_PURGE_INTERVAL_ENV, 86400.0),
        account_purge_interval=_read_positive_float(_ACCOUNT_PURGE_INTERVAL_ENV, 60.0),
        retention_enabled=_read_bool(_RETENTION_ENABLED_ENV, True),
        store_timeout=_read_positive_float(_STORE_TIMEOUT_ENV, 10.0),
        store_pool_size=_read_positive_int(_STORE_POOL_SIZE_ENV, 5),
        access_tokens=_read_access_tokens(_ACCESS_TOKENS_ENV),
        log_level=_read_log_level("INFO"),
    )
