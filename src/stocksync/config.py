from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable

from dotenv import load_dotenv


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    api_token: str | None = None
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    stale_after_seconds: float = 300.0
    fetch_retries: int = 2
    large_quantity_threshold: int = 50
    notification_capacity: int = 5
    notification_duration_seconds: float = 3.2
    mutation_timeout_seconds: float | None = None
    log_level: str = "INFO"

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load config from environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("STOCKSYNC_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (os.getenv(f"STOCKSYNC_API_BASE_URL_{env_key}") or "").strip()
        or (os.getenv("STOCKSYNC_API_BASE_URL") or "").strip()
    )
    _require({"STOCKSYNC_API_BASE_URL": api_base_url}, ["STOCKSYNC_API_BASE_URL"])

    api_token = (os.getenv("STOCKSYNC_API_TOKEN") or "").strip() or None

    timeout_seconds = _read_float("STOCKSYNC_TIMEOUT_SECONDS", "10")
    _validate(timeout_seconds > 0, f"Invalid STOCKSYNC_TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}")

    connect_timeout_seconds = _read_float("STOCKSYNC_CONNECT_TIMEOUT_SECONDS", str(min(timeout_seconds, 5.0)))
    _validate(
        connect_timeout_seconds > 0,
        f"Invalid STOCKSYNC_CONNECT_TIMEOUT_SECONDS: expected > 0, got {connect_timeout_seconds}",
    )

    read_timeout_seconds = _read_float(
        "STOCKSYNC_READ_TIMEOUT_SECONDS",
        str(max(timeout_seconds, connect_timeout_seconds)),
    )
    _validate(
        read_timeout_seconds > 0,
        f"Invalid STOCKSYNC_READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    retries = _read_int("STOCKSYNC_RETRIES", "3")
    _validate(retries >= 0, f"Invalid STOCKSYNC_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("STOCKSYNC_RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        f"Invalid STOCKSYNC_RETRY_BACKOFF_SECONDS: expected >= 0, got {retry_backoff_seconds}",
    )

    max_connections = _read_int("STOCKSYNC_MAX_CONNECTIONS", "20")
    _validate(max_connections >= 1, f"Invalid STOCKSYNC_MAX_CONNECTIONS: expected >= 1, got {max_connections}")

    stale_after_seconds = _read_float("STOCKSYNC_STALE_AFTER_SECONDS", "300")
    _validate(
        stale_after_seconds >= 0,
        f"Invalid STOCKSYNC_STALE_AFTER_SECONDS: expected >= 0, got {stale_after_seconds}",
    )

    fetch_retries = _read_int("STOCKSYNC_FETCH_RETRIES", "2")
    _validate(fetch_retries >= 0, f"Invalid STOCKSYNC_FETCH_RETRIES: expected >= 0, got {fetch_retries}")

    large_quantity_threshold = _read_int("STOCKSYNC_LARGE_QUANTITY_THRESHOLD", "50")
    _validate(
        large_quantity_threshold >= 1,
        f"Invalid STOCKSYNC_LARGE_QUANTITY_THRESHOLD: expected >= 1, got {large_quantity_threshold}",
    )

    notification_capacity = _read_int("STOCKSYNC_NOTIFICATION_CAPACITY", "5")
    _validate(
        notification_capacity >= 1,
        f"Invalid STOCKSYNC_NOTIFICATION_CAPACITY: expected >= 1, got {notification_capacity}",
    )

    notification_duration_seconds = _read_float("STOCKSYNC_NOTIFICATION_DURATION_SECONDS", "3.2")
    _validate(
        notification_duration_seconds >= 0,
        (
            "Invalid STOCKSYNC_NOTIFICATION_DURATION_SECONDS: "
            f"expected >= 0, got {notification_duration_seconds}"
        ),
    )

    mutation_timeout_seconds: float | None = None
    if (os.getenv("STOCKSYNC_MUTATION_TIMEOUT_SECONDS") or "").strip():
        mutation_timeout_seconds = _read_float("STOCKSYNC_MUTATION_TIMEOUT_SECONDS", "0")
        _validate(
            mutation_timeout_seconds > 0,
            f"Invalid STOCKSYNC_MUTATION_TIMEOUT_SECONDS: expected > 0, got {mutation_timeout_seconds}",
        )

    log_level = (os.getenv("STOCKSYNC_LOG_LEVEL") or "INFO").strip().upper()
    _validate(
        log_level in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"},
        f"Invalid STOCKSYNC_LOG_LEVEL: unknown level {log_level!r}",
    )

    verify_ssl = _coerce_bool(os.getenv("STOCKSYNC_VERIFY_SSL"), True)

    return ClientConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        api_token=api_token,
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=verify_ssl,
        stale_after_seconds=stale_after_seconds,
        fetch_retries=fetch_retries,
        large_quantity_threshold=large_quantity_threshold,
        notification_capacity=notification_capacity,
        notification_duration_seconds=notification_duration_seconds,
        mutation_timeout_seconds=mutation_timeout_seconds,
        log_level=log_level,
    )
