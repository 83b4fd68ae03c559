from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple


_SOURCES_ENV = "WEIGHT_SERVICES"
_HOST_ENV = "HOST"
_PORT_ENV = "PORT"
_ENABLE_HTTP_ENV = "ENABLE_HTTP_SERVER"
_HTTP_PORT_ENV = "HTTP_PORT"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_LOG_PATH_ENV = "LOG_PATH"
_RECONNECT_INTERVAL_ENV = "RECONNECT_INTERVAL"
_RECONNECT_ATTEMPTS_ENV = "RECONNECT_ATTEMPTS"
_BROADCAST_INTERVAL_ENV = "BROADCAST_INTERVAL"
_SEND_TIMEOUT_ENV = "SEND_TIMEOUT"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    sources: Tuple[str, ...]
    host: str
    port: int
    enable_http_server: bool
    http_port: int
    log_level: str
    log_path: Optional[str]
    reconnect_interval_ms: int
    # 0 means "retry forever", not "never retry".
    reconnect_attempts: int
    broadcast_interval_ms: int
    send_timeout_ms: int


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_int_env(name: str, default: int, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in _TRUTHY


def _read_sources() -> Tuple[str, ...]:
    value = os.getenv(_SOURCES_ENV)
    if value is None:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        sources=_read_sources(),
        host=_read_str_env(_HOST_ENV, "0.0.0.0"),
        port=_read_int_env(_PORT_ENV, 3000),
        enable_http_server=_read_bool_env(_ENABLE_HTTP_ENV, False),
        http_port=_read_int_env(_HTTP_PORT_ENV, 4000),
        log_level=_read_log_level("INFO"),
        log_path=_read_optional_env(_LOG_PATH_ENV, "logs/"),
        reconnect_interval_ms=_read_int_env(_RECONNECT_INTERVAL_ENV, 60000, minimum=0),
        reconnect_attempts=_read_int_env(_RECONNECT_ATTEMPTS_ENV, 120, minimum=0),
        broadcast_interval_ms=_read_int_env(_BROADCAST_INTERVAL_ENV, 1000),
        send_timeout_ms=_read_int_env(_SEND_TIMEOUT_ENV, 5000),
    )
