from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STATIONS_CONFIG_ENV = "STATIONS_CONFIG_PATH"
_CACHE_TTL_ENV = "STATION_CACHE_TTL_SECONDS"
_NEGATIVE_TTL_ENV = "STATION_NEGATIVE_CACHE_TTL_SECONDS"
_HTTP_TIMEOUT_ENV = "HTTP_TIMEOUT_SECONDS"
_CONDITIONS_WORKERS_ENV = "CONDITIONS_WORKER_COUNT"
_FLOW_BUCKET_NAME_ENV = "FLOW_BUCKET_NAME"
_FLOW_BUCKET_ROOT_ENV = "FLOW_BUCKET_ROOT_PATH"
_WINDOW_SIZE_ENV = "PREFETCH_WINDOW_SIZE"
_PREFETCH_WORKERS_ENV = "PREFETCH_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    stations_config_path: str
    cache_ttl_seconds: float
    negative_cache_ttl_seconds: float
    http_timeout_seconds: float
    conditions_workers: int
    flow_bucket_name: str
    flow_bucket_root_path: Optional[str]
    prefetch_window_size: int
    prefetch_workers: int
    log_level: str


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


def _read_positive_int(name: str, default: int) -> int:
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
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


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
    window_size = _read_positive_int(_WINDOW_SIZE_ENV, 4)
    return Settings(
        stations_config_path=_read_str_env(
            _STATIONS_CONFIG_ENV, "./config/data_stations.json"
        ),
        cache_ttl_seconds=_read_positive_float(_CACHE_TTL_ENV, 60 * 60),
        negative_cache_ttl_seconds=_read_positive_float(_NEGATIVE_TTL_ENV, 5 * 60),
        http_timeout_seconds=_read_positive_float(_HTTP_TIMEOUT_ENV, 10.0),
        conditions_workers=_read_positive_int(_CONDITIONS_WORKERS_ENV, 4),
        flow_bucket_name=_read_str_env(_FLOW_BUCKET_NAME_ENV, "flow"),
        flow_bucket_root_path=_read_optional_env(_FLOW_BUCKET_ROOT_ENV, "./tmp/flow"),
        prefetch_window_size=window_size,
        prefetch_workers=_read_positive_int(_PREFETCH_WORKERS_ENV, window_size),
        log_level=_read_log_level("INFO"),
    )
