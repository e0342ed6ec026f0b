from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from usage_analytics.ranges import RANGE_DAYS


@dataclass
class RuntimeEnv:
    api_token: str | None


@dataclass
class AppConfig:
    query_base_url: str
    query_timeout_seconds: float
    default_range: str
    refresh_debounce_seconds: float
    confirm_timeout_seconds: float
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _ms_to_seconds(value: object, default_ms: int) -> float:
    try:
        ms = int(value) if value is not None else default_ms
    except (TypeError, ValueError):
        ms = default_ms
    return max(0, ms) / 1000


def parse_app_config(config: dict) -> AppConfig:
    default_range = str(config.get("DefaultRange", "24h")).strip().lower()
    if default_range not in RANGE_DAYS:
        raise ValueError(f"DefaultRange must be one of {', '.join(RANGE_DAYS)}, got {default_range!r}")

    query_base_url = str(config.get("QueryBaseUrl") or "").strip()
    if not query_base_url:
        raise ValueError("QueryBaseUrl must be set to the base URL of a service exposing the /api/<command> query contract")

    return AppConfig(
        query_base_url=query_base_url,
        query_timeout_seconds=float(config.get("QueryTimeoutSeconds", 10)),
        default_range=default_range,
        refresh_debounce_seconds=_ms_to_seconds(config.get("RefreshDebounceMs"), 1000),
        confirm_timeout_seconds=_ms_to_seconds(config.get("ConfirmTimeoutMs"), 3000),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(api_token=os.environ.get("USAGE_API_TOKEN") or None)
