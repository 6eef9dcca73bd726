"""Application-wide configuration loaded from JSON resources."""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from math import isfinite
from pathlib import Path
from typing import Any, Mapping

from shared.logging_config import DEFAULT_FILTER_EXPRESSION as DEFAULT_LOG_FILTER
from shared.logging_config import DEFAULT_LOG_FILE_NAME

_CONFIG_RESOURCE = "app.json"
_APP_CONFIG_CACHE: AppConfig | None = None

DEFAULT_IDENTIFIER = "com.example.auto-update-app"
DEFAULT_PRODUCT_NAME = "Auto Update App"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class LoggingSettings:
    """Settings for the rotating file sink and the default verbosity filter."""

    file_name: str = DEFAULT_LOG_FILE_NAME
    default_filter: str = DEFAULT_LOG_FILTER


@dataclass(frozen=True)
class UpdaterSettings:
    """Where and how the release service is queried."""

    endpoints: tuple[str, ...] = ()
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class AppConfig:
    """Structured configuration values for the desktop app."""

    identifier: str = DEFAULT_IDENTIFIER
    product_name: str = DEFAULT_PRODUCT_NAME
    logging: LoggingSettings = LoggingSettings()
    updater: UpdaterSettings = UpdaterSettings()


def get_app_config() -> AppConfig:
    """Return the cached application configuration."""

    global _APP_CONFIG_CACHE
    if _APP_CONFIG_CACHE is None:
        _APP_CONFIG_CACHE = load_app_config()
    return _APP_CONFIG_CACHE


def reset_app_config_cache() -> None:
    """Reset the cached configuration for subsequent reloads."""

    global _APP_CONFIG_CACHE
    _APP_CONFIG_CACHE = None


def load_app_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from ``path`` or the bundled JSON resource."""

    data = _read_config_data(path)
    identifier = _coerce_text(data.get("identifier"), default=DEFAULT_IDENTIFIER)
    product_name = _coerce_text(data.get("product_name"), default=DEFAULT_PRODUCT_NAME)
    logging_settings = _parse_logging_section(data.get("logging"))
    updater_settings = _parse_updater_section(data.get("updater"))
    return AppConfig(
        identifier=identifier,
        product_name=product_name,
        logging=logging_settings,
        updater=updater_settings,
    )


def _read_config_data(path: str | Path | None) -> Mapping[str, Any]:
    if path is not None:
        return _load_json_from_path(Path(path).expanduser())
    return _load_default_config_data()


def _load_json_from_path(path: Path) -> Mapping[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    return _parse_json(raw)


def _load_default_config_data() -> Mapping[str, Any]:
    try:
        resource = resources.files(__package__).joinpath(_CONFIG_RESOURCE)
        raw = resource.read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    return _parse_json(raw)


def _parse_json(raw: str) -> Mapping[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _parse_logging_section(section: Any) -> LoggingSettings:
    if not isinstance(section, Mapping):
        return LoggingSettings()
    file_name = _coerce_text(section.get("file_name"), default=DEFAULT_LOG_FILE_NAME)
    if "/" in file_name or "\\" in file_name:
        file_name = DEFAULT_LOG_FILE_NAME
    default_filter = _coerce_text(section.get("default_filter"), default=DEFAULT_LOG_FILTER)
    return LoggingSettings(file_name=file_name, default_filter=default_filter)


def _parse_updater_section(section: Any) -> UpdaterSettings:
    if not isinstance(section, Mapping):
        return UpdaterSettings()
    raw_endpoints = section.get("endpoints")
    endpoints: tuple[str, ...] = ()
    if isinstance(raw_endpoints, str):
        raw_endpoints = [raw_endpoints]
    if isinstance(raw_endpoints, list):
        endpoints = tuple(
            item.strip() for item in raw_endpoints if isinstance(item, str) and item.strip()
        )
    timeout = _coerce_positive_float(section.get("timeout_seconds"), default=DEFAULT_TIMEOUT_SECONDS)
    chunk_size = _coerce_positive_int(section.get("chunk_size"), default=DEFAULT_CHUNK_SIZE)
    return UpdaterSettings(endpoints=endpoints, timeout_seconds=timeout, chunk_size=chunk_size)


def _coerce_text(value: Any, *, default: str) -> str:
    if not isinstance(value, str):
        return default
    stripped = value.strip()
    return stripped or default


def _coerce_positive_int(value: Any, *, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not isfinite(value):
            return default
        candidate = int(value)
    elif isinstance(value, str):
        try:
            candidate = int(float(value))
        except (ValueError, OverflowError):
            return default
    else:
        return default
    if candidate <= 0:
        return default
    return candidate


def _coerce_positive_float(value: Any, *, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        candidate = float(value)
    elif isinstance(value, str):
        try:
            candidate = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if not isfinite(candidate) or candidate <= 0:
        return default
    return candidate


__all__ = [
    "AppConfig",
    "DEFAULT_LOG_FILTER",
    "LoggingSettings",
    "UpdaterSettings",
    "get_app_config",
    "load_app_config",
    "reset_app_config_cache",
]
