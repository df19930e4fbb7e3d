"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from watchlist_sentinel.core.exceptions import ConfigError

KNOWN_PROVIDERS: tuple[str, ...] = ("twelve-data", "finnhub", "alpha-vantage")

_MIN_REQUEST_DELAY_MS = 500
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class StorageConfig(BaseModel):
    """SQLite locations for the three stores."""

    model_config = ConfigDict(frozen=True)

    legacy_path: str = "./data/watch_list_legacy.db"
    canonical_path: str = "./data/watch_list.db"
    ohlcv_path: str = "./data/ohlcv.db"


class ProvidersConfig(BaseModel):
    """Outbound market-data provider settings."""

    model_config = ConfigDict(frozen=True)

    request_timeout: float = 10.0
    rate_limit: int = 5
    order: list[str] = list(KNOWN_PROVIDERS)

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v

    @field_validator("order", mode="before")
    @classmethod
    def split_order(cls, v):
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v

    @field_validator("order")
    @classmethod
    def order_known_and_unique(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("order must name at least one provider")
        unknown = [name for name in v if name not in KNOWN_PROVIDERS]
        if unknown:
            raise ValueError(
                f"unknown providers {unknown}; expected any of {list(KNOWN_PROVIDERS)}"
            )
        if len(set(v)) != len(v):
            raise ValueError("order must not repeat a provider")
        return v


class CollectionConfig(BaseModel):
    """OHLC collection job defaults."""

    model_config = ConfigDict(frozen=True)

    default_interval: str = "1d"
    default_lookback: int = 30
    request_delay_ms: int = 1000
    max_concurrency: int = 1

    @field_validator("default_lookback")
    @classmethod
    def lookback_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("default_lookback must be >= 1")
        return v

    @field_validator("request_delay_ms")
    @classmethod
    def delay_floor(cls, v: int) -> int:
        """Zero disables pacing; any other value is raised to the floor."""
        if v < 0:
            raise ValueError("request_delay_ms must be >= 0")
        if v == 0:
            return 0
        return max(_MIN_REQUEST_DELAY_MS, v)

    @field_validator("max_concurrency")
    @classmethod
    def max_concurrency_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_concurrency must be >= 1")
        return v


class ResolverConfig(BaseModel):
    """Asset resolver table sources."""

    model_config = ConfigDict(frozen=True)

    seed_path: str | None = None
    default_exchange: str = "GLOBAL"


class LoggingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def level_known(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _LOG_LEVELS:
            raise ValueError(f"level must be one of {list(_LOG_LEVELS)}")
        return upper


class SentinelConfig(BaseModel):
    """Root configuration for the entire watchlist-sentinel system."""

    model_config = ConfigDict(frozen=True)

    storage: StorageConfig = StorageConfig()
    providers: ProvidersConfig = ProvidersConfig()
    collection: CollectionConfig = CollectionConfig()
    resolver: ResolverConfig = ResolverConfig()
    logging: LoggingConfig = LoggingConfig()


_DEFAULT_CONFIG_FILE = "watchlist-sentinel.yml"
_CONFIG_ENV_VAR = "WATCHLIST_SENTINEL_CONFIG"


def load_config(
    config_path: str | None = None,
    env_prefix: str = "WATCHLIST_SENTINEL_",
) -> SentinelConfig:
    """Build the validated configuration.

    Sources, strongest first: ``<prefix><SECTION>__<KEY>`` environment
    variables, then the YAML file, then the model defaults. The YAML file is
    ``config_path`` if given, else the file named by WATCHLIST_SENTINEL_CONFIG,
    else ``watchlist-sentinel.yml`` in the working directory when present.

    Any problem, from a missing file to a failed validator, is a ConfigError.
    """
    try:
        path = _config_file(config_path)
        file_data = _read_yaml(path) if path is not None else {}
        raw = _deep_merge(file_data, _env_overrides(env_prefix))
        return SentinelConfig.model_validate(raw)
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _config_file(explicit: str | None) -> Path | None:
    if explicit is not None:
        source, value = "config_path", explicit
    elif os.environ.get(_CONFIG_ENV_VAR):
        source, value = _CONFIG_ENV_VAR, os.environ[_CONFIG_ENV_VAR]
    else:
        default = Path(_DEFAULT_CONFIG_FILE)
        return default if default.exists() else None

    path = Path(value)
    if not path.exists():
        raise ConfigError(
            f"Config file not found ({source}): {value}",
            context={"field": source, "value": value},
        )
    return path


def _read_yaml(path: Path) -> dict:
    context = {"field": "config_file", "value": str(path)}
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", context=context) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Top level of {path} must be a mapping, not {type(data).__name__}",
            context=context,
        )
    return data


def _env_overrides(prefix: str) -> dict:
    """Nested dict from ``<prefix>A__B=value`` variables (``a.b = value``)."""
    overrides: dict = {}
    for name, raw in os.environ.items():
        if not name.startswith(prefix):
            continue
        path = [part.lower() for part in name[len(prefix) :].split("__")]
        # The config file selector is not a setting.
        if path == ["config"] or not all(path):
            continue

        node = overrides
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[path[-1]] = _coerce_env_value(raw)
    return overrides


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Copy of ``base`` with ``overlay`` applied; nested mappings merge."""
    merged = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _coerce_env_value(raw: str) -> str | int | float | bool:
    """Booleans and numbers in their native type; anything else stays a string."""
    lowered = raw.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    return raw
