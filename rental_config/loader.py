"""
Configuration Loader (``rental_config.loader``).

Responsibility
--------------
Reads a YAML file, applies ``RENTAL_*`` environment overrides and parses
the result into the frozen dataclasses of ``rental_config.schema``.  The
public entry point is ``rental_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Invalid values raise ``ConfigurationError`` naming the offending key;
  there are no silent fallbacks for malformed values.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong type or out-of-range value  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from rental_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LogConfig,
    PaginationConfig,
    RentalConfig,
    SchedulerConfig,
)
from rental_kernel.exceptions import ConfigurationError

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "RENTAL_DATABASE_URL": ("database", "url"),
    "RENTAL_LOG_LEVEL": ("logging", "level"),
    "RENTAL_MIN_BALANCE_CENTS": ("ledger", "min_allowed_balance_cents"),
    "RENTAL_SWEEP_INTERVAL_SECONDS": ("scheduler", "overdue_sweep_interval_seconds"),
}

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level YAML document must be a mapping")
    return data


def apply_env_overrides(
    data: Mapping[str, Any], environ: Mapping[str, str],
) -> dict[str, Any]:
    """Return a copy of ``data`` with ``RENTAL_*`` variables applied.

    Override values are parsed as YAML scalars, so ``"null"`` and ``"500"``
    become ``None`` and ``500``.
    """
    merged: dict[str, Any] = {
        section: dict(values) if isinstance(values, Mapping) else values
        for section, values in data.items()
    }
    for env_name, (section, key) in ENV_OVERRIDES.items():
        if env_name not in environ:
            continue
        target = merged.setdefault(section, {})
        if not isinstance(target, dict):
            raise ConfigurationError(section, "must be a mapping")
        target[key] = yaml.safe_load(environ[env_name])
    return merged


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: Mapping[str, Any], source: str = "") -> RentalConfig:
    """Validate a merged mapping into a ``RentalConfig``."""
    database = _section(data, "database")
    url = database.get("url")
    if not isinstance(url, str) or not url:
        raise ConfigurationError("database.url", "must be a non-empty string")

    log_section = _section(data, "logging")
    level = str(log_section.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError("logging.level", f"unknown level {level!r}")

    ledger = _section(data, "ledger")
    floor = ledger.get("min_allowed_balance_cents")
    if floor is not None:
        floor = _int(floor, "ledger.min_allowed_balance_cents")

    pagination = _section(data, "pagination")
    default_size = _int(pagination.get("default_page_size", 20), "pagination.default_page_size")
    max_size = _int(pagination.get("max_page_size", 100), "pagination.max_page_size")
    if default_size < 1:
        raise ConfigurationError("pagination.default_page_size", "must be >= 1")
    if max_size < default_size:
        raise ConfigurationError("pagination.max_page_size", "must be >= default_page_size")

    scheduler = _section(data, "scheduler")
    interval = scheduler.get("overdue_sweep_interval_seconds", 3600)
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise ConfigurationError(
            "scheduler.overdue_sweep_interval_seconds", "must be a positive number",
        )

    return RentalConfig(
        database=DatabaseConfig(
            url=url,
            echo=bool(database.get("echo", False)),
            pool_size=_int(database.get("pool_size", 20), "database.pool_size"),
            max_overflow=_int(database.get("max_overflow", 10), "database.max_overflow"),
        ),
        logging=LogConfig(level=level),
        ledger=LedgerConfig(min_allowed_balance_cents=floor),
        pagination=PaginationConfig(default_page_size=default_size, max_page_size=max_size),
        scheduler=SchedulerConfig(overdue_sweep_interval_seconds=float(interval)),
        source=source,
        checksum=compute_checksum(data),
    )


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(name, "must be a mapping")
    return value


def _int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(key, f"must be an integer, got {value!r}")
    return value
