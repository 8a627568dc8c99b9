"""
rental_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way components obtain settings.
    It reads YAML (the bundled ``defaults.yaml`` unless a path is given),
    applies ``RENTAL_*`` environment overrides and returns a frozen
    ``RentalConfig``.

Audit relevance:
    Every successful call emits a ``rental_config_loaded`` log entry with
    the source path and checksum, tying a process run to the exact
    configuration it used.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from rental_config.loader import apply_env_overrides, load_yaml_file, parse_config
from rental_config.schema import (
    DatabaseConfig,
    LedgerConfig,
    LogConfig,
    PaginationConfig,
    RentalConfig,
    SchedulerConfig,
)
from rental_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> RentalConfig:
    """Load, override and validate the configuration.

    Args:
        path: YAML file to read.  Defaults to the bundled defaults.yaml.
        environ: Environment mapping for overrides.  Defaults to os.environ.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ConfigurationError: If a value is invalid.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data = apply_env_overrides(
        load_yaml_file(source),
        os.environ if environ is None else environ,
    )
    config = parse_config(data, source=str(source))

    _logger.info(
        "rental_config_loaded",
        extra={
            "config_source": config.source,
            "checksum": config.checksum,
            "log_level": config.logging.level,
            "balance_floor_cents": config.ledger.min_allowed_balance_cents,
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "LedgerConfig",
    "LogConfig",
    "PaginationConfig",
    "RentalConfig",
    "SchedulerConfig",
    "get_active_config",
]
