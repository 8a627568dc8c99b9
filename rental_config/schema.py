"""
RentalConfig schema.

Frozen dataclasses produced by ``rental_config.loader`` from YAML plus
environment overrides.  Runtime components receive these objects, never
raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class LedgerConfig:
    """Balance floor for renter charges; None disables the check."""

    min_allowed_balance_cents: int | None = None


@dataclass(frozen=True)
class PaginationConfig:
    default_page_size: int = 20
    max_page_size: int = 100


@dataclass(frozen=True)
class SchedulerConfig:
    overdue_sweep_interval_seconds: float = 3600.0


@dataclass(frozen=True)
class RentalConfig:
    """
    Complete runtime configuration.

    ``checksum`` is the SHA-256 of the canonical (post-override) mapping
    and identifies the configuration in trace logs.
    """

    database: DatabaseConfig
    logging: LogConfig = field(default_factory=LogConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    source: str = ""
    checksum: str = ""
