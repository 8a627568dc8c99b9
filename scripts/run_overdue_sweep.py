#!/usr/bin/env python3
"""
Run the overdue sweep: ACTIVE rentals whose end date has passed become
OVERDUE and their renters are notified.

Usage:
  python3 scripts/run_overdue_sweep.py [--config PATH] [--once]

Without --once the sweep repeats every
scheduler.overdue_sweep_interval_seconds until interrupted.
"""

import argparse
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Mark late rentals OVERDUE")
    p.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: bundled rental_config/defaults.yaml)",
    )
    p.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from rental_batch.services.scheduler import SweepScheduler
    from rental_config import get_active_config
    from rental_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from rental_kernel.db.immutability import register_immutability_listeners
    from rental_kernel.exceptions import ConfigurationError
    from rental_kernel.logging_config import configure_logging

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ConfigurationError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2

    configure_logging(level=config.logging.level)
    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    create_tables()
    register_immutability_listeners()

    scheduler = SweepScheduler(
        get_session_factory(),
        interval_seconds=config.scheduler.overdue_sweep_interval_seconds,
    )

    if args.once:
        result = scheduler.tick()
        if result is None:
            return 1
        print(f"  {result.overdue_count} rental(s) marked OVERDUE as of {result.as_of}")
        return 0

    scheduler.start()
    try:
        while scheduler.is_running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
