#!/usr/bin/env python3
"""
Recompute every cached membership balance from the ledger and report drift.

Usage:
  python3 scripts/reconcile_balances.py [--config PATH] [--org ORG_ID]
"""

import argparse
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Reconcile cached balances against the ledger")
    p.add_argument("--config", default=None, help="YAML configuration file")
    p.add_argument("--org", type=UUID, default=None, help="Only reconcile this organization")
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from sqlalchemy import select

    from rental_config import get_active_config
    from rental_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from rental_kernel.logging_config import configure_logging
    from rental_kernel.models.user import UserOrg
    from rental_kernel.services.ledger_service import LedgerService

    config = get_active_config(args.config)
    configure_logging(level=config.logging.level)
    init_engine_from_url(config.database.url, echo=config.database.echo)
    create_tables()

    drifted = 0
    with session_scope() as session:
        stmt = select(UserOrg.org_id, UserOrg.user_id).order_by(UserOrg.org_id, UserOrg.user_id)
        if args.org is not None:
            stmt = stmt.where(UserOrg.org_id == args.org)
        ledger = LedgerService(session)
        for org_id, user_id in session.execute(stmt).all():
            result = ledger.reconcile_balance(org_id, user_id)
            if not result.was_consistent:
                drifted += 1
                print(
                    f"  {org_id} / {user_id}: cached {result.cached_balance_cents} "
                    f"!= ledger {result.ledger_balance_cents} (fixed)"
                )

    print(f"  {drifted} membership(s) had drift")
    return 0


if __name__ == "__main__":
    sys.exit(main())
