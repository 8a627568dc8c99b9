"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Money moves through an append-only ledger.  A balance is the sum of every
posted transaction, so rewriting or deleting one silently changes what a
user owes.  Corrections are new ADJUSTMENT or REFUND rows, never edits.

Rentals carry a price snapshot taken from the tool at creation.  Every later
cost (date changes, counter-proposals) is recomputed from that snapshot, so
the snapshot itself must not change after insert.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database:

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

If a check fails the flush aborts and the caller's unit of work is rolled
back.  Bulk UPDATE/DELETE statements bypass mapper events.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable          | Fields
--------------------|-------------------------|------------------------------
LedgerTransaction   | ALWAYS (from creation)  | all; deletes blocked
Rental              | ALWAYS (from creation)  | price snapshot fields only

===============================================================================
USAGE
===============================================================================

    from rental_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import inspect
from sqlalchemy import event

from rental_kernel.exceptions import ImmutabilityViolationError
from rental_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

RENTAL_SNAPSHOT_FIELDS = frozenset({
    "duration_unit",
    "daily_price_cents",
    "weekly_price_cents",
    "monthly_price_cents",
    "replacement_cost_cents",
})


def _check_ledger_transaction_immutability(mapper, connection, target):
    """Prevent any updates to LedgerTransaction records."""
    from rental_kernel.models.ledger import LedgerTransaction

    if not isinstance(target, LedgerTransaction):
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LedgerTransaction",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="LedgerTransaction",
        entity_id=str(target.id),
        reason="Ledger transactions are append-only and cannot be modified",
    )


def _check_ledger_transaction_delete(mapper, connection, target):
    """Prevent deletion of LedgerTransaction records."""
    from rental_kernel.models.ledger import LedgerTransaction

    if not isinstance(target, LedgerTransaction):
        return

    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "LedgerTransaction",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="LedgerTransaction",
        entity_id=str(target.id),
        reason="Ledger transactions cannot be deleted",
    )


def _check_rental_snapshot_immutability(mapper, connection, target):
    """
    Prevent changes to a rental's price snapshot.

    Status, dates, costs and proposal fields stay mutable; only the prices
    captured from the tool at creation are frozen.
    """
    from rental_kernel.models.rental import Rental

    if not isinstance(target, Rental):
        return

    insp = inspect(target)
    for field in RENTAL_SNAPSHOT_FIELDS:
        if insp.attrs[field].history.has_changes():
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Rental",
                    "entity_id": str(target.id),
                    "operation": "UPDATE",
                    "field": field,
                },
            )
            raise ImmutabilityViolationError(
                entity_type="Rental",
                entity_id=str(target.id),
                reason=f"Cannot modify price snapshot field '{field}'",
            )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    from rental_kernel.models.ledger import LedgerTransaction
    from rental_kernel.models.rental import Rental

    listeners = (
        (LedgerTransaction, "before_update", _check_ledger_transaction_immutability),
        (LedgerTransaction, "before_delete", _check_ledger_transaction_delete),
        (Rental, "before_update", _check_rental_snapshot_immutability),
    )
    for target, event_name, listener_fn in listeners:
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)

    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from rental_kernel.models.ledger import LedgerTransaction
    from rental_kernel.models.rental import Rental

    _safe_remove_listener(LedgerTransaction, "before_update", _check_ledger_transaction_immutability)
    _safe_remove_listener(LedgerTransaction, "before_delete", _check_ledger_transaction_delete)
    _safe_remove_listener(Rental, "before_update", _check_rental_snapshot_immutability)
