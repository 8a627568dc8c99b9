"""
LedgerService -- append-only postings with a same-flush balance cache.

Responsibility:
    Appends signed-cent LedgerTransaction rows for an (org, user) pair and
    keeps UserOrg.balance_cents equal to the ledger sum.  Also rewrites a
    drifted cache from the ledger on demand.

Architecture position:
    Kernel > Services.  Flush-only (BaseService); the lifecycle service owns
    commit/rollback so a posting never outlives the status change that
    caused it.

Invariants enforced:
    - Ledger rows are only ever inserted (updates/deletes are blocked by
      db/immutability.py).
    - The cache is incremented SQL-side (``balance_cents = balance_cents +
      :amount``) in the same flush as the insert, so concurrent postings to
      one member cannot lose an update.
    - The membership row is locked (FOR UPDATE) before posting.

Failure modes:
    - MembershipNotFoundError when the user is not a member of the org.
    - InvalidInputError for a zero amount.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.dtos import ReconcileResult, TransactionType
from rental_kernel.exceptions import InvalidInputError, MembershipNotFoundError
from rental_kernel.logging_config import get_logger
from rental_kernel.models.ledger import LedgerTransaction
from rental_kernel.models.user import UserOrg
from rental_kernel.selectors.ledger_selector import LedgerSelector
from rental_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class LedgerService(BaseService[LedgerTransaction]):
    """
    Persistence for ledger postings.

    All operations happen within the caller's transaction boundary.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def post_transaction(
        self,
        org_id: UUID,
        user_id: UUID,
        amount_cents: int,
        transaction_type: TransactionType,
        related_rental_id: UUID | None,
        description: str,
        actor_id: UUID,
    ) -> LedgerTransaction:
        """
        Append one ledger transaction and bump the member's cached balance.

        Args:
            amount_cents: Signed amount; negative = debit, positive = credit.
            actor_id: The user whose action caused the posting (audit).

        Returns:
            The flushed LedgerTransaction row.
        """
        if amount_cents == 0:
            raise InvalidInputError("Ledger amount must be non-zero")

        membership = self._lock_membership(org_id, user_id)

        txn = LedgerTransaction(
            org_id=org_id,
            user_id=user_id,
            amount_cents=amount_cents,
            transaction_type=TransactionType(transaction_type),
            related_rental_id=related_rental_id,
            description=description,
            charged_on=self._clock.today(),
            created_by_id=actor_id,
        )
        self.session.add(txn)
        membership.balance_cents = UserOrg.balance_cents + amount_cents
        membership.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "ledger_transaction_posted",
            extra={
                "transaction_id": str(txn.id),
                "org_id": str(org_id),
                "user_id": str(user_id),
                "amount_cents": amount_cents,
                "transaction_type": TransactionType(transaction_type).value,
                "related_rental_id": str(related_rental_id) if related_rental_id else None,
            },
        )
        return txn

    def reconcile_balance(
        self,
        org_id: UUID,
        user_id: UUID,
        actor_id: UUID | None = None,
    ) -> ReconcileResult:
        """
        Rewrite UserOrg.balance_cents from the ledger sum.

        Returns the ledger balance and the cached value found before the
        rewrite, so callers can report drift.
        """
        membership = self._lock_membership(org_id, user_id)
        ledger_balance = LedgerSelector(self.session).balance(org_id, user_id)
        result = ReconcileResult(
            org_id=org_id,
            user_id=user_id,
            ledger_balance_cents=ledger_balance,
            cached_balance_cents=membership.balance_cents,
        )

        if not result.was_consistent:
            logger.warning(
                "ledger_balance_drift_detected",
                extra={
                    "org_id": str(org_id),
                    "user_id": str(user_id),
                    "ledger_balance_cents": ledger_balance,
                    "cached_balance_cents": result.cached_balance_cents,
                    "drift_cents": result.drift_cents,
                },
            )
            membership.balance_cents = ledger_balance
            if actor_id is not None:
                membership.updated_by_id = actor_id
            self.session.flush()

        return result

    def _lock_membership(self, org_id: UUID, user_id: UUID) -> UserOrg:
        membership = self.session.execute(
            select(UserOrg)
            .where(UserOrg.org_id == org_id, UserOrg.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if membership is None:
            raise MembershipNotFoundError(str(org_id), str(user_id))
        return membership
