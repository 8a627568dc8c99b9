"""
Module: rental_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries: the authoritative balance of an
    (org, user) pair, the cached balance kept on UserOrg, paginated
    transaction history and the dashboard summary.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - balance() is SUM(amount_cents) over ledger rows, the single source of
      truth.  cached_balance() is a projection and is only ever compared
      against it (see LedgerService.reconcile_balance).

Failure modes:
    - Zero balance for a pair with no transactions.
    - MembershipNotFoundError from cached_balance() when the pair has no
      membership row.
"""

from uuid import UUID

from sqlalchemy import func, select

from rental_kernel.domain.dtos import LedgerEntry, LedgerSummary, Page, RentalStatus
from rental_kernel.exceptions import MembershipNotFoundError
from rental_kernel.models.ledger import LedgerTransaction
from rental_kernel.models.user import UserOrg
from rental_kernel.selectors.base import BaseSelector
from rental_kernel.selectors.rental_selector import RentalSelector


class LedgerSelector(BaseSelector[LedgerTransaction]):
    """
    Selector for ledger queries.

    Guarantees:
        - All amounts are integer cents.
        - Transaction history is newest first.
    """

    def balance(self, org_id: UUID, user_id: UUID) -> int:
        """Sum of every ledger amount for the pair."""
        stmt = select(func.coalesce(func.sum(LedgerTransaction.amount_cents), 0)).where(
            LedgerTransaction.org_id == org_id,
            LedgerTransaction.user_id == user_id,
        )
        return int(self.session.execute(stmt).scalar_one())

    def cached_balance(self, org_id: UUID, user_id: UUID) -> int:
        stmt = select(UserOrg.balance_cents).where(
            UserOrg.org_id == org_id,
            UserOrg.user_id == user_id,
        )
        value = self.session.execute(stmt).scalar_one_or_none()
        if value is None:
            raise MembershipNotFoundError(str(org_id), str(user_id))
        return int(value)

    def list_transactions(
        self,
        org_id: UUID,
        user_id: UUID,
        page: int | None = None,
        page_size: int | None = None,
    ) -> Page[LedgerEntry]:
        page, page_size = self._resolve_page(page, page_size)
        stmt = select(LedgerTransaction).where(
            LedgerTransaction.org_id == org_id,
            LedgerTransaction.user_id == user_id,
        )
        total = self._count(stmt)
        stmt = (
            stmt.order_by(
                LedgerTransaction.created_at.desc(),
                LedgerTransaction.charged_on.desc(),
                LedgerTransaction.id,
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = tuple(t.to_dto() for t in self.session.scalars(stmt))
        return Page(items=items, page=page, page_size=page_size, total_count=total)

    def transactions_for_rental(self, rental_id: UUID) -> tuple[LedgerEntry, ...]:
        """Every posting caused by one rental, in insertion order."""
        stmt = (
            select(LedgerTransaction)
            .where(LedgerTransaction.related_rental_id == rental_id)
            .order_by(LedgerTransaction.created_at, LedgerTransaction.id)
        )
        return tuple(t.to_dto() for t in self.session.scalars(stmt))

    def summary(self, org_id: UUID, user_id: UUID) -> LedgerSummary:
        """Balance plus rental counts for the user's dashboard."""
        rentals = RentalSelector(self.session)
        return LedgerSummary(
            org_id=org_id,
            user_id=user_id,
            balance_cents=self.balance(org_id, user_id),
            active_rentals=rentals.count_in_status(org_id, user_id, RentalStatus.ACTIVE),
            active_lendings=rentals.count_in_status(
                org_id, user_id, RentalStatus.ACTIVE, as_renter=False, as_owner=True,
            ),
            pending_requests=rentals.count_in_status(
                org_id, user_id, RentalStatus.PENDING, as_renter=True, as_owner=True,
            ),
            status_counts=rentals.count_by_status(org_id, user_id),
        )
