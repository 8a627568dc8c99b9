"""
Module: rental_kernel.selectors.rental_selector
Responsibility: Read-only rental queries: lookup by id, paginated lists by
    renter / owner / tool with a status-set filter, sibling discovery for
    Finalize, and per-status counts.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Returns RentalRecord DTOs, never ORM rows.
    - Pages are 1-based; page_size is bounded by the configured maximum.
    - An empty or missing status filter means "all statuses".
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import Select, func, or_, select

from rental_kernel.domain.dtos import Page, RentalRecord, RentalStatus
from rental_kernel.exceptions import InvalidInputError
from rental_kernel.models.rental import Rental
from rental_kernel.selectors.base import BaseSelector


def normalize_statuses(
    statuses: Iterable[RentalStatus | str] | None,
) -> tuple[RentalStatus, ...]:
    """Turn a caller-supplied status filter into enum members.

    Raises:
        InvalidInputError: if a value is not a rental status.
    """
    if not statuses:
        return ()
    result: list[RentalStatus] = []
    for value in statuses:
        try:
            status = RentalStatus(value)
        except ValueError:
            raise InvalidInputError(f"Unknown rental status: {value!r}") from None
        if status not in result:
            result.append(status)
    return tuple(result)


class RentalSelector(BaseSelector[Rental]):
    """Selector for rental read paths."""

    def get(self, rental_id: UUID) -> RentalRecord | None:
        rental = self.session.get(Rental, rental_id)
        return rental.to_dto() if rental is not None else None

    def list_by_renter(
        self,
        org_id: UUID,
        renter_id: UUID,
        statuses: Iterable[RentalStatus | str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> Page[RentalRecord]:
        stmt = select(Rental).where(
            Rental.org_id == org_id,
            Rental.renter_id == renter_id,
        )
        return self._page(stmt, statuses, page, page_size)

    def list_by_owner(
        self,
        org_id: UUID,
        owner_id: UUID,
        statuses: Iterable[RentalStatus | str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> Page[RentalRecord]:
        stmt = select(Rental).where(
            Rental.org_id == org_id,
            Rental.owner_id == owner_id,
        )
        return self._page(stmt, statuses, page, page_size)

    def list_by_tool(
        self,
        tool_id: UUID,
        org_id: UUID | None = None,
        statuses: Iterable[RentalStatus | str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> Page[RentalRecord]:
        stmt = select(Rental).where(Rental.tool_id == tool_id)
        if org_id is not None:
            stmt = stmt.where(Rental.org_id == org_id)
        return self._page(stmt, statuses, page, page_size)

    def siblings(
        self,
        tool_id: UUID,
        exclude_rental_id: UUID,
        statuses: Iterable[RentalStatus],
    ) -> tuple[RentalRecord, ...]:
        """Other rentals of ``tool_id`` in ``statuses``, oldest start first."""
        stmt = (
            select(Rental)
            .where(
                Rental.tool_id == tool_id,
                Rental.id != exclude_rental_id,
                Rental.status.in_([s.value for s in statuses]),
            )
            .order_by(Rental.start_date, Rental.id)
        )
        return tuple(r.to_dto() for r in self.session.scalars(stmt))

    def count_by_status(self, org_id: UUID, user_id: UUID) -> dict[str, int]:
        """Number of rentals per status where ``user_id`` is the renter or the owner."""
        stmt = (
            select(Rental.status, func.count())
            .where(
                Rental.org_id == org_id,
                or_(Rental.renter_id == user_id, Rental.owner_id == user_id),
            )
            .group_by(Rental.status)
        )
        return {str(RentalStatus(status).value): count for status, count in self.session.execute(stmt)}

    def count_in_status(
        self,
        org_id: UUID,
        user_id: UUID,
        status: RentalStatus,
        as_renter: bool = True,
        as_owner: bool = False,
    ) -> int:
        parties = []
        if as_renter:
            parties.append(Rental.renter_id == user_id)
        if as_owner:
            parties.append(Rental.owner_id == user_id)
        stmt = select(func.count()).select_from(Rental).where(
            Rental.org_id == org_id,
            Rental.status == status.value,
            or_(*parties),
        )
        return self.session.execute(stmt).scalar_one()

    def _page(
        self,
        stmt: Select,
        statuses: Iterable[RentalStatus | str] | None,
        page: int | None,
        page_size: int | None,
    ) -> Page[RentalRecord]:
        page, page_size = self._resolve_page(page, page_size)
        wanted = normalize_statuses(statuses)
        if wanted:
            stmt = stmt.where(Rental.status.in_([s.value for s in wanted]))

        total = self._count(stmt)
        stmt = (
            stmt.order_by(Rental.created_at.desc(), Rental.start_date.desc(), Rental.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = tuple(r.to_dto() for r in self.session.scalars(stmt))
        return Page(items=items, page=page, page_size=page_size, total_count=total)
