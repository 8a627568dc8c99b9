"""
Module: rental_kernel.models.rental
Responsibility: ORM persistence for rentals, the aggregate the lifecycle
    state machine drives.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    - end_date >= start_date (ck_rental_date_range).
    - total_cost_cents always equals the price of [start_date, end_date]
      under the snapshot columns; the service recomputes it on every
      committed date change.
    - Snapshot columns (duration_unit, *_price_cents, replacement_cost_cents)
      are frozen after insert (db/immutability.py).
    - proposed_* columns hold an uncommitted date change; they never count
      as the agreed dates.
    - version_id is bumped on every UPDATE (optimistic concurrency).

Failure modes:
    - StaleDataError at flush when another transaction updated the row first.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import TrackedBase, UUIDString
from rental_kernel.domain.dtos import (
    DurationUnit,
    PriceSnapshot,
    RentalRecord,
    RentalStatus,
)


class Rental(TrackedBase):
    """
    A time-boxed booking of a tool by a renter from its owner.

    Contract:
        Mutated only by RentalLifecycleService (and the overdue sweep).
        Callers receive ``RentalRecord`` DTOs, never this ORM row.
    """

    __tablename__ = "rentals"

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_rental_date_range"),
        Index("idx_rental_renter", "org_id", "renter_id", "status"),
        Index("idx_rental_owner", "org_id", "owner_id", "status"),
        Index("idx_rental_tool", "tool_id", "status"),
        Index("idx_rental_status_end", "status", "end_date"),
    )

    org_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    tool_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tools.id"),
        nullable=False,
    )
    renter_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )
    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )

    # Committed dates (inclusive end)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_agreed_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Price snapshot, captured from the tool at creation
    duration_unit: Mapped[DurationUnit] = mapped_column(String(10), nullable=False)
    daily_price_cents: Mapped[int] = mapped_column(nullable=False)
    weekly_price_cents: Mapped[int] = mapped_column(nullable=False)
    monthly_price_cents: Mapped[int] = mapped_column(nullable=False)
    replacement_cost_cents: Mapped[int] = mapped_column(nullable=False, default=0)

    total_cost_cents: Mapped[int] = mapped_column(nullable=False)

    status: Mapped[RentalStatus] = mapped_column(
        String(40),
        nullable=False,
        default=RentalStatus.PENDING,
    )

    # Pending date change
    proposed_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    proposed_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    proposed_cost_cents: Mapped[int | None] = mapped_column(nullable=True)
    status_before_change: Mapped[RentalStatus | None] = mapped_column(String(40), nullable=True)
    date_change_requested_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Party notes
    pickup_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Return
    return_condition: Mapped[str | None] = mapped_column(Text, nullable=True)
    surcharge_or_credit_cents: Mapped[int | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    returned_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    version_id: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version_id, "eager_defaults": True}

    @property
    def rental_status(self) -> RentalStatus:
        """Status as an enum member (rows loaded from the database hold plain strings)."""
        return RentalStatus(self.status)

    @property
    def snapshot(self) -> PriceSnapshot:
        return PriceSnapshot(
            duration_unit=DurationUnit.coerce(self.duration_unit),
            daily_price_cents=self.daily_price_cents,
            weekly_price_cents=self.weekly_price_cents,
            monthly_price_cents=self.monthly_price_cents,
            replacement_cost_cents=self.replacement_cost_cents or 0,
        )

    def apply_snapshot(self, snapshot: PriceSnapshot) -> None:
        """Copy snapshot prices onto a new (not yet flushed) rental."""
        self.duration_unit = snapshot.duration_unit
        self.daily_price_cents = snapshot.daily_price_cents
        self.weekly_price_cents = snapshot.weekly_price_cents
        self.monthly_price_cents = snapshot.monthly_price_cents
        self.replacement_cost_cents = snapshot.replacement_cost_cents

    def clear_proposal(self) -> None:
        self.proposed_start_date = None
        self.proposed_end_date = None
        self.proposed_cost_cents = None
        self.status_before_change = None
        self.date_change_requested_by_id = None

    def to_dto(self) -> RentalRecord:
        return RentalRecord(
            id=self.id,
            org_id=self.org_id,
            tool_id=self.tool_id,
            renter_id=self.renter_id,
            owner_id=self.owner_id,
            start_date=self.start_date,
            end_date=self.end_date,
            status=self.rental_status,
            total_cost_cents=self.total_cost_cents,
            snapshot=self.snapshot,
            last_agreed_end_date=self.last_agreed_end_date,
            proposed_start_date=self.proposed_start_date,
            proposed_end_date=self.proposed_end_date,
            proposed_cost_cents=self.proposed_cost_cents,
            status_before_change=(
                RentalStatus(self.status_before_change)
                if self.status_before_change is not None
                else None
            ),
            date_change_requested_by_id=self.date_change_requested_by_id,
            pickup_note=self.pickup_note,
            rejection_reason=self.rejection_reason,
            cancel_reason=self.cancel_reason,
            cancelled_by_id=self.cancelled_by_id,
            return_condition=self.return_condition,
            surcharge_or_credit_cents=self.surcharge_or_credit_cents,
            notes=self.notes,
            completed_by_id=self.completed_by_id,
            returned_on=self.returned_on,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return f"<Rental {self.id}: {self.start_date}..{self.end_date} ({self.status})>"
