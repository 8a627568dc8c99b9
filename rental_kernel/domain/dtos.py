"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the closed enums of the rental domain (rental/tool statuses,
    duration units, ledger transaction types, roles) and the immutable
    records that flow out of services and selectors: price snapshots,
    pricing results, rental and ledger records, pages and summaries.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  ``from_model`` style converters live on the
    ORM classes (``to_dto``) and are invoked only from the service and
    selector layers.

Invariants enforced:
    - All records are ``frozen=True``.
    - Money is integer cents; never float.
    - A PriceSnapshot is captured once, at rental creation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID


class RentalStatus(str, Enum):
    """Rental lifecycle status.

    Contract: COMPLETED, CANCELLED and REJECTED are terminal.
    """

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    OVERDUE = "OVERDUE"
    RETURN_DATE_CHANGED = "RETURN_DATE_CHANGED"
    RETURN_DATE_CHANGE_REJECTED = "RETURN_DATE_CHANGE_REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RENTAL_STATUSES


TERMINAL_RENTAL_STATUSES = frozenset({
    RentalStatus.COMPLETED,
    RentalStatus.CANCELLED,
    RentalStatus.REJECTED,
})


class ToolStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RENTED = "RENTED"
    UNAVAILABLE = "UNAVAILABLE"


class DurationUnit(str, Enum):
    """Billing granularity of a tool's price schedule."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def coerce(cls, value: DurationUnit | str | None) -> DurationUnit:
        """Map a stored unit to a member; unknown or unset values are DAY."""
        if isinstance(value, DurationUnit):
            return value
        if value:
            try:
                return cls(str(value).strip().lower())
            except ValueError:
                return cls.DAY
        return cls.DAY


class TransactionType(str, Enum):
    """Ledger transaction types.

    Sign convention: negative amounts are debits (owed), positive are
    credits (earned).
    """

    RENTAL_DEBIT = "RENTAL_DEBIT"
    LENDING_CREDIT = "LENDING_CREDIT"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"


class MemberRole(str, Enum):
    MEMBER = "MEMBER"
    ADMIN = "ADMIN"


class PartyRole(str, Enum):
    """The part an actor plays on a specific rental."""

    RENTER = "RENTER"
    OWNER = "OWNER"


# =============================================================================
# Pricing
# =============================================================================


@dataclass(frozen=True)
class PriceSnapshot:
    """Tool prices frozen into a rental at creation."""

    duration_unit: DurationUnit
    daily_price_cents: int
    weekly_price_cents: int
    monthly_price_cents: int
    replacement_cost_cents: int = 0

    def __post_init__(self) -> None:
        for name in ("daily_price_cents", "weekly_price_cents", "monthly_price_cents",
                     "replacement_cost_cents"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @classmethod
    def from_tool(cls, tool: Any) -> PriceSnapshot:
        """Capture the current prices of a tool (ORM row or any object with price attributes)."""
        return cls(
            duration_unit=DurationUnit.coerce(tool.duration_unit),
            daily_price_cents=tool.daily_price_cents,
            weekly_price_cents=tool.weekly_price_cents,
            monthly_price_cents=tool.monthly_price_cents,
            replacement_cost_cents=tool.replacement_cost_cents or 0,
        )


@dataclass(frozen=True)
class DateDifference:
    """An inclusive date interval split into whole months plus remainder days."""

    months: int
    days: int


@dataclass(frozen=True)
class CostBreakdown:
    """Itemized rental cost; ``total_cost`` is the billed amount in cents."""

    duration_unit: DurationUnit
    months: int
    weeks: int
    days: int
    months_cost: int
    weeks_cost: int
    days_cost: int
    total_cost: int


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class RentalRecord:
    """Read-only view of a rental returned by the lifecycle service."""

    id: UUID
    org_id: UUID
    tool_id: UUID
    renter_id: UUID
    owner_id: UUID
    start_date: date
    end_date: date
    status: RentalStatus
    total_cost_cents: int
    snapshot: PriceSnapshot
    last_agreed_end_date: date | None = None
    proposed_start_date: date | None = None
    proposed_end_date: date | None = None
    proposed_cost_cents: int | None = None
    status_before_change: RentalStatus | None = None
    date_change_requested_by_id: UUID | None = None
    pickup_note: str | None = None
    rejection_reason: str | None = None
    cancel_reason: str | None = None
    cancelled_by_id: UUID | None = None
    return_condition: str | None = None
    surcharge_or_credit_cents: int | None = None
    notes: str | None = None
    completed_by_id: UUID | None = None
    returned_on: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def has_pending_proposal(self) -> bool:
        return self.proposed_end_date is not None


@dataclass(frozen=True)
class FinalizeResult:
    """Outcome of finalizing a rental request.

    ``approved_siblings`` and ``pending_siblings`` are other rentals of the
    same tool still waiting in APPROVED/PENDING.  They are advisory and are
    never modified by the finalize call.
    """

    rental: RentalRecord
    approved_siblings: tuple[RentalRecord, ...] = ()
    pending_siblings: tuple[RentalRecord, ...] = ()


@dataclass(frozen=True)
class LedgerEntry:
    """Read-only view of a ledger transaction."""

    id: UUID
    org_id: UUID
    user_id: UUID
    amount_cents: int
    transaction_type: TransactionType
    related_rental_id: UUID | None
    description: str
    charged_on: date
    created_at: datetime | None = None


@dataclass(frozen=True)
class LedgerSummary:
    """Balance and rental counts for one (org, user)."""

    org_id: UUID
    user_id: UUID
    balance_cents: int
    active_rentals: int
    active_lendings: int
    pending_requests: int
    status_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of rewriting a cached balance from the ledger sum."""

    org_id: UUID
    user_id: UUID
    ledger_balance_cents: int
    cached_balance_cents: int

    @property
    def drift_cents(self) -> int:
        return self.cached_balance_cents - self.ledger_balance_cents

    @property
    def was_consistent(self) -> bool:
        return self.drift_cents == 0


T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a list query.  ``page`` is 1-based."""

    items: tuple[T, ...]
    page: int
    page_size: int
    total_count: int

    @property
    def total_pages(self) -> int:
        if self.total_count == 0:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages
