"""Pure domain layer: enums, DTOs, pricing, workflow tables, policies and clock."""

from rental_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from rental_kernel.domain.dtos import (
    CostBreakdown,
    DateDifference,
    DurationUnit,
    FinalizeResult,
    LedgerEntry,
    LedgerSummary,
    MemberRole,
    Page,
    PartyRole,
    PriceSnapshot,
    ReconcileResult,
    RentalRecord,
    RentalStatus,
    ToolStatus,
    TransactionType,
)
from rental_kernel.domain.policies import BalanceFloorPolicy
from rental_kernel.domain.pricing import (
    calculate_date_difference,
    calculate_rental_cost,
    calculate_rental_cost_breakdown,
    days_in_month,
    parse_date,
)

__all__ = [
    "BalanceFloorPolicy",
    "Clock",
    "CostBreakdown",
    "DateDifference",
    "DeterministicClock",
    "DurationUnit",
    "FinalizeResult",
    "LedgerEntry",
    "LedgerSummary",
    "MemberRole",
    "Page",
    "PartyRole",
    "PriceSnapshot",
    "ReconcileResult",
    "RentalRecord",
    "RentalStatus",
    "SystemClock",
    "ToolStatus",
    "TransactionType",
    "calculate_date_difference",
    "calculate_rental_cost",
    "calculate_rental_cost_breakdown",
    "days_in_month",
    "parse_date",
]
