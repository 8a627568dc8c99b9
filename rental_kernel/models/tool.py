"""
Module: rental_kernel.models.tool
Responsibility: ORM persistence for tools offered for rent.
Architecture position: Kernel > Models.

Invariants enforced:
    - Prices are non-negative integer cents (ck_tool_prices_non_negative).
    - version_id is bumped on every UPDATE; a writer holding a stale row
      fails with StaleDataError instead of overwriting a newer status.

The rental lifecycle reads prices only when a rental is created and writes
only ``status``.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import TrackedBase, UUIDString
from rental_kernel.domain.dtos import DurationUnit, ToolStatus


class Tool(TrackedBase):
    __tablename__ = "tools"

    __table_args__ = (
        CheckConstraint(
            "daily_price_cents >= 0 AND weekly_price_cents >= 0 "
            "AND monthly_price_cents >= 0 AND replacement_cost_cents >= 0",
            name="ck_tool_prices_non_negative",
        ),
        Index("idx_tool_org", "org_id"),
        Index("idx_tool_owner", "owner_id"),
        Index("idx_tool_status", "status"),
    )

    org_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    daily_price_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    weekly_price_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    monthly_price_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    replacement_cost_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    duration_unit: Mapped[DurationUnit] = mapped_column(
        String(10),
        nullable=False,
        default=DurationUnit.DAY,
    )

    status: Mapped[ToolStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ToolStatus.AVAILABLE,
    )

    version_id: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version_id, "eager_defaults": True}

    @property
    def is_available(self) -> bool:
        return self.status == ToolStatus.AVAILABLE

    def __repr__(self) -> str:
        return f"<Tool {self.id}: {self.name} ({self.status})>"
