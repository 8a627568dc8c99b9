"""
Module: rental_kernel.models.ledger
Responsibility: ORM persistence for the append-only ledger of signed-cent
    transactions per (organization, user).
Architecture position: Kernel > Models.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).
    - amount_cents is signed: negative = debit (owed), positive = credit
      (earned).  Zero-amount rows are rejected (ck_ledger_amount_nonzero).
    - Balance(org, user) = SUM(amount_cents) over the pair's rows.

Audit relevance:
    related_rental_id ties every rental-driven posting back to the rental
    that caused it.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import TrackedBase, UUIDString
from rental_kernel.domain.dtos import LedgerEntry, TransactionType


class LedgerTransaction(TrackedBase):
    __tablename__ = "ledger_transactions"

    __table_args__ = (
        CheckConstraint("amount_cents <> 0", name="ck_ledger_amount_nonzero"),
        Index("idx_ledger_org_user", "org_id", "user_id"),
        Index("idx_ledger_rental", "related_rental_id"),
    )

    __mapper_args__ = {"eager_defaults": True}

    org_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )
    amount_cents: Mapped[int] = mapped_column(nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        "type",
        String(30),
        nullable=False,
    )
    related_rental_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("rentals.id"),
        nullable=True,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    charged_on: Mapped[date] = mapped_column(Date, nullable=False)

    def to_dto(self) -> LedgerEntry:
        return LedgerEntry(
            id=self.id,
            org_id=self.org_id,
            user_id=self.user_id,
            amount_cents=self.amount_cents,
            transaction_type=TransactionType(self.transaction_type),
            related_rental_id=self.related_rental_id,
            description=self.description,
            charged_on=self.charged_on,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction {self.id}: {self.transaction_type} "
            f"{self.amount_cents} user={self.user_id}>"
        )
