"""
Module: rental_kernel.models.user
Responsibility: ORM persistence for users and their organization memberships.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    - One membership row per (org_id, user_id) (uq_user_org).
    - UserOrg.balance_cents is a cached projection of the ledger sum for the
      pair.  It is only ever written by LedgerService, with a SQL-side
      increment in the same flush as the ledger insert it mirrors.

Failure modes:
    - IntegrityError on a duplicate email or duplicate membership.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import TrackedBase, UUIDString
from rental_kernel.domain.dtos import MemberRole


class User(TrackedBase):
    """A person who can rent or lend tools.

    Only the fields notifications need are modelled here; profile and
    authentication data belong to the account service.
    """

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email}>"


class UserOrg(TrackedBase):
    """
    Membership of a user in an organization.

    Contract:
        Membership is what makes a user visible to rental read paths inside
        the org, and it carries the cached ledger balance.

    Non-goals:
        Does not enforce the balance floor; see BalanceFloorPolicy.
    """

    __tablename__ = "user_orgs"

    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_user_org"),
        Index("idx_user_org_user", "user_id"),
    )

    org_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )
    role: Mapped[MemberRole] = mapped_column(
        String(20),
        nullable=False,
        default=MemberRole.MEMBER,
    )
    balance_cents: Mapped[int] = mapped_column(nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<UserOrg org={self.org_id} user={self.user_id} balance={self.balance_cents}>"
