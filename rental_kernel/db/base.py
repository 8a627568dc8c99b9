"""
Module: rental_kernel.db.base
Responsibility: Declarative base for every ORM model: UUID primary keys
    stored as strings, integer-cents columns as BigInteger, and the audit
    columns shared by all rental-domain tables.
Architecture position: Kernel > DB.  Lowest-level import target of the
    kernel; MUST NOT import from models/, services/, selectors/ or domain/.

Invariants enforced:
    - Money is signed BigInteger cents, never float.
    - Every tracked row records who created it and when.
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UUIDString(TypeDecorator):
    """UUID persisted as its 36-character string form (PostgreSQL and SQLite alike)."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """Declarative base; ``id`` is a uuid4 generated on the client."""

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base adding audit columns.

    ``created_at`` comes from the database clock; ``updated_at`` is stamped
    client-side on every UPDATE so it is readable after commit without a
    refresh.  ``created_by_id`` is required.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=_utcnow, nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)


UUID = PyUUID
