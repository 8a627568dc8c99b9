"""
Module: rental_kernel.models.notification
Responsibility: In-app notifications written after a rental transition
    commits.
Architecture position: Kernel > Models.

Notifications are advisory.  A failed write never undoes the transition that
triggered it.
"""

from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rental_kernel.db.base import TrackedBase, UUIDString


class Notification(TrackedBase):
    __tablename__ = "notifications"

    __table_args__ = (
        Index("idx_notification_user", "user_id", "is_read"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("users.id"),
        nullable=False,
    )
    org_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # e.g. {"type": "RENTAL_APPROVED", "rental_id": "..."}
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def notification_type(self) -> str | None:
        return (self.attributes or {}).get("type")

    def __repr__(self) -> str:
        return f"<Notification {self.id}: {self.title} -> {self.user_id}>"
