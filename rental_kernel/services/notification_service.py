"""
NotificationService -- post-commit, best-effort user notifications.

Responsibility:
    Persists an in-app Notification row and hands an email to an injected
    EmailSender after a rental transition has committed.

Architecture position:
    Kernel > Services.  Owns its own commit on the caller's session; it runs
    only after the business unit of work has already committed.

Invariants enforced:
    - A notification failure never fails or undoes a rental transition:
      every error is logged (``notification_failed``) and swallowed, and
      only the notification write is rolled back.

Failure modes:
    - None surfaced to callers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from rental_kernel.domain.pricing import format_date
from rental_kernel.logging_config import get_logger
from rental_kernel.models.notification import Notification
from rental_kernel.models.tool import Tool
from rental_kernel.models.user import User

logger = get_logger("services.notification")


class EmailSender(Protocol):
    """Delivers one email.  Implementations may raise on failure."""

    def send(self, to_email: str, subject: str, body: str) -> None:
        ...


class LoggingEmailSender:
    """EmailSender that only logs the message (no SMTP configured)."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to_email: str, subject: str, body: str) -> None:
        self.sent.append((to_email, subject, body))
        logger.info(
            "email_sent_mock",
            extra={"to_email": to_email, "subject": subject},
        )


@dataclass(frozen=True)
class NotificationTemplate:
    title: str
    message: str
    email_subject: str | None = None


NOTIFICATION_TEMPLATES: dict[str, NotificationTemplate] = {
    "RENTAL_REQUEST": NotificationTemplate(
        "New Rental Request",
        "{renter_name} requested {tool_name} from {start_date} to {end_date}.",
        "New Rental Request for {tool_name}",
    ),
    "RENTAL_APPROVED": NotificationTemplate(
        "Rental Approved",
        "{owner_name} approved your request for {tool_name}. Pickup note: {pickup_note}",
        "Rental Request Approved: {tool_name}",
    ),
    "RENTAL_REJECTED": NotificationTemplate(
        "Rental Rejected",
        "{owner_name} rejected your request for {tool_name}. Reason: {reason}",
        "Rental Request Rejected: {tool_name}",
    ),
    "RENTAL_CONFIRMED": NotificationTemplate(
        "Rental Confirmed",
        "{renter_name} confirmed the rental of {tool_name} ({start_date} to {end_date}).",
        "Rental Confirmed: {tool_name}",
    ),
    "RENTAL_PICKUP": NotificationTemplate(
        "Rental Picked Up",
        "{tool_name} was picked up. Return by {end_date}.",
        "Rental Picked Up: {tool_name}",
    ),
    "RENTAL_COMPLETED": NotificationTemplate(
        "Rental Completed",
        "The rental of {tool_name} is complete. Settlement: {amount}.",
        "Rental Completed: {tool_name}",
    ),
    "RENTAL_CANCELLED": NotificationTemplate(
        "Rental Cancelled",
        "The rental of {tool_name} was cancelled. Reason: {reason}",
        "Rental Canceled: {tool_name}",
    ),
    "RETURN_DATE_CHANGE_REQUEST": NotificationTemplate(
        "Return Date Change Request",
        "A date change was requested for {tool_name}: {start_date} to {end_date}.",
    ),
    "RETURN_DATE_CHANGE_APPROVED": NotificationTemplate(
        "Return Date Change Approved",
        "The date change for {tool_name} was approved. New return date: {end_date}.",
    ),
    "RETURN_DATE_CHANGE_REJECTED": NotificationTemplate(
        "Return Date Change Rejected - Counter-Proposal",
        "The date change for {tool_name} was rejected. Owner proposed return date: "
        "{end_date}. Reason: {reason}. Updated cost: {amount}",
        "Return Date Extension Rejected: {tool_name}",
    ),
    "RETURN_DATE_REJECTION_ACKNOWLEDGED": NotificationTemplate(
        "Rejection Acknowledged",
        "The renter accepted your proposed return date {end_date} for {tool_name}.",
    ),
    "RETURN_DATE_CHANGE_CANCELLED": NotificationTemplate(
        "Return Date Change Cancelled",
        "The renter withdrew the date change request for {tool_name}.",
    ),
    "RENTAL_OVERDUE": NotificationTemplate(
        "Rental Overdue",
        "{tool_name} was due back on {end_date}.",
    ),
}


def format_cents(amount_cents: int) -> str:
    sign = "-" if amount_cents < 0 else ""
    return f"{sign}${abs(amount_cents) / 100:.2f}"


class _SafeDict(dict):
    def __missing__(self, key: str) -> str:
        return ""


class NotificationService:
    """Writes notifications and sends emails without ever raising."""

    def __init__(self, session: Session, email_sender: EmailSender | None = None):
        self._session = session
        self._email_sender = email_sender or LoggingEmailSender()

    def notify(
        self,
        notification_type: str,
        user_id: UUID,
        org_id: UUID,
        actor_id: UUID,
        context: Mapping[str, Any],
        attributes: Mapping[str, str] | None = None,
    ) -> Notification | None:
        """
        Record a notification for ``user_id`` and email them.

        Returns the persisted Notification, or None when anything failed.
        """
        template = NOTIFICATION_TEMPLATES[notification_type]
        values = _SafeDict({k: "" if v is None else v for k, v in context.items()})

        try:
            user = self._session.get(User, user_id)
            if user is None:
                raise LookupError(f"user {user_id} not found")

            notification = Notification(
                user_id=user_id,
                org_id=org_id,
                title=template.title,
                message=template.message.format_map(values),
                attributes={"type": notification_type, **(attributes or {})},
                created_by_id=actor_id,
            )
            self._session.add(notification)
            self._session.commit()

            if template.email_subject is not None:
                self._email_sender.send(
                    user.email,
                    template.email_subject.format_map(values),
                    notification.message,
                )
        except Exception:
            self._session.rollback()
            logger.warning(
                "notification_failed",
                exc_info=True,
                extra={
                    "notification_type": notification_type,
                    "user_id": str(user_id),
                    "org_id": str(org_id),
                },
            )
            return None

        logger.info(
            "notification_sent",
            extra={
                "notification_type": notification_type,
                "notification_id": str(notification.id),
                "user_id": str(user_id),
            },
        )
        return notification

    def notify_rental(
        self,
        notification_type: str,
        user_id: UUID,
        rental: Any,
        actor_id: UUID,
        **overrides: Any,
    ) -> Notification | None:
        """
        Notify one party about a rental transition.

        Template values are read from the rental (tool and party names,
        agreed dates, pickup note, cost); ``overrides`` replace any of them.
        ``amount_cents`` is rendered as ``amount``.
        """
        try:
            tool = self._session.get(Tool, rental.tool_id)
            renter = self._session.get(User, rental.renter_id)
            owner = self._session.get(User, rental.owner_id)
            amount_cents = overrides.pop("amount_cents", rental.total_cost_cents)
            context = {
                "tool_name": tool.name if tool is not None else "",
                "renter_name": renter.name if renter is not None else "",
                "owner_name": owner.name if owner is not None else "",
                "start_date": format_date(rental.start_date),
                "end_date": format_date(rental.end_date),
                "pickup_note": rental.pickup_note,
                "reason": "",
                "amount": format_cents(amount_cents or 0),
            }
            context.update(overrides)
            org_id = rental.org_id
            attributes = {"rental_id": str(rental.id), "tool_id": str(rental.tool_id)}
        except Exception:
            self._session.rollback()
            logger.warning(
                "notification_failed",
                exc_info=True,
                extra={"notification_type": notification_type, "user_id": str(user_id)},
            )
            return None

        return self.notify(
            notification_type, user_id, org_id, actor_id, context, attributes=attributes,
        )
