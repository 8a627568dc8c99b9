"""Tests for post-commit notifications."""

import pytest
from sqlalchemy import select

from rental_kernel.domain.dtos import RentalStatus
from rental_kernel.models.notification import Notification
from rental_kernel.services.notification_service import (
    NOTIFICATION_TEMPLATES,
    NotificationService,
    _SafeDict,
    format_cents,
)
from rental_kernel.services.rental_lifecycle_service import RentalLifecycleService


class ExplodingEmailSender:
    def __init__(self):
        self.attempts = 0

    def send(self, to_email, subject, body):
        self.attempts += 1
        raise ConnectionError("smtp unreachable")


def _notifications(session, user_id):
    return session.scalars(
        select(Notification).where(Notification.user_id == user_id)
    ).all()


class TestTemplates:

    @pytest.mark.parametrize("cents, expected", [(8500, "$85.00"), (-150, "-$1.50"), (0, "$0.00")])
    def test_format_cents(self, cents, expected):
        assert format_cents(cents) == expected

    def test_every_template_renders_with_empty_context(self):
        for template in NOTIFICATION_TEMPLATES.values():
            assert template.title
            assert "{" not in template.message.format_map(_SafeDict())

    def test_request_message(self, service, seed, session):
        rental = service.create_rental_request(
            seed.renter_id, seed.tool_id, seed.org_id, "2024-01-15", "2024-01-25",
        )

        (notification,) = _notifications(session, seed.owner_id)
        assert notification.title == "New Rental Request"
        assert notification.message == "Ryan Renter requested Cordless Drill from 2024-01-15 to 2024-01-25."
        assert notification.attributes["rental_id"] == str(rental.id)
        assert notification.attributes["tool_id"] == str(seed.tool_id)
        assert notification.org_id == seed.org_id


class TestFailureIsolation:

    def test_email_failure_does_not_undo_transition(self, session, clock, seed, captured_logs):
        sender = ExplodingEmailSender()
        service = RentalLifecycleService(session, clock=clock, email_sender=sender)

        rental = service.create_rental_request(
            seed.renter_id, seed.tool_id, seed.org_id, "2024-01-15", "2024-01-25",
        )
        approved = service.approve_rental_request(seed.owner_id, rental.id)

        assert approved.status is RentalStatus.APPROVED
        assert service.get_rental(seed.owner_id, rental.id).status is RentalStatus.APPROVED
        assert sender.attempts == 2
        failures = [r for r in captured_logs() if r["message"] == "notification_failed"]
        assert len(failures) == 2
        assert failures[0]["exc_type"] == "ConnectionError"

    def test_unknown_recipient_swallowed(self, session, seed, captured_logs):
        from uuid import uuid4

        result = NotificationService(session).notify(
            "RENTAL_OVERDUE", uuid4(), seed.org_id, seed.owner_id, {"tool_name": "Drill"},
        )

        assert result is None
        assert any(r["message"] == "notification_failed" for r in captured_logs())

    def test_templates_without_subject_skip_email(self, session, seed, email_sender):
        result = NotificationService(session, email_sender).notify(
            "RENTAL_OVERDUE", seed.renter_id, seed.org_id, seed.owner_id,
            {"tool_name": "Cordless Drill", "end_date": "2024-01-25"},
        )

        assert result.message == "Cordless Drill was due back on 2024-01-25."
        assert email_sender.sent == []
