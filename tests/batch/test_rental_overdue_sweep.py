"""
Tests for the overdue sweep and its scheduler.

The sweep runs on its own session, so every test commits the fixture
session before driving the scheduler.
"""

import threading
from datetime import date

import pytest
from sqlalchemy import select

from rental_batch.services.scheduler import SweepScheduler
from rental_batch.tasks.overdue_sweep import OverdueSweepTask, SweepResult
from rental_kernel.domain.dtos import RentalStatus
from rental_kernel.models.notification import Notification


def _active(service, seed, tool_id, start, end):
    rental = service.create_rental_request(seed.renter_id, tool_id, seed.org_id, start, end)
    service.approve_rental_request(seed.owner_id, rental.id)
    service.finalize_rental_request(seed.renter_id, rental.id)
    return service.activate_rental(seed.owner_id, rental.id)


@pytest.fixture
def late_and_due(service, seed, make_tool, session):
    """One rental ending 2024-01-25 and one ending 2024-01-26, both ACTIVE."""
    saw = make_tool(seed.org_id, seed.owner_id, name="Circular Saw")
    late = _active(service, seed, seed.tool_id, "2024-01-15", "2024-01-25")
    due = _active(service, seed, saw.id, "2024-01-15", "2024-01-26")
    session.commit()
    return late, due


class TestOverdueSweepTask:

    def test_end_date_is_inclusive(self, session, service, seed, late_and_due):
        late, due = late_and_due

        result = OverdueSweepTask().run(session, date(2024, 1, 26))
        session.commit()

        assert result.overdue_rental_ids == (late.id,)
        assert service.get_rental(seed.owner_id, late.id).status is RentalStatus.OVERDUE
        assert service.get_rental(seed.owner_id, due.id).status is RentalStatus.ACTIVE

    def test_second_run_is_a_no_op(self, session, late_and_due):
        task = OverdueSweepTask()
        first = task.run(session, date(2024, 2, 1))
        session.commit()

        second = task.run(session, date(2024, 2, 1))

        assert first.overdue_count == 2
        assert second.overdue_count == 0
        assert second.skipped_rental_ids == ()

    def test_scheduled_rentals_ignored(self, session, service, seed):
        rental = service.create_rental_request(
            seed.renter_id, seed.tool_id, seed.org_id, "2024-01-15", "2024-01-25",
        )
        service.approve_rental_request(seed.owner_id, rental.id)
        service.finalize_rental_request(seed.renter_id, rental.id)

        result = OverdueSweepTask().run(session, date(2024, 3, 1))

        assert result.overdue_count == 0

    def test_completion_logged(self, session, late_and_due, captured_logs):
        OverdueSweepTask().run(session, date(2024, 1, 26))

        logs = captured_logs()
        marked = [r for r in logs if r["message"] == "rental_marked_overdue"]
        assert marked[0]["days_late"] == 1
        completed = [r for r in logs if r["message"] == "overdue_sweep_completed"]
        assert completed[0]["overdue_count"] == 1

    def test_overdue_rental_can_still_complete(self, session, service, seed, late_and_due):
        late, _ = late_and_due
        OverdueSweepTask().run(session, date(2024, 1, 28))
        session.commit()

        done = service.complete_rental(seed.owner_id, late.id, return_condition="Late but fine")

        assert done.status is RentalStatus.COMPLETED


class _CountingTask:
    def __init__(self):
        self.runs = 0
        self.ran = threading.Event()

    def run(self, session, today, actor_id=None):
        self.runs += 1
        self.ran.set()
        return SweepResult(as_of=today)


class _BrokenTask:
    def run(self, session, today, actor_id=None):
        raise RuntimeError("sweep exploded")


class TestSweepScheduler:

    def test_tick_commits_and_notifies_renter(self, session_factory, session, clock, seed,
                                              email_sender, late_and_due):
        late, due = late_and_due
        session.close()
        clock.set_today(date(2024, 1, 27))
        scheduler = SweepScheduler(session_factory, clock=clock, email_sender=email_sender)

        result = scheduler.tick()

        assert set(result.overdue_rental_ids) == {late.id, due.id}
        notices = session.scalars(
            select(Notification).where(Notification.user_id == seed.renter_id)
        ).all()
        overdue = [n for n in notices if n.attributes["type"] == "RENTAL_OVERDUE"]
        assert len(overdue) == 2
        assert {n.attributes["rental_id"] for n in overdue} == {str(late.id), str(due.id)}

    def test_failed_tick_returns_none(self, session_factory, clock, captured_logs):
        scheduler = SweepScheduler(session_factory, clock=clock, task=_BrokenTask())

        assert scheduler.tick() is None
        failed = [r for r in captured_logs() if r["message"] == "sweep_tick_failed"]
        assert failed[0]["exc_type"] == "RuntimeError"
        assert "job_id" in failed[0]

    def test_start_and_stop(self, session_factory, clock):
        task = _CountingTask()
        scheduler = SweepScheduler(session_factory, clock=clock, task=task, interval_seconds=0.05)

        scheduler.start()
        try:
            assert task.ran.wait(timeout=5)
            assert scheduler.is_running
        finally:
            scheduler.stop(timeout=5)

        assert not scheduler.is_running
        assert task.runs >= 1
