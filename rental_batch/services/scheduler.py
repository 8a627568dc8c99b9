"""
SweepScheduler -- in-process polling scheduler for the overdue sweep.

Contract:
    ``tick()`` runs one ``OverdueSweepTask`` on a fresh session, commits,
    then notifies each renter whose rental became OVERDUE.  ``start()`` /
    ``stop()`` run ``tick()`` on a background thread every
    ``interval_seconds``.

Invariants enforced:
    - "today" comes from the injected Clock.
    - Graceful shutdown: the loop checks the stop signal between ticks.
    - A failed tick is rolled back and logged; the loop keeps running.
"""

from __future__ import annotations

import threading
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from rental_batch.tasks.overdue_sweep import OverdueSweepTask, SweepResult
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.models.rental import Rental
from rental_kernel.services.notification_service import (
    EmailSender,
    NotificationService,
)

logger = get_logger("batch.scheduler")


class SweepScheduler:
    """Runs the overdue sweep periodically.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        task: OverdueSweepTask | None = None,
        email_sender: EmailSender | None = None,
        actor_id: UUID | None = None,
        interval_seconds: float = 3600.0,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._task = task or OverdueSweepTask()
        self._email_sender = email_sender
        self._actor_id = actor_id
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> SweepResult | None:
        """Run one sweep (public for testing).

        Returns the SweepResult, or None when the run failed and was
        rolled back.
        """
        today = self._clock.today()
        session = self._session_factory()
        with LogContext.bind(job_id=str(uuid4())):
            try:
                result = self._task.run(session, today, actor_id=self._actor_id)
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("sweep_tick_failed", extra={"as_of": today.isoformat()})
                session.close()
                return None

            try:
                self._notify_renters(session, result)
            finally:
                session.close()
        return result

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="overdue-sweep-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)

    def _notify_renters(self, session: Session, result: SweepResult) -> None:
        notifications = NotificationService(session, self._email_sender)
        for rental_id in result.overdue_rental_ids:
            rental = session.get(Rental, rental_id)
            if rental is None:
                continue
            notifications.notify_rental(
                "RENTAL_OVERDUE",
                rental.renter_id,
                rental,
                self._actor_id or rental.owner_id,
            )
