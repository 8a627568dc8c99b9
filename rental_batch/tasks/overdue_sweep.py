"""
OverdueSweepTask -- flips ACTIVE rentals past their end date to OVERDUE.

Contract:
    ``run(session, today)`` selects ACTIVE rentals with ``end_date < today``
    and applies the workflow's ``mark_overdue`` transition to each one
    inside its own SAVEPOINT.  It flushes but never commits; the caller
    (``SweepScheduler.tick`` or a test) owns the transaction.

Invariants enforced:
    - The end date is inclusive: a rental ending today is not overdue.
    - Idempotent: rentals already OVERDUE are not selected again.
    - A row that changed state since it was selected is skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rental_kernel.domain import rental_workflow as wf
from rental_kernel.domain.dtos import RentalStatus
from rental_kernel.domain.workflow import Workflow
from rental_kernel.logging_config import get_logger
from rental_kernel.models.rental import Rental

logger = get_logger("batch.overdue_sweep")


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one sweep run."""

    as_of: date
    overdue_rental_ids: tuple[UUID, ...] = ()
    skipped_rental_ids: tuple[UUID, ...] = ()
    failed_rental_ids: tuple[UUID, ...] = ()

    @property
    def overdue_count(self) -> int:
        return len(self.overdue_rental_ids)


class OverdueSweepTask:
    """Batch task marking late rentals OVERDUE."""

    task_type = "rentals.overdue_sweep"
    description = "Mark ACTIVE rentals past their end date as OVERDUE"

    def __init__(self, workflow: Workflow = wf.RENTAL_LIFECYCLE_WORKFLOW):
        self._transition = workflow.find(wf.MARK_OVERDUE, wf.ACTIVE)
        if self._transition is None:
            raise ValueError(f"workflow {workflow.name!r} has no {wf.MARK_OVERDUE} transition")

    def candidates(self, session: Session, today: date) -> tuple[UUID, ...]:
        stmt = (
            select(Rental.id)
            .where(
                Rental.status == RentalStatus.ACTIVE.value,
                Rental.end_date < today,
            )
            .order_by(Rental.end_date, Rental.id)
        )
        return tuple(session.scalars(stmt))

    def run(
        self, session: Session, today: date, actor_id: UUID | None = None,
    ) -> SweepResult:
        overdue: list[UUID] = []
        skipped: list[UUID] = []
        failed: list[UUID] = []

        for rental_id in self.candidates(session, today):
            try:
                with session.begin_nested():
                    if self._mark_overdue(session, rental_id, today, actor_id):
                        overdue.append(rental_id)
                    else:
                        skipped.append(rental_id)
            except SQLAlchemyError:
                failed.append(rental_id)
                logger.warning(
                    "overdue_sweep_item_failed",
                    exc_info=True,
                    extra={"rental_id": str(rental_id)},
                )

        result = SweepResult(
            as_of=today,
            overdue_rental_ids=tuple(overdue),
            skipped_rental_ids=tuple(skipped),
            failed_rental_ids=tuple(failed),
        )
        logger.info(
            "overdue_sweep_completed",
            extra={
                "as_of": today.isoformat(),
                "overdue_count": len(overdue),
                "skipped_count": len(skipped),
                "failed_count": len(failed),
            },
        )
        return result

    def _mark_overdue(
        self, session: Session, rental_id: UUID, today: date, actor_id: UUID | None,
    ) -> bool:
        rental = session.execute(
            select(Rental)
            .where(Rental.id == rental_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if rental is None or rental.rental_status is not RentalStatus.ACTIVE:
            return False
        if rental.end_date >= today:
            return False

        rental.status = self._transition.to_state
        rental.updated_by_id = actor_id
        session.flush()
        logger.info(
            "rental_marked_overdue",
            extra={
                "rental_id": str(rental.id),
                "end_date": rental.end_date.isoformat(),
                "days_late": (today - rental.end_date).days,
            },
        )
        return True
