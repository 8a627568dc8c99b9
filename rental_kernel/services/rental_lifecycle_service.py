"""
RentalLifecycleService -- the rental state machine.

Responsibility
--------------
Drives a rental from request to return: creation with a price snapshot,
owner approval, renter finalization (ledger debit, tool handed out),
pickup, completion (owner credit, tool returned), cancellation with refund,
and mid-rental renegotiation of the return date.  Also serves the rental
read paths (get / list by renter, owner or tool).

Architecture position
---------------------
**Kernel services layer** -- unit-of-work owner.  Composes the pure pricing
engine and workflow table (``rental_kernel.domain``), the flush-only
``LedgerService`` and the read-only selectors.  Notifications are sent
through ``NotificationService`` only after the unit of work has committed.

Invariants enforced
-------------------
* Each public method is one unit of work: commit on success, rollback on
  any exception.  Status change, ledger postings, the balance cache and the
  tool status flip persist together or not at all.
* Every transition is looked up in ``RENTAL_LIFECYCLE_WORKFLOW``.  The actor
  is authorized first (is it a party allowed to fire the action at all),
  then the current status is checked.
* total_cost_cents is always priced from the rental's snapshot, never from
  the tool's live prices after creation.
* A date change is stored as a proposal; the committed dates, cost and
  status are untouched until the proposal is approved or acknowledged.
* After finalize, the renter's net postings for a rental equal
  -total_cost_cents: committing a date change posts the difference.
* Rentals, tools and memberships are loaded FOR UPDATE; rentals and tools
  carry a version counter, so a concurrent writer loses with
  RentalConflictError instead of overwriting.

Failure modes
-------------
* NotFound / Unauthorized / InvalidState / InvalidInput /
  InsufficientBalance subclasses of RentalKernelError, raised before any
  side effect is persisted.
* RentalConflictError when a concurrent transaction won the row.
* PersistenceError for any other database failure.
* Notification failures are logged and swallowed.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rental_kernel.domain import rental_workflow as wf
from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.domain.dtos import (
    FinalizeResult,
    Page,
    PartyRole,
    PriceSnapshot,
    RentalRecord,
    RentalStatus,
    ToolStatus,
    TransactionType,
)
from rental_kernel.domain.policies import BalanceFloorPolicy
from rental_kernel.domain.pricing import (
    calculate_rental_cost,
    format_date,
    parse_date,
    validate_date_range,
)
from rental_kernel.domain.workflow import Transition, Workflow
from rental_kernel.exceptions import (
    CounterProposalError,
    DateRangeError,
    InvalidTransitionError,
    PersistenceError,
    RentalConflictError,
    RentalKernelError,
    RentalNotFoundError,
    ToolNotFoundError,
    ToolUnavailableError,
    UnauthorizedError,
)
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.models.rental import Rental
from rental_kernel.models.tool import Tool
from rental_kernel.models.user import UserOrg
from rental_kernel.selectors.ledger_selector import LedgerSelector
from rental_kernel.selectors.rental_selector import RentalSelector
from rental_kernel.services.ledger_service import LedgerService
from rental_kernel.services.notification_service import (
    EmailSender,
    NotificationService,
)

if TYPE_CHECKING:
    from rental_config.schema import RentalConfig

logger = get_logger("services.rental_lifecycle")

_ACTIVE_STATES = frozenset({RentalStatus.ACTIVE, RentalStatus.OVERDUE})


class RentalLifecycleService:
    """
    Orchestrates every rental transition and read path.

    Contract
    --------
    * Mutating methods return a ``RentalRecord`` (``FinalizeResult`` for
      finalize); list methods return ``Page[RentalRecord]``.
    * Dates are accepted as ``date`` objects or ``YYYY-MM-DD`` strings and
      end dates are inclusive.

    Guarantees
    ----------
    * Session is committed only on success; otherwise rolled back.
    * Clock and balance-floor policy are injectable.

    Non-goals
    ---------
    * Does NOT manage organizations, users or tool catalogues.
    * Does NOT deliver email itself (``EmailSender``).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        balance_policy: BalanceFloorPolicy | None = None,
        email_sender: EmailSender | None = None,
        notifications: NotificationService | None = None,
        default_page_size: int = 20,
        max_page_size: int = 100,
        workflow: Workflow = wf.RENTAL_LIFECYCLE_WORKFLOW,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._balance_policy = balance_policy or BalanceFloorPolicy.disabled()
        self._workflow = workflow
        self._ledger = LedgerService(session, clock=self._clock)
        self._ledger_selector = LedgerSelector(session)
        self._rentals = RentalSelector(
            session,
            default_page_size=default_page_size,
            max_page_size=max_page_size,
        )
        self._notifications = notifications or NotificationService(session, email_sender)

    @classmethod
    def from_config(
        cls,
        session: Session,
        config: RentalConfig,
        clock: Clock | None = None,
        email_sender: EmailSender | None = None,
    ) -> RentalLifecycleService:
        """Build a service with the balance floor and page limits from ``config``."""
        return cls(
            session,
            clock=clock,
            balance_policy=BalanceFloorPolicy(config.ledger.min_allowed_balance_cents),
            email_sender=email_sender,
            default_page_size=config.pagination.default_page_size,
            max_page_size=config.pagination.max_page_size,
        )

    # =========================================================================
    # Request / approval
    # =========================================================================

    def create_rental_request(
        self,
        renter_id: UUID,
        tool_id: UUID,
        org_id: UUID,
        start_date: date | str,
        end_date: date | str,
    ) -> RentalRecord:
        """
        Request a tool for the inclusive range ``[start_date, end_date]``.

        The tool's current prices are copied into the rental and the cost is
        priced from that copy.  The rental starts in PENDING.
        """
        with self._unit_of_work("create_rental_request", renter_id, org_id=org_id):
            start, end = validate_date_range(start_date, end_date)

            if not self._is_member(org_id, renter_id):
                raise UnauthorizedError(
                    str(renter_id), "create_rental_request", "not a member of the organization",
                )

            tool = self._load_tool(tool_id)
            if tool.org_id != org_id:
                raise ToolNotFoundError(str(tool_id))
            if tool.owner_id == renter_id:
                raise UnauthorizedError(
                    str(renter_id), "create_rental_request", "owners cannot rent their own tool",
                )
            if tool.status != ToolStatus.AVAILABLE:
                raise ToolUnavailableError(str(tool_id), ToolStatus(tool.status).value)

            snapshot = PriceSnapshot.from_tool(tool)
            cost = calculate_rental_cost(start, end, snapshot)
            self._check_balance_floor(org_id, renter_id, cost)

            rental = Rental(
                org_id=org_id,
                tool_id=tool.id,
                renter_id=renter_id,
                owner_id=tool.owner_id,
                start_date=start,
                end_date=end,
                total_cost_cents=cost,
                status=RentalStatus(self._workflow.initial_state),
                created_by_id=renter_id,
            )
            rental.apply_snapshot(snapshot)
            self._session.add(rental)
            self._session.flush()

        logger.info(
            "rental_request_created",
            extra={
                "rental_id": str(rental.id),
                "tool_id": str(tool.id),
                "renter_id": str(renter_id),
                "total_cost_cents": cost,
                "duration_unit": snapshot.duration_unit.value,
            },
        )
        record = rental.to_dto()
        self._notify("RENTAL_REQUEST", rental.owner_id, rental, renter_id)
        return record

    def approve_rental_request(
        self, owner_id: UUID, rental_id: UUID, pickup_note: str = "",
    ) -> RentalRecord:
        with self._unit_of_work("approve_rental_request", owner_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, owner_id, wf.APPROVE)
            transition = self._transition(rental, wf.APPROVE, role)
            rental.pickup_note = pickup_note
            from_status = self._apply(rental, transition, owner_id)

        return self._finish(rental, transition, from_status, owner_id,
                            ("RENTAL_APPROVED", rental.renter_id))

    def reject_rental_request(
        self, owner_id: UUID, rental_id: UUID, reason: str = "",
    ) -> RentalRecord:
        with self._unit_of_work("reject_rental_request", owner_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, owner_id, wf.REJECT)
            transition = self._transition(rental, wf.REJECT, role)
            rental.rejection_reason = reason
            from_status = self._apply(rental, transition, owner_id)

        return self._finish(rental, transition, from_status, owner_id,
                            ("RENTAL_REJECTED", rental.renter_id), reason=reason)

    def finalize_rental_request(self, renter_id: UUID, rental_id: UUID) -> FinalizeResult:
        """
        Confirm an approved request: debit the renter and hand out the tool.

        Other PENDING/APPROVED rentals of the same tool are returned as
        advisory siblings; they are not modified.
        """
        with self._unit_of_work("finalize_rental_request", renter_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, renter_id, wf.FINALIZE)
            transition = self._transition(rental, wf.FINALIZE, role)

            tool = self._load_tool(rental.tool_id)
            if tool.status == ToolStatus.RENTED:
                raise ToolUnavailableError(str(tool.id), ToolStatus.RENTED.value)

            self._check_balance_floor(rental.org_id, rental.renter_id, rental.total_cost_cents)
            if rental.total_cost_cents:
                self._ledger.post_transaction(
                    org_id=rental.org_id,
                    user_id=rental.renter_id,
                    amount_cents=-rental.total_cost_cents,
                    transaction_type=TransactionType.RENTAL_DEBIT,
                    related_rental_id=rental.id,
                    description=(
                        f"Rental of {tool.name} "
                        f"({format_date(rental.start_date)} to {format_date(rental.end_date)})"
                    ),
                    actor_id=renter_id,
                )

            rental.last_agreed_end_date = rental.end_date
            tool.status = ToolStatus.RENTED.value
            tool.updated_by_id = renter_id
            from_status = self._apply(rental, transition, renter_id)
            self._session.flush()

            approved = self._rentals.siblings(rental.tool_id, rental.id, (RentalStatus.APPROVED,))
            pending = self._rentals.siblings(rental.tool_id, rental.id, (RentalStatus.PENDING,))

        record = self._finish(rental, transition, from_status, renter_id,
                              ("RENTAL_CONFIRMED", rental.owner_id))
        if approved or pending:
            logger.info(
                "rental_finalize_siblings_found",
                extra={
                    "rental_id": str(rental.id),
                    "tool_id": str(rental.tool_id),
                    "approved_siblings": len(approved),
                    "pending_siblings": len(pending),
                },
            )
        return FinalizeResult(rental=record, approved_siblings=approved, pending_siblings=pending)

    # =========================================================================
    # Pickup / return / cancellation
    # =========================================================================

    def activate_rental(self, owner_id: UUID, rental_id: UUID) -> RentalRecord:
        """Record that the renter picked the tool up."""
        with self._unit_of_work("activate_rental", owner_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, owner_id, wf.ACTIVATE)
            transition = self._transition(rental, wf.ACTIVATE, role)
            from_status = self._apply(rental, transition, owner_id)

        return self._finish(rental, transition, from_status, owner_id,
                            ("RENTAL_PICKUP", rental.renter_id))

    def complete_rental(
        self,
        owner_id: UUID,
        rental_id: UUID,
        return_condition: str = "",
        surcharge_or_credit_cents: int = 0,
        notes: str | None = None,
    ) -> RentalRecord:
        """
        Close a returned rental and pay the owner.

        The owner is credited total + surcharge_or_credit_cents.  A non-zero
        adjustment is mirrored on the renter (a surcharge is charged, a
        negative value is credited back) so both sides stay balanced.
        """
        with self._unit_of_work("complete_rental", owner_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, owner_id, wf.COMPLETE)
            transition = self._transition(rental, wf.COMPLETE, role)
            tool = self._load_tool(rental.tool_id)

            settlement = rental.total_cost_cents + surcharge_or_credit_cents
            if settlement:
                self._ledger.post_transaction(
                    org_id=rental.org_id,
                    user_id=rental.owner_id,
                    amount_cents=settlement,
                    transaction_type=TransactionType.LENDING_CREDIT,
                    related_rental_id=rental.id,
                    description=f"Earnings from rental of {tool.name}",
                    actor_id=owner_id,
                )
            if surcharge_or_credit_cents:
                self._ledger.post_transaction(
                    org_id=rental.org_id,
                    user_id=rental.renter_id,
                    amount_cents=-surcharge_or_credit_cents,
                    transaction_type=TransactionType.ADJUSTMENT,
                    related_rental_id=rental.id,
                    description=f"Return adjustment for {tool.name}: {return_condition}".rstrip(": "),
                    actor_id=owner_id,
                )

            rental.return_condition = return_condition
            rental.surcharge_or_credit_cents = surcharge_or_credit_cents
            rental.notes = notes
            rental.completed_by_id = owner_id
            rental.returned_on = self._clock.today()
            tool.status = ToolStatus.AVAILABLE.value
            tool.updated_by_id = owner_id
            from_status = self._apply(rental, transition, owner_id)

        return self._finish(
            rental, transition, from_status, owner_id,
            ("RENTAL_COMPLETED", rental.owner_id),
            ("RENTAL_COMPLETED", rental.renter_id),
            amount_cents=settlement,
        )

    def cancel_rental(self, actor_id: UUID, rental_id: UUID, reason: str = "") -> RentalRecord:
        """
        Cancel a rental that has not been picked up.

        From SCHEDULED the renter's debit is refunded and the tool released.
        """
        with self._unit_of_work("cancel_rental", actor_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, actor_id, wf.CANCEL)
            transition = self._transition(rental, wf.CANCEL, role)

            if transition.posts_entry:
                tool = self._load_tool(rental.tool_id)
                refund = -self._renter_net_for_rental(rental)
                if refund:
                    self._ledger.post_transaction(
                        org_id=rental.org_id,
                        user_id=rental.renter_id,
                        amount_cents=refund,
                        transaction_type=TransactionType.REFUND,
                        related_rental_id=rental.id,
                        description=f"Refund for cancelled rental of {tool.name}",
                        actor_id=actor_id,
                    )
                tool.status = ToolStatus.AVAILABLE.value
                tool.updated_by_id = actor_id

            rental.cancel_reason = reason
            rental.cancelled_by_id = actor_id
            from_status = self._apply(rental, transition, actor_id)

        counterparty = rental.owner_id if role is PartyRole.RENTER else rental.renter_id
        return self._finish(rental, transition, from_status, actor_id,
                            ("RENTAL_CANCELLED", counterparty), reason=reason)

    # =========================================================================
    # Return-date renegotiation
    # =========================================================================

    def change_rental_dates(
        self,
        actor_id: UUID,
        rental_id: UUID,
        new_start_date: date | str | None = None,
        new_end_date: date | str | None = None,
        old_start_date: date | str | None = None,
        old_end_date: date | str | None = None,
    ) -> RentalRecord:
        """
        Propose new dates.  Nothing is committed until the owner approves.

        ``old_*`` are the dates the caller based the request on; if the
        rental's agreed dates have moved since, the request is refused with
        RentalConflictError.  Once the tool has been picked up the start
        date is fixed.
        """
        with self._unit_of_work("change_rental_dates", actor_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, actor_id, wf.CHANGE_DATES)
            transition = self._transition(rental, wf.CHANGE_DATES, role)

            if old_start_date is not None and parse_date(old_start_date) != rental.start_date:
                raise RentalConflictError(
                    "Rental", str(rental.id), "start date changed since it was read",
                )
            if old_end_date is not None and parse_date(old_end_date) != rental.end_date:
                raise RentalConflictError(
                    "Rental", str(rental.id), "end date changed since it was read",
                )

            start = parse_date(new_start_date) if new_start_date is not None else rental.start_date
            end = parse_date(new_end_date) if new_end_date is not None else rental.end_date
            start, end = validate_date_range(start, end)

            committed_status = (
                RentalStatus(rental.status_before_change)
                if rental.rental_status is RentalStatus.RETURN_DATE_CHANGED
                else rental.rental_status
            )
            if committed_status in _ACTIVE_STATES and start != rental.start_date:
                raise DateRangeError(
                    format_date(start), format_date(end),
                    "start date cannot change after pickup",
                )
            if start == rental.start_date and end == rental.end_date:
                raise DateRangeError(
                    format_date(start), format_date(end),
                    "new dates match the agreed dates",
                )

            rental.status_before_change = committed_status.value
            rental.proposed_start_date = start
            rental.proposed_end_date = end
            rental.proposed_cost_cents = calculate_rental_cost(start, end, rental.snapshot)
            rental.date_change_requested_by_id = actor_id
            from_status = self._apply(rental, transition, actor_id)

        counterparty = rental.owner_id if role is PartyRole.RENTER else rental.renter_id
        return self._finish(
            rental, transition, from_status, actor_id,
            ("RETURN_DATE_CHANGE_REQUEST", counterparty),
            start_date=format_date(start), end_date=format_date(end),
        )

    def approve_return_date_change(self, owner_id: UUID, rental_id: UUID) -> RentalRecord:
        """Commit the pending proposal into the agreed dates and cost."""
        with self._unit_of_work("approve_return_date_change", owner_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, owner_id, wf.APPROVE_DATE_CHANGE)
            self._transition(rental, wf.APPROVE_DATE_CHANGE, role)
            target = self._resumed_status(rental)
            transition = self._transition(rental, wf.APPROVE_DATE_CHANGE, role, target)
            self._commit_proposal(rental, owner_id)
            from_status = self._apply(rental, transition, owner_id)

        return self._finish(rental, transition, from_status, owner_id,
                            ("RETURN_DATE_CHANGE_APPROVED", rental.renter_id))

    def reject_return_date_change(
        self,
        owner_id: UUID,
        rental_id: UUID,
        reason: str,
        counter_new_end_date: date | str,
    ) -> RentalRecord:
        """
        Refuse the requested dates and counter-propose an end date.

        The counter date must differ from the requested end date and must
        not precede the start date.
        """
        with self._unit_of_work("reject_return_date_change", owner_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, owner_id, wf.REJECT_DATE_CHANGE)
            transition = self._transition(rental, wf.REJECT_DATE_CHANGE, role)

            counter = parse_date(counter_new_end_date)
            start = rental.proposed_start_date or rental.start_date
            if counter == rental.proposed_end_date:
                raise CounterProposalError(
                    str(rental.id), format_date(counter),
                    "must differ from the requested end date",
                )
            if counter < start:
                raise CounterProposalError(
                    str(rental.id), format_date(counter),
                    f"must be on or after the start date {format_date(start)}",
                )

            rental.rejection_reason = reason
            rental.proposed_end_date = counter
            rental.proposed_cost_cents = calculate_rental_cost(start, counter, rental.snapshot)
            from_status = self._apply(rental, transition, owner_id)

        return self._finish(
            rental, transition, from_status, owner_id,
            ("RETURN_DATE_CHANGE_REJECTED", rental.renter_id),
            reason=reason,
            end_date=format_date(counter),
            amount_cents=rental.proposed_cost_cents,
        )

    def acknowledge_return_date_rejection(self, renter_id: UUID, rental_id: UUID) -> RentalRecord:
        """Accept the owner's counter-proposal, committing it."""
        with self._unit_of_work("acknowledge_return_date_rejection", renter_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, renter_id, wf.ACKNOWLEDGE_DATE_REJECTION)
            self._transition(rental, wf.ACKNOWLEDGE_DATE_REJECTION, role)
            target = self._resumed_status(rental)
            transition = self._transition(rental, wf.ACKNOWLEDGE_DATE_REJECTION, role, target)
            self._commit_proposal(rental, renter_id)
            from_status = self._apply(rental, transition, renter_id)

        return self._finish(rental, transition, from_status, renter_id,
                            ("RETURN_DATE_REJECTION_ACKNOWLEDGED", rental.owner_id))

    def cancel_return_date_change(self, renter_id: UUID, rental_id: UUID) -> RentalRecord:
        """Withdraw a pending proposal; the agreed dates, cost and status are restored."""
        with self._unit_of_work("cancel_return_date_change", renter_id, rental_id):
            rental = self._load_rental(rental_id)
            role = self._authorize(rental, renter_id, wf.CANCEL_DATE_CHANGE)
            self._transition(rental, wf.CANCEL_DATE_CHANGE, role)
            target = RentalStatus(rental.status_before_change).value
            transition = self._transition(rental, wf.CANCEL_DATE_CHANGE, role, target)
            rental.clear_proposal()
            from_status = self._apply(rental, transition, renter_id)

        return self._finish(rental, transition, from_status, renter_id,
                            ("RETURN_DATE_CHANGE_CANCELLED", rental.owner_id))

    # =========================================================================
    # Read paths
    # =========================================================================

    def get_rental(self, actor_id: UUID, rental_id: UUID) -> RentalRecord:
        """Renter, owner, or any member of the rental's organization may read it."""
        with self._unit_of_work("get_rental", actor_id, rental_id, log_rejections=False):
            rental = self._load_rental(rental_id, lock=False)
            if self._party_role(rental, actor_id) is None and not self._is_member(
                rental.org_id, actor_id
            ):
                raise UnauthorizedError(str(actor_id), "get_rental", "not a party or org member")
            record = rental.to_dto()
        return record

    def list_rentals(
        self,
        actor_id: UUID,
        org_id: UUID,
        statuses: Iterable[RentalStatus | str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> Page[RentalRecord]:
        """Rentals where the actor is the renter."""
        with self._unit_of_work("list_rentals", actor_id, org_id=org_id, log_rejections=False):
            self._require_member(org_id, actor_id, "list_rentals")
            result = self._rentals.list_by_renter(org_id, actor_id, statuses, page, page_size)
        return result

    def list_lendings(
        self,
        actor_id: UUID,
        org_id: UUID,
        statuses: Iterable[RentalStatus | str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> Page[RentalRecord]:
        """Rentals where the actor is the owner."""
        with self._unit_of_work("list_lendings", actor_id, org_id=org_id, log_rejections=False):
            self._require_member(org_id, actor_id, "list_lendings")
            result = self._rentals.list_by_owner(org_id, actor_id, statuses, page, page_size)
        return result

    def list_tool_rentals(
        self,
        actor_id: UUID,
        tool_id: UUID,
        org_id: UUID | None = None,
        statuses: Iterable[RentalStatus | str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
    ) -> Page[RentalRecord]:
        """Rentals of one tool; visible to the tool owner and org members."""
        with self._unit_of_work("list_tool_rentals", actor_id, org_id=org_id, log_rejections=False):
            tool = self._load_tool(tool_id, lock=False)
            if org_id is not None and tool.org_id != org_id:
                raise ToolNotFoundError(str(tool_id))
            if tool.owner_id != actor_id and not self._is_member(tool.org_id, actor_id):
                raise UnauthorizedError(str(actor_id), "list_tool_rentals", "not the owner or an org member")
            result = self._rentals.list_by_tool(tool.id, tool.org_id, statuses, page, page_size)
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        actor_id: UUID,
        rental_id: UUID | None = None,
        org_id: UUID | None = None,
        log_rejections: bool = True,
    ) -> Iterator[None]:
        with LogContext.bind(actor_id=actor_id, rental_id=rental_id, org_id=org_id):
            try:
                yield
                self._session.commit()
            except RentalKernelError as exc:
                self._session.rollback()
                if log_rejections:
                    logger.warning(
                        "rental_operation_rejected",
                        extra={"operation": operation, "error_code": exc.code, "reason": str(exc)},
                    )
                raise
            except StaleDataError as exc:
                self._session.rollback()
                logger.warning(
                    "rental_operation_conflict",
                    extra={"operation": operation, "detail": str(exc)},
                )
                raise RentalConflictError(
                    "Rental", str(rental_id) if rental_id else "", str(exc),
                ) from exc
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.error(
                    "rental_operation_persistence_failed",
                    exc_info=True,
                    extra={"operation": operation},
                )
                raise PersistenceError(operation, str(exc)) from exc
            except Exception:
                self._session.rollback()
                raise

    def _load_rental(self, rental_id: UUID, lock: bool = True) -> Rental:
        stmt = select(Rental).where(Rental.id == rental_id)
        if lock:
            stmt = stmt.with_for_update()
        rental = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if rental is None:
            raise RentalNotFoundError(str(rental_id))
        return rental

    def _load_tool(self, tool_id: UUID, lock: bool = True) -> Tool:
        stmt = select(Tool).where(Tool.id == tool_id)
        if lock:
            stmt = stmt.with_for_update()
        tool = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if tool is None:
            raise ToolNotFoundError(str(tool_id))
        return tool

    def _is_member(self, org_id: UUID, user_id: UUID) -> bool:
        stmt = select(
            exists().where(UserOrg.org_id == org_id, UserOrg.user_id == user_id)
        )
        return bool(self._session.execute(stmt).scalar())

    def _require_member(self, org_id: UUID, user_id: UUID, action: str) -> None:
        if not self._is_member(org_id, user_id):
            raise UnauthorizedError(str(user_id), action, "not a member of the organization")

    @staticmethod
    def _party_role(rental: Rental, actor_id: UUID) -> PartyRole | None:
        if actor_id == rental.renter_id:
            return PartyRole.RENTER
        if actor_id == rental.owner_id:
            return PartyRole.OWNER
        return None

    @staticmethod
    def _actor_for(rental: Rental, role: PartyRole) -> UUID:
        return rental.renter_id if role is PartyRole.RENTER else rental.owner_id

    def _authorize(self, rental: Rental, actor_id: UUID, action: str) -> PartyRole:
        """The actor must be a party whose role may fire ``action`` from some state."""
        role = self._party_role(rental, actor_id)
        if role is None:
            raise UnauthorizedError(str(actor_id), action, "not a party to this rental")
        allowed = self._workflow.roles_for(action)
        if allowed and role.value not in allowed:
            raise UnauthorizedError(
                str(actor_id), action, f"requires role {' or '.join(sorted(allowed))}",
            )
        return role

    def _transition(
        self,
        rental: Rental,
        action: str,
        role: PartyRole,
        to_state: str | None = None,
    ) -> Transition:
        transition = self._workflow.find(action, rental.rental_status.value, to_state)
        if transition is None:
            raise InvalidTransitionError(str(rental.id), action, rental.rental_status.value)
        if transition.actor_roles and role.value not in transition.actor_roles:
            raise UnauthorizedError(
                str(self._actor_for(rental, role)), action,
                f"{role.value} may not {action} from {rental.rental_status.value}",
            )
        return transition

    def _apply(self, rental: Rental, transition: Transition, actor_id: UUID) -> RentalStatus:
        from_status = rental.rental_status
        rental.status = RentalStatus(transition.to_state).value
        rental.updated_by_id = actor_id
        return from_status

    def _resumed_status(self, rental: Rental) -> str:
        """Status a committed proposal lands in: SCHEDULED before pickup, else ACTIVE/OVERDUE."""
        if rental.status_before_change is not None and (
            RentalStatus(rental.status_before_change) is RentalStatus.SCHEDULED
        ):
            return RentalStatus.SCHEDULED.value
        end = rental.proposed_end_date or rental.end_date
        if self._clock.today() > end:
            return RentalStatus.OVERDUE.value
        return RentalStatus.ACTIVE.value

    def _commit_proposal(self, rental: Rental, actor_id: UUID) -> None:
        """Move the proposal into the agreed dates and post any cost difference."""
        old_total = rental.total_cost_cents
        new_total = rental.proposed_cost_cents
        rental.start_date = rental.proposed_start_date or rental.start_date
        rental.end_date = rental.proposed_end_date
        rental.last_agreed_end_date = rental.end_date
        rental.total_cost_cents = new_total

        difference = new_total - old_total
        if difference:
            self._ledger.post_transaction(
                org_id=rental.org_id,
                user_id=rental.renter_id,
                amount_cents=-difference,
                transaction_type=TransactionType.ADJUSTMENT,
                related_rental_id=rental.id,
                description=(
                    f"Date change to {format_date(rental.start_date)} - "
                    f"{format_date(rental.end_date)}"
                ),
                actor_id=actor_id,
            )
        rental.clear_proposal()

    def _renter_net_for_rental(self, rental: Rental) -> int:
        return sum(
            entry.amount_cents
            for entry in self._ledger_selector.transactions_for_rental(rental.id)
            if entry.user_id == rental.renter_id
        )

    def _check_balance_floor(self, org_id: UUID, renter_id: UUID, charge_cents: int) -> None:
        if not self._balance_policy.enabled:
            return
        balance = self._ledger_selector.balance(org_id, renter_id)
        self._balance_policy.check(balance, charge_cents, renter_id)

    def _finish(
        self,
        rental: Rental,
        transition: Transition,
        from_status: RentalStatus,
        actor_id: UUID,
        *recipients: tuple[str, UUID],
        **context,
    ) -> RentalRecord:
        """Log the committed transition, snapshot the DTO, then notify."""
        logger.info(
            "rental_transition_committed",
            extra={
                "rental_id": str(rental.id),
                "action": transition.action,
                "from_status": from_status.value,
                "to_status": transition.to_state,
                "actor_id": str(actor_id),
                "posts_entry": transition.posts_entry,
            },
        )
        record = rental.to_dto()
        for notification_type, recipient_id in recipients:
            self._notify(notification_type, recipient_id, rental, actor_id, **context)
        return record

    def _notify(
        self,
        notification_type: str,
        recipient_id: UUID,
        rental: Rental,
        actor_id: UUID,
        **context,
    ) -> None:
        self._notifications.notify_rental(
            notification_type, recipient_id, rental, actor_id, **context,
        )
