"""Rental lifecycle workflow.

State machine for a rental from request to return, including mid-rental
return-date renegotiation.  RentalLifecycleService looks every transition up
here; a (action, status) pair missing from the table is an invalid
transition.
"""

from rental_kernel.domain.dtos import PartyRole, RentalStatus
from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.logging_config import get_logger

logger = get_logger("domain.rental_workflow")

RENTER = PartyRole.RENTER.value
OWNER = PartyRole.OWNER.value
EITHER_PARTY = (RENTER, OWNER)

PENDING = RentalStatus.PENDING.value
APPROVED = RentalStatus.APPROVED.value
REJECTED = RentalStatus.REJECTED.value
SCHEDULED = RentalStatus.SCHEDULED.value
ACTIVE = RentalStatus.ACTIVE.value
COMPLETED = RentalStatus.COMPLETED.value
CANCELLED = RentalStatus.CANCELLED.value
OVERDUE = RentalStatus.OVERDUE.value
RETURN_DATE_CHANGED = RentalStatus.RETURN_DATE_CHANGED.value
RETURN_DATE_CHANGE_REJECTED = RentalStatus.RETURN_DATE_CHANGE_REJECTED.value

# Actions
APPROVE = "approve"
REJECT = "reject"
FINALIZE = "finalize"
ACTIVATE = "activate"
COMPLETE = "complete"
CANCEL = "cancel"
CHANGE_DATES = "change_dates"
APPROVE_DATE_CHANGE = "approve_date_change"
REJECT_DATE_CHANGE = "reject_date_change"
ACKNOWLEDGE_DATE_REJECTION = "acknowledge_date_rejection"
CANCEL_DATE_CHANGE = "cancel_date_change"
MARK_OVERDUE = "mark_overdue"

TOOL_NOT_RENTED = Guard("tool_not_rented", "Tool is not already handed to another renter")
BALANCE_FLOOR = Guard("balance_floor", "Renter balance stays above the configured floor")
OLD_DATES_MATCH = Guard("old_dates_match", "Caller's view of the dates matches the rental")
COUNTER_DIFFERS = Guard("counter_differs", "Counter date differs from the requested date and is >= start")
PAST_END_DATE = Guard("past_end_date", "Today is after the committed end date")

# Statuses a committed proposal may land in.
_RESUMED_STATES = (ACTIVE, OVERDUE, SCHEDULED)


def _resume(from_state: str, action: str, actor_roles: tuple[str, ...]) -> tuple[Transition, ...]:
    return tuple(
        Transition(from_state, to_state, action=action, actor_roles=actor_roles)
        for to_state in _RESUMED_STATES
    )


RENTAL_LIFECYCLE_WORKFLOW = Workflow(
    name="rental_lifecycle",
    description="Tool rental from request to return",
    initial_state=PENDING,
    states=(
        PENDING,
        APPROVED,
        REJECTED,
        SCHEDULED,
        ACTIVE,
        COMPLETED,
        CANCELLED,
        OVERDUE,
        RETURN_DATE_CHANGED,
        RETURN_DATE_CHANGE_REJECTED,
    ),
    transitions=(
        Transition(PENDING, APPROVED, action=APPROVE, actor_roles=(OWNER,)),
        Transition(PENDING, REJECTED, action=REJECT, actor_roles=(OWNER,)),
        Transition(
            APPROVED, SCHEDULED, action=FINALIZE, actor_roles=(RENTER,),
            guard=TOOL_NOT_RENTED, posts_entry=True,
        ),
        Transition(SCHEDULED, ACTIVE, action=ACTIVATE, actor_roles=(OWNER,)),
        Transition(ACTIVE, COMPLETED, action=COMPLETE, actor_roles=(OWNER,), posts_entry=True),
        Transition(OVERDUE, COMPLETED, action=COMPLETE, actor_roles=(OWNER,), posts_entry=True),
        Transition(PENDING, CANCELLED, action=CANCEL, actor_roles=EITHER_PARTY),
        Transition(APPROVED, CANCELLED, action=CANCEL, actor_roles=EITHER_PARTY),
        Transition(SCHEDULED, CANCELLED, action=CANCEL, actor_roles=EITHER_PARTY, posts_entry=True),
        Transition(ACTIVE, RETURN_DATE_CHANGED, action=CHANGE_DATES, actor_roles=EITHER_PARTY, guard=OLD_DATES_MATCH),
        Transition(SCHEDULED, RETURN_DATE_CHANGED, action=CHANGE_DATES, actor_roles=EITHER_PARTY, guard=OLD_DATES_MATCH),
        Transition(OVERDUE, RETURN_DATE_CHANGED, action=CHANGE_DATES, actor_roles=EITHER_PARTY, guard=OLD_DATES_MATCH),
        # Renter revising a request the owner has not answered yet.
        Transition(RETURN_DATE_CHANGED, RETURN_DATE_CHANGED, action=CHANGE_DATES, actor_roles=(RENTER,), guard=OLD_DATES_MATCH),
        *_resume(RETURN_DATE_CHANGED, APPROVE_DATE_CHANGE, (OWNER,)),
        Transition(
            RETURN_DATE_CHANGED, RETURN_DATE_CHANGE_REJECTED, action=REJECT_DATE_CHANGE,
            actor_roles=(OWNER,), guard=COUNTER_DIFFERS,
        ),
        *_resume(RETURN_DATE_CHANGE_REJECTED, ACKNOWLEDGE_DATE_REJECTION, (RENTER,)),
        *_resume(RETURN_DATE_CHANGED, CANCEL_DATE_CHANGE, (RENTER,)),
        Transition(ACTIVE, OVERDUE, action=MARK_OVERDUE, guard=PAST_END_DATE),
    ),
    terminal_states=(COMPLETED, CANCELLED, REJECTED),
)

logger.info(
    "rental_lifecycle_workflow_registered",
    extra={
        "workflow_name": RENTAL_LIFECYCLE_WORKFLOW.name,
        "state_count": len(RENTAL_LIFECYCLE_WORKFLOW.states),
        "transition_count": len(RENTAL_LIFECYCLE_WORKFLOW.transitions),
    },
)
