"""
Typed Exception Hierarchy for the Rental Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the transport layer, the batch jobs, tests) must be able to react to
a failed transition without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.finalize_rental_request(renter_id, rental_id)
    except ToolUnavailableError as e:
        api_response(code=e.code, tool_id=e.tool_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RentalKernelError:

    RentalKernelError (base)
    |
    +-- NotFoundError
    |   +-- RentalNotFoundError
    |   +-- ToolNotFoundError
    |   +-- UserNotFoundError
    |   +-- MembershipNotFoundError
    |
    +-- UnauthorizedError
    |
    +-- InvalidStateError
    |   +-- InvalidTransitionError
    |   +-- ToolUnavailableError
    |   +-- RentalConflictError
    |
    +-- InvalidInputError
    |   +-- InvalidDateError
    |   +-- DateRangeError
    |   +-- CounterProposalError
    |   +-- InvalidPaginationError
    |
    +-- InsufficientBalanceError
    |
    +-- ImmutabilityViolationError
    |
    +-- InternalError
    |   +-- PersistenceError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
NotFound        | RENTAL_NOT_FOUND            | Rental ID doesn't exist
                | TOOL_NOT_FOUND              | Tool ID doesn't exist
                | USER_NOT_FOUND              | User ID doesn't exist
                | MEMBERSHIP_NOT_FOUND        | User is not a member of the org
----------------|-----------------------------|-----------------------------------------
Unauthorized    | UNAUTHORIZED                | Actor may not perform this action
----------------|-----------------------------|-----------------------------------------
InvalidState    | INVALID_TRANSITION          | Current status forbids the action
                | TOOL_UNAVAILABLE            | Tool is not AVAILABLE
                | RENTAL_CONFLICT             | Concurrent writer won the row
----------------|-----------------------------|-----------------------------------------
InvalidInput    | INVALID_DATE                | Malformed calendar date
                | DATE_RANGE_INVALID          | end < start, or start change refused
                | COUNTER_PROPOSAL_INVALID    | Counter date equals request / < start
                | INVALID_PAGINATION          | page < 1 or page_size out of range
----------------|-----------------------------|-----------------------------------------
Balance         | INSUFFICIENT_BALANCE        | Balance-floor policy rejected charge
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | UPDATE/DELETE of a ledger transaction
----------------|-----------------------------|-----------------------------------------
Internal        | PERSISTENCE_ERROR           | Database failure (unit rolled back)
----------------|-----------------------------|-----------------------------------------
Config          | CONFIGURATION_ERROR         | Invalid configuration value

===============================================================================
"""


class RentalKernelError(Exception):
    """
    Base exception for all rental kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RENTAL_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(RentalKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class RentalNotFoundError(NotFoundError):
    """Rental with given ID was not found."""

    code: str = "RENTAL_NOT_FOUND"

    def __init__(self, rental_id: str):
        self.rental_id = rental_id
        super().__init__(f"Rental not found: {rental_id}")


class ToolNotFoundError(NotFoundError):
    """Tool with given ID was not found."""

    code: str = "TOOL_NOT_FOUND"

    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        super().__init__(f"Tool not found: {tool_id}")


class UserNotFoundError(NotFoundError):
    """User with given ID was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class MembershipNotFoundError(NotFoundError):
    """User is not a member of the organization."""

    code: str = "MEMBERSHIP_NOT_FOUND"

    def __init__(self, org_id: str, user_id: str):
        self.org_id = org_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not a member of org {org_id}")


# Authorization


class UnauthorizedError(RentalKernelError):
    """The acting user is not permitted to perform the requested action."""

    code: str = "UNAUTHORIZED"

    def __init__(self, actor_id: str, action: str, reason: str = ""):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        message = f"Actor {actor_id} is not authorized to {action}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# State exceptions


class InvalidStateError(RentalKernelError):
    """Base exception for operations the current state does not allow."""

    code: str = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    """The rental's current status does not allow the requested action."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, rental_id: str, action: str, current_status: str):
        self.rental_id = rental_id
        self.action = action
        self.current_status = current_status
        super().__init__(
            f"Cannot {action} rental {rental_id} in status {current_status}"
        )


class ToolUnavailableError(InvalidStateError):
    """The tool cannot be booked or handed out in its current status."""

    code: str = "TOOL_UNAVAILABLE"

    def __init__(self, tool_id: str, tool_status: str):
        self.tool_id = tool_id
        self.tool_status = tool_status
        super().__init__(f"Tool {tool_id} is not available (status={tool_status})")


class RentalConflictError(InvalidStateError):
    """
    A concurrent transaction modified the same row first.

    Raised when the optimistic version check fails at flush time, or when
    the dates a caller based a change on no longer match the rental.
    """

    code: str = "RENTAL_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, reason: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason or "entity was modified by another transaction"
        super().__init__(
            f"Conflict on {entity_type} {entity_id}: {self.reason}"
        )


# Input exceptions


class InvalidInputError(RentalKernelError):
    """Base exception for malformed or inconsistent caller input."""

    code: str = "INVALID_INPUT"


class InvalidDateError(InvalidInputError):
    """A calendar date could not be parsed."""

    code: str = "INVALID_DATE"

    def __init__(self, value: str, reason: str = "expected YYYY-MM-DD"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid date {value!r}: {reason}")


class DateRangeError(InvalidInputError):
    """The requested date range is not acceptable."""

    code: str = "DATE_RANGE_INVALID"

    def __init__(self, start_date: str, end_date: str, reason: str = "end date must be >= start date"):
        self.start_date = start_date
        self.end_date = end_date
        self.reason = reason
        super().__init__(f"Invalid date range {start_date}..{end_date}: {reason}")


class CounterProposalError(InvalidInputError):
    """The owner's counter-proposed end date is not acceptable."""

    code: str = "COUNTER_PROPOSAL_INVALID"

    def __init__(self, rental_id: str, counter_end_date: str, reason: str):
        self.rental_id = rental_id
        self.counter_end_date = counter_end_date
        self.reason = reason
        super().__init__(
            f"Invalid counter-proposal {counter_end_date} for rental {rental_id}: {reason}"
        )


class InvalidPaginationError(InvalidInputError):
    """Page or page size is out of range."""

    code: str = "INVALID_PAGINATION"

    def __init__(self, page: int, page_size: int, max_page_size: int):
        self.page = page
        self.page_size = page_size
        self.max_page_size = max_page_size
        super().__init__(
            f"Invalid pagination page={page} page_size={page_size} "
            f"(page >= 1, 1 <= page_size <= {max_page_size})"
        )


# Balance


class InsufficientBalanceError(RentalKernelError):
    """The balance-floor policy refused a charge."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, user_id: str, balance_cents: int, charge_cents: int, floor_cents: int):
        self.user_id = user_id
        self.balance_cents = balance_cents
        self.charge_cents = charge_cents
        self.floor_cents = floor_cents
        super().__init__(
            f"Insufficient balance for user {user_id}: balance {balance_cents}, "
            f"charge {charge_cents}, floor {floor_cents}"
        )


# Immutability


class ImmutabilityViolationError(RentalKernelError):
    """
    Attempted to modify or delete an immutable record.

    Ledger transactions are append-only from the moment they are inserted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Internal


class InternalError(RentalKernelError):
    """Base exception for infrastructure failures."""

    code: str = "INTERNAL_ERROR"


class PersistenceError(InternalError):
    """The database rejected the unit of work; nothing was persisted."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Persistence failure during {operation}: {detail}")


class ConfigurationError(RentalKernelError):
    """A configuration value is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
