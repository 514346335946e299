"""
Typed Exception Hierarchy for the Billing Kernel.

Every error the engine can raise has a TYPED class (catch by type, not by
message), a class-level ``code`` (machine-readable, API-safe) and structured
attributes carrying the data a caller needs to correct and retry.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingEngineError (base)
    |
    +-- InvalidInputError
    |
    +-- PlanningError
    |   +-- NoOpenObligationsError
    |   +-- OverallocationError
    |
    +-- ValidationError
    |   +-- AllocationSumMismatchError
    |   +-- InvalidEntryError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |   +-- LockTimeoutError
    |
    +-- NotFoundError
    |   +-- CounterpartyNotFoundError
    |   +-- TradeRecordNotFoundError
    |
    +-- TradeStateError
    |   +-- TradeReversedError
    |   +-- ClearanceExceededError
    |
    +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Input           | INVALID_INPUT               | Negative quantity/rate, bad discount
----------------|-----------------------------|-----------------------------------------
Planning        | NO_OPEN_OBLIGATIONS         | Nothing open for counterparty/thread
                | OVERALLOCATION              | Cash exceeds everything owed
----------------|-----------------------------|-----------------------------------------
Validation      | ALLOCATION_SUM_MISMATCH     | Entries do not add up to the cash amount
                | INVALID_ENTRY               | Unknown obligation, negative or too large
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Plan went stale before commit
                | LOCK_TIMEOUT                | Counterparty lock not acquired in time
----------------|-----------------------------|-----------------------------------------
Lookup          | COUNTERPARTY_NOT_FOUND      | Counterparty ID doesn't exist
                | TRADE_RECORD_NOT_FOUND      | Trade record ID doesn't exist
----------------|-----------------------------|-----------------------------------------
Trade state     | TRADE_REVERSED              | Operating on a reversed trade
                | CLEARANCE_EXCEEDED          | Clearing more than the bill quantity
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying a committed cash event
----------------|-----------------------------|-----------------------------------------
Config          | CONFIGURATION_ERROR         | Invalid configuration value

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        event = cash_service.commit_cash_event(...)
    except ConcurrentModificationError:
        # Another cash event consumed the same obligation. Re-plan.
        plan = cash_service.plan_allocation(...)
    except ValidationError as e:
        return {"error": e.code, **e.__dict__}

None of these errors is fatal to the process. A failed commit leaves every
obligation exactly as it was before the attempt.
"""

from decimal import Decimal
from typing import Any


class BillingEngineError(Exception):
    """
    Base exception for all billing engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_ENGINE_ERROR"


# Input-related exceptions


class InvalidInputError(BillingEngineError):
    """Commercial inputs of a trade are invalid. Raised before any state change."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


# Planning-related exceptions


class PlanningError(BillingEngineError):
    """Base exception for allocation planning errors."""

    code: str = "PLANNING_ERROR"


class NoOpenObligationsError(PlanningError):
    """The counterparty has nothing open on the requested thread and direction."""

    code: str = "NO_OPEN_OBLIGATIONS"

    def __init__(self, counterparty_id: str, direction: str, thread: str):
        self.counterparty_id = counterparty_id
        self.direction = direction
        self.thread = thread
        super().__init__(
            f"No open {thread} obligations for counterparty {counterparty_id} "
            f"(direction {direction})"
        )


class OverallocationError(PlanningError):
    """
    The cash amount exceeds the total pending across all open obligations.

    The partial plan that covers everything owed is attached as ``entries``
    so the caller can show it or re-enter a smaller amount.
    """

    code: str = "OVERALLOCATION"

    def __init__(
        self,
        target_amount: Decimal,
        allocatable_amount: Decimal,
        entries: tuple = (),
    ):
        self.target_amount = target_amount
        self.allocatable_amount = allocatable_amount
        self.remaining_amount = target_amount - allocatable_amount
        self.entries = entries
        super().__init__(
            f"Amount {target_amount} exceeds total pending {allocatable_amount} "
            f"by {self.remaining_amount}"
        )


# Validation-related exceptions


class ValidationError(BillingEngineError):
    """Base exception for allocation validation errors."""

    code: str = "VALIDATION_ERROR"


class AllocationSumMismatchError(ValidationError):
    """Sum of allocation entries does not equal the cash amount to the cent."""

    code: str = "ALLOCATION_SUM_MISMATCH"

    def __init__(self, required_total: Decimal, actual_total: Decimal):
        self.required_total = required_total
        self.actual_total = actual_total
        super().__init__(
            f"Allocations must total exactly {required_total}, got {actual_total}"
        )


class InvalidEntryError(ValidationError):
    """A single allocation entry is malformed."""

    code: str = "INVALID_ENTRY"

    def __init__(self, obligation_id: str, reason: str):
        self.obligation_id = obligation_id
        self.reason = reason
        super().__init__(f"Invalid allocation for obligation {obligation_id}: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(BillingEngineError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """
    The plan is stale: current persisted state no longer admits it.

    Never retried by the engine. The caller must re-plan.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, counterparty_id: str, obligation_id: str | None, reason: str):
        self.counterparty_id = counterparty_id
        self.obligation_id = obligation_id
        self.reason = reason
        target = f" obligation {obligation_id}" if obligation_id else ""
        super().__init__(
            f"Concurrent modification for counterparty {counterparty_id}{target}: "
            f"{reason}"
        )


class LockTimeoutError(ConcurrencyError):
    """The per-counterparty lock could not be acquired in time."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, counterparty_id: str, timeout_seconds: float):
        self.counterparty_id = counterparty_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for counterparty "
            f"{counterparty_id}"
        )


# Lookup exceptions


class NotFoundError(BillingEngineError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class CounterpartyNotFoundError(NotFoundError):
    """Counterparty with given ID was not found."""

    code: str = "COUNTERPARTY_NOT_FOUND"

    def __init__(self, counterparty_id: str):
        self.counterparty_id = counterparty_id
        super().__init__(f"Counterparty not found: {counterparty_id}")


class TradeRecordNotFoundError(NotFoundError):
    """Trade record with given ID was not found."""

    code: str = "TRADE_RECORD_NOT_FOUND"

    def __init__(self, trade_id: str):
        self.trade_id = trade_id
        super().__init__(f"Trade record not found: {trade_id}")


# Trade lifecycle exceptions


class TradeStateError(BillingEngineError):
    """Base exception for trade lifecycle errors."""

    code: str = "TRADE_STATE_ERROR"


class TradeReversedError(TradeStateError):
    """The trade record was reversed and accepts no further changes."""

    code: str = "TRADE_REVERSED"

    def __init__(self, trade_id: str):
        self.trade_id = trade_id
        super().__init__(f"Trade record {trade_id} is reversed")


class ClearanceExceededError(TradeStateError):
    """Clearing more of a pending bill than its quantity."""

    code: str = "CLEARANCE_EXCEEDED"

    def __init__(self, trade_id: str, quantity_kg: Decimal, cleared_kg: Decimal, requested_kg: Decimal):
        self.trade_id = trade_id
        self.quantity_kg = quantity_kg
        self.cleared_kg = cleared_kg
        self.requested_kg = requested_kg
        super().__init__(
            f"Cannot clear {requested_kg} kg on bill {trade_id}: "
            f"{cleared_kg} of {quantity_kg} kg already cleared"
        )


# Immutability exceptions


class ImmutabilityViolationError(BillingEngineError):
    """Attempted to modify or delete a committed cash event or allocation."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(BillingEngineError):
    """Configuration value is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")
