"""
Module: billing_kernel.db.immutability
Responsibility: ORM event listeners that make committed cash events and their
    allocation lines append-only.
Architecture position: Kernel > DB.  Imports models lazily inside the
    registration function.

Invariants enforced:
    - CashEventModel and CashAllocationModel rows are never UPDATEd or
      DELETEd through the ORM.  Any attempt raises ImmutabilityViolationError
      during flush, and the caller's transaction rolls back.

Failure modes:
    - Bulk SQL (``session.execute(update(...))``) bypasses ORM listeners.
      The kernel never issues bulk statements against these tables.
"""

from sqlalchemy import event

from billing_kernel.exceptions import ImmutabilityViolationError
from billing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, operation: str):
    def _listener(mapper, connection, target):
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": entity_type,
                "entity_id": str(target.id),
                "operation": operation,
            },
        )
        raise ImmutabilityViolationError(
            entity_type=entity_type,
            entity_id=str(target.id),
            reason=f"{entity_type} records are append-only ({operation} refused)",
        )

    return _listener


_check_cash_event_update = _block("CashEvent", "UPDATE")
_check_cash_event_delete = _block("CashEvent", "DELETE")
_check_cash_allocation_update = _block("CashAllocation", "UPDATE")
_check_cash_allocation_delete = _block("CashAllocation", "DELETE")


def _listeners():
    from billing_kernel.models.cash_event import CashAllocationModel, CashEventModel

    return (
        (CashEventModel, "before_update", _check_cash_event_update),
        (CashEventModel, "before_delete", _check_cash_event_delete),
        (CashAllocationModel, "before_update", _check_cash_allocation_update),
        (CashAllocationModel, "before_delete", _check_cash_allocation_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, identifier, fn in _listeners():
        if not event.contains(target, identifier, fn):
            event.listen(target, identifier, fn)


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners.  FOR TESTING ONLY."""
    for target, identifier, fn in _listeners():
        if event.contains(target, identifier, fn):
            event.remove(target, identifier, fn)
