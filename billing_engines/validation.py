"""
Module: billing_engines.validation
Responsibility:
    Check a caller-supplied (possibly user-edited) allocation against the
    current open obligations before it is committed.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Every entry names a known obligation of the counterparty, on the
      requested thread, settled by the requested direction.
    - No entry is negative, none carries more decimal places than money,
      and no entry exceeds the obligation's current pending amount.
    - Zero-amount lines are not checked against obligations.
    - An obligation appears at most once.
    - ``sum(allocated_amount) == target_amount`` exactly.

Failure modes:
    - InvalidEntryError naming the offending obligation.
    - InvalidInputError for a target amount finer than money scale.
    - AllocationSumMismatchError with required and actual totals.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from billing_kernel.domain.dtos import AllocationEntry, ObligationView
from billing_kernel.domain.values import (
    ZERO,
    CashDirection,
    PaymentThread,
    is_money_scale,
    to_decimal,
)
from billing_kernel.exceptions import (
    AllocationSumMismatchError,
    InvalidEntryError,
    InvalidInputError,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.validation")


class AllocationValidator:
    """Validator for allocation entries at a fixed money scale."""

    def __init__(self, decimal_places: int = 2):
        self._decimal_places = decimal_places

    def check_entries_shape(
        self,
        entries: Iterable[AllocationEntry],
        target_amount: Decimal,
    ) -> Decimal:
        """
        Checks that need no obligation data: sign, scale, duplicates and the total.

        Returns the total allocated.
        """
        target = to_decimal(target_amount, "target_amount")
        if not is_money_scale(target, self._decimal_places):
            raise InvalidInputError(
                "target_amount", target, f"more than {self._decimal_places} decimal places"
            )
        seen: set[UUID] = set()
        total = ZERO

        for entry in entries:
            oid = str(entry.obligation_id)
            amount = to_decimal(entry.allocated_amount, "allocated_amount")
            if amount < ZERO:
                raise InvalidEntryError(oid, "allocated amount must not be negative")
            if not is_money_scale(amount, self._decimal_places):
                raise InvalidEntryError(
                    oid, f"allocated amount {amount} has more than {self._decimal_places} decimal places"
                )
            if entry.obligation_id in seen:
                raise InvalidEntryError(oid, "obligation appears more than once")
            seen.add(entry.obligation_id)
            total += amount

        if total != target:
            raise AllocationSumMismatchError(required_total=target, actual_total=total)
        return total

    def validate(
        self,
        *,
        entries: Sequence[AllocationEntry],
        target_amount: Decimal,
        obligations: Sequence[ObligationView],
        counterparty_id: UUID | None = None,
        thread: PaymentThread | None = None,
        direction: CashDirection | None = None,
    ) -> None:
        """
        Validate ``entries`` against ``obligations`` (current state).

        Zero-amount lines settle nothing and are not looked up; the
        committer drops them.

        Raises:
            InvalidInputError, InvalidEntryError, AllocationSumMismatchError.
        """
        by_id = {o.obligation_id: o for o in obligations}

        for entry in entries:
            if entry.allocated_amount == ZERO:
                continue
            obligation = by_id.get(entry.obligation_id)
            oid = str(entry.obligation_id)
            if obligation is None:
                raise InvalidEntryError(oid, "not an open obligation")
            if counterparty_id is not None and obligation.counterparty_id != counterparty_id:
                raise InvalidEntryError(oid, "belongs to a different counterparty")
            if thread is not None and obligation.thread is not thread:
                raise InvalidEntryError(oid, f"is not on the {thread.value} thread")
            if direction is not None and entry.allocated_amount > ZERO \
                    and obligation.settling_direction is not direction:
                raise InvalidEntryError(oid, f"is not settled by {direction.value} cash")
            if entry.allocated_amount > obligation.pending_amount:
                raise InvalidEntryError(
                    oid,
                    f"allocated {entry.allocated_amount} exceeds pending {obligation.pending_amount}",
                )

        total = self.check_entries_shape(entries, target_amount)

        logger.debug("allocation_validated", extra={
            "entry_count": len(entries),
            "total_allocated": str(total),
        })
