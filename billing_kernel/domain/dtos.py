"""
DTOs -- Frozen data transfer objects crossing layer boundaries.

Responsibility:
    ObligationView (read-only projection of one payment thread of a trade
    record), AllocationEntry (one line of a plan or a committed split) and
    CashEvent (the immutable audit record of one cash movement).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Selectors build
    these from ORM rows; engines consume them; module services return them.

Invariants enforced:
    - All DTOs are frozen.
    - ``pending_amount`` follows one formula for every caller, so UI
      previews, planning, validation and commit agree to the cent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from billing_kernel.domain.values import (
    ZERO,
    CashDirection,
    PaymentStatus,
    PaymentThread,
    TradeKind,
    round_money,
)


def pending_amount(total_due: Decimal, amount_paid: Decimal, thread: PaymentThread) -> Decimal:
    """
    Outstanding balance of one thread.

    The portal thread is unsigned: ``total_due - amount_paid``.  The
    difference thread is signed while ``amount_paid`` is a non-negative
    running total, so the payment is applied towards zero from whichever
    side ``total_due`` sits on.
    """
    if thread is PaymentThread.PORTAL:
        return total_due - amount_paid
    if total_due < ZERO:
        return abs(total_due + amount_paid)
    return abs(total_due - amount_paid)


@dataclass(frozen=True)
class ObligationView:
    """
    Outstanding balance on one thread of one trade record.

    Contract:
        Built on demand from current trade records; never persisted.
        Stale the moment it is returned.

    Guarantees:
        - ``total_due`` is signed only on the DIFFERENCE thread.
        - ``pending_amount`` is derived, never stored.
    """

    obligation_id: UUID
    thread: PaymentThread
    kind: TradeKind
    counterparty_id: UUID
    trade_date: date
    bill_number: str
    total_due: Decimal
    amount_paid: Decimal
    status: PaymentStatus
    entered_at: datetime | None = None

    @property
    def pending_amount(self) -> Decimal:
        return pending_amount(self.total_due, self.amount_paid, self.thread)

    @property
    def settling_direction(self) -> CashDirection | None:
        """Cash direction that pays this obligation down, or None if nothing is owed."""
        if self.thread is PaymentThread.PORTAL:
            return CashDirection.OUT if self.kind is TradeKind.PURCHASE else CashDirection.IN
        if self.total_due > ZERO:
            return CashDirection.IN
        if self.total_due < ZERO:
            return CashDirection.OUT
        return None


@dataclass(frozen=True)
class AllocationEntry:
    """
    One line of a proposed or committed split.

    In a plan the previous/new figures and status are a preview.  Callers
    editing a plan replace ``allocated_amount`` only; the committer
    recomputes the rest from current state and freezes it into the
    CashEvent.
    """

    obligation_id: UUID
    allocated_amount: Decimal
    previous_amount_paid: Decimal = ZERO
    new_amount_paid: Decimal = ZERO
    new_status: PaymentStatus = PaymentStatus.PENDING
    previous_status: PaymentStatus = PaymentStatus.PENDING

    def to_record(self) -> dict[str, Any]:
        return {
            "obligationId": str(self.obligation_id),
            "allocatedAmount": _money_str(self.allocated_amount),
            "previousAmountPaid": _money_str(self.previous_amount_paid),
            "newAmountPaid": _money_str(self.new_amount_paid),
            "previousStatus": self.previous_status.value,
            "newStatus": self.new_status.value,
        }


@dataclass(frozen=True)
class AllocationPlan:
    """Result of planning: ordered entries that cover ``target_amount`` exactly."""

    counterparty_id: UUID
    target_amount: Decimal
    direction: CashDirection
    thread: PaymentThread
    entries: tuple[AllocationEntry, ...]

    @property
    def total_allocated(self) -> Decimal:
        return sum((e.allocated_amount for e in self.entries), ZERO)


@dataclass(frozen=True)
class CashEvent:
    """
    Append-only audit record of one cash movement.

    Guarantees:
        - ``sum(a.allocated_amount for a in allocations) == amount``.
        - ``to_record()`` field names and two-decimal formatting are stable;
          printed statements read them verbatim.
    """

    event_id: UUID
    amount: Decimal
    direction: CashDirection
    thread: PaymentThread
    counterparty_id: UUID
    notes: str
    created_at: datetime
    allocations: tuple[AllocationEntry, ...]

    def to_record(self) -> dict[str, Any]:
        return {
            "id": str(self.event_id),
            "amount": _money_str(self.amount),
            "direction": self.direction.value,
            "thread": self.thread.value,
            "counterpartyId": str(self.counterparty_id),
            "notes": self.notes,
            "createdAt": self.created_at.isoformat(),
            "allocations": [a.to_record() for a in self.allocations],
        }


@dataclass(frozen=True)
class DaySummary:
    """Cash totals for one calendar day."""

    day: date
    portal_in: Decimal = ZERO
    portal_out: Decimal = ZERO
    difference_in: Decimal = ZERO
    difference_out: Decimal = ZERO
    event_count: int = 0

    @property
    def total_in(self) -> Decimal:
        return self.portal_in + self.difference_in

    @property
    def total_out(self) -> Decimal:
        return self.portal_out + self.difference_out

    @property
    def net_amount(self) -> Decimal:
        return self.total_in - self.total_out


def _money_str(value: Decimal) -> str:
    return str(round_money(value))
