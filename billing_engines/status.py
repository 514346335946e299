"""
Module: billing_engines.status
Responsibility:
    Map a thread's total due and amount paid to a tri-state PaymentStatus,
    and guard the forward-only progression of that status when cash is
    applied.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Unsigned (portal) thread:
        PAID            if amount_paid >= total_due
        PARTIALLY_PAID  if 0 < amount_paid < total_due
        PENDING         otherwise
    - Signed (difference) thread compares against abs(total_due); a zero
      total due is PAID immediately.
    - ``advance`` accepts only non-negative payments against an unchanged
      total due, so PENDING -> PARTIALLY_PAID -> PAID never regresses.

Failure modes:
    - InvalidEntryError from ``advance`` on a negative payment.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from billing_kernel.domain.values import ZERO, PaymentStatus, PaymentThread
from billing_kernel.exceptions import InvalidEntryError

_RANK = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.PARTIALLY_PAID: 1,
    PaymentStatus.PAID: 2,
}


class StatusStateMachine:
    """Tri-state payment status for both thread variants."""

    @staticmethod
    def unsigned_status(total_due: Decimal, amount_paid: Decimal) -> PaymentStatus:
        if amount_paid >= total_due:
            return PaymentStatus.PAID
        if amount_paid > ZERO:
            return PaymentStatus.PARTIALLY_PAID
        return PaymentStatus.PENDING

    @staticmethod
    def signed_status(total_due: Decimal, amount_paid: Decimal) -> PaymentStatus:
        if total_due == ZERO:
            return PaymentStatus.PAID
        owed = abs(total_due)
        if amount_paid >= owed:
            return PaymentStatus.PAID
        if amount_paid > ZERO:
            return PaymentStatus.PARTIALLY_PAID
        return PaymentStatus.PENDING

    def status_for(
        self,
        total_due: Decimal,
        amount_paid: Decimal,
        thread: PaymentThread,
    ) -> PaymentStatus:
        """Status of a thread given its total due and running paid amount."""
        if thread is PaymentThread.DIFFERENCE:
            return self.signed_status(total_due, amount_paid)
        return self.unsigned_status(total_due, amount_paid)

    def advance(
        self,
        *,
        obligation_id: UUID,
        thread: PaymentThread,
        total_due: Decimal,
        previous_amount_paid: Decimal,
        allocated_amount: Decimal,
    ) -> tuple[Decimal, PaymentStatus]:
        """
        Apply one payment and return ``(new_amount_paid, new_status)``.

        Raises:
            InvalidEntryError: If ``allocated_amount`` is negative.
        """
        if allocated_amount < ZERO:
            raise InvalidEntryError(str(obligation_id), "allocated amount must not be negative")

        previous = self.status_for(total_due, previous_amount_paid, thread)
        new_amount_paid = previous_amount_paid + allocated_amount
        new_status = self.status_for(total_due, new_amount_paid, thread)

        # Holds for any non-negative payment against a fixed total due.
        assert _RANK[new_status] >= _RANK[previous], (
            f"Status regressed on {obligation_id}: {previous.value} -> {new_status.value}"
        )
        return new_amount_paid, new_status

    @staticmethod
    def is_forward(previous: PaymentStatus, new: PaymentStatus) -> bool:
        """True if ``new`` is the same as or later than ``previous``."""
        return _RANK[new] >= _RANK[previous]
