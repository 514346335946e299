"""
Module: billing_kernel.selectors.obligation_selector
Responsibility: Project trade records into ObligationView DTOs, one per
    payment thread, for planning, validation and display.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only APPROVED records are projected.  Reversed records and pending
      bills (drafts) are never offered for allocation.
    - PORTAL thread: sales and purchases.  DIFFERENCE thread: sales only.
    - Views are built from the current row state on every call; nothing is
      cached.
"""

from uuid import UUID

from sqlalchemy import select

from billing_kernel.domain.dtos import ObligationView
from billing_kernel.domain.values import ZERO, PaymentThread, TradeKind, TradeStatus
from billing_kernel.models.trade_record import TradeRecord
from billing_kernel.selectors.base import BaseSelector

_KINDS_BY_THREAD = {
    PaymentThread.PORTAL: (TradeKind.SALE.value, TradeKind.PURCHASE.value),
    PaymentThread.DIFFERENCE: (TradeKind.SALE.value,),
}


class ObligationSelector(BaseSelector[TradeRecord]):
    """Read-only obligation queries."""

    @staticmethod
    def project(record: TradeRecord, thread: PaymentThread) -> ObligationView:
        """Build the view of one thread of one record."""
        total_due, amount_paid, status = record.thread_state(thread)
        return ObligationView(
            obligation_id=record.id,
            thread=thread,
            kind=record.trade_kind,
            counterparty_id=record.counterparty_id,
            trade_date=record.trade_date,
            bill_number=record.bill_number,
            total_due=total_due,
            amount_paid=amount_paid,
            status=status,
            entered_at=record.created_at,
        )

    def for_counterparty(
        self,
        counterparty_id: UUID,
        thread: PaymentThread,
        include_settled: bool = False,
    ) -> list[ObligationView]:
        """
        Obligations of a counterparty on one thread, oldest trade first.

        Settled obligations (nothing pending) are omitted unless
        ``include_settled`` is set.
        """
        stmt = (
            select(TradeRecord)
            .where(TradeRecord.counterparty_id == counterparty_id)
            .where(TradeRecord.record_status == TradeStatus.APPROVED.value)
            .where(TradeRecord.kind.in_(_KINDS_BY_THREAD[thread]))
            .order_by(TradeRecord.trade_date, TradeRecord.created_at)
        )
        views = [self.project(r, thread) for r in self.session.scalars(stmt)]
        if include_settled:
            return views
        return [v for v in views if v.pending_amount > ZERO]

