"""
Module: billing_kernel.selectors.cash_event_selector
Responsibility: Read-only queries over committed cash events: per-counterparty
    history, events in a time window and daily cash totals.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Returns CashEvent / DaySummary DTOs only.
    - History is newest first; ties broken by id for a stable order.
"""

from datetime import date, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from billing_kernel.domain.dtos import CashEvent, DaySummary
from billing_kernel.domain.values import ZERO, CashDirection, PaymentThread
from billing_kernel.models.cash_event import CashEventModel
from billing_kernel.selectors.base import BaseSelector


class CashEventSelector(BaseSelector[CashEventModel]):
    """Read-only cash event queries."""

    def _base_query(self):
        return select(CashEventModel).options(selectinload(CashEventModel.allocations))

    def history(self, counterparty_id: UUID, limit: int | None = None) -> list[CashEvent]:
        """Cash events of one counterparty, newest first."""
        stmt = (
            self._base_query()
            .where(CashEventModel.counterparty_id == counterparty_id)
            .order_by(CashEventModel.created_at.desc(), CashEventModel.id.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def events_between(self, start: datetime, end: datetime) -> list[CashEvent]:
        """Events with ``start <= created_at < end``, oldest first."""
        stmt = (
            self._base_query()
            .where(CashEventModel.created_at >= start)
            .where(CashEventModel.created_at < end)
            .order_by(CashEventModel.created_at, CashEventModel.id)
        )
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def day_summary(self, day: date, tzinfo=None) -> DaySummary:
        """Cash in and out per thread for one calendar day."""
        start = datetime.combine(day, time.min, tzinfo=tzinfo)
        events = self.events_between(start, start + timedelta(days=1))

        totals = {
            (PaymentThread.PORTAL, CashDirection.IN): ZERO,
            (PaymentThread.PORTAL, CashDirection.OUT): ZERO,
            (PaymentThread.DIFFERENCE, CashDirection.IN): ZERO,
            (PaymentThread.DIFFERENCE, CashDirection.OUT): ZERO,
        }
        for event in events:
            totals[(event.thread, event.direction)] += event.amount

        return DaySummary(
            day=day,
            portal_in=totals[(PaymentThread.PORTAL, CashDirection.IN)],
            portal_out=totals[(PaymentThread.PORTAL, CashDirection.OUT)],
            difference_in=totals[(PaymentThread.DIFFERENCE, CashDirection.IN)],
            difference_out=totals[(PaymentThread.DIFFERENCE, CashDirection.OUT)],
            event_count=len(events),
        )
