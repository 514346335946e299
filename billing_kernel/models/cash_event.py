"""
Module: billing_kernel.models.cash_event
Responsibility: ORM persistence for cash events and their allocation lines --
    the append-only audit trail of every cash movement.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.

Invariants enforced:
    - Created only by LedgerCommitter.
    - Never updated or deleted: ORM listeners in db/immutability.py raise
      ImmutabilityViolationError on UPDATE or DELETE of either table.
    - ``sum(allocations.allocated_amount) == amount`` (checked before insert).

Audit relevance:
    Each allocation line freezes the obligation's paid amount and status
    before and after the event, so the history can be replayed line by line.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import Base, UUIDString
from billing_kernel.domain.dtos import AllocationEntry, CashEvent
from billing_kernel.domain.values import CashDirection, PaymentStatus, PaymentThread


class CashEventModel(Base):
    """
    One cash movement against one counterparty on one thread.

    Table: ``cash_events``
    """

    __tablename__ = "cash_events"

    __table_args__ = (
        Index("idx_cash_event_counterparty", "counterparty_id"),
        Index("idx_cash_event_created", "created_at"),
    )

    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("counterparties.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    direction: Mapped[str] = mapped_column(String(3), nullable=False)

    thread: Mapped[str] = mapped_column(String(20), nullable=False)

    notes: Mapped[str] = mapped_column(String(4000), nullable=False, default="")

    # From the injected Clock, not the database server
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    allocations: Mapped[list["CashAllocationModel"]] = relationship(
        back_populates="cash_event",
        order_by="CashAllocationModel.position",
        cascade="save-update, merge",
    )

    def to_dto(self) -> CashEvent:
        return CashEvent(
            event_id=self.id,
            amount=self.amount,
            direction=CashDirection(self.direction),
            thread=PaymentThread(self.thread),
            counterparty_id=self.counterparty_id,
            notes=self.notes,
            created_at=self.created_at,
            allocations=tuple(a.to_dto() for a in self.allocations),
        )


class CashAllocationModel(Base):
    """
    Frozen snapshot of one allocation line of a cash event.

    Table: ``cash_allocations``
    """

    __tablename__ = "cash_allocations"

    __table_args__ = (
        Index("idx_cash_allocation_event", "cash_event_id"),
        Index("idx_cash_allocation_obligation", "obligation_id"),
    )

    cash_event_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("cash_events.id"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    obligation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("trade_records.id"),
        nullable=False,
    )

    allocated_amount: Mapped[Decimal] = mapped_column(nullable=False)
    previous_amount_paid: Mapped[Decimal] = mapped_column(nullable=False)
    new_amount_paid: Mapped[Decimal] = mapped_column(nullable=False)
    previous_status: Mapped[str] = mapped_column(String(20), nullable=False)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)

    cash_event: Mapped[CashEventModel] = relationship(back_populates="allocations")

    def to_dto(self) -> AllocationEntry:
        return AllocationEntry(
            obligation_id=self.obligation_id,
            allocated_amount=self.allocated_amount,
            previous_amount_paid=self.previous_amount_paid,
            new_amount_paid=self.new_amount_paid,
            new_status=PaymentStatus(self.new_status),
            previous_status=PaymentStatus(self.previous_status),
        )
