"""
Module: billing_kernel.models.trade_record
Responsibility: ORM persistence for trade records -- sales, purchases and
    pending bills -- with their commercial inputs, derived amounts and
    per-thread ledger state.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/.  MUST NOT import from services/, selectors/ or outer layers.

Invariants enforced:
    - Derived amount columns are written only from an AmountCalculator result
      (``apply_amounts``); they are never hand-edited.
    - Ledger columns (amount paid, status) are written only by LedgerCommitter
      and by TradeService when an edit re-derives status.
    - ``version`` is the SQLAlchemy ``version_id_col``.  Every UPDATE checks it,
      so a row changed by another transaction since it was read fails the
      flush with StaleDataError (optimistic concurrency).
    - Records are never deleted; ``record_status`` REVERSED retires them.

Audit relevance:
    Report generators print these columns verbatim, so names and two-decimal
    rounding of the derived amounts are stable.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.values import (
    ZERO,
    BillingStatus,
    DiscountKind,
    DiscountMode,
    PaymentStatus,
    PaymentThread,
    TradeKind,
    TradeStatus,
    discount_mode_columns,
    discount_mode_from_columns,
)


class TradeRecord(TrackedBase):
    """
    One sale, purchase or pending bill.

    Contract:
        Carries both threads' ledger state.  Purchases and pending bills leave
        the difference thread columns NULL.

    Guarantees:
        - ``thread_state()`` is the single accessor the selectors and the
          committer use, so both read the same columns for a thread.
    """

    __tablename__ = "trade_records"

    __table_args__ = (
        Index("idx_trade_counterparty", "counterparty_id"),
        Index("idx_trade_kind_status", "kind", "record_status"),
        Index("idx_trade_date", "trade_date"),
    )

    counterparty_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("counterparties.id"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    trade_date: Mapped[date] = mapped_column(Date, nullable=False)

    bill_number: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    # Commercial inputs
    quantity_kg: Mapped[Decimal] = mapped_column(nullable=False)
    number_of_bags: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    original_rate_per_kg: Mapped[Decimal] = mapped_column(nullable=False)
    discount_kind: Mapped[str] = mapped_column(
        String(30), nullable=False, default=DiscountKind.NONE.value
    )
    discounted_rate_per_kg: Mapped[Decimal | None] = mapped_column(nullable=True)
    extra_quantity_kg: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Derived amounts
    portal_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    gst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_portal_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    revenue_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_revenue_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    difference_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    # Portal / purchase thread ledger state
    amount_paid: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )

    # Difference thread ledger state (sales only)
    difference_amount_paid: Mapped[Decimal | None] = mapped_column(nullable=True)
    difference_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Lifecycle
    record_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TradeStatus.APPROVED.value
    )
    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reversal_reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Pending bill clearance
    billing_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cleared_quantity_kg: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    notes: Mapped[str] = mapped_column(String(4000), nullable=False, default="")

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    @property
    def trade_kind(self) -> TradeKind:
        return TradeKind(self.kind)

    @property
    def is_reversed(self) -> bool:
        return self.record_status == TradeStatus.REVERSED.value

    @property
    def discount_mode(self) -> DiscountMode:
        return discount_mode_from_columns(
            self.discount_kind, self.discounted_rate_per_kg, self.extra_quantity_kg
        )

    @discount_mode.setter
    def discount_mode(self, mode: DiscountMode) -> None:
        columns = discount_mode_columns(mode)
        self.discount_kind = columns["discount_kind"].value
        self.discounted_rate_per_kg = columns["discounted_rate_per_kg"]
        self.extra_quantity_kg = columns["extra_quantity_kg"]

    def thread_state(self, thread: PaymentThread) -> tuple[Decimal, Decimal, PaymentStatus]:
        """Return ``(total_due, amount_paid, status)`` for one thread."""
        if thread is PaymentThread.PORTAL:
            return (
                self.total_portal_amount,
                self.amount_paid,
                PaymentStatus(self.payment_status),
            )
        if self.trade_kind is not TradeKind.SALE:
            raise ValueError(f"{self.kind} records carry no difference thread")
        return (
            self.difference_amount,
            self.difference_amount_paid or ZERO,
            PaymentStatus(self.difference_status or PaymentStatus.PENDING.value),
        )

    def set_thread_payment(
        self,
        thread: PaymentThread,
        amount_paid: Decimal,
        status: PaymentStatus,
    ) -> None:
        """Write ledger state for one thread."""
        if thread is PaymentThread.PORTAL:
            self.amount_paid = amount_paid
            self.payment_status = status.value
        else:
            self.difference_amount_paid = amount_paid
            self.difference_status = status.value

    def apply_amounts(self, amounts: Any) -> None:
        """Copy every derived field from an AmountCalculator result."""
        self.portal_amount = amounts.portal_amount
        self.gst_amount = amounts.gst_amount
        self.total_portal_amount = amounts.total_portal_amount
        self.revenue_amount = amounts.revenue_amount
        self.total_revenue_amount = amounts.total_revenue_amount
        self.difference_amount = amounts.difference_amount

    def __repr__(self) -> str:
        return f"<TradeRecord {self.kind} {self.bill_number or self.id} {self.trade_date}>"
