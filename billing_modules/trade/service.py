"""
Trade Module Service - Enter, edit and retire trade records.

Thin glue layer that:
1. Calls AmountCalculator to derive every monetary field
2. Calls StatusStateMachine for the initial and re-derived thread statuses
3. Keeps the counterparty running balance in step with each change

This service owns the transaction boundary: it commits on success and rolls
back on failure.

Usage:
    service = TradeService(session, clock=clock)
    sale = service.record_sale(
        counterparty_id=customer.id,
        trade_date=date(2024, 4, 1),
        bill_number="S-101",
        quantity_kg=Decimal("1000"),
        rate_per_kg=Decimal("30"),
        discount_mode=DiscountOrPremium(rate_per_kg=Decimal("28")),
        actor_id=actor_id,
    )
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from billing_config import BillingConfig, get_active_config
from billing_engines.amounts import AmountCalculator
from billing_engines.status import StatusStateMachine
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import pending_amount
from billing_kernel.domain.values import (
    ZERO,
    BillingStatus,
    DiscountMode,
    NoDiscount,
    PaymentThread,
    TradeKind,
    TradeStatus,
    to_decimal,
)
from billing_kernel.exceptions import (
    ClearanceExceededError,
    CounterpartyNotFoundError,
    InvalidInputError,
    TradeRecordNotFoundError,
    TradeReversedError,
    TradeStateError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.counterparty import Counterparty
from billing_kernel.models.trade_record import TradeRecord

logger = get_logger("modules.trade.service")


def balance_contribution(record: TradeRecord) -> Decimal:
    """
    What one approved record adds to its counterparty's balance.

    Sales add the outstanding portal amount plus the signed outstanding
    difference; purchases subtract the outstanding purchase total; pending
    bills and reversed records add nothing.
    """
    if record.is_reversed:
        return ZERO
    match record.trade_kind:
        case TradeKind.SALE:
            portal_due, portal_paid, _ = record.thread_state(PaymentThread.PORTAL)
            diff_due, diff_paid, _ = record.thread_state(PaymentThread.DIFFERENCE)
            diff_pending = pending_amount(diff_due, diff_paid, PaymentThread.DIFFERENCE)
            signed = diff_pending if diff_due >= ZERO else -diff_pending
            return (portal_due - portal_paid) + signed
        case TradeKind.PURCHASE:
            due, paid, _ = record.thread_state(PaymentThread.PORTAL)
            return -(due - paid)
        case _:
            return ZERO


class TradeService:
    """
    Orchestrates trade entry and maintenance.

    Transaction boundary: this service commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._calculator = AmountCalculator(
            gst_rate=self._config.gst_rate,
            decimal_places=self._config.money_decimal_places,
            rounding=self._config.rounding_mode,
            kg_per_bag=self._config.kg_per_bag,
        )
        self._status = StatusStateMachine()

    # =========================================================================
    # Counterparties
    # =========================================================================

    def register_counterparty(self, code: str, name: str, actor_id: UUID) -> Counterparty:
        """Create a counterparty with a zero balance."""
        try:
            counterparty = Counterparty(
                code=code,
                name=name,
                balance=ZERO,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self._session.add(counterparty)
            self._session.flush()
            self._session.commit()
            logger.info("counterparty_registered", extra={
                "counterparty_id": str(counterparty.id),
                "code": code,
            })
            return counterparty
        except Exception:
            self._session.rollback()
            raise

    def balance(self, counterparty_id: UUID) -> Decimal:
        """Running balance: what the counterparty owes the plant."""
        return self._counterparty(counterparty_id).balance

    # =========================================================================
    # Entry
    # =========================================================================

    def record_sale(
        self,
        counterparty_id: UUID,
        trade_date: date,
        quantity_kg: Decimal,
        rate_per_kg: Decimal,
        actor_id: UUID,
        bill_number: str = "",
        discount_mode: DiscountMode | None = None,
        notes: str = "",
    ) -> TradeRecord:
        """Enter a sale.  Carries both the portal and the difference thread."""
        return self._record(
            TradeKind.SALE, counterparty_id, trade_date, quantity_kg, rate_per_kg,
            actor_id, bill_number, discount_mode, notes,
        )

    def record_purchase(
        self,
        counterparty_id: UUID,
        trade_date: date,
        quantity_kg: Decimal,
        rate_per_kg: Decimal,
        actor_id: UUID,
        bill_number: str = "",
        notes: str = "",
    ) -> TradeRecord:
        """Enter a purchase.  Its obligation is settled by cash OUT."""
        return self._record(
            TradeKind.PURCHASE, counterparty_id, trade_date, quantity_kg, rate_per_kg,
            actor_id, bill_number, None, notes,
        )

    def record_pending_bill(
        self,
        counterparty_id: UUID,
        trade_date: date,
        quantity_kg: Decimal,
        rate_per_kg: Decimal,
        actor_id: UUID,
        bill_number: str = "",
        discount_mode: DiscountMode | None = None,
        notes: str = "",
    ) -> TradeRecord:
        """Enter a draft sale awaiting billing.  Never allocatable."""
        return self._record(
            TradeKind.PENDING_BILL, counterparty_id, trade_date, quantity_kg, rate_per_kg,
            actor_id, bill_number, discount_mode, notes,
        )

    def _record(
        self,
        kind: TradeKind,
        counterparty_id: UUID,
        trade_date: date,
        quantity_kg: Decimal,
        rate_per_kg: Decimal,
        actor_id: UUID,
        bill_number: str,
        discount_mode: DiscountMode | None,
        notes: str,
    ) -> TradeRecord:
        try:
            with LogContext.bind(counterparty_id=str(counterparty_id), actor_id=str(actor_id)):
                counterparty = self._counterparty(counterparty_id)
                quantity = self._positive_quantity(quantity_kg)
                mode = discount_mode or NoDiscount()
                amounts = self._calculator.compute(
                    quantity_kg=quantity, rate_per_kg=rate_per_kg, discount_mode=mode,
                )

                now = self._clock.now()
                record = TradeRecord(
                    counterparty_id=counterparty_id,
                    kind=kind.value,
                    trade_date=trade_date,
                    bill_number=bill_number,
                    quantity_kg=quantity,
                    number_of_bags=self._calculator.bags_for(quantity),
                    original_rate_per_kg=to_decimal(rate_per_kg, "rate_per_kg"),
                    amount_paid=ZERO,
                    record_status=TradeStatus.APPROVED.value,
                    cleared_quantity_kg=ZERO,
                    notes=notes,
                    created_at=now,
                    updated_at=now,
                    created_by_id=actor_id,
                )
                record.discount_mode = mode
                record.apply_amounts(amounts)
                record.payment_status = self._status.status_for(
                    amounts.total_portal_amount, ZERO, PaymentThread.PORTAL
                ).value
                if kind is TradeKind.SALE:
                    record.difference_amount_paid = ZERO
                    record.difference_status = self._status.status_for(
                        amounts.difference_amount, ZERO, PaymentThread.DIFFERENCE
                    ).value
                if kind is TradeKind.PENDING_BILL:
                    record.billing_status = BillingStatus.PENDING_BILLED.value

                self._session.add(record)
                counterparty.balance = counterparty.balance + balance_contribution(record)
                counterparty.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()

                logger.info("trade_recorded", extra={
                    "trade_id": str(record.id),
                    "kind": kind.value,
                    "total_portal_amount": str(amounts.total_portal_amount),
                    "difference_amount": str(amounts.difference_amount),
                    "balance": str(counterparty.balance),
                })
                return record
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Maintenance
    # =========================================================================

    def edit_trade(
        self,
        trade_id: UUID,
        actor_id: UUID,
        quantity_kg: Decimal | None = None,
        rate_per_kg: Decimal | None = None,
        discount_mode: DiscountMode | None = None,
    ) -> TradeRecord:
        """
        Change commercial inputs and re-derive every amount and status.

        Raises:
            TradeReversedError: The record is reversed.
            InvalidInputError: A paid amount would exceed the new total due,
                or a paid difference would change sign.
        """
        try:
            record = self._live_record(trade_id)
            with LogContext.bind(counterparty_id=str(record.counterparty_id), actor_id=str(actor_id)):
                counterparty = self._counterparty(record.counterparty_id)
                before = balance_contribution(record)

                quantity = (
                    self._positive_quantity(quantity_kg)
                    if quantity_kg is not None else record.quantity_kg
                )
                rate = (
                    to_decimal(rate_per_kg, "rate_per_kg")
                    if rate_per_kg is not None else record.original_rate_per_kg
                )
                mode = discount_mode if discount_mode is not None else record.discount_mode
                if record.trade_kind is TradeKind.PURCHASE and not isinstance(mode, NoDiscount):
                    raise InvalidInputError("discount_mode", mode, "purchases carry no discount")

                amounts = self._calculator.compute(
                    quantity_kg=quantity, rate_per_kg=rate, discount_mode=mode,
                )

                if record.amount_paid > amounts.total_portal_amount:
                    raise InvalidInputError(
                        "quantity_kg", quantity,
                        f"amount paid {record.amount_paid} exceeds new total due "
                        f"{amounts.total_portal_amount}",
                    )
                if record.trade_kind is TradeKind.SALE:
                    self._check_difference_edit(record, amounts.difference_amount)

                record.quantity_kg = quantity
                record.number_of_bags = self._calculator.bags_for(quantity)
                record.original_rate_per_kg = rate
                record.discount_mode = mode
                record.apply_amounts(amounts)
                record.payment_status = self._status.status_for(
                    amounts.total_portal_amount, record.amount_paid, PaymentThread.PORTAL
                ).value
                if record.trade_kind is TradeKind.SALE:
                    record.difference_status = self._status.status_for(
                        amounts.difference_amount,
                        record.difference_amount_paid or ZERO,
                        PaymentThread.DIFFERENCE,
                    ).value
                record.updated_by_id = actor_id

                counterparty.balance = counterparty.balance + balance_contribution(record) - before
                counterparty.updated_by_id = actor_id
                self._session.flush()
                self._session.commit()

                logger.info("trade_edited", extra={
                    "trade_id": str(record.id),
                    "total_portal_amount": str(amounts.total_portal_amount),
                    "difference_amount": str(amounts.difference_amount),
                    "balance": str(counterparty.balance),
                })
                return record
        except Exception:
            self._session.rollback()
            raise

    @staticmethod
    def _check_difference_edit(record: TradeRecord, new_difference: Decimal) -> None:
        paid = record.difference_amount_paid or ZERO
        if paid == ZERO:
            return
        old = record.difference_amount
        if (old > ZERO and new_difference < ZERO) or (old < ZERO and new_difference > ZERO) \
                or new_difference == ZERO:
            raise InvalidInputError(
                "discount_mode", record.discount_mode,
                "difference already partly settled; its direction cannot change",
            )
        if paid > abs(new_difference):
            raise InvalidInputError(
                "discount_mode", record.discount_mode,
                f"difference paid {paid} exceeds new difference {abs(new_difference)}",
            )

    def reverse_trade(self, trade_id: UUID, reason: str, actor_id: UUID) -> TradeRecord:
        """
        Retire a record.  It stays in the table, is never offered for
        allocation again, and stops counting towards the balance.
        """
        try:
            record = self._live_record(trade_id)
            counterparty = self._counterparty(record.counterparty_id)
            contribution = balance_contribution(record)

            record.record_status = TradeStatus.REVERSED.value
            record.reversed_at = self._clock.now()
            record.reversal_reason = reason
            record.updated_by_id = actor_id

            counterparty.balance = counterparty.balance - contribution
            counterparty.updated_by_id = actor_id
            self._session.flush()
            self._session.commit()

            logger.info("trade_reversed", extra={
                "trade_id": str(record.id),
                "counterparty_id": str(record.counterparty_id),
                "reason": reason,
                "balance": str(counterparty.balance),
            })
            return record
        except Exception:
            self._session.rollback()
            raise

    def clear_pending_bill(
        self,
        trade_id: UUID,
        quantity_kg: Decimal,
        actor_id: UUID,
    ) -> TradeRecord:
        """
        Mark part of a pending bill as billed.

        Raises:
            TradeStateError: The record is not a pending bill.
            ClearanceExceededError: More would be cleared than the bill holds.
        """
        try:
            record = self._live_record(trade_id)
            if record.trade_kind is not TradeKind.PENDING_BILL:
                raise TradeStateError(f"Trade {trade_id} is not a pending bill")

            requested = self._positive_quantity(quantity_kg)
            cleared = record.cleared_quantity_kg + requested
            if cleared > record.quantity_kg:
                raise ClearanceExceededError(
                    str(trade_id), record.quantity_kg, record.cleared_quantity_kg, requested,
                )

            record.cleared_quantity_kg = cleared
            if cleared == record.quantity_kg:
                record.billing_status = BillingStatus.BILLED.value
            record.updated_by_id = actor_id
            self._session.flush()
            self._session.commit()

            logger.info("pending_bill_cleared", extra={
                "trade_id": str(record.id),
                "cleared_quantity_kg": str(cleared),
                "billing_status": record.billing_status,
            })
            return record
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Helpers
    # =========================================================================

    def get(self, trade_id: UUID) -> TradeRecord:
        record = self._session.get(TradeRecord, trade_id)
        if record is None:
            raise TradeRecordNotFoundError(str(trade_id))
        return record

    def _live_record(self, trade_id: UUID) -> TradeRecord:
        record = self.get(trade_id)
        if record.is_reversed:
            raise TradeReversedError(str(trade_id))
        return record

    def _counterparty(self, counterparty_id: UUID) -> Counterparty:
        counterparty = self._session.get(Counterparty, counterparty_id)
        if counterparty is None:
            raise CounterpartyNotFoundError(str(counterparty_id))
        return counterparty

    @staticmethod
    def _positive_quantity(value: Decimal) -> Decimal:
        quantity = to_decimal(value, "quantity_kg")
        if quantity <= ZERO:
            raise InvalidInputError("quantity_kg", quantity, "must be positive")
        return quantity
