"""
Module: billing_services.ledger_committer
Responsibility:
    Apply a validated allocation to the ledger as one atomic unit: advance
    each obligation's paid amount and status, move the counterparty balance,
    and append the immutable CashEvent with its frozen allocation lines.

Architecture position:
    Services -- stateful orchestration.  Composes the status and validation
    engines with the kernel models.  Flushes only; the calling module
    service owns commit and rollback.

Invariants enforced:
    - Optimistic re-check: every entry is re-validated against the
      obligation's pending amount recomputed from freshly loaded, row-locked
      state.  Any entry that now exceeds it fails the whole commit with
      ConcurrentModificationError.
    - ``sum(allocations) == amount`` exactly for every CashEvent written.
    - Statuses only move forward (StatusStateMachine.advance).
    - Previous/new figures on each allocation line are computed here from
      current state; the caller's preview figures are ignored.
    - Zero-amount entries are dropped; they settle nothing.

Failure modes:
    - CounterpartyNotFoundError if the counterparty does not exist.
    - InvalidEntryError for an unknown obligation, one belonging to another
      counterparty, or one not settled by the cash direction.
    - InvalidInputError or InvalidEntryError for amounts finer than the
      validator's money scale.
    - AllocationSumMismatchError if entries do not sum to the amount.
    - ConcurrentModificationError if state moved since planning (pending
      shrank, record reversed, or a version check failed at flush).
    In every case nothing has been committed; the caller rolls back.

Audit relevance:
    The CashEvent row and its allocation lines are the only record of cash
    movement.  They are protected by ORM immutability listeners.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from billing_engines.status import StatusStateMachine
from billing_engines.validation import AllocationValidator
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import AllocationEntry, CashEvent, pending_amount
from billing_kernel.domain.values import (
    ZERO,
    CashDirection,
    PaymentThread,
    TradeKind,
    to_decimal,
)
from billing_kernel.exceptions import (
    ConcurrentModificationError,
    CounterpartyNotFoundError,
    InvalidEntryError,
    InvalidInputError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.cash_event import CashAllocationModel, CashEventModel
from billing_kernel.models.counterparty import Counterparty
from billing_kernel.models.trade_record import TradeRecord
from billing_kernel.selectors.obligation_selector import ObligationSelector

logger = get_logger("services.ledger_committer")


def balance_delta(direction: CashDirection, amount: Decimal) -> Decimal:
    """Change to what the counterparty owes the plant for one cash movement."""
    return -amount if direction is CashDirection.IN else amount


class LedgerCommitter:
    """
    Applies one cash event.

    Contract:
        ``commit`` must run inside the per-counterparty lock and inside a
        transaction the caller will commit or roll back.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        status_machine: StatusStateMachine | None = None,
        validator: AllocationValidator | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._status = status_machine or StatusStateMachine()
        self._validator = validator or AllocationValidator()

    def commit(
        self,
        *,
        counterparty_id: UUID,
        entries: Sequence[AllocationEntry],
        target_amount: Decimal,
        direction: CashDirection,
        thread: PaymentThread,
        notes: str,
        actor_id: UUID,
    ) -> CashEvent:
        """
        Re-check ``entries`` against current state and apply them.

        Returns:
            The CashEvent DTO of the flushed event.
        """
        # Drop identity-map state so pending amounts are read from the database.
        self._session.expire_all()

        counterparty = self._session.execute(
            select(Counterparty)
            .where(Counterparty.id == counterparty_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if counterparty is None:
            raise CounterpartyNotFoundError(str(counterparty_id))

        if to_decimal(target_amount, "target_amount") <= ZERO:
            raise InvalidInputError("target_amount", target_amount, "must be positive")
        self._validator.check_entries_shape(entries, target_amount)
        live = [e for e in entries if e.allocated_amount > ZERO]

        ids = [e.obligation_id for e in live]
        records = {
            r.id: r
            for r in self._session.scalars(
                select(TradeRecord)
                .where(TradeRecord.id.in_(ids))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        }

        frozen: list[AllocationEntry] = []

        with LogContext.bind(counterparty_id=str(counterparty_id), actor_id=str(actor_id)):
            for entry in live:
                record = records.get(entry.obligation_id)
                oid = str(entry.obligation_id)
                if record is None:
                    raise InvalidEntryError(oid, "no such trade record")
                if record.counterparty_id != counterparty_id:
                    raise InvalidEntryError(oid, "belongs to a different counterparty")
                if record.trade_kind is TradeKind.PENDING_BILL:
                    raise InvalidEntryError(oid, "pending bills are not allocatable")
                if thread is PaymentThread.DIFFERENCE and record.trade_kind is not TradeKind.SALE:
                    raise InvalidEntryError(oid, "only sales carry a difference thread")
                if record.is_reversed:
                    raise ConcurrentModificationError(
                        str(counterparty_id), oid, "trade record was reversed"
                    )

                view = ObligationSelector.project(record, thread)
                if view.settling_direction is not direction:
                    raise InvalidEntryError(oid, f"is not settled by {direction.value} cash")

                total_due, previous_paid, previous_status = record.thread_state(thread)
                current_pending = pending_amount(total_due, previous_paid, thread)
                if entry.allocated_amount > current_pending:
                    logger.warning("allocation_stale", extra={
                        "obligation_id": oid,
                        "allocated_amount": str(entry.allocated_amount),
                        "current_pending": str(current_pending),
                    })
                    raise ConcurrentModificationError(
                        str(counterparty_id),
                        oid,
                        f"allocated {entry.allocated_amount} exceeds current pending {current_pending}",
                    )

                new_paid, new_status = self._status.advance(
                    obligation_id=entry.obligation_id,
                    thread=thread,
                    total_due=total_due,
                    previous_amount_paid=previous_paid,
                    allocated_amount=entry.allocated_amount,
                )
                record.set_thread_payment(thread, new_paid, new_status)
                record.updated_by_id = actor_id

                frozen.append(AllocationEntry(
                    obligation_id=entry.obligation_id,
                    allocated_amount=entry.allocated_amount,
                    previous_amount_paid=previous_paid,
                    new_amount_paid=new_paid,
                    new_status=new_status,
                    previous_status=previous_status,
                ))

            amount = sum((e.allocated_amount for e in frozen), ZERO)
            counterparty.balance = counterparty.balance + balance_delta(direction, amount)
            counterparty.updated_by_id = actor_id

            event = CashEventModel(
                counterparty_id=counterparty_id,
                amount=amount,
                direction=direction.value,
                thread=thread.value,
                notes=notes or "",
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            event.allocations = [
                CashAllocationModel(
                    position=position,
                    obligation_id=line.obligation_id,
                    allocated_amount=line.allocated_amount,
                    previous_amount_paid=line.previous_amount_paid,
                    new_amount_paid=line.new_amount_paid,
                    previous_status=line.previous_status.value,
                    new_status=line.new_status.value,
                )
                for position, line in enumerate(frozen)
            ]
            self._session.add(event)

            try:
                self._session.flush()
            except StaleDataError as exc:
                raise ConcurrentModificationError(
                    str(counterparty_id), None, "trade record version changed"
                ) from exc

            logger.info("cash_event_applied", extra={
                "cash_event_id": str(event.id),
                "amount": str(amount),
                "direction": direction.value,
                "payment_thread": thread.value,
                "allocation_count": len(frozen),
                "balance": str(counterparty.balance),
            })

        return event.to_dto()
