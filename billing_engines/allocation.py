"""
Module: billing_engines.allocation
Responsibility:
    Propose how a single cash amount is split across a counterparty's open
    obligations on one payment thread.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes ObligationView DTOs built by the kernel selectors.

Invariants enforced:
    - Only obligations of the requested counterparty and thread, with
      ``pending_amount > 0`` and whose settling direction matches the
      requested direction, are eligible.
    - Sequential greedy fill: each obligation receives
      ``min(remaining, pending_amount)`` in the configured order until the
      target is exhausted.  No obligation is ever planned beyond its pending
      amount.
    - A returned plan always covers the target exactly:
      ``sum(entries.allocated_amount) == target_amount``.

Failure modes:
    - InvalidInputError if ``target_amount`` is not positive or carries
      more decimal places than money does.
    - NoOpenObligationsError if nothing is eligible.
    - OverallocationError if the target exceeds the total pending; the
      partial plan covering everything owed is attached to the error.

Audit relevance:
    A plan is advisory.  It is stale the moment it is returned; the ledger
    committer re-checks every line against current state.

Usage:
    planner = AllocationPlanner()
    plan = planner.plan(
        counterparty_id=customer_id,
        target_amount=Decimal("10000"),
        direction=CashDirection.IN,
        thread=PaymentThread.PORTAL,
        obligations=selector.for_counterparty(customer_id, PaymentThread.PORTAL),
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from billing_engines.status import StatusStateMachine
from billing_engines.tracer import traced_engine
from billing_kernel.domain.dtos import AllocationEntry, AllocationPlan, ObligationView
from billing_kernel.domain.values import (
    ZERO,
    CashDirection,
    PaymentThread,
    is_money_scale,
    to_decimal,
)
from billing_kernel.exceptions import (
    InvalidInputError,
    NoOpenObligationsError,
    OverallocationError,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class AllocationOrder(str, Enum):
    """Order in which open obligations are settled."""

    OLDEST_FIRST = "oldest_first"  # FIFO by trade date
    NEWEST_FIRST = "newest_first"  # LIFO by trade date
    LARGEST_FIRST = "largest_first"  # By pending amount, then oldest


def _entered_key(view: ObligationView) -> datetime:
    if view.entered_at is None:
        return datetime.min
    return view.entered_at.replace(tzinfo=None)


class AllocationPlanner:
    """
    Greedy sequential allocation of one cash amount.

    Contract:
        Pure function of its inputs.  No I/O, no database access.
    """

    def __init__(
        self,
        order: AllocationOrder = AllocationOrder.OLDEST_FIRST,
        status_machine: StatusStateMachine | None = None,
        decimal_places: int = 2,
    ):
        self.order = AllocationOrder(order)
        self._status = status_machine or StatusStateMachine()
        self._decimal_places = decimal_places

    def eligible(
        self,
        *,
        counterparty_id: UUID,
        direction: CashDirection,
        thread: PaymentThread,
        obligations: Sequence[ObligationView],
    ) -> list[ObligationView]:
        """Obligations this cash movement may settle, in settlement order."""
        candidates = [
            o for o in obligations
            if o.counterparty_id == counterparty_id
            and o.thread is thread
            and o.pending_amount > ZERO
            and o.settling_direction is direction
        ]
        return self._sorted(candidates)

    def _sorted(self, obligations: list[ObligationView]) -> list[ObligationView]:
        match self.order:
            case AllocationOrder.NEWEST_FIRST:
                return sorted(
                    obligations,
                    key=lambda o: (o.trade_date, _entered_key(o), str(o.obligation_id)),
                    reverse=True,
                )
            case AllocationOrder.LARGEST_FIRST:
                return sorted(
                    obligations,
                    key=lambda o: (-o.pending_amount, o.trade_date, _entered_key(o), str(o.obligation_id)),
                )
            case _:
                return sorted(
                    obligations,
                    key=lambda o: (o.trade_date, _entered_key(o), str(o.obligation_id)),
                )

    @traced_engine(
        "allocation_planner",
        "1.0",
        fingerprint_fields=("counterparty_id", "target_amount", "direction", "thread"),
    )
    def plan(
        self,
        *,
        counterparty_id: UUID,
        target_amount: Decimal | str | int,
        direction: CashDirection,
        thread: PaymentThread,
        obligations: Sequence[ObligationView],
    ) -> AllocationPlan:
        """
        Split ``target_amount`` across eligible obligations.

        Returns:
            AllocationPlan whose entries sum to ``target_amount`` exactly.

        Raises:
            InvalidInputError, NoOpenObligationsError, OverallocationError.
        """
        target = to_decimal(target_amount, "target_amount")
        if target <= ZERO:
            raise InvalidInputError("target_amount", target, "must be positive")
        if not is_money_scale(target, self._decimal_places):
            raise InvalidInputError(
                "target_amount", target, f"more than {self._decimal_places} decimal places"
            )

        logger.info("allocation_planning_started", extra={
            "counterparty_id": str(counterparty_id),
            "target_amount": str(target),
            "direction": direction.value,
            "payment_thread": thread.value,
            "order": self.order.value,
        })

        candidates = self.eligible(
            counterparty_id=counterparty_id,
            direction=direction,
            thread=thread,
            obligations=obligations,
        )
        if not candidates:
            logger.warning("allocation_no_open_obligations", extra={
                "counterparty_id": str(counterparty_id),
                "direction": direction.value,
                "payment_thread": thread.value,
            })
            raise NoOpenObligationsError(str(counterparty_id), direction.value, thread.value)

        remaining = target
        entries: list[AllocationEntry] = []

        for obligation in candidates:
            if remaining <= ZERO:
                break

            to_allocate = min(remaining, obligation.pending_amount)
            remaining -= to_allocate

            new_amount_paid, new_status = self._status.advance(
                obligation_id=obligation.obligation_id,
                thread=thread,
                total_due=obligation.total_due,
                previous_amount_paid=obligation.amount_paid,
                allocated_amount=to_allocate,
            )
            entries.append(
                AllocationEntry(
                    obligation_id=obligation.obligation_id,
                    allocated_amount=to_allocate,
                    previous_amount_paid=obligation.amount_paid,
                    new_amount_paid=new_amount_paid,
                    new_status=new_status,
                    previous_status=obligation.status,
                )
            )

        if remaining > ZERO:
            allocatable = target - remaining
            logger.warning("allocation_exceeds_pending", extra={
                "counterparty_id": str(counterparty_id),
                "target_amount": str(target),
                "allocatable_amount": str(allocatable),
                "remaining_amount": str(remaining),
            })
            raise OverallocationError(
                target_amount=target,
                allocatable_amount=allocatable,
                entries=tuple(entries),
            )

        logger.info("allocation_planning_completed", extra={
            "counterparty_id": str(counterparty_id),
            "target_amount": str(target),
            "obligations_funded": len(entries),
            "eligible_count": len(candidates),
        })

        return AllocationPlan(
            counterparty_id=counterparty_id,
            target_amount=target,
            direction=direction,
            thread=thread,
            entries=tuple(entries),
        )
