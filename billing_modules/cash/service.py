"""
Cash Settlement Module Service - Plan, validate and commit cash events.

Thin glue layer that:
1. Calls AmountCalculator for trade amount previews
2. Reads ObligationViews through ObligationSelector
3. Calls AllocationPlanner and AllocationValidator
4. Calls LedgerCommitter inside the per-counterparty lock

All computation lives in engines.  All persistence lives in the kernel and
LedgerCommitter.  This service owns the transaction boundary.

Usage:
    service = CashSettlementService(session, clock=clock)
    plan = service.plan_allocation(
        customer_id, Decimal("15000"), CashDirection.IN, PaymentThread.PORTAL,
    )
    event = service.commit_cash_event(
        plan.entries, CashDirection.IN, "cheque 1182",
        counterparty_id=customer_id,
        thread=PaymentThread.PORTAL,
        actor_id=actor_id,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from billing_config import BillingConfig, get_active_config
from billing_engines.allocation import AllocationPlanner
from billing_engines.amounts import AmountCalculator, DerivedAmounts
from billing_engines.status import StatusStateMachine
from billing_engines.validation import AllocationValidator
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import (
    AllocationEntry,
    AllocationPlan,
    CashEvent,
    DaySummary,
    ObligationView,
)
from billing_kernel.domain.values import (
    ZERO,
    CashDirection,
    DiscountMode,
    PaymentThread,
    to_decimal,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.selectors.cash_event_selector import CashEventSelector
from billing_kernel.selectors.obligation_selector import ObligationSelector
from billing_services.counterparty_locks import (
    CounterpartyLockRegistry,
    default_lock_registry,
)
from billing_services.ledger_committer import LedgerCommitter

logger = get_logger("modules.cash.service")


class CashSettlementService:
    """
    The engine's four external operations, end to end.

    Engine composition:
    - AmountCalculator: derived trade amounts
    - AllocationPlanner: greedy split in the configured order
    - AllocationValidator: shape and bounds of edited splits
    - LedgerCommitter: atomic apply with optimistic re-check

    Transaction boundary: this service commits on success, rolls back on failure.
    """

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        lock_registry: CounterpartyLockRegistry | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._locks = lock_registry or default_lock_registry()

        status = StatusStateMachine()
        places = self._config.money_decimal_places
        self._calculator = AmountCalculator(
            gst_rate=self._config.gst_rate,
            decimal_places=places,
            rounding=self._config.rounding_mode,
            kg_per_bag=self._config.kg_per_bag,
        )
        self._planner = AllocationPlanner(self._config.allocation_order, status, decimal_places=places)
        self._validator = AllocationValidator(decimal_places=places)
        self._committer = LedgerCommitter(session, self._clock, status, self._validator)
        self._obligations = ObligationSelector(session)
        self._cash_events = CashEventSelector(session)

    # =========================================================================
    # Preview
    # =========================================================================

    def compute_trade_amounts(
        self,
        quantity_kg: Decimal,
        rate_per_kg: Decimal,
        discount_mode: DiscountMode | None = None,
    ) -> DerivedAmounts:
        """Derived amounts for a trade being entered.  No state is touched."""
        return self._calculator.compute(
            quantity_kg=quantity_kg,
            rate_per_kg=rate_per_kg,
            discount_mode=discount_mode,
        )

    def obligations(
        self,
        counterparty_id: UUID,
        thread: PaymentThread,
        include_settled: bool = False,
    ) -> list[ObligationView]:
        """Current obligations for live display."""
        return self._obligations.for_counterparty(counterparty_id, thread, include_settled)

    # =========================================================================
    # Plan / validate
    # =========================================================================

    def plan_allocation(
        self,
        counterparty_id: UUID,
        amount: Decimal,
        direction: CashDirection,
        thread: PaymentThread,
    ) -> AllocationPlan:
        """
        Propose a split of ``amount``.  Advisory only; no lock is taken.

        Raises:
            InvalidInputError, NoOpenObligationsError, OverallocationError.
        """
        with LogContext.bind(counterparty_id=str(counterparty_id)):
            return self._planner.plan(
                counterparty_id=counterparty_id,
                target_amount=amount,
                direction=direction,
                thread=thread,
                obligations=self._obligations.for_counterparty(counterparty_id, thread),
            )

    def validate_allocation(
        self,
        entries: Sequence[AllocationEntry],
        target_amount: Decimal,
        *,
        counterparty_id: UUID,
        thread: PaymentThread,
        direction: CashDirection,
    ) -> None:
        """
        Check a possibly edited split against current obligations.

        Raises:
            InvalidEntryError, AllocationSumMismatchError.
        """
        self._validator.validate(
            entries=entries,
            target_amount=target_amount,
            obligations=self._obligations.for_counterparty(counterparty_id, thread),
            counterparty_id=counterparty_id,
            thread=thread,
            direction=direction,
        )

    # =========================================================================
    # Commit
    # =========================================================================

    def commit_cash_event(
        self,
        entries: Sequence[AllocationEntry],
        direction: CashDirection,
        notes: str,
        *,
        counterparty_id: UUID,
        thread: PaymentThread,
        actor_id: UUID,
        amount: Decimal | None = None,
    ) -> CashEvent:
        """
        Apply ``entries`` as one cash event.

        ``amount`` defaults to the sum of the entries; when given, the
        entries must add up to it exactly.

        Raises:
            ConcurrentModificationError: State moved since planning; re-plan.
            LockTimeoutError: Another commit for the counterparty held the lock.
            InvalidEntryError, AllocationSumMismatchError: Malformed entries.
        """
        target = (
            to_decimal(amount, "amount") if amount is not None
            else sum((e.allocated_amount for e in entries), ZERO)
        )

        with LogContext.bind(counterparty_id=str(counterparty_id), actor_id=str(actor_id)):
            logger.info("cash_event_commit_started", extra={
                "amount": str(target),
                "direction": direction.value,
                "payment_thread": thread.value,
                "entry_count": len(entries),
            })
            with self._locks.hold(counterparty_id, self._config.lock_timeout_seconds):
                try:
                    event = self._committer.commit(
                        counterparty_id=counterparty_id,
                        entries=entries,
                        target_amount=target,
                        direction=direction,
                        thread=thread,
                        notes=notes,
                        actor_id=actor_id,
                    )
                    self._session.commit()
                except Exception:
                    self._session.rollback()
                    logger.warning("cash_event_commit_rolled_back", exc_info=True)
                    raise

            logger.info("cash_event_committed", extra={
                "cash_event_id": str(event.event_id),
                "amount": str(event.amount),
            })
            return event

    # =========================================================================
    # History
    # =========================================================================

    def history(self, counterparty_id: UUID, limit: int | None = None) -> list[CashEvent]:
        return self._cash_events.history(counterparty_id, limit)

    def day_summary(self, day: date) -> DaySummary:
        return self._cash_events.day_summary(day)
