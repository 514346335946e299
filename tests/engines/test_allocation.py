"""
Tests for AllocationPlanner.

Covers:
- FIFO worked examples
- Eligibility filtering by counterparty, thread, sign and pending amount
- Alternative orders
- Overallocation and no-open-obligation errors
- Conservation (hypothesis)
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from billing_engines.allocation import AllocationOrder, AllocationPlanner
from billing_kernel.domain.dtos import ObligationView
from billing_kernel.domain.values import CashDirection, PaymentStatus, PaymentThread, TradeKind
from billing_kernel.exceptions import (
    InvalidInputError,
    NoOpenObligationsError,
    OverallocationError,
)

CUSTOMER = uuid4()


def _view(
    total_due,
    amount_paid="0",
    *,
    trade_date=date(2024, 4, 1),
    thread=PaymentThread.PORTAL,
    kind=TradeKind.SALE,
    counterparty_id: UUID = CUSTOMER,
    bill_number="",
    entered_at=None,
) -> ObligationView:
    return ObligationView(
        obligation_id=uuid4(),
        thread=thread,
        kind=kind,
        counterparty_id=counterparty_id,
        trade_date=trade_date,
        bill_number=bill_number,
        total_due=Decimal(total_due),
        amount_paid=Decimal(amount_paid),
        status=PaymentStatus.PENDING,
        entered_at=entered_at,
    )


def _plan(planner, amount, obligations, direction=CashDirection.IN, thread=PaymentThread.PORTAL):
    return planner.plan(
        counterparty_id=CUSTOMER,
        target_amount=Decimal(amount),
        direction=direction,
        thread=thread,
        obligations=obligations,
    )


class TestFifoExamples:

    def setup_method(self):
        self.planner = AllocationPlanner()
        self.bill_a = _view("5000", trade_date=date(2024, 4, 1), bill_number="A")
        self.bill_b = _view("8000", trade_date=date(2024, 4, 2), bill_number="B")

    def test_cash_in_10000_over_two_bills(self):
        plan = _plan(self.planner, "10000", [self.bill_b, self.bill_a])

        assert [e.obligation_id for e in plan.entries] == [
            self.bill_a.obligation_id, self.bill_b.obligation_id,
        ]
        first, second = plan.entries
        assert first.allocated_amount == Decimal("5000")
        assert first.new_status is PaymentStatus.PAID
        assert second.allocated_amount == Decimal("5000")
        assert second.new_status is PaymentStatus.PARTIALLY_PAID
        assert second.new_amount_paid == Decimal("5000")
        assert Decimal("8000") - second.new_amount_paid == Decimal("3000")
        assert plan.total_allocated == Decimal("10000")

    def test_cash_in_15000_overallocates(self):
        with pytest.raises(OverallocationError) as exc_info:
            _plan(self.planner, "15000", [self.bill_a, self.bill_b])

        err = exc_info.value
        assert err.code == "OVERALLOCATION"
        assert err.remaining_amount == Decimal("2000")
        assert err.allocatable_amount == Decimal("13000")
        assert [e.allocated_amount for e in err.entries] == [Decimal("5000"), Decimal("8000")]

    def test_exact_total_settles_everything(self):
        plan = _plan(self.planner, "13000", [self.bill_a, self.bill_b])
        assert all(e.new_status is PaymentStatus.PAID for e in plan.entries)

    def test_small_amount_touches_only_oldest(self):
        plan = _plan(self.planner, "100", [self.bill_a, self.bill_b])
        assert len(plan.entries) == 1
        assert plan.entries[0].obligation_id == self.bill_a.obligation_id

    def test_partly_paid_obligation_uses_pending(self):
        partly = _view("5000", "4000", trade_date=date(2024, 3, 1))
        plan = _plan(self.planner, "1500", [partly, self.bill_b])
        assert plan.entries[0].allocated_amount == Decimal("1000")
        assert plan.entries[0].previous_amount_paid == Decimal("4000")
        assert plan.entries[1].allocated_amount == Decimal("500")

    def test_same_day_ordered_by_entry_time(self):
        later = _view("100", entered_at=datetime(2024, 4, 1, 10))
        earlier = _view("100", entered_at=datetime(2024, 4, 1, 9))
        plan = _plan(self.planner, "150", [later, earlier])
        assert plan.entries[0].obligation_id == earlier.obligation_id


class TestEligibility:

    def setup_method(self):
        self.planner = AllocationPlanner()

    def test_other_counterparty_ignored(self):
        foreign = _view("5000", counterparty_id=uuid4())
        with pytest.raises(NoOpenObligationsError) as exc_info:
            _plan(self.planner, "100", [foreign])
        assert exc_info.value.counterparty_id == str(CUSTOMER)

    def test_settled_obligation_ignored(self):
        with pytest.raises(NoOpenObligationsError):
            _plan(self.planner, "100", [_view("5000", "5000")])

    def test_purchase_settled_by_cash_out(self):
        purchase = _view("7000", kind=TradeKind.PURCHASE)
        sale = _view("3000")

        plan = _plan(self.planner, "7000", [purchase, sale], direction=CashDirection.OUT)
        assert [e.obligation_id for e in plan.entries] == [purchase.obligation_id]

        with pytest.raises(OverallocationError):
            _plan(self.planner, "7000", [purchase, sale], direction=CashDirection.IN)

    def test_difference_cash_in_targets_positive_differences(self):
        owed_to_us = _view("1500", thread=PaymentThread.DIFFERENCE)
        owed_to_them = _view("-2000", thread=PaymentThread.DIFFERENCE)

        plan = _plan(
            self.planner, "1500", [owed_to_them, owed_to_us],
            thread=PaymentThread.DIFFERENCE,
        )
        assert [e.obligation_id for e in plan.entries] == [owed_to_us.obligation_id]

    def test_difference_cash_out_targets_negative_differences(self):
        owed_to_them = _view("-2000", "500", thread=PaymentThread.DIFFERENCE)

        plan = _plan(
            self.planner, "1500", [owed_to_them],
            direction=CashDirection.OUT, thread=PaymentThread.DIFFERENCE,
        )
        entry = plan.entries[0]
        assert entry.new_amount_paid == Decimal("2000")
        assert entry.new_status is PaymentStatus.PAID

    def test_zero_difference_never_eligible(self):
        with pytest.raises(NoOpenObligationsError):
            _plan(self.planner, "1", [_view("0", thread=PaymentThread.DIFFERENCE)],
                  thread=PaymentThread.DIFFERENCE)

    def test_portal_views_ignored_on_difference_thread(self):
        with pytest.raises(NoOpenObligationsError):
            _plan(self.planner, "1", [_view("100")], thread=PaymentThread.DIFFERENCE)

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_non_positive_target_rejected(self, amount):
        with pytest.raises(InvalidInputError):
            _plan(self.planner, amount, [_view("100")])

    def test_sub_cent_target_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            _plan(self.planner, "100.005", [_view("1000")])
        assert exc_info.value.field == "target_amount"

    def test_scale_follows_configured_places(self):
        plan = _plan(AllocationPlanner(decimal_places=3), "100.005", [_view("1000")])
        assert plan.total_allocated == Decimal("100.005")


class TestOrders:

    def setup_method(self):
        self.old = _view("100", trade_date=date(2024, 1, 1))
        self.mid = _view("500", trade_date=date(2024, 2, 1))
        self.new = _view("200", trade_date=date(2024, 3, 1))
        self.obligations = [self.mid, self.new, self.old]

    def _first(self, order):
        plan = _plan(AllocationPlanner(order), "50", self.obligations)
        return plan.entries[0].obligation_id

    def test_oldest_first(self):
        assert self._first(AllocationOrder.OLDEST_FIRST) == self.old.obligation_id

    def test_newest_first(self):
        assert self._first(AllocationOrder.NEWEST_FIRST) == self.new.obligation_id

    def test_largest_first(self):
        assert self._first(AllocationOrder.LARGEST_FIRST) == self.mid.obligation_id

    def test_order_accepts_string(self):
        assert AllocationPlanner("newest_first").order is AllocationOrder.NEWEST_FIRST


class TestConservation:

    @settings(max_examples=150, deadline=None)
    @given(
        pendings=st.lists(
            st.decimals(min_value="0.01", max_value=10000, places=2), min_size=1, max_size=8,
        ),
        fraction=st.decimals(min_value="0.01", max_value=1, places=2),
    )
    def test_plan_covers_target_exactly(self, pendings, fraction):
        obligations = [
            _view(p, trade_date=date(2024, 1, 1 + i)) for i, p in enumerate(pendings)
        ]
        total = sum(pendings)
        target = (total * fraction).quantize(Decimal("0.01"))
        if target <= 0:
            return

        plan = _plan(AllocationPlanner(), target, obligations)

        assert plan.total_allocated == target
        by_id = {o.obligation_id: o for o in obligations}
        for entry in plan.entries:
            assert Decimal("0") < entry.allocated_amount <= by_id[entry.obligation_id].pending_amount
