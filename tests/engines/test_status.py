"""Tests for StatusStateMachine (unsigned and signed threads)."""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from billing_engines.status import StatusStateMachine
from billing_kernel.domain.dtos import pending_amount
from billing_kernel.domain.values import PaymentStatus, PaymentThread
from billing_kernel.exceptions import InvalidEntryError

PENDING = PaymentStatus.PENDING
PARTIAL = PaymentStatus.PARTIALLY_PAID
PAID = PaymentStatus.PAID


class TestUnsignedThread:

    @pytest.mark.parametrize("paid,expected", [
        ("0", PENDING),
        ("0.01", PARTIAL),
        ("4999.99", PARTIAL),
        ("5000", PAID),
        ("5000.01", PAID),
    ])
    def test_status(self, paid, expected):
        assert StatusStateMachine.unsigned_status(Decimal("5000"), Decimal(paid)) is expected

    def test_zero_total_is_paid(self):
        assert StatusStateMachine.unsigned_status(Decimal("0"), Decimal("0")) is PAID


class TestSignedThread:

    @pytest.mark.parametrize("total,paid,expected", [
        ("0", "0", PAID),
        ("-2000", "0", PENDING),
        ("-2000", "500", PARTIAL),
        ("-2000", "2000", PAID),
        ("1500", "0", PENDING),
        ("1500", "1499.99", PARTIAL),
        ("1500", "1500", PAID),
    ])
    def test_status(self, total, paid, expected):
        assert StatusStateMachine.signed_status(Decimal(total), Decimal(paid)) is expected

    def test_status_for_dispatches_on_thread(self):
        machine = StatusStateMachine()
        assert machine.status_for(Decimal("-2000"), Decimal("0"), PaymentThread.DIFFERENCE) is PENDING
        assert machine.status_for(Decimal("2000"), Decimal("500"), PaymentThread.PORTAL) is PARTIAL


class TestAdvance:

    def setup_method(self):
        self.machine = StatusStateMachine()

    def test_signed_difference_example(self):
        """totalDue=-2000, paid 500: pending 1500; paying it settles the thread."""
        assert pending_amount(Decimal("-2000"), Decimal("500"), PaymentThread.DIFFERENCE) == Decimal("1500")

        new_paid, status = self.machine.advance(
            obligation_id=uuid4(),
            thread=PaymentThread.DIFFERENCE,
            total_due=Decimal("-2000"),
            previous_amount_paid=Decimal("500"),
            allocated_amount=Decimal("1500"),
        )
        assert new_paid == Decimal("2000")
        assert status is PAID

    def test_partial_payment(self):
        new_paid, status = self.machine.advance(
            obligation_id=uuid4(),
            thread=PaymentThread.PORTAL,
            total_due=Decimal("8000"),
            previous_amount_paid=Decimal("0"),
            allocated_amount=Decimal("5000"),
        )
        assert new_paid == Decimal("5000")
        assert status is PARTIAL

    def test_negative_payment_rejected(self):
        oid = uuid4()
        with pytest.raises(InvalidEntryError) as exc_info:
            self.machine.advance(
                obligation_id=oid,
                thread=PaymentThread.PORTAL,
                total_due=Decimal("100"),
                previous_amount_paid=Decimal("50"),
                allocated_amount=Decimal("-1"),
            )
        assert exc_info.value.obligation_id == str(oid)

    def test_is_forward(self):
        assert StatusStateMachine.is_forward(PENDING, PARTIAL)
        assert StatusStateMachine.is_forward(PAID, PAID)
        assert not StatusStateMachine.is_forward(PAID, PARTIAL)


class TestMonotonicity:

    @settings(max_examples=200, deadline=None)
    @given(
        total=st.decimals(min_value=-50000, max_value=50000, places=2),
        payments=st.lists(st.decimals(min_value=0, max_value=5000, places=2), max_size=10),
        thread=st.sampled_from([PaymentThread.PORTAL, PaymentThread.DIFFERENCE]),
    )
    def test_status_never_regresses(self, total, payments, thread):
        if thread is PaymentThread.PORTAL:
            total = abs(total)
        machine = StatusStateMachine()
        paid = Decimal("0")
        status = machine.status_for(total, paid, thread)
        for amount in payments:
            paid, new_status = machine.advance(
                obligation_id=uuid4(),
                thread=thread,
                total_due=total,
                previous_amount_paid=paid,
                allocated_amount=amount,
            )
            assert StatusStateMachine.is_forward(status, new_status)
            status = new_status

    @settings(max_examples=200, deadline=None)
    @given(
        total=st.decimals(min_value=-50000, max_value=50000, places=2),
        paid=st.decimals(min_value=0, max_value=50000, places=2),
        extra=st.decimals(min_value=0, max_value=1000, places=2),
    )
    def test_pending_non_increasing_while_owed(self, total, paid, extra):
        if paid + extra > abs(total):
            return
        before = pending_amount(total, paid, PaymentThread.DIFFERENCE)
        after = pending_amount(total, paid + extra, PaymentThread.DIFFERENCE)
        assert after <= before
        assert after >= 0
