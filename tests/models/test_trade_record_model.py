"""Tests for TradeRecord accessors and the CashEvent record shape."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.domain.dtos import AllocationEntry, CashEvent
from billing_kernel.domain.values import (
    CashDirection,
    DiscountKind,
    DiscountOrPremium,
    IndirectDiscount,
    NoDiscount,
    PaymentStatus,
    PaymentThread,
    TradeKind,
)


class TestTradeRecordAccessors:

    def test_sale_carries_both_threads(self, create_counterparty, create_sale):
        sale = create_sale(
            create_counterparty(), quantity_kg="1000", rate_per_kg="30",
            discount_mode=DiscountOrPremium(rate_per_kg=Decimal("28")),
        )
        assert sale.thread_state(PaymentThread.DIFFERENCE) == (
            Decimal("-2000.00"), Decimal("0"), PaymentStatus.PENDING,
        )

    def test_purchase_has_no_difference_thread(self, create_counterparty, create_purchase):
        purchase = create_purchase(create_counterparty())
        assert purchase.thread_state(PaymentThread.PORTAL)[2] is PaymentStatus.PENDING
        with pytest.raises(ValueError):
            purchase.thread_state(PaymentThread.DIFFERENCE)

    @pytest.mark.parametrize("mode,kind", [
        (NoDiscount(), DiscountKind.NONE),
        (DiscountOrPremium(rate_per_kg=Decimal("28")), DiscountKind.DISCOUNT_OR_PREMIUM),
        (IndirectDiscount(extra_quantity_kg=Decimal("50")), DiscountKind.INDIRECT_DISCOUNT),
    ])
    def test_discount_mode_round_trips_through_columns(
        self, session, create_counterparty, create_sale, mode, kind,
    ):
        sale = create_sale(create_counterparty(), quantity_kg="1000", rate_per_kg="30", discount_mode=mode)
        assert sale.discount_kind == kind.value

        session.expire_all()
        reloaded = session.get(type(sale), sale.id)
        assert reloaded.discount_mode.kind is kind
        assert reloaded.trade_kind is TradeKind.SALE

    def test_version_increments_on_update(self, session, trade_service, create_counterparty, create_sale, test_actor_id):
        sale = create_sale(create_counterparty())
        assert sale.version == 1
        trade_service.edit_trade(sale.id, test_actor_id, rate_per_kg=Decimal("11"))
        assert sale.version == 2


class TestCashEventRecord:

    def test_to_record_shape(self):
        obligation_id = uuid4()
        event = CashEvent(
            event_id=uuid4(),
            amount=Decimal("10000"),
            direction=CashDirection.IN,
            thread=PaymentThread.PORTAL,
            counterparty_id=uuid4(),
            notes="cheque",
            created_at=datetime(2024, 4, 1, 9, 0, tzinfo=timezone.utc),
            allocations=(
                AllocationEntry(
                    obligation_id=obligation_id,
                    allocated_amount=Decimal("5000"),
                    previous_amount_paid=Decimal("0"),
                    new_amount_paid=Decimal("5000"),
                    new_status=PaymentStatus.PAID,
                ),
            ),
        )

        record = event.to_record()

        assert record["amount"] == "10000.00"
        assert record["direction"] == "IN"
        assert record["createdAt"] == "2024-04-01T09:00:00+00:00"
        assert record["allocations"] == [{
            "obligationId": str(obligation_id),
            "allocatedAmount": "5000.00",
            "previousAmountPaid": "0.00",
            "newAmountPaid": "5000.00",
            "previousStatus": "PENDING",
            "newStatus": "PAID",
        }]
