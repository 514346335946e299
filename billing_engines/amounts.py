"""
Module: billing_engines.amounts
Responsibility:
    Derive every monetary field of a trade record from its commercial terms:
    quantity, original rate per kg, discount mode and the GST rate.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel/domain and billing_kernel/logging_config.

Invariants enforced:
    - Derived amounts are a pure function of the inputs.
    - Rounding: portal, GST and revenue amounts are each rounded to the
      configured decimal places (ROUND_HALF_UP by default) at the step that
      produces them.  Totals and the difference are sums/differences of
      already-rounded values, so the identities
          total_portal_amount  == portal_amount + gst_amount
          total_revenue_amount == revenue_amount + gst_amount
          difference_amount    == total_revenue_amount - total_portal_amount
      hold exactly, to the cent.
    - GST is computed on the portal side only and reused on the revenue side.

Failure modes:
    - InvalidInputError on negative quantity or rate.
    - InvalidInputError on DISCOUNT_OR_PREMIUM without a rate, or with a
      negative rate.
    - InvalidInputError on INDIRECT_DISCOUNT whose extra quantity is negative
      or exceeds the quantity.

Usage:
    from billing_engines.amounts import AmountCalculator
    from billing_kernel.domain.values import DiscountOrPremium

    amounts = AmountCalculator().compute(
        quantity_kg=Decimal("1000"),
        rate_per_kg=Decimal("30"),
        discount_mode=DiscountOrPremium(rate_per_kg=Decimal("28")),
    )
    amounts.difference_amount  # Decimal("-2000.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from billing_engines.tracer import traced_engine
from billing_kernel.domain.values import (
    ZERO,
    DiscountMode,
    DiscountOrPremium,
    IndirectDiscount,
    NoDiscount,
    round_money,
    to_decimal,
)
from billing_kernel.exceptions import InvalidInputError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.amounts")

DEFAULT_GST_RATE = Decimal("0.05")
DEFAULT_KG_PER_BAG = Decimal("25")


@dataclass(frozen=True)
class DerivedAmounts:
    """
    Every derived monetary field of one trade record.

    Guarantees:
        - All fields are rounded to the calculator's decimal places.
        - ``difference_amount`` is signed: positive means the counterparty
          owes more than invoiced, negative means the plant owes them.
    """

    portal_amount: Decimal
    gst_amount: Decimal
    total_portal_amount: Decimal
    revenue_amount: Decimal
    total_revenue_amount: Decimal
    difference_amount: Decimal


class AmountCalculator:
    """
    Pure calculator for trade-record amounts.

    Contract:
        ``compute`` returns a new DerivedAmounts; it never mutates a record.
        Callers copy the result onto the record (``TradeRecord.apply_amounts``).
    """

    def __init__(
        self,
        gst_rate: Decimal = DEFAULT_GST_RATE,
        decimal_places: int = 2,
        rounding: str = ROUND_HALF_UP,
        kg_per_bag: Decimal = DEFAULT_KG_PER_BAG,
    ):
        self.gst_rate = gst_rate
        self.decimal_places = decimal_places
        self.rounding = rounding
        self.kg_per_bag = kg_per_bag

    def _round(self, value: Decimal) -> Decimal:
        return round_money(value, self.decimal_places, self.rounding)

    @traced_engine(
        "amount_calculator",
        "1.0",
        fingerprint_fields=("quantity_kg", "rate_per_kg", "discount_mode"),
    )
    def compute(
        self,
        *,
        quantity_kg: Decimal | str | int,
        rate_per_kg: Decimal | str | int,
        discount_mode: DiscountMode | None = None,
    ) -> DerivedAmounts:
        """
        Derive portal, GST, revenue and difference amounts.

        Raises:
            InvalidInputError: See module docstring.
        """
        quantity = to_decimal(quantity_kg, "quantity_kg")
        rate = to_decimal(rate_per_kg, "rate_per_kg")
        mode = discount_mode if discount_mode is not None else NoDiscount()

        if quantity < ZERO:
            raise InvalidInputError("quantity_kg", quantity, "must not be negative")
        if rate < ZERO:
            raise InvalidInputError("rate_per_kg", rate, "must not be negative")

        portal_amount = self._round(quantity * rate)
        gst_amount = self._round(portal_amount * self.gst_rate)
        total_portal_amount = portal_amount + gst_amount

        revenue_amount = self._round(self._revenue_base(quantity, rate, mode))
        total_revenue_amount = revenue_amount + gst_amount
        difference_amount = total_revenue_amount - total_portal_amount

        logger.debug("trade_amounts_computed", extra={
            "quantity_kg": str(quantity),
            "rate_per_kg": str(rate),
            "discount_kind": mode.kind.value,
            "total_portal_amount": str(total_portal_amount),
            "difference_amount": str(difference_amount),
        })

        return DerivedAmounts(
            portal_amount=portal_amount,
            gst_amount=gst_amount,
            total_portal_amount=total_portal_amount,
            revenue_amount=revenue_amount,
            total_revenue_amount=total_revenue_amount,
            difference_amount=difference_amount,
        )

    def _revenue_base(self, quantity: Decimal, rate: Decimal, mode: DiscountMode) -> Decimal:
        """Unrounded revenue amount for the discount mode."""
        match mode:
            case NoDiscount():
                return quantity * rate
            case DiscountOrPremium(rate_per_kg=None):
                raise InvalidInputError(
                    "discounted_rate_per_kg", None,
                    "required for DISCOUNT_OR_PREMIUM",
                )
            case DiscountOrPremium(rate_per_kg=discounted):
                discounted = to_decimal(discounted, "discounted_rate_per_kg")
                if discounted < ZERO:
                    raise InvalidInputError(
                        "discounted_rate_per_kg", discounted, "must not be negative"
                    )
                return quantity * discounted
            case IndirectDiscount(extra_quantity_kg=extra):
                extra = to_decimal(extra, "extra_quantity_kg")
                if extra < ZERO:
                    raise InvalidInputError(
                        "extra_quantity_kg", extra, "must not be negative"
                    )
                if extra > quantity:
                    raise InvalidInputError(
                        "extra_quantity_kg", extra,
                        f"exceeds quantity {quantity}",
                    )
                return (quantity - extra) * rate
            case _:
                raise InvalidInputError("discount_mode", mode, "unknown discount mode")

    def bags_for(self, quantity_kg: Decimal | str | int) -> int:
        """Number of bags for a quantity.  Display and record-keeping only."""
        quantity = to_decimal(quantity_kg, "quantity_kg")
        if quantity < ZERO:
            raise InvalidInputError("quantity_kg", quantity, "must not be negative")
        return int((quantity / self.kg_per_bag).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
