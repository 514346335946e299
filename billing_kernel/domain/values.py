"""
Values -- Immutable domain value types for billing.

Responsibility:
    Enumerations shared by every layer (trade kind, payment status, thread,
    cash direction), the DiscountMode tagged union, and the Decimal helpers
    that every monetary computation goes through.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by engines, selectors, services and modules.

Invariants enforced:
    - Monetary and quantity values are Decimal, never float.
    - ``round_money`` is the only sanctioned rounding function for money.

Failure modes:
    - InvalidInputError when a value cannot be converted to Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeAlias

from billing_kernel.exceptions import InvalidInputError

ZERO = Decimal("0")


class TradeKind(str, Enum):
    """Variant of a trade record."""

    SALE = "SALE"
    PURCHASE = "PURCHASE"
    PENDING_BILL = "PENDING_BILL"


class PaymentStatus(str, Enum):
    """Tri-state payment status, one per thread per trade record."""

    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class PaymentThread(str, Enum):
    """
    Independent payment tracks a trade record can carry.

    PORTAL is the invoiced (portal/purchase) amount and is never negative.
    DIFFERENCE is the signed revenue-minus-portal amount, sales only.
    """

    PORTAL = "PORTAL"
    DIFFERENCE = "DIFFERENCE"


class CashDirection(str, Enum):
    """Direction of a cash movement, seen from the plant."""

    IN = "IN"  # Counterparty pays the plant
    OUT = "OUT"  # Plant pays the counterparty


class TradeStatus(str, Enum):
    """Record lifecycle. Records are never deleted, only reversed."""

    APPROVED = "APPROVED"
    REVERSED = "REVERSED"


class BillingStatus(str, Enum):
    """Pending bill clearance state."""

    PENDING_BILLED = "PENDING_BILLED"
    BILLED = "BILLED"


class DiscountKind(str, Enum):
    """Persisted tag of a DiscountMode."""

    NONE = "NONE"
    DISCOUNT_OR_PREMIUM = "DISCOUNT_OR_PREMIUM"
    INDIRECT_DISCOUNT = "INDIRECT_DISCOUNT"


# ---------------------------------------------------------------------------
# DiscountMode tagged union
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoDiscount:
    """Revenue equals portal amount."""

    @property
    def kind(self) -> DiscountKind:
        return DiscountKind.NONE


@dataclass(frozen=True)
class DiscountOrPremium:
    """Revenue is computed at a different per-kg rate (lower or higher)."""

    rate_per_kg: Decimal | None = None

    @property
    def kind(self) -> DiscountKind:
        return DiscountKind.DISCOUNT_OR_PREMIUM


@dataclass(frozen=True)
class IndirectDiscount:
    """Revenue excludes an extra quantity handed over free of charge."""

    extra_quantity_kg: Decimal

    @property
    def kind(self) -> DiscountKind:
        return DiscountKind.INDIRECT_DISCOUNT


DiscountMode: TypeAlias = NoDiscount | DiscountOrPremium | IndirectDiscount


def discount_mode_from_columns(
    kind: DiscountKind | str,
    discounted_rate_per_kg: Decimal | None,
    extra_quantity_kg: Decimal | None,
) -> DiscountMode:
    """Rebuild a DiscountMode from its persisted columns."""
    match DiscountKind(kind):
        case DiscountKind.NONE:
            return NoDiscount()
        case DiscountKind.DISCOUNT_OR_PREMIUM:
            return DiscountOrPremium(rate_per_kg=discounted_rate_per_kg)
        case DiscountKind.INDIRECT_DISCOUNT:
            return IndirectDiscount(extra_quantity_kg=extra_quantity_kg or ZERO)


def discount_mode_columns(mode: DiscountMode) -> dict[str, Any]:
    """Flatten a DiscountMode into its persisted columns."""
    match mode:
        case DiscountOrPremium(rate_per_kg=rate):
            return {
                "discount_kind": DiscountKind.DISCOUNT_OR_PREMIUM,
                "discounted_rate_per_kg": rate,
                "extra_quantity_kg": None,
            }
        case IndirectDiscount(extra_quantity_kg=extra):
            return {
                "discount_kind": DiscountKind.INDIRECT_DISCOUNT,
                "discounted_rate_per_kg": None,
                "extra_quantity_kg": extra,
            }
        case _:
            return {
                "discount_kind": DiscountKind.NONE,
                "discounted_rate_per_kg": None,
                "extra_quantity_kg": None,
            }


# ---------------------------------------------------------------------------
# Decimal helpers
# ---------------------------------------------------------------------------


def to_decimal(value: Decimal | str | int | float, field: str) -> Decimal:
    """
    Convert a caller-supplied number to Decimal.

    Floats go through ``str`` so that ``30.1`` becomes ``Decimal("30.1")``
    rather than its binary expansion.

    Raises:
        InvalidInputError: If the value is None, a bool, or not numeric.
    """
    if value is None or isinstance(value, bool):
        raise InvalidInputError(field, value, "a number is required")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise InvalidInputError(field, value, "not a number") from e
    if not result.is_finite():
        raise InvalidInputError(field, value, "must be finite")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = ROUND_HALF_UP,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the ONLY sanctioned rounding function for money.  Printed
    statements depend on it being applied identically everywhere.
    """
    quantum = Decimal(10) ** -decimal_places
    return value.quantize(quantum, rounding=rounding)


def is_money_scale(value: Decimal, decimal_places: int = 2) -> bool:
    """True if ``value`` carries no digits beyond ``decimal_places``."""
    return value == round_money(value, decimal_places)
