"""
BillingConfig schema.

The single frozen runtime artifact produced by ``billing_config.loader``.
Values are already parsed into their runtime types (Decimal rates, the
rounding-mode constant, the AllocationOrder enum).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from billing_engines.allocation import AllocationOrder


@dataclass(frozen=True)
class BillingConfig:
    """Engine settings for one installation."""

    gst_rate: Decimal = Decimal("0.05")
    kg_per_bag: Decimal = Decimal("25")
    money_decimal_places: int = 2
    rounding_mode: str = ROUND_HALF_UP
    allocation_order: AllocationOrder = AllocationOrder.OLDEST_FIRST
    lock_timeout_seconds: float = 10.0
    database_url: str = "sqlite:///billing.db"
    source: str = "<defaults>"
