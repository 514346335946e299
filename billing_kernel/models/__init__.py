"""ORM models for the billing kernel.  Importing this package registers every table."""

from billing_kernel.models.cash_event import CashAllocationModel, CashEventModel
from billing_kernel.models.counterparty import Counterparty
from billing_kernel.models.trade_record import TradeRecord

__all__ = [
    "CashAllocationModel",
    "CashEventModel",
    "Counterparty",
    "TradeRecord",
]
