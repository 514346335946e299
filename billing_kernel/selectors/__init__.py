"""Read-only query selectors returning frozen DTOs."""

from billing_kernel.selectors.base import BaseSelector
from billing_kernel.selectors.cash_event_selector import CashEventSelector
from billing_kernel.selectors.obligation_selector import ObligationSelector

__all__ = ["BaseSelector", "CashEventSelector", "ObligationSelector"]
