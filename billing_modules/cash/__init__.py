"""Cash settlement: plan, validate and commit cash events."""

from billing_modules.cash.service import CashSettlementService

__all__ = ["CashSettlementService"]
