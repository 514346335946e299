"""Trade entry, editing, reversal and pending-bill clearance."""

from billing_modules.trade.service import TradeService, balance_contribution

__all__ = ["TradeService", "balance_contribution"]
