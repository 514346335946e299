"""
Module: billing_services
Responsibility:
    Stateful orchestration between the pure engines and the kernel: the
    ledger committer and the per-counterparty commit locks.

Architecture position:
    Services -- may import billing_kernel and billing_engines.
    MUST NOT import billing_modules or billing_config.
"""

from billing_services.counterparty_locks import (
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    CounterpartyLockRegistry,
    default_lock_registry,
)
from billing_services.ledger_committer import LedgerCommitter, balance_delta

__all__ = [
    "DEFAULT_LOCK_TIMEOUT_SECONDS",
    "CounterpartyLockRegistry",
    "LedgerCommitter",
    "balance_delta",
    "default_lock_registry",
]
