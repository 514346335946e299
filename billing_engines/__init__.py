"""
Module: billing_engines
Responsibility:
    Package entrypoint that re-exports the pure calculation engines.  This is
    the canonical import surface for billing_services and billing_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel/domain, billing_kernel/exceptions and
    billing_kernel/logging_config.
    MUST NOT import billing_services or billing_modules.

Invariants enforced:
    - Purity: engines never read the clock or the database.
    - Decimal-only arithmetic for every monetary amount.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via ``@traced_engine``
    (see ``billing_engines.tracer``), emitting BILLING_ENGINE_TRACE records.

Usage:
    from billing_engines import AmountCalculator, AllocationPlanner
"""

from billing_engines.allocation import AllocationOrder, AllocationPlanner
from billing_engines.amounts import (
    DEFAULT_GST_RATE,
    DEFAULT_KG_PER_BAG,
    AmountCalculator,
    DerivedAmounts,
)
from billing_engines.status import StatusStateMachine
from billing_engines.tracer import compute_input_fingerprint, traced_engine
from billing_engines.validation import AllocationValidator

__all__ = [
    "AllocationOrder",
    "AllocationPlanner",
    "AllocationValidator",
    "AmountCalculator",
    "DEFAULT_GST_RATE",
    "DEFAULT_KG_PER_BAG",
    "DerivedAmounts",
    "StatusStateMachine",
    "compute_input_fingerprint",
    "traced_engine",
]
