"""
billing_kernel -- persistence and read side for the billing reconciliation
and cash-allocation engine.

Layers (inner to outer): ``domain`` (values, DTOs, clock), ``db`` (SQLAlchemy
base, engine, immutability listeners), ``models`` (ORM), ``selectors``
(read-only projections).  The kernel never imports from ``billing_engines``,
``billing_services``, ``billing_config`` or ``billing_modules``.
"""
