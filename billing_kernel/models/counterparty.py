"""
Module: billing_kernel.models.counterparty
Responsibility: ORM persistence for counterparties (customers and suppliers)
    that the plant trades and settles cash with.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``code`` is unique.
    - ``balance`` is what the counterparty owes the plant.  It is mutated only
      by TradeService (trade entry, edit, reversal) and LedgerCommitter (cash
      events), always inside the same transaction as the change it reflects.

Failure modes:
    - IntegrityError on duplicate code (uq_counterparty_code constraint).
"""

from decimal import Decimal

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class Counterparty(TrackedBase):
    """
    Customer or supplier the plant trades with.

    Contract:
        Identity anchor for trade records and cash events.

    Non-goals:
        - Does NOT store contact details, GSTIN or addresses; those belong to
          the surrounding application.
    """

    __tablename__ = "counterparties"

    __table_args__ = (
        UniqueConstraint("code", name="uq_counterparty_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Positive: counterparty owes the plant.  Negative: plant owes them.
    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Counterparty {self.code}: {self.name}>"
