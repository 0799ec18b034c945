"""
Module: ledger_kernel.models.party
Responsibility: ORM persistence for the customers and suppliers that orders,
    payments, refunds and returns are recorded against.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - party_code is unique (uq_ledger_party_code).
    - payment_terms_days, when set, is the basis for order due dates.

Failure modes:
    - IntegrityError on duplicate party_code.
"""

from enum import Enum

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class PartyType(str, Enum):
    """Classification of a counterparty."""

    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class Party(TrackedBase):
    """
    Counterparty of an order.

    Guarantees:
        - party_code is globally unique.
        - party_type is set at creation and never changes.

    Non-goals:
        - Does NOT enforce credit limits or party freezes.
    """

    __tablename__ = "parties"

    __table_args__ = (
        UniqueConstraint("party_code", name="uq_ledger_party_code"),
        Index("idx_party_type", "party_type"),
        Index("idx_party_name", "name"),
    )

    party_code: Mapped[str] = mapped_column(String(50), nullable=False)

    party_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PartyType.CUSTOMER.value,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Days after order date until payment is due; None uses the default.
    payment_terms_days: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Party {self.party_code}: {self.name} ({self.party_type})>"
