"""
Module: ledger_kernel.models.payment
Responsibility: ORM persistence for payments received against orders.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - payment_number is unique and allocated from the "payment" sequence.
    - amount > 0 (ck_payment_amount_positive).
    - Rows are never deleted.  A wrong payment is voided: status, voided_at,
      voided_by_id and void_reason are written together.
    - Only ``confirmed`` rows count toward an order's paid amount.

Failure modes:
    - IntegrityError on duplicate payment_number or non-positive amount.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    OTHER = "other"


class PaymentStatus(str, Enum):
    """Stored record state.  Not to be confused with an order's derived
    payment status (unpaid/partial/paid/overdue)."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    VOIDED = "voided"


class PaymentRecord(TrackedBase):
    """A single payment against one order."""

    __tablename__ = "payment_records"

    __table_args__ = (
        UniqueConstraint("payment_number", name="uq_payment_number"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        Index("idx_payment_order_status", "order_id", "status"),
        Index("idx_payment_party", "party_id"),
        Index("idx_payment_date", "payment_date"),
    )

    payment_number: Mapped[str] = mapped_column(String(50), nullable=False)

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)

    party_id: Mapped[UUID] = mapped_column(ForeignKey("parties.id"), nullable=False)

    method: Mapped[str] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.CONFIRMED.value,
    )

    payment_date: Mapped[date] = mapped_column(nullable=False)

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Required when method is bank_transfer.
    bank_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    receipt_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    voided_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentRecord {self.payment_number}: {self.amount} ({self.status})>"
