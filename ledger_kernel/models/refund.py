"""
Module: ledger_kernel.models.refund
Responsibility: ORM persistence for refunds paid back to a party, either
    standalone against an order or as the financial effect of a return order.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - refund_number is unique and allocated from the "refund" sequence.
    - amount > 0 and reason is non-empty.
    - At most one refund exists per return order (uq_refund_return_order).
    - processed_amount is set only when the refund completes.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class RefundType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class RefundMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    ORIGINAL_PAYMENT = "original_payment"
    OTHER = "other"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Refunds in these states hold part of the refundable amount.
OPEN_REFUND_STATUSES = (
    RefundStatus.PENDING.value,
    RefundStatus.PROCESSING.value,
    RefundStatus.COMPLETED.value,
)


class RefundRecord(TrackedBase):
    """Money returned to a party against an order."""

    __tablename__ = "refund_records"

    __table_args__ = (
        UniqueConstraint("refund_number", name="uq_refund_number"),
        UniqueConstraint("return_order_id", name="uq_refund_return_order"),
        CheckConstraint("amount > 0", name="ck_refund_amount_positive"),
        Index("idx_refund_order_status", "order_id", "status"),
        Index("idx_refund_party", "party_id"),
    )

    refund_number: Mapped[str] = mapped_column(String(50), nullable=False)

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)

    return_order_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("return_orders.id"),
        nullable=True,
    )

    party_id: Mapped[UUID] = mapped_column(ForeignKey("parties.id"), nullable=False)

    refund_type: Mapped[str] = mapped_column(String(20), nullable=False)

    method: Mapped[str] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Amount actually paid out; may differ from the requested amount.
    processed_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    refund_date: Mapped[date] = mapped_column(nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RefundStatus.PENDING.value,
    )

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<RefundRecord {self.refund_number}: {self.amount} ({self.status})>"
