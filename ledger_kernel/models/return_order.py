"""
Module: ledger_kernel.models.return_order
Responsibility: ORM persistence for return orders and their line items.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - return_number is unique and allocated from the "return_order" sequence.
    - order_id and party_id are set at creation and never change.
    - total_amount == sum(item.subtotal).  Written only by
      ``ReturnOrder.recompute_totals()``; never taken from a caller.
    - Item subtotal == return_quantity * unit_price; unit_price is copied
      from the order line and never changes.
    - 0 < return_quantity <= original_quantity (ck_return_item_quantity).
    - An order line appears at most once per return order.
    - Items are removed with their parent (delete-orphan cascade).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import QUANTITY, ZERO, round_money


class ReturnOrderStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReturnType(str, Enum):
    QUALITY_ISSUE = "quality_issue"
    WRONG_PRODUCT = "wrong_product"
    CUSTOMER_CHANGE = "customer_change"
    DAMAGE_IN_TRANSIT = "damage_in_transit"
    OTHER = "other"


class ProcessType(str, Enum):
    REFUND = "refund"
    EXCHANGE = "exchange"
    REPAIR = "repair"
    CREDIT = "credit"


# Process types that may be approved without any refund.
NO_REFUND_PROCESS_TYPES = (ProcessType.EXCHANGE.value, ProcessType.REPAIR.value)


class ItemCondition(str, Enum):
    GOOD = "good"
    DAMAGED = "damaged"
    DEFECTIVE = "defective"


class ReturnOrder(TrackedBase):
    """
    A request to take goods back from a party and, usually, refund them.

    Guarantees:
        - Status moves only through the return-order workflow.
        - total_amount is recomputed on every item mutation.
    """

    __tablename__ = "return_orders"

    __table_args__ = (
        UniqueConstraint("return_number", name="uq_return_number"),
        Index("idx_return_order_order", "order_id"),
        Index("idx_return_order_party_status", "party_id", "status"),
    )

    return_number: Mapped[str] = mapped_column(String(50), nullable=False)

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)

    party_id: Mapped[UUID] = mapped_column(ForeignKey("parties.id"), nullable=False)

    return_type: Mapped[str] = mapped_column(String(30), nullable=False)

    process_type: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReturnOrderStatus.DRAFT.value,
    )

    reason: Mapped[str] = mapped_column(Text, nullable=False)

    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    # Approved refund amount; None until approval.
    refund_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    items: Mapped[list["ReturnOrderItem"]] = relationship(
        back_populates="return_order",
        cascade="all, delete-orphan",
        order_by="ReturnOrderItem.product_id",
        lazy="selectin",
    )

    def recompute_totals(self) -> Decimal:
        """Re-derive every item subtotal and the order total from quantities."""
        total = ZERO
        for item in self.items:
            item.subtotal = round_money(item.return_quantity * item.unit_price)
            total += item.subtotal
        self.total_amount = total
        return total

    def __repr__(self) -> str:
        return f"<ReturnOrder {self.return_number}: {self.total_amount} ({self.status})>"


class ReturnOrderItem(TrackedBase):
    """One order line being returned, in part or in full."""

    __tablename__ = "return_order_items"

    __table_args__ = (
        UniqueConstraint(
            "return_order_id", "order_line_id", name="uq_return_item_order_line",
        ),
        CheckConstraint(
            "return_quantity > 0 AND return_quantity <= original_quantity",
            name="ck_return_item_quantity",
        ),
        Index("idx_return_item_order_line", "order_line_id"),
    )

    return_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("return_orders.id"),
        nullable=False,
    )

    order_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("order_lines.id"),
        nullable=False,
    )

    product_id: Mapped[str] = mapped_column(String(50), nullable=False)

    return_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    original_quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    condition: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ItemCondition.GOOD.value,
    )

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    return_order: Mapped[ReturnOrder] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<ReturnOrderItem {self.product_id} x {self.return_quantity}>"
