"""
Module: ledger_kernel.models.order
Responsibility: ORM persistence for sales/purchase orders and their lines.
    Orders are owned by the order lifecycle, not by the ledger: the ledger
    reads them, locks them to serialize money writes, and asks the order
    gateway to move their status.  It never touches ``total_amount``.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - order_number is unique.
    - total_amount is fixed at creation.
    - OrderLine.unit_price is the price returns are refunded at.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase
from ledger_kernel.db.types import QUANTITY

if TYPE_CHECKING:
    from ledger_kernel.models.party import Party


class OrderStatus(str, Enum):
    """Order lifecycle states the ledger knows about."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    PAID = "paid"
    CANCELLED = "cancelled"


class Order(TrackedBase):
    """
    An order that receivables accrue against.

    Guarantees:
        - party_id references an existing Party.
        - due_date, when NULL, is derived from the party's payment terms.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("order_number", name="uq_order_number"),
        Index("idx_order_party", "party_id"),
        Index("idx_order_status", "status"),
        Index("idx_order_date", "order_date"),
    )

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)

    party_id: Mapped[UUID] = mapped_column(
        ForeignKey("parties.id"),
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.CONFIRMED.value,
    )

    order_date: Mapped[date] = mapped_column(nullable=False)

    due_date: Mapped[date | None] = mapped_column(nullable=True)

    party: Mapped["Party"] = relationship()

    lines: Mapped[list["OrderLine"]] = relationship(
        back_populates="order",
        order_by="OrderLine.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number}: {self.total_amount} ({self.status})>"


class OrderLine(TrackedBase):
    """A product line of an order; the source of returnable quantities."""

    __tablename__ = "order_lines"

    __table_args__ = (
        UniqueConstraint("order_id", "line_number", name="uq_order_line_number"),
    )

    order_id: Mapped[UUID] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False)

    product_id: Mapped[str] = mapped_column(String(50), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(QUANTITY, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped[Order] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<OrderLine {self.line_number}: {self.product_id} x {self.quantity}>"
