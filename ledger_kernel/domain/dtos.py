"""
DTOs -- immutable records returned across the ledger boundary.

Responsibility:
    Defines the frozen dataclasses that services and selectors return instead
    of ORM entities: orders, payments, refunds, return orders and their items,
    plus the input record used to add return items.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods are boundary converters invoked only from
    the service and selector layers.

Invariants enforced:
    - Callers never receive a live ORM object, so nothing they do can write
      through to the store outside a ledger operation.
    - Status fields carry the stored string value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from ledger_kernel.models.order import Order as OrderModel
    from ledger_kernel.models.order import OrderLine as OrderLineModel
    from ledger_kernel.models.payment import PaymentRecord as PaymentModel
    from ledger_kernel.models.refund import RefundRecord as RefundModel
    from ledger_kernel.models.return_order import ReturnOrder as ReturnOrderModel
    from ledger_kernel.models.return_order import (
        ReturnOrderItem as ReturnOrderItemModel,
    )


@dataclass(frozen=True)
class OrderInfo:
    """What the ledger needs to know about an order."""

    id: UUID
    order_number: str
    party_id: UUID
    total_amount: Decimal
    status: str
    order_date: date
    due_date: date | None = None

    @classmethod
    def from_model(cls, model: OrderModel) -> OrderInfo:
        return cls(
            id=model.id,
            order_number=model.order_number,
            party_id=model.party_id,
            total_amount=model.total_amount,
            status=model.status,
            order_date=model.order_date,
            due_date=model.due_date,
        )


@dataclass(frozen=True)
class OrderLineInfo:
    id: UUID
    order_id: UUID
    line_number: int
    product_id: str
    quantity: Decimal
    unit_price: Decimal

    @classmethod
    def from_model(cls, model: OrderLineModel) -> OrderLineInfo:
        return cls(
            id=model.id,
            order_id=model.order_id,
            line_number=model.line_number,
            product_id=model.product_id,
            quantity=model.quantity,
            unit_price=model.unit_price,
        )


@dataclass(frozen=True)
class PaymentInfo:
    """A recorded payment."""

    id: UUID
    payment_number: str
    order_id: UUID
    party_id: UUID
    method: str
    amount: Decimal
    status: str
    payment_date: date
    created_by_id: UUID
    remarks: str | None = None
    bank_reference: str | None = None
    receipt_number: str | None = None
    created_at: datetime | None = None
    confirmed_at: datetime | None = None
    voided_at: datetime | None = None
    voided_by_id: UUID | None = None
    void_reason: str | None = None

    @classmethod
    def from_model(cls, model: PaymentModel) -> PaymentInfo:
        return cls(
            id=model.id,
            payment_number=model.payment_number,
            order_id=model.order_id,
            party_id=model.party_id,
            method=model.method,
            amount=model.amount,
            status=model.status,
            payment_date=model.payment_date,
            created_by_id=model.created_by_id,
            remarks=model.remarks,
            bank_reference=model.bank_reference,
            receipt_number=model.receipt_number,
            created_at=model.created_at,
            confirmed_at=model.confirmed_at,
            voided_at=model.voided_at,
            voided_by_id=model.voided_by_id,
            void_reason=model.void_reason,
        )


@dataclass(frozen=True)
class RefundInfo:
    """A refund, standalone or belonging to a return order."""

    id: UUID
    refund_number: str
    order_id: UUID
    party_id: UUID
    refund_type: str
    method: str
    amount: Decimal
    refund_date: date
    reason: str
    status: str
    return_order_id: UUID | None = None
    processed_amount: Decimal | None = None
    remarks: str | None = None
    processed_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_model(cls, model: RefundModel) -> RefundInfo:
        return cls(
            id=model.id,
            refund_number=model.refund_number,
            order_id=model.order_id,
            party_id=model.party_id,
            refund_type=model.refund_type,
            method=model.method,
            amount=model.amount,
            refund_date=model.refund_date,
            reason=model.reason,
            status=model.status,
            return_order_id=model.return_order_id,
            processed_amount=model.processed_amount,
            remarks=model.remarks,
            processed_at=model.processed_at,
            completed_at=model.completed_at,
        )


@dataclass(frozen=True)
class ReturnOrderItemInfo:
    id: UUID
    order_line_id: UUID
    product_id: str
    return_quantity: Decimal
    original_quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal
    condition: str
    reason: str | None = None

    @classmethod
    def from_model(cls, model: ReturnOrderItemModel) -> ReturnOrderItemInfo:
        return cls(
            id=model.id,
            order_line_id=model.order_line_id,
            product_id=model.product_id,
            return_quantity=model.return_quantity,
            original_quantity=model.original_quantity,
            unit_price=model.unit_price,
            subtotal=model.subtotal,
            condition=model.condition,
            reason=model.reason,
        )


@dataclass(frozen=True)
class ReturnOrderInfo:
    """A return order with its items and, once approved, its refund."""

    id: UUID
    return_number: str
    order_id: UUID
    party_id: UUID
    return_type: str
    process_type: str
    status: str
    reason: str
    total_amount: Decimal
    created_by_id: UUID
    items: tuple[ReturnOrderItemInfo, ...] = ()
    remarks: str | None = None
    refund_amount: Decimal | None = None
    refund: RefundInfo | None = None
    cancel_reason: str | None = None
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def item_count(self) -> int:
        return len(self.items)

    @classmethod
    def from_model(
        cls,
        model: ReturnOrderModel,
        refund: RefundModel | None = None,
    ) -> ReturnOrderInfo:
        return cls(
            id=model.id,
            return_number=model.return_number,
            order_id=model.order_id,
            party_id=model.party_id,
            return_type=model.return_type,
            process_type=model.process_type,
            status=model.status,
            reason=model.reason,
            total_amount=model.total_amount,
            created_by_id=model.created_by_id,
            items=tuple(ReturnOrderItemInfo.from_model(i) for i in model.items),
            remarks=model.remarks,
            refund_amount=model.refund_amount,
            refund=RefundInfo.from_model(refund) if refund is not None else None,
            cancel_reason=model.cancel_reason,
            created_at=model.created_at,
            submitted_at=model.submitted_at,
            approved_at=model.approved_at,
            processed_at=model.processed_at,
            completed_at=model.completed_at,
            cancelled_at=model.cancelled_at,
        )


@dataclass(frozen=True)
class ReturnItemInput:
    """Caller input for one return line.  Prices and subtotals are never
    accepted from the caller; they come from the order line."""

    order_line_id: UUID
    quantity: Decimal
    condition: str = "good"
    reason: str | None = None


@dataclass(frozen=True)
class ReturnOrderStatistics:
    """Counts per return status and the refunded total."""

    total_count: int
    count_by_status: dict[str, int] = field(default_factory=dict)
    total_refunded: Decimal = Decimal("0")

    def count(self, status: str) -> int:
        return self.count_by_status.get(status, 0)
