"""ORM models for the ledger kernel."""

from ledger_kernel.models.order import Order, OrderLine, OrderStatus
from ledger_kernel.models.party import Party, PartyType
from ledger_kernel.models.payment import PaymentMethod, PaymentRecord, PaymentStatus
from ledger_kernel.models.refund import (
    OPEN_REFUND_STATUSES,
    RefundMethod,
    RefundRecord,
    RefundStatus,
    RefundType,
)
from ledger_kernel.models.return_order import (
    NO_REFUND_PROCESS_TYPES,
    ItemCondition,
    ProcessType,
    ReturnOrder,
    ReturnOrderItem,
    ReturnOrderStatus,
    ReturnType,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    # Parties and orders
    "Party",
    "PartyType",
    "Order",
    "OrderLine",
    "OrderStatus",
    # Payments
    "PaymentRecord",
    "PaymentMethod",
    "PaymentStatus",
    # Refunds
    "RefundRecord",
    "RefundMethod",
    "RefundStatus",
    "RefundType",
    "OPEN_REFUND_STATUSES",
    # Returns
    "ReturnOrder",
    "ReturnOrderItem",
    "ReturnOrderStatus",
    "ReturnType",
    "ProcessType",
    "ItemCondition",
    "NO_REFUND_PROCESS_TYPES",
    # Infrastructure
    "SequenceCounter",
]
