"""Pure domain layer: clock, workflows, DTOs and collaborator protocols."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.collaborators import (
    CacheInvalidator,
    NullCacheInvalidator,
    OrderGateway,
)
from ledger_kernel.domain.dtos import (
    OrderInfo,
    OrderLineInfo,
    PaymentInfo,
    RefundInfo,
    ReturnItemInput,
    ReturnOrderInfo,
    ReturnOrderItemInfo,
    ReturnOrderStatistics,
)
from ledger_kernel.domain.lifecycles import (
    PAYMENT_WORKFLOW,
    REFUND_WORKFLOW,
    RETURN_ORDER_WORKFLOW,
)
from ledger_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "OrderGateway",
    "CacheInvalidator",
    "NullCacheInvalidator",
    "OrderInfo",
    "OrderLineInfo",
    "PaymentInfo",
    "RefundInfo",
    "ReturnItemInput",
    "ReturnOrderInfo",
    "ReturnOrderItemInfo",
    "ReturnOrderStatistics",
    "Guard",
    "Transition",
    "Workflow",
    "PAYMENT_WORKFLOW",
    "REFUND_WORKFLOW",
    "RETURN_ORDER_WORKFLOW",
]
