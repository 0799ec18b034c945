"""Write services for the ledger kernel.

Each public method of a service is one transaction with an explicit
timeout.  Reads live in ``ledger_kernel.selectors``.
"""

from ledger_kernel.services.base import BaseService
from ledger_kernel.services.order_gateway import SqlOrderGateway
from ledger_kernel.services.payment_ledger import PaymentLedgerService
from ledger_kernel.services.refund_service import RefundService
from ledger_kernel.services.return_order_service import (
    ApprovalDecision,
    ReturnOrderService,
)
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "BaseService",
    "SqlOrderGateway",
    "PaymentLedgerService",
    "RefundService",
    "ReturnOrderService",
    "ApprovalDecision",
    "SequenceService",
]
