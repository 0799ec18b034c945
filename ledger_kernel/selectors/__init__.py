"""Read-only selectors: payments, receivables, statements and return orders."""

from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.payment_selector import PaymentSelector
from ledger_kernel.selectors.receivables_selector import (
    DEFAULT_RECEIVABLE_STATUSES,
    ReceivableItem,
    ReceivablesPage,
    ReceivablesSelector,
    ReceivablesSummary,
)
from ledger_kernel.selectors.return_order_selector import (
    ReturnOrderFilter,
    ReturnOrderPage,
    ReturnOrderSelector,
)
from ledger_kernel.selectors.statement_selector import StatementSelector

__all__ = [
    "BaseSelector",
    "DEFAULT_RECEIVABLE_STATUSES",
    "PaymentSelector",
    "ReceivableItem",
    "ReceivablesPage",
    "ReceivablesSelector",
    "ReceivablesSummary",
    "ReturnOrderFilter",
    "ReturnOrderPage",
    "ReturnOrderSelector",
    "StatementSelector",
]
