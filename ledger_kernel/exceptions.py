"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Money errors must be handled precisely.  Callers catch by type, read a
machine-readable ``code``, and get the context as attributes instead of
parsing message strings:

    try:
        ledger.record_payment(...)
    except OverpaymentError as e:
        api_response(code=e.code, outstanding=e.outstanding)
    except InfrastructureError as e:
        if e.retryable:
            schedule_retry()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- DomainError                      retryable = False
    |   +-- ValidationError
    |   +-- NotFoundError
    |   |   +-- PartyNotFoundError
    |   |   +-- OrderNotFoundError
    |   |   +-- OrderLineNotFoundError
    |   |   +-- PaymentNotFoundError
    |   |   +-- RefundNotFoundError
    |   |   +-- ReturnOrderNotFoundError
    |   +-- MismatchError
    |   +-- AmountInvariantError
    |   |   +-- OverpaymentError
    |   |   +-- OverRefundError
    |   |   +-- OverReturnError
    |   +-- InvalidTransitionError
    |
    +-- InfrastructureError              retryable = True
        +-- TransactionTimeout
        +-- ConcurrencyConflict

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Malformed or missing input
Not found       | PARTY_NOT_FOUND             | Party ID doesn't exist
                | ORDER_NOT_FOUND             | Order ID doesn't exist
                | ORDER_LINE_NOT_FOUND        | Line is not part of the order
                | PAYMENT_NOT_FOUND           | Payment ID doesn't exist
                | REFUND_NOT_FOUND            | Refund ID doesn't exist
                | RETURN_ORDER_NOT_FOUND      | Return order ID doesn't exist
Linkage         | PARTY_MISMATCH              | Party differs from the order's party
Amounts         | OVERPAYMENT                 | Payment exceeds outstanding balance
                | OVER_REFUND                 | Refund exceeds refundable amount
                | OVER_RETURN                 | Quantity exceeds unreturned remainder
State machine   | INVALID_TRANSITION          | Action not legal from current state
Infrastructure  | TRANSACTION_TIMEOUT         | Transaction exceeded its deadline
                | CONCURRENCY_CONFLICT        | Serialization failure under contention

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Domain and infrastructure errors are separate branches so a caller can
   retry only the latter.  ``retryable`` is a class attribute.

2. ``user_message`` is what a presentation layer shows.  Domain errors
   expose their precise message; infrastructure errors expose a generic
   retry hint and never the driver text.

3. Amounts are stored as ``str`` on the exception so logs and API payloads
   keep full decimal precision.
"""

from decimal import Decimal


_GENERIC_RETRY_MESSAGE = (
    "The operation could not be completed right now. Please try again."
)


class LedgerError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"
    retryable: bool = False

    @property
    def user_message(self) -> str:
        return str(self)


# =============================================================================
# Domain errors
# =============================================================================


class DomainError(LedgerError):
    """Invariant or input problem the caller can fix. Never retried."""

    code: str = "DOMAIN_ERROR"
    retryable: bool = False


class ValidationError(DomainError):
    """Malformed or missing input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class NotFoundError(DomainError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    entity: str = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity.capitalize()} not found: {entity_id}")


class PartyNotFoundError(NotFoundError):
    code: str = "PARTY_NOT_FOUND"
    entity = "party"


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"
    entity = "order"


class OrderLineNotFoundError(NotFoundError):
    code: str = "ORDER_LINE_NOT_FOUND"
    entity = "order line"


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"
    entity = "payment"


class RefundNotFoundError(NotFoundError):
    code: str = "REFUND_NOT_FOUND"
    entity = "refund"


class ReturnOrderNotFoundError(NotFoundError):
    code: str = "RETURN_ORDER_NOT_FOUND"
    entity = "return order"


class MismatchError(DomainError):
    """Party identifier does not match the order it is recorded against."""

    code: str = "PARTY_MISMATCH"

    def __init__(self, order_id: str, expected_party_id: str, received_party_id: str):
        self.order_id = str(order_id)
        self.expected_party_id = str(expected_party_id)
        self.received_party_id = str(received_party_id)
        super().__init__(
            f"Party {received_party_id} does not match party "
            f"{expected_party_id} of order {order_id}"
        )


# Amount invariants


class AmountInvariantError(DomainError):
    """Base exception for violated monetary or quantity bounds."""

    code: str = "AMOUNT_INVARIANT"


class OverpaymentError(AmountInvariantError):
    """Confirmed payments would exceed the order total."""

    code: str = "OVERPAYMENT"

    def __init__(self, order_id: str, requested: Decimal, outstanding: Decimal):
        self.order_id = str(order_id)
        self.requested = str(requested)
        self.outstanding = str(outstanding)
        super().__init__(
            f"Payment amount {requested} exceeds outstanding balance of "
            f"{outstanding} for order {order_id}"
        )


class OverRefundError(AmountInvariantError):
    """Refund would exceed the refundable amount."""

    code: str = "OVER_REFUND"

    def __init__(self, reference_id: str, requested: Decimal, refundable: Decimal):
        self.reference_id = str(reference_id)
        self.requested = str(requested)
        self.refundable = str(refundable)
        super().__init__(
            f"Refund amount {requested} exceeds refundable amount of "
            f"{refundable} for {reference_id}"
        )


class OverReturnError(AmountInvariantError):
    """Return quantity exceeds what is still returnable on the order line."""

    code: str = "OVER_RETURN"

    def __init__(
        self,
        order_line_id: str,
        requested: Decimal,
        returnable: Decimal,
    ):
        self.order_line_id = str(order_line_id)
        self.requested = str(requested)
        self.returnable = str(returnable)
        super().__init__(
            f"Return quantity {requested} exceeds returnable quantity of "
            f"{returnable} for order line {order_line_id}"
        )


class InvalidTransitionError(DomainError):
    """A state machine action is not legal from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity: str,
        from_state: str,
        action: str,
        to_state: str | None = None,
        reason: str | None = None,
    ):
        self.entity = entity
        self.from_state = from_state
        self.action = action
        self.to_state = to_state
        self.reason = reason
        target = f" -> {to_state}" if to_state else ""
        message = (
            f"Cannot {action} {entity} in state '{from_state}'{target}"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# =============================================================================
# Infrastructure errors
# =============================================================================


class InfrastructureError(LedgerError):
    """Store-level failure.  The whole operation may be retried by the caller."""

    code: str = "INFRASTRUCTURE_ERROR"
    retryable: bool = True

    @property
    def user_message(self) -> str:
        return _GENERIC_RETRY_MESSAGE


class TransactionTimeout(InfrastructureError):
    """Transaction exceeded its deadline and was rolled back."""

    code: str = "TRANSACTION_TIMEOUT"

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Transaction for {operation} exceeded {timeout_seconds}s and was rolled back"
        )


class ConcurrencyConflict(InfrastructureError):
    """Serialization failure surfaced by the store under contention."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        self.detail = detail
        super().__init__(
            f"Concurrent modification detected during {operation}"
        )
