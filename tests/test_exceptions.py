"""Tests for the exception hierarchy."""

from decimal import Decimal

import pytest

from ledger_kernel.exceptions import (
    ConcurrencyConflict,
    DomainError,
    InfrastructureError,
    InvalidTransitionError,
    LedgerError,
    MismatchError,
    NotFoundError,
    OrderNotFoundError,
    OverpaymentError,
    OverRefundError,
    OverReturnError,
    TransactionTimeout,
    ValidationError,
)


class TestHierarchy:

    @pytest.mark.parametrize(
        "error",
        [
            ValidationError("amount", "must be positive"),
            OrderNotFoundError("o-1"),
            MismatchError("o-1", "p-1", "p-2"),
            OverpaymentError("o-1", Decimal("10"), Decimal("5")),
            InvalidTransitionError("payment", "voided", "confirm"),
        ],
    )
    def test_domain_errors_not_retryable(self, error):
        assert isinstance(error, DomainError)
        assert isinstance(error, LedgerError)
        assert not error.retryable
        assert error.user_message == str(error)

    @pytest.mark.parametrize(
        "error",
        [TransactionTimeout("record_payment", 10.0), ConcurrencyConflict("record_payment", "40001")],
    )
    def test_infrastructure_errors_retryable_with_generic_message(self, error):
        assert isinstance(error, InfrastructureError)
        assert error.retryable
        assert "record_payment" not in error.user_message
        assert "40001" not in error.user_message

    def test_not_found_subclass(self):
        err = OrderNotFoundError("o-1")
        assert isinstance(err, NotFoundError)
        assert err.entity_id == "o-1"
        assert err.code == "ORDER_NOT_FOUND"


class TestContext:

    def test_amounts_kept_as_strings(self):
        err = OverpaymentError("o-1", Decimal("600.00"), Decimal("400.00"))
        assert err.requested == "600.00"
        assert err.outstanding == "400.00"
        assert err.code == "OVERPAYMENT"

    def test_over_refund_and_over_return(self):
        refund = OverRefundError("RET-00000001", Decimal("131"), Decimal("130"))
        assert refund.refundable == "130"
        ret = OverReturnError("line-1", Decimal("2"), Decimal("0"))
        assert ret.returnable == "0"
        assert ret.code == "OVER_RETURN"

    def test_validation_field(self):
        err = ValidationError("bank_reference", "cannot be empty")
        assert err.field == "bank_reference"
        assert "bank_reference" in str(err)

    def test_transition_message(self):
        err = InvalidTransitionError(
            "return order", "completed", "cancel", to_state="cancelled",
        )
        assert str(err) == "Cannot cancel return order in state 'completed' -> cancelled"
        with_reason = InvalidTransitionError(
            "return order", "draft", "submit", reason="no items",
        )
        assert str(with_reason).endswith(": no items")
