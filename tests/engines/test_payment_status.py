"""
Tests for derived payment status.

Covers:
- unpaid / partial / paid / overdue derivation
- Remaining amount and overdue days
- Due date resolution (stored, party terms, default terms, grace)
- Purity: identical inputs always derive the identical position
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from ledger_engines.payment_status import (
    PAYMENT_STATUS_RANK,
    DerivedPaymentStatus,
    compute_due_date,
    compute_payment_position,
)

AS_OF = date(2024, 3, 1)


class TestStatusDerivation:
    """Tests for unpaid/partial/paid/overdue."""

    def test_unpaid_when_nothing_paid(self):
        position = compute_payment_position(
            Decimal("1000"), Decimal("0"), date(2024, 3, 31), AS_OF,
        )
        assert position.status == DerivedPaymentStatus.UNPAID
        assert position.remaining_amount == Decimal("1000.00")
        assert position.overdue_days == 0

    def test_partial_when_some_paid(self):
        position = compute_payment_position(
            Decimal("1000"), Decimal("600"), date(2024, 3, 31), AS_OF,
        )
        assert position.status == DerivedPaymentStatus.PARTIAL
        assert position.remaining_amount == Decimal("400.00")

    def test_paid_when_total_reached(self):
        position = compute_payment_position(
            Decimal("1000"), Decimal("1000"), date(2024, 1, 1), AS_OF,
        )
        assert position.status == DerivedPaymentStatus.PAID
        assert position.remaining_amount == Decimal("0.00")

    def test_paid_order_is_never_overdue(self):
        """A fully paid order past its due date is paid, with 0 overdue days."""
        position = compute_payment_position(
            Decimal("500"), Decimal("500"), date(2023, 1, 1), AS_OF,
        )
        assert position.status == DerivedPaymentStatus.PAID
        assert position.overdue_days == 0
        assert not position.is_overdue

    def test_overdue_when_past_due_and_unsettled(self):
        position = compute_payment_position(
            Decimal("1000"), Decimal("200"), date(2024, 2, 20), AS_OF,
        )
        assert position.status == DerivedPaymentStatus.OVERDUE
        assert position.settlement == DerivedPaymentStatus.PARTIAL
        assert position.overdue_days == 10

    def test_not_overdue_on_due_date(self):
        position = compute_payment_position(
            Decimal("1000"), Decimal("0"), AS_OF, AS_OF,
        )
        assert position.status == DerivedPaymentStatus.UNPAID
        assert position.overdue_days == 0

    def test_no_due_date_never_overdue(self):
        position = compute_payment_position(
            Decimal("1000"), Decimal("0"), None, AS_OF,
        )
        assert position.status == DerivedPaymentStatus.UNPAID

    def test_amounts_rounded_half_up(self):
        position = compute_payment_position(
            Decimal("100.005"), Decimal("0"), None, AS_OF,
        )
        assert position.total_amount == Decimal("100.01")

    def test_status_rank_puts_overdue_first(self):
        ranks = sorted(PAYMENT_STATUS_RANK, key=PAYMENT_STATUS_RANK.get)
        assert ranks == ["overdue", "unpaid", "partial", "paid"]


class TestDueDate:
    """Tests for due date resolution."""

    def test_stored_due_date_wins(self):
        due = compute_due_date(
            date(2024, 1, 1), due_date=date(2024, 1, 10), payment_terms_days=60,
        )
        assert due == date(2024, 1, 10)

    def test_party_terms_used_without_stored_date(self):
        due = compute_due_date(date(2024, 1, 1), payment_terms_days=15)
        assert due == date(2024, 1, 16)

    def test_default_terms_without_party_terms(self):
        due = compute_due_date(date(2024, 1, 1), default_terms_days=30)
        assert due == date(2024, 1, 31)

    def test_zero_party_terms_are_respected(self):
        """Terms of 0 days mean due on the order date, not the default."""
        due = compute_due_date(date(2024, 1, 1), payment_terms_days=0, default_terms_days=30)
        assert due == date(2024, 1, 1)

    def test_grace_period_added(self):
        due = compute_due_date(
            date(2024, 1, 1), due_date=date(2024, 1, 10), grace_period_days=5,
        )
        assert due == date(2024, 1, 15)


amounts = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("1000000"), places=2,
    allow_nan=False, allow_infinity=False,
)
offsets = st.integers(min_value=-400, max_value=400)


class TestPurity:
    """Property tests: derivation is a pure function of its inputs."""

    @given(total=amounts, paid=amounts, due_offset=offsets)
    def test_same_inputs_same_position(self, total, paid, due_offset):
        due = AS_OF + timedelta(days=due_offset)
        first = compute_payment_position(total, paid, due, AS_OF)
        second = compute_payment_position(total, paid, due, AS_OF)
        assert first == second

    @given(total=amounts, paid=amounts, due_offset=offsets)
    def test_remaining_and_overdue_days_consistent(self, total, paid, due_offset):
        due = AS_OF + timedelta(days=due_offset)
        position = compute_payment_position(total, paid, due, AS_OF)

        assert position.remaining_amount == max(Decimal("0"), total - paid)
        assert position.overdue_days >= 0
        if paid >= total:
            assert position.status == DerivedPaymentStatus.PAID
            assert position.overdue_days == 0
        elif due_offset < 0:
            assert position.status == DerivedPaymentStatus.OVERDUE
            assert position.overdue_days == -due_offset
        else:
            assert position.overdue_days == 0


@pytest.mark.parametrize(
    "paid,expected",
    [
        (Decimal("0"), DerivedPaymentStatus.UNPAID),
        (Decimal("0.01"), DerivedPaymentStatus.PARTIAL),
        (Decimal("999.99"), DerivedPaymentStatus.PARTIAL),
        (Decimal("1000"), DerivedPaymentStatus.PAID),
    ],
)
def test_settlement_boundaries(paid, expected):
    position = compute_payment_position(Decimal("1000"), paid, None, AS_OF)
    assert position.settlement == expected
