"""
Module: ledger_engines.payment_status
Responsibility:
    Derive an order's payment status, remaining balance and overdue age from
    its total, its confirmed paid amount and its due date.  Payment status is
    never stored; every reader calls ``compute_payment_position``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Purity: no clock access.  ``as_of`` is always an explicit argument, so
      the same inputs give the same position.
    - Decimal-only arithmetic.
    - overdue_days == 0 whenever the order is fully paid or not past due.

Usage:
    position = compute_payment_position(
        total_amount=Decimal("1000"),
        paid_amount=Decimal("600"),
        due_date=date(2024, 1, 31),
        as_of=date(2024, 1, 15),
    )
    position.status          # DerivedPaymentStatus.PARTIAL
    position.remaining_amount  # Decimal("400.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from ledger_kernel.db.types import ZERO, round_money


class DerivedPaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


# Sort rank for ordering by payment status: most urgent first.
PAYMENT_STATUS_RANK: dict[str, int] = {
    DerivedPaymentStatus.OVERDUE.value: 0,
    DerivedPaymentStatus.UNPAID.value: 1,
    DerivedPaymentStatus.PARTIAL.value: 2,
    DerivedPaymentStatus.PAID.value: 3,
}


@dataclass(frozen=True)
class PaymentPosition:
    """
    Where an order stands against its payments on a given day.

    ``settlement`` is unpaid/partial/paid ignoring the due date; ``status``
    is ``overdue`` when an unsettled order is past due, else ``settlement``.
    """

    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    settlement: DerivedPaymentStatus
    status: DerivedPaymentStatus
    due_date: date | None
    overdue_days: int

    @property
    def is_overdue(self) -> bool:
        return self.status == DerivedPaymentStatus.OVERDUE


def compute_due_date(
    order_date: date,
    due_date: date | None = None,
    payment_terms_days: int | None = None,
    default_terms_days: int = 30,
    grace_period_days: int = 0,
) -> date:
    """The date after which an unpaid order counts as overdue.

    A stored due date wins; otherwise the party's terms apply, falling back
    to the default terms.  The grace period is added in both cases.
    """
    if due_date is None:
        terms = payment_terms_days if payment_terms_days is not None else default_terms_days
        due_date = order_date + timedelta(days=terms)
    return due_date + timedelta(days=grace_period_days)


def compute_payment_position(
    total_amount: Decimal,
    paid_amount: Decimal,
    due_date: date | None,
    as_of: date,
) -> PaymentPosition:
    """
    Derive the payment position of one order.

    Preconditions:
        - total_amount >= 0 and paid_amount >= 0.

    Postconditions:
        - remaining_amount == max(0, total - paid).
        - status is PAID iff paid >= total.
        - overdue_days == max(0, as_of - due_date) when unsettled, else 0.
    """
    total = round_money(total_amount)
    paid = round_money(paid_amount)
    remaining = max(ZERO, round_money(total - paid))

    if paid >= total:
        settlement = DerivedPaymentStatus.PAID
    elif paid == ZERO:
        settlement = DerivedPaymentStatus.UNPAID
    else:
        settlement = DerivedPaymentStatus.PARTIAL

    overdue_days = 0
    status = settlement
    if settlement != DerivedPaymentStatus.PAID and due_date is not None and as_of > due_date:
        overdue_days = (as_of - due_date).days
        status = DerivedPaymentStatus.OVERDUE

    return PaymentPosition(
        total_amount=total,
        paid_amount=paid,
        remaining_amount=remaining,
        settlement=settlement,
        status=status,
        due_date=due_date,
        overdue_days=overdue_days,
    )
