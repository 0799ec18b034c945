"""
Module: ledger_kernel.selectors.payment_selector
Responsibility: Read access to payments and refunds, and the aggregate
    amounts every money invariant is checked against: confirmed paid total
    per order and the refund total still holding part of it.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only ``confirmed`` payments count toward the paid amount.
    - Pending, processing and completed refunds count against the
      refundable amount; rejected and cancelled ones do not.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.db.types import ZERO, round_money, to_decimal
from ledger_kernel.domain.dtos import PaymentInfo, RefundInfo
from ledger_kernel.exceptions import PaymentNotFoundError, RefundNotFoundError
from ledger_kernel.models.payment import PaymentRecord, PaymentStatus
from ledger_kernel.models.refund import OPEN_REFUND_STATUSES, RefundRecord
from ledger_kernel.selectors.base import BaseSelector


# What a refund takes out of the order: the processed amount once known.
_EFFECTIVE_REFUND_AMOUNT = func.coalesce(RefundRecord.processed_amount, RefundRecord.amount)


class PaymentSelector(BaseSelector):
    """Payments, refunds and per-order money aggregates."""

    def confirmed_paid_total(self, order_id: UUID) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(PaymentRecord.amount), ZERO))
            .where(PaymentRecord.order_id == order_id)
            .where(PaymentRecord.status == PaymentStatus.CONFIRMED.value)
        ).scalar_one()
        return round_money(to_decimal(total))

    def open_refund_total(self, order_id: UUID) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(_EFFECTIVE_REFUND_AMOUNT), ZERO))
            .where(RefundRecord.order_id == order_id)
            .where(RefundRecord.status.in_(OPEN_REFUND_STATUSES))
        ).scalar_one()
        return round_money(to_decimal(total))

    def refundable_amount(self, order_id: UUID) -> Decimal:
        """Confirmed payments not yet claimed by an open refund."""
        remaining = self.confirmed_paid_total(order_id) - self.open_refund_total(order_id)
        return max(ZERO, remaining)

    def get_payment(self, payment_id: UUID) -> PaymentInfo:
        payment = self.session.get(PaymentRecord, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return PaymentInfo.from_model(payment)

    def list_payments(
        self,
        order_id: UUID | None = None,
        party_id: UUID | None = None,
        status: str | None = None,
    ) -> list[PaymentInfo]:
        stmt = select(PaymentRecord)
        if order_id is not None:
            stmt = stmt.where(PaymentRecord.order_id == order_id)
        if party_id is not None:
            stmt = stmt.where(PaymentRecord.party_id == party_id)
        if status is not None:
            stmt = stmt.where(PaymentRecord.status == status)
        stmt = stmt.order_by(PaymentRecord.payment_date, PaymentRecord.payment_number)
        return [PaymentInfo.from_model(p) for p in self.session.scalars(stmt)]

    def get_refund(self, refund_id: UUID) -> RefundInfo:
        refund = self.session.get(RefundRecord, refund_id)
        if refund is None:
            raise RefundNotFoundError(str(refund_id))
        return RefundInfo.from_model(refund)

    def list_refunds(
        self,
        order_id: UUID | None = None,
        party_id: UUID | None = None,
        status: str | None = None,
    ) -> list[RefundInfo]:
        stmt = select(RefundRecord)
        if order_id is not None:
            stmt = stmt.where(RefundRecord.order_id == order_id)
        if party_id is not None:
            stmt = stmt.where(RefundRecord.party_id == party_id)
        if status is not None:
            stmt = stmt.where(RefundRecord.status == status)
        stmt = stmt.order_by(RefundRecord.refund_date, RefundRecord.refund_number)
        return [RefundInfo.from_model(r) for r in self.session.scalars(stmt)]

