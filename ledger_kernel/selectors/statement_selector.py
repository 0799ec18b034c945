"""
Module: ledger_kernel.selectors.statement_selector
Responsibility: Gathers every ledger event of one party (orders, confirmed
    payments, completed refunds, completed returns) and hands them to
    ``ledger_engines.statement.build_statement`` together with the aging of
    the party's outstanding orders.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only; no writes, no clock.  ``as_of_date`` defaults to the end of
      the range, so the statement depends only on its arguments and the
      stored data.
    - Pending and voided payments and unfinished refunds contribute nothing.
    - Completed returns are listed with a zero delta; their money moves
      through the completed refund entry.

Failure modes:
    - PartyNotFoundError when the party does not exist.
    - ValidationError when the range is inverted.
"""

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_engines.aging import STANDARD_BUCKETS, AgeBucket, AgingCalculator, AgingInput
from ledger_engines.statement import EntryKind, Statement, StatementEvent, build_statement
from ledger_kernel.db.types import ZERO, to_decimal
from ledger_kernel.exceptions import PartyNotFoundError, ValidationError
from ledger_kernel.models.order import Order
from ledger_kernel.models.party import Party
from ledger_kernel.models.payment import PaymentRecord, PaymentStatus
from ledger_kernel.models.refund import RefundRecord, RefundStatus
from ledger_kernel.models.return_order import ReturnOrder, ReturnOrderStatus
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.receivables_selector import (
    DEFAULT_RECEIVABLE_STATUSES,
    ReceivablesSelector,
)


class StatementSelector(BaseSelector):
    """Reconciliation statements for one party."""

    def __init__(
        self,
        session: Session,
        receivable_statuses: Sequence[str] = DEFAULT_RECEIVABLE_STATUSES,
        default_payment_terms_days: int = 30,
        grace_period_days: int = 0,
        aging_buckets: Sequence[AgeBucket] = STANDARD_BUCKETS,
    ):
        super().__init__(session)
        self._statuses = tuple(receivable_statuses)
        self._receivables = ReceivablesSelector(
            session,
            receivable_statuses=self._statuses,
            default_payment_terms_days=default_payment_terms_days,
            grace_period_days=grace_period_days,
        )
        self._aging = AgingCalculator(aging_buckets)

    def get_statement(
        self,
        party_id: UUID,
        date_from: date,
        date_to: date,
        as_of_date: date | None = None,
    ) -> Statement:
        if date_from > date_to:
            raise ValidationError("date_to", "must not be before date_from")
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        as_of = as_of_date or date_to

        outstanding = self._receivables.items_for_party(party_id, as_of)
        aging = self._aging.age(
            [
                AgingInput(
                    order_id=item.order_id,
                    order_number=item.order_number,
                    remaining_amount=item.remaining_amount,
                    overdue_days=item.overdue_days,
                )
                for item in outstanding
            ]
        )

        return build_statement(
            party_id=party_id,
            party_name=party.name,
            events=self.events_for_party(party_id, date_to),
            date_from=date_from,
            date_to=date_to,
            as_of_date=as_of,
            aging=aging,
        )

    def events_for_party(self, party_id: UUID, until: date) -> list[StatementEvent]:
        """All events of the party dated on or before ``until``."""
        return [
            *self._order_events(party_id, until),
            *self._payment_events(party_id, until),
            *self._refund_events(party_id, until),
            *self._return_events(party_id, until),
        ]

    def _order_events(self, party_id: UUID, until: date) -> list[StatementEvent]:
        rows = self.session.execute(
            select(Order.id, Order.order_number, Order.order_date, Order.total_amount)
            .where(Order.party_id == party_id)
            .where(Order.status.in_(self._statuses))
            .where(Order.order_date <= until)
        ).all()
        return [
            StatementEvent(
                entry_date=order_date,
                kind=EntryKind.ORDER,
                reference=number,
                document_id=order_id,
                amount=to_decimal(total),
                delta=to_decimal(total),
                order_number=number,
                description="Order",
            )
            for order_id, number, order_date, total in rows
        ]

    def _payment_events(self, party_id: UUID, until: date) -> list[StatementEvent]:
        rows = self.session.execute(
            select(
                PaymentRecord.id,
                PaymentRecord.payment_number,
                PaymentRecord.payment_date,
                PaymentRecord.amount,
                PaymentRecord.method,
                Order.order_number,
            )
            .join(Order, Order.id == PaymentRecord.order_id)
            .where(PaymentRecord.party_id == party_id)
            .where(PaymentRecord.status == PaymentStatus.CONFIRMED.value)
            .where(PaymentRecord.payment_date <= until)
        ).all()
        return [
            StatementEvent(
                entry_date=payment_date,
                kind=EntryKind.PAYMENT,
                reference=number,
                document_id=payment_id,
                amount=to_decimal(amount),
                delta=-to_decimal(amount),
                order_number=order_number,
                description=f"Payment ({method})",
            )
            for payment_id, number, payment_date, amount, method, order_number in rows
        ]

    def _refund_events(self, party_id: UUID, until: date) -> list[StatementEvent]:
        rows = self.session.execute(
            select(
                RefundRecord.id,
                RefundRecord.refund_number,
                RefundRecord.refund_date,
                func.coalesce(RefundRecord.processed_amount, RefundRecord.amount),
                Order.order_number,
            )
            .join(Order, Order.id == RefundRecord.order_id)
            .where(RefundRecord.party_id == party_id)
            .where(RefundRecord.status == RefundStatus.COMPLETED.value)
            .where(RefundRecord.refund_date <= until)
        ).all()
        return [
            StatementEvent(
                entry_date=refund_date,
                kind=EntryKind.REFUND,
                reference=number,
                document_id=refund_id,
                amount=to_decimal(amount),
                delta=-to_decimal(amount),
                order_number=order_number,
                description="Refund",
            )
            for refund_id, number, refund_date, amount, order_number in rows
        ]

    def _return_events(self, party_id: UUID, until: date) -> list[StatementEvent]:
        rows = self.session.execute(
            select(
                ReturnOrder.id,
                ReturnOrder.return_number,
                ReturnOrder.completed_at,
                ReturnOrder.total_amount,
                ReturnOrder.process_type,
                Order.order_number,
            )
            .join(Order, Order.id == ReturnOrder.order_id)
            .where(ReturnOrder.party_id == party_id)
            .where(ReturnOrder.status == ReturnOrderStatus.COMPLETED.value)
        ).all()
        events = []
        for return_id, number, completed_at, total, process_type, order_number in rows:
            entry_date = completed_at.date()
            if entry_date > until:
                continue
            events.append(
                StatementEvent(
                    entry_date=entry_date,
                    kind=EntryKind.RETURN,
                    reference=number,
                    document_id=return_id,
                    amount=to_decimal(total),
                    delta=ZERO,
                    order_number=order_number,
                    description=f"Return ({process_type})",
                )
            )
        return events
