"""
RefundService -- standalone refunds against an order.

Responsibility:
    Requests, processes, completes and rejects refunds that are not tied to
    a return order.  Refunds that belong to a return order are created and
    moved only by ``ReturnOrderService``; this service refuses to touch them.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Over-refund: a refund never exceeds the refundable amount of its
      order (confirmed payments minus pending, processing and completed
      refunds), checked with the order row locked.
    - Reason is required and non-empty.
    - Status moves only through ``REFUND_WORKFLOW``.
    - refund_type is derived: ``full`` when the amount equals the
      refundable amount, ``partial`` otherwise.
    - Every committed refund write invalidates the party's receivables
      view.

Failure modes:
    - ValidationError, OrderNotFoundError, RefundNotFoundError,
      MismatchError, OverRefundError, InvalidTransitionError,
      TransactionTimeout, ConcurrencyConflict.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.collaborators import CacheInvalidator, OrderGateway
from ledger_kernel.domain.dtos import RefundInfo
from ledger_kernel.domain.lifecycles import (
    EFFECT_INVALIDATE_RECEIVABLES,
    REFUND_WORKFLOW,
    WITHIN_APPROVED_REFUND,
)
from ledger_kernel.domain.workflow import GuardCheck
from ledger_kernel.exceptions import (
    MismatchError,
    OverRefundError,
    RefundNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.refund import RefundMethod, RefundRecord, RefundStatus, RefundType
from ledger_kernel.selectors.payment_selector import PaymentSelector
from ledger_kernel.services.base import (
    DEFAULT_TRANSACTION_TIMEOUT_SECONDS,
    BaseService,
    require_actor,
    require_positive_amount,
    require_text,
)
from ledger_kernel.services.order_gateway import SqlOrderGateway
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.refund")


def parse_refund_method(method: RefundMethod | str) -> RefundMethod:
    try:
        return RefundMethod(method)
    except ValueError as exc:
        valid = ", ".join(m.value for m in RefundMethod)
        raise ValidationError("method", f"must be one of {valid}, got '{method}'") from exc


def refund_type_for(amount: Decimal, bound: Decimal) -> RefundType:
    return RefundType.FULL if amount >= bound else RefundType.PARTIAL


def _processed_within_requested(refund: RefundRecord) -> bool:
    if refund.processed_amount is not None and refund.processed_amount > refund.amount:
        raise OverRefundError(refund.refund_number, refund.processed_amount, refund.amount)
    return True


# Shared with ReturnOrderService, which moves return-owned refunds.
REFUND_GUARD_CHECKS: dict[str, GuardCheck] = {
    WITHIN_APPROVED_REFUND.name: _processed_within_requested,
}


class RefundService(BaseService):
    """Standalone refund lifecycle."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        order_gateway: OrderGateway | None = None,
        cache_invalidator: CacheInvalidator | None = None,
        transaction_timeout_seconds: float = DEFAULT_TRANSACTION_TIMEOUT_SECONDS,
        number_prefix: str = "RFD",
    ):
        super().__init__(session, clock, transaction_timeout_seconds, cache_invalidator)
        self._orders = order_gateway or SqlOrderGateway(session)
        self._payments = PaymentSelector(session)
        self._sequences = SequenceService(session)
        self._prefix = number_prefix

    def request_refund(
        self,
        order_id: UUID,
        party_id: UUID,
        amount: Decimal | int | str,
        method: RefundMethod | str,
        reason: str,
        actor_id: UUID,
        refund_date: date | None = None,
        remarks: str | None = None,
    ) -> RefundInfo:
        """
        Request a refund of confirmed payments on an order.

        Postconditions:
            - A ``pending`` RefundRecord exists whose amount fits the
              refundable amount at request time.

        Raises:
            ValidationError, OrderNotFoundError, MismatchError, OverRefundError.
        """
        actor_id = require_actor(actor_id)
        amount = require_positive_amount("amount", amount)
        method = parse_refund_method(method)
        reason = require_text("reason", reason)

        with LogContext.bind(actor_id=actor_id, order_id=order_id, party_id=party_id):
            with self._transaction("request_refund"):
                order = self._orders.get_order(order_id, for_update=True)
                if order.party_id != party_id:
                    raise MismatchError(str(order_id), str(order.party_id), str(party_id))

                refundable = self._payments.refundable_amount(order_id)
                if amount > refundable:
                    raise OverRefundError(str(order_id), amount, refundable)

                refund = RefundRecord(
                    refund_number=self._sequences.next_number(
                        SequenceService.REFUND, self._prefix,
                    ),
                    order_id=order_id,
                    party_id=party_id,
                    refund_type=refund_type_for(amount, refundable).value,
                    method=method.value,
                    amount=amount,
                    refund_date=refund_date or self._clock.today(),
                    reason=reason,
                    status=RefundStatus.PENDING.value,
                    remarks=remarks,
                    created_by_id=actor_id,
                )
                self.session.add(refund)
                self.session.flush()
                result = RefundInfo.from_model(refund)

            logger.info(
                "refund_requested",
                extra={
                    "refund_id": str(result.id),
                    "refund_number": result.refund_number,
                    "amount": str(amount),
                    "refundable": str(refundable),
                    "refund_type": result.refund_type,
                },
            )
        self._invalidate_receivables(party_id)
        return result

    def process_refund(self, refund_id: UUID, actor_id: UUID) -> RefundInfo:
        """pending -> processing."""
        return self._transition(refund_id, "process", actor_id)

    def complete_refund(
        self,
        refund_id: UUID,
        actor_id: UUID,
        processed_amount: Decimal | int | str | None = None,
    ) -> RefundInfo:
        """processing -> completed.  ``processed_amount`` defaults to the
        requested amount and may not exceed it."""
        return self._transition(
            refund_id, "complete", actor_id, processed_amount=processed_amount,
        )

    def reject_refund(self, refund_id: UUID, actor_id: UUID, reason: str) -> RefundInfo:
        """pending/processing -> rejected."""
        reason = require_text("reason", reason)
        return self._transition(refund_id, "reject", actor_id, remarks=reason)

    def _transition(
        self,
        refund_id: UUID,
        action: str,
        actor_id: UUID,
        processed_amount: Decimal | int | str | None = None,
        remarks: str | None = None,
    ) -> RefundInfo:
        actor_id = require_actor(actor_id)
        if processed_amount is not None:
            processed_amount = require_positive_amount("processed_amount", processed_amount)

        with LogContext.bind(actor_id=actor_id):
            with self._transaction(f"{action}_refund"):
                order_id = self._order_id_of(refund_id)
                self._orders.get_order(order_id, for_update=True)
                refund = self._load_refund(refund_id)
                if refund.return_order_id is not None:
                    raise ValidationError(
                        "refund_id",
                        f"refund {refund.refund_number} belongs to a return order "
                        f"and follows that return's transitions",
                    )
                previous = refund.status
                transition = REFUND_WORKFLOW.resolve(previous, action, "refund")

                now = self._clock.now()
                if transition.to_state == RefundStatus.COMPLETED.value:
                    final = processed_amount if processed_amount is not None else refund.amount
                    refund.processed_amount = round_money(final)
                    refund.completed_at = now
                elif transition.to_state == RefundStatus.PROCESSING.value:
                    refund.processed_at = now
                REFUND_WORKFLOW.check_guards(transition, refund, REFUND_GUARD_CHECKS, "refund")

                refund.status = transition.to_state
                refund.updated_by_id = actor_id
                if remarks is not None:
                    refund.remarks = remarks
                self.session.flush()
                result = RefundInfo.from_model(refund)

            logger.info(
                "refund_transitioned",
                extra={
                    "refund_id": str(refund_id),
                    "action": action,
                    "from_status": previous,
                    "to_status": result.status,
                },
            )
        if EFFECT_INVALIDATE_RECEIVABLES in transition.effects:
            self._invalidate_receivables(result.party_id)
        return result

    def _order_id_of(self, refund_id: UUID) -> UUID:
        order_id = self.session.execute(
            select(RefundRecord.order_id).where(RefundRecord.id == refund_id)
        ).scalar_one_or_none()
        if order_id is None:
            raise RefundNotFoundError(str(refund_id))
        return order_id

    def _load_refund(self, refund_id: UUID) -> RefundRecord:
        refund = self.session.execute(
            select(RefundRecord)
            .where(RefundRecord.id == refund_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if refund is None:
            raise RefundNotFoundError(str(refund_id))
        return refund
