"""
PaymentLedgerService -- records, confirms and voids payments against orders.

Responsibility:
    The only writer of payment records.  Validates a payment, enforces the
    overpayment invariant, allocates a payment number, and moves the order to
    its fully-paid status when the last amount lands.

Architecture position:
    Kernel > Services -- imperative shell.
    Reads orders through an ``OrderGateway`` and notifies a
    ``CacheInvalidator`` after commit.

Invariants enforced:
    - Overpayment: for every order, sum(confirmed payments) <= total_amount.
      Checked at write time, inside the same transaction as the insert, with
      the order row locked (``SELECT ... FOR UPDATE`` on PostgreSQL,
      ``BEGIN IMMEDIATE`` on SQLite).  Two concurrent check-then-insert
      sequences therefore cannot both pass.
    - Party linkage: the payment's party must be the order's party.  It is
      validated, never inferred.
    - Audit trail: payments are never deleted, only voided.
    - Refund cover: a confirmed payment cannot be voided while the
      remaining confirmed payments would no longer cover the order's
      pending, processing and completed refunds.
    - Atomicity: the payment insert, number allocation and order status
      transition commit together or not at all.

Failure modes:
    - ValidationError: non-positive amount, unknown method, missing bank
      reference for a bank transfer, missing actor, order not payable.
    - OrderNotFoundError / PaymentNotFoundError.
    - MismatchError: party does not match the order.
    - OverpaymentError: amount exceeds the outstanding balance.
    - OverRefundError: voiding would leave open refunds uncovered.
    - InvalidTransitionError: confirm/void from a state that does not allow it.
    - TransactionTimeout / ConcurrencyConflict: from the transaction scope;
      never retried here.

Audit relevance:
    Every write logs ``payment_recorded`` / ``payment_confirmed`` /
    ``payment_voided`` with the actor, amounts and resulting paid total.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import round_money
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.collaborators import CacheInvalidator, OrderGateway
from ledger_kernel.domain.dtos import OrderInfo, PaymentInfo
from ledger_kernel.domain.lifecycles import (
    COVERS_OPEN_REFUNDS,
    EFFECT_INVALIDATE_RECEIVABLES,
    PAYMENT_WORKFLOW,
    WITHIN_OUTSTANDING,
)
from ledger_kernel.domain.workflow import GuardCheck
from ledger_kernel.exceptions import (
    MismatchError,
    OverpaymentError,
    OverRefundError,
    PaymentNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.payment import PaymentMethod, PaymentRecord, PaymentStatus
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

logger = get_logger("services.payment_ledger")


class PaymentLedgerService(BaseService):
    """
    Records payments against orders.

    Contract:
        Each public method is one transaction.  Returns frozen
        ``PaymentInfo`` DTOs.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        order_gateway: OrderGateway | None = None,
        cache_invalidator: CacheInvalidator | None = None,
        transaction_timeout_seconds: float = DEFAULT_TRANSACTION_TIMEOUT_SECONDS,
        fully_paid_status: str = "paid",
        fully_paid_from_statuses: tuple[str, ...] = ("confirmed", "shipped"),
        blocked_order_statuses: tuple[str, ...] = ("draft", "cancelled"),
        number_prefix: str = "PAY",
    ):
        super().__init__(session, clock, transaction_timeout_seconds, cache_invalidator)
        self._orders = order_gateway or SqlOrderGateway(session)
        self._payments = PaymentSelector(session)
        self._sequences = SequenceService(session)
        self._fully_paid_status = fully_paid_status
        self._fully_paid_from = tuple(fully_paid_from_statuses)
        self._blocked = tuple(blocked_order_statuses)
        self._prefix = number_prefix

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def record_payment(
        self,
        order_id: UUID,
        party_id: UUID,
        method: PaymentMethod | str,
        amount: Decimal | int | str,
        payment_date: date,
        actor_id: UUID,
        remarks: str | None = None,
        bank_reference: str | None = None,
        receipt_number: str | None = None,
        confirmed: bool = True,
    ) -> PaymentInfo:
        """
        Record a payment against an order.

        Preconditions:
            - amount > 0; payment_date given; actor_id given.
            - bank_reference is non-empty when method is bank_transfer.

        Postconditions:
            - A PaymentRecord exists with a freshly allocated number and
              status ``confirmed`` (or ``pending`` if ``confirmed=False``).
            - If the order is now fully paid and its status allows it, the
              order has moved to the fully-paid status.

        Raises:
            ValidationError, OrderNotFoundError, MismatchError,
            OverpaymentError, TransactionTimeout, ConcurrencyConflict.
        """
        actor_id = require_actor(actor_id)
        amount = require_positive_amount("amount", amount)
        method = self._parse_method(method)
        if payment_date is None:
            raise ValidationError("payment_date", "is required")
        if method == PaymentMethod.BANK_TRANSFER:
            bank_reference = require_text("bank_reference", bank_reference)

        with LogContext.bind(actor_id=actor_id, order_id=order_id, party_id=party_id):
            with self._transaction("record_payment"):
                order = self._orders.get_order(order_id, for_update=True)
                if order.party_id != party_id:
                    raise MismatchError(str(order_id), str(order.party_id), str(party_id))
                if order.status in self._blocked:
                    raise ValidationError(
                        "order_id",
                        f"order {order.order_number} in status '{order.status}' "
                        f"cannot take payments",
                    )

                already_paid = self._payments.confirmed_paid_total(order_id)
                self._check_outstanding(order, already_paid, amount)

                payment = PaymentRecord(
                    payment_number=self._sequences.next_number(
                        SequenceService.PAYMENT, self._prefix,
                    ),
                    order_id=order_id,
                    party_id=party_id,
                    method=method.value,
                    amount=amount,
                    status=(
                        PaymentStatus.CONFIRMED.value if confirmed
                        else PaymentStatus.PENDING.value
                    ),
                    payment_date=payment_date,
                    remarks=remarks,
                    bank_reference=bank_reference,
                    receipt_number=receipt_number,
                    confirmed_at=self._clock.now() if confirmed else None,
                    created_by_id=actor_id,
                )
                self.session.add(payment)
                self.session.flush()

                paid_total = already_paid + amount if confirmed else already_paid
                if confirmed:
                    self._apply_fully_paid(order, paid_total, actor_id)
                result = PaymentInfo.from_model(payment)

            logger.info(
                "payment_recorded",
                extra={
                    "payment_id": str(result.id),
                    "payment_number": result.payment_number,
                    "amount": str(amount),
                    "method": method.value,
                    "status": result.status,
                    "paid_total": str(paid_total),
                    "order_total": str(order.total_amount),
                },
            )
        self._invalidate_receivables(party_id)
        return result

    def confirm_payment(self, payment_id: UUID, actor_id: UUID) -> PaymentInfo:
        """Confirm a pending payment, re-running the overpayment check.

        Raises:
            PaymentNotFoundError, InvalidTransitionError, OverpaymentError.
        """
        actor_id = require_actor(actor_id)
        with LogContext.bind(actor_id=actor_id):
            with self._transaction("confirm_payment"):
                order_id = self._order_id_of(payment_id)
                order = self._orders.get_order(order_id, for_update=True)
                payment = self._load_payment(payment_id)
                transition = PAYMENT_WORKFLOW.resolve(payment.status, "confirm", "payment")

                already_paid = self._payments.confirmed_paid_total(order_id)
                PAYMENT_WORKFLOW.check_guards(
                    transition, payment, self._guard_checks(order, already_paid), "payment",
                )

                payment.status = PaymentStatus.CONFIRMED.value
                payment.confirmed_at = self._clock.now()
                payment.updated_by_id = actor_id
                self.session.flush()
                paid_total = already_paid + payment.amount
                self._apply_fully_paid(order, paid_total, actor_id)
                result = PaymentInfo.from_model(payment)

            logger.info(
                "payment_confirmed",
                extra={
                    "payment_id": str(payment_id),
                    "order_id": str(order_id),
                    "paid_total": str(paid_total),
                },
            )
        if EFFECT_INVALIDATE_RECEIVABLES in transition.effects:
            self._invalidate_receivables(result.party_id)
        return result

    def void_payment(self, payment_id: UUID, actor_id: UUID, reason: str) -> PaymentInfo:
        """Void a payment.  The row stays; its amount stops counting.

        Raises:
            ValidationError (empty reason), PaymentNotFoundError,
            InvalidTransitionError (already voided), OverRefundError (open
            refunds would exceed the remaining confirmed payments).
        """
        actor_id = require_actor(actor_id)
        reason = require_text("reason", reason)
        with LogContext.bind(actor_id=actor_id):
            with self._transaction("void_payment"):
                order_id = self._order_id_of(payment_id)
                order = self._orders.get_order(order_id, for_update=True)
                payment = self._load_payment(payment_id)
                previous = payment.status
                transition = PAYMENT_WORKFLOW.resolve(previous, "void", "payment")
                already_paid = self._payments.confirmed_paid_total(order_id)
                PAYMENT_WORKFLOW.check_guards(
                    transition, payment, self._guard_checks(order, already_paid), "payment",
                )

                payment.status = PaymentStatus.VOIDED.value
                payment.voided_at = self._clock.now()
                payment.voided_by_id = actor_id
                payment.void_reason = reason
                payment.updated_by_id = actor_id
                self.session.flush()
                result = PaymentInfo.from_model(payment)

            logger.info(
                "payment_voided",
                extra={
                    "payment_id": str(payment_id),
                    "order_id": str(order_id),
                    "from_status": previous,
                    "amount": str(result.amount),
                },
            )
        if EFFECT_INVALIDATE_RECEIVABLES in transition.effects:
            self._invalidate_receivables(result.party_id)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_method(method: PaymentMethod | str) -> PaymentMethod:
        try:
            return PaymentMethod(method)
        except ValueError as exc:
            valid = ", ".join(m.value for m in PaymentMethod)
            raise ValidationError(
                "method", f"must be one of {valid}, got '{method}'"
            ) from exc

    def _order_id_of(self, payment_id: UUID) -> UUID:
        order_id = self.session.execute(
            select(PaymentRecord.order_id).where(PaymentRecord.id == payment_id)
        ).scalar_one_or_none()
        if order_id is None:
            raise PaymentNotFoundError(str(payment_id))
        return order_id

    def _load_payment(self, payment_id: UUID) -> PaymentRecord:
        payment = self.session.execute(
            select(PaymentRecord)
            .where(PaymentRecord.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def _guard_checks(
        self, order: OrderInfo, already_paid: Decimal,
    ) -> dict[str, GuardCheck]:
        return {
            WITHIN_OUTSTANDING.name: lambda payment: self._check_outstanding(
                order, already_paid, payment.amount,
            ),
            COVERS_OPEN_REFUNDS.name: lambda payment: self._check_refunds_covered(
                order, already_paid, payment,
            ),
        }

    @staticmethod
    def _check_outstanding(order: OrderInfo, already_paid: Decimal, amount: Decimal) -> bool:
        outstanding = round_money(order.total_amount - already_paid)
        if amount > outstanding:
            logger.warning(
                "overpayment_rejected",
                extra={
                    "order_id": str(order.id),
                    "requested": str(amount),
                    "outstanding": str(outstanding),
                },
            )
            raise OverpaymentError(str(order.id), amount, outstanding)
        return True

    def _check_refunds_covered(
        self, order: OrderInfo, already_paid: Decimal, payment: PaymentRecord,
    ) -> bool:
        remaining = round_money(already_paid - payment.amount)
        open_refunds = self._payments.open_refund_total(order.id)
        if open_refunds > remaining:
            logger.warning(
                "void_rejected_open_refunds",
                extra={
                    "order_id": str(order.id),
                    "payment_number": payment.payment_number,
                    "open_refunds": str(open_refunds),
                    "remaining_paid": str(remaining),
                },
            )
            raise OverRefundError(payment.payment_number, open_refunds, remaining)
        return True

    def _apply_fully_paid(self, order: OrderInfo, paid_total: Decimal, actor_id: UUID) -> None:
        if paid_total < order.total_amount:
            return
        if order.status not in self._fully_paid_from:
            logger.debug(
                "fully_paid_status_unchanged",
                extra={"order_id": str(order.id), "order_status": order.status},
            )
            return
        self._orders.transition_order_status(order.id, self._fully_paid_status, actor_id)
