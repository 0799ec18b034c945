"""
ReturnOrderService -- the return order state machine.

Responsibility:
    Creates return orders, edits their items while in draft, and drives
    them through submit, approve/reject, processing, completion,
    cancellation and deletion.  Owns the refund record of each return: it is
    created on approval and follows the return's transitions.

Architecture position:
    Kernel > Services -- imperative shell.
    Every transition is resolved through ``RETURN_ORDER_WORKFLOW``; there are
    no status comparisons at individual call sites.

Invariants enforced:
    - Transitions: only pairs in the transition table succeed.  Anything
      else raises ``InvalidTransitionError`` before any write.
    - Atomicity: the state write and its refund write commit together.
    - Amounts: item subtotal = quantity * unit price (price copied from the
      order line) and total_amount = sum(subtotals), recomputed on every
      item change.  Caller-supplied prices or totals are never accepted.
    - Guards: the guards the table attaches to a transition are evaluated
      through ``Workflow.check_guards`` after the transition's field
      changes are staged and before any effect or state write.
    - Double returns: for every order line, the quantities of all draft,
      submitted, approved, processing and completed returns never exceed the
      line quantity.  Checked on every item change and again at submit,
      with the order row locked so concurrent returns queue.
    - Refunds: approved refund amount <= min(return total_amount, the
      order's confirmed payments not claimed by open refunds).  A return's
      refund completes for at most its approved amount.
    - Deletion only from draft.

Failure modes:
    - ValidationError, OrderNotFoundError, OrderLineNotFoundError,
      ReturnOrderNotFoundError, MismatchError, OverReturnError,
      OverRefundError, InvalidTransitionError, TransactionTimeout,
      ConcurrencyConflict.

Audit relevance:
    Every transition logs ``return_order_transitioned`` with from/to state
    and the acting identity.
"""

from collections.abc import Callable, Sequence
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money, round_quantity, to_decimal
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.collaborators import CacheInvalidator, OrderGateway
from ledger_kernel.domain.dtos import OrderInfo, ReturnItemInput, ReturnOrderInfo
from ledger_kernel.domain.lifecycles import (
    ACTIVE_RETURN_STATES,
    EFFECT_CANCEL_REFUND,
    EFFECT_COMPLETE_REFUND,
    EFFECT_CREATE_REFUND,
    EFFECT_INVALIDATE_RECEIVABLES,
    EFFECT_PROCESS_REFUND,
    EFFECT_REMOVE_RECORD,
    HAS_ITEMS,
    HAS_REASON,
    REFUND_WORKFLOW,
    RETURN_ORDER_WORKFLOW,
    WITHIN_REFUNDABLE,
    WITHIN_RETURN_TOTAL,
    WITHIN_RETURNABLE,
)
from ledger_kernel.domain.workflow import GuardCheck, Transition
from ledger_kernel.exceptions import (
    MismatchError,
    OrderLineNotFoundError,
    OverRefundError,
    OverReturnError,
    ReturnOrderNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.order import OrderLine
from ledger_kernel.models.refund import RefundMethod, RefundRecord
from ledger_kernel.models.return_order import (
    NO_REFUND_PROCESS_TYPES,
    ItemCondition,
    ProcessType,
    ReturnOrder,
    ReturnOrderItem,
    ReturnType,
)
from ledger_kernel.selectors.payment_selector import PaymentSelector
from ledger_kernel.services.base import (
    DEFAULT_TRANSACTION_TIMEOUT_SECONDS,
    BaseService,
    require_actor,
    require_positive_amount,
    require_text,
)
from ledger_kernel.services.order_gateway import SqlOrderGateway
from ledger_kernel.services.refund_service import (
    REFUND_GUARD_CHECKS,
    parse_refund_method,
    refund_type_for,
)
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.return_order")

_ENTITY = "return order"


class ApprovalDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


Stage = Callable[[ReturnOrder], None]
Perform = Callable[[ReturnOrder, Transition], None]


def _parse(enum_cls: type[Enum], field: str, value) -> Enum:
    try:
        return enum_cls(value)
    except ValueError as exc:
        valid = ", ".join(m.value for m in enum_cls)
        raise ValidationError(field, f"must be one of {valid}, got '{value}'") from exc


def _parse_quantity(value) -> Decimal:
    try:
        quantity = to_decimal(value)
    except ValueError as exc:
        raise ValidationError("quantity", str(exc)) from exc
    if quantity <= ZERO:
        raise ValidationError("quantity", f"must be greater than zero, got {quantity}")
    if round_quantity(quantity) != quantity:
        raise ValidationError("quantity", f"must have at most 4 decimal places, got {quantity}")
    return round_quantity(quantity)


class ReturnOrderService(BaseService):
    """
    Return order lifecycle.

    Contract:
        Each public method is one transaction and returns a frozen
        ``ReturnOrderInfo`` (``delete`` returns the record as it was).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        order_gateway: OrderGateway | None = None,
        cache_invalidator: CacheInvalidator | None = None,
        transaction_timeout_seconds: float = DEFAULT_TRANSACTION_TIMEOUT_SECONDS,
        items_limit: int = 50,
        blocked_order_statuses: tuple[str, ...] = ("draft", "cancelled"),
        return_number_prefix: str = "RET",
        refund_number_prefix: str = "RFD",
    ):
        super().__init__(session, clock, transaction_timeout_seconds, cache_invalidator)
        self._orders = order_gateway or SqlOrderGateway(session)
        self._payments = PaymentSelector(session)
        self._sequences = SequenceService(session)
        self._items_limit = items_limit
        self._blocked = tuple(blocked_order_statuses)
        self._return_prefix = return_number_prefix
        self._refund_prefix = refund_number_prefix
        self._guard_checks: dict[str, GuardCheck] = {
            HAS_ITEMS.name: lambda ro: len(ro.items) > 0,
            HAS_REASON.name: lambda ro: bool(ro.reason and ro.reason.strip()),
            WITHIN_RETURNABLE.name: self._items_returnable,
            WITHIN_RETURN_TOTAL.name: self._refund_within_total,
            WITHIN_REFUNDABLE.name: self._refund_within_paid,
        }

    # ------------------------------------------------------------------
    # Creation and draft editing
    # ------------------------------------------------------------------

    def create_return_order(
        self,
        order_id: UUID,
        party_id: UUID,
        return_type: ReturnType | str,
        process_type: ProcessType | str,
        actor_id: UUID,
        reason: str | None = None,
        items: Sequence[ReturnItemInput] = (),
        remarks: str | None = None,
    ) -> ReturnOrderInfo:
        """
        Create a return order in ``draft``.

        A reason may be left empty while drafting; ``submit`` requires it.

        Raises:
            ValidationError, OrderNotFoundError, MismatchError,
            OrderLineNotFoundError, OverReturnError.
        """
        actor_id = require_actor(actor_id)
        return_type = _parse(ReturnType, "return_type", return_type)
        process_type = _parse(ProcessType, "process_type", process_type)
        if len(items) > self._items_limit:
            raise ValidationError(
                "items", f"at most {self._items_limit} items per return order",
            )

        with LogContext.bind(actor_id=actor_id, order_id=order_id, party_id=party_id):
            with self._transaction("create_return_order"):
                order = self._orders.get_order(order_id, for_update=True)
                if order.party_id != party_id:
                    raise MismatchError(str(order_id), str(order.party_id), str(party_id))
                self._check_order_returnable(order)

                return_order = ReturnOrder(
                    return_number=self._sequences.next_number(
                        SequenceService.RETURN_ORDER, self._return_prefix,
                    ),
                    order_id=order_id,
                    party_id=party_id,
                    return_type=return_type.value,
                    process_type=process_type.value,
                    status=RETURN_ORDER_WORKFLOW.initial_state,
                    reason=(reason or "").strip(),
                    remarks=remarks,
                    total_amount=ZERO,
                    created_by_id=actor_id,
                )
                self.session.add(return_order)
                self.session.flush()
                for item in items:
                    self._attach_item(return_order, item, actor_id)
                return_order.recompute_totals()
                RETURN_ORDER_WORKFLOW.check_guards(
                    RETURN_ORDER_WORKFLOW.resolve(return_order.status, "edit", _ENTITY),
                    return_order,
                    self._guard_checks,
                    _ENTITY,
                )
                self.session.flush()
                result = self._to_info(return_order)

            logger.info(
                "return_order_created",
                extra={
                    "return_order_id": str(result.id),
                    "return_number": result.return_number,
                    "item_count": result.item_count,
                    "total_amount": str(result.total_amount),
                },
            )
        return result

    def update_draft(
        self,
        return_order_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        remarks: str | None = None,
        return_type: ReturnType | str | None = None,
        process_type: ProcessType | str | None = None,
    ) -> ReturnOrderInfo:
        """Change the descriptive fields of a draft return."""
        if return_type is not None:
            return_type = _parse(ReturnType, "return_type", return_type)
        if process_type is not None:
            process_type = _parse(ProcessType, "process_type", process_type)

        def stage(ro: ReturnOrder) -> None:
            if reason is not None:
                ro.reason = reason.strip()
            if remarks is not None:
                ro.remarks = remarks
            if return_type is not None:
                ro.return_type = return_type.value
            if process_type is not None:
                ro.process_type = process_type.value

        return self._transition(return_order_id, "edit", actor_id, stage)

    def add_item(
        self,
        return_order_id: UUID,
        item: ReturnItemInput,
        actor_id: UUID,
    ) -> ReturnOrderInfo:
        """Add an order line to a draft return.

        Raises:
            ValidationError (line already on this return, items limit),
            OrderLineNotFoundError, OverReturnError, InvalidTransitionError.
        """

        def stage(ro: ReturnOrder) -> None:
            if len(ro.items) >= self._items_limit:
                raise ValidationError(
                    "items", f"at most {self._items_limit} items per return order",
                )
            self._attach_item(ro, item, ro.updated_by_id)
            ro.recompute_totals()

        return self._transition(return_order_id, "edit", actor_id, stage)

    def update_item_quantity(
        self,
        return_order_id: UUID,
        item_id: UUID,
        quantity: Decimal | int | str,
        actor_id: UUID,
    ) -> ReturnOrderInfo:
        """Change an item's quantity; subtotal and total are recomputed."""
        quantity = _parse_quantity(quantity)

        def stage(ro: ReturnOrder) -> None:
            self._find_item(ro, item_id).return_quantity = quantity
            ro.recompute_totals()

        return self._transition(return_order_id, "edit", actor_id, stage)

    def remove_item(
        self,
        return_order_id: UUID,
        item_id: UUID,
        actor_id: UUID,
    ) -> ReturnOrderInfo:
        def stage(ro: ReturnOrder) -> None:
            ro.items.remove(self._find_item(ro, item_id))
            ro.recompute_totals()

        return self._transition(return_order_id, "edit", actor_id, stage)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, return_order_id: UUID, actor_id: UUID) -> ReturnOrderInfo:
        """draft -> submitted.  Requires items and a reason; re-checks every
        item against the unreturned remainder of its order line."""

        def stage(ro: ReturnOrder) -> None:
            ro.recompute_totals()
            ro.submitted_at = self._clock.now()

        return self._transition(return_order_id, "submit", actor_id, stage)

    def approve(
        self,
        return_order_id: UUID,
        decision: ApprovalDecision | str,
        actor_id: UUID,
        refund_amount: Decimal | int | str | None = None,
        remarks: str | None = None,
        refund_method: RefundMethod | str = RefundMethod.ORIGINAL_PAYMENT,
    ) -> ReturnOrderInfo:
        """
        Decide a submitted return.

        ``approved``: ``refund_amount`` is required (exchange and repair
        returns may pass 0 or omit it, creating no refund).  It must not
        exceed the return total, nor the order's confirmed payments less
        the refunds already open against them.  A pending refund is
        created.
        ``rejected``: the return terminates; no refund is created.
        """
        decision = _parse(ApprovalDecision, "decision", decision)
        refund_method = parse_refund_method(refund_method)
        action = "approve" if decision == ApprovalDecision.APPROVED else "reject"
        amount = None
        if refund_amount is not None:
            try:
                amount = round_money(to_decimal(refund_amount))
            except ValueError as exc:
                raise ValidationError("refund_amount", str(exc)) from exc
            if amount < ZERO:
                raise ValidationError("refund_amount", "cannot be negative")

        def stage(ro: ReturnOrder) -> None:
            if remarks is not None:
                ro.remarks = remarks
            if action == "reject":
                return
            requested = amount
            if requested is None:
                if ro.process_type not in NO_REFUND_PROCESS_TYPES:
                    raise ValidationError(
                        "refund_amount", "is required to approve a return",
                    )
                requested = ZERO
            if requested == ZERO and ro.process_type not in NO_REFUND_PROCESS_TYPES:
                raise ValidationError(
                    "refund_amount",
                    f"must be greater than zero for a '{ro.process_type}' return",
                )
            ro.recompute_totals()
            ro.refund_amount = requested
            ro.approved_at = self._clock.now()
            ro.approved_by_id = ro.updated_by_id

        def perform(ro: ReturnOrder, transition: Transition) -> None:
            if EFFECT_CREATE_REFUND in transition.effects and ro.refund_amount > ZERO:
                self._create_refund(ro, ro.refund_amount, refund_method)

        return self._transition(return_order_id, action, actor_id, stage, perform)

    def start_processing(self, return_order_id: UUID, actor_id: UUID) -> ReturnOrderInfo:
        """approved -> processing; the refund moves to processing."""

        def stage(ro: ReturnOrder) -> None:
            ro.processed_at = self._clock.now()

        def perform(ro: ReturnOrder, transition: Transition) -> None:
            if EFFECT_PROCESS_REFUND in transition.effects:
                self._move_refund(ro, "process")

        return self._transition(
            return_order_id, "start_processing", actor_id, stage, perform,
        )

    def complete(
        self,
        return_order_id: UUID,
        actor_id: UUID,
        refund_amount: Decimal | int | str | None = None,
    ) -> ReturnOrderInfo:
        """processing -> completed.  The refund completes with
        ``refund_amount``, defaulting to the approved amount and never
        exceeding it."""
        final = None
        if refund_amount is not None:
            final = require_positive_amount("refund_amount", refund_amount)

        def stage(ro: ReturnOrder) -> None:
            ro.completed_at = self._clock.now()

        def perform(ro: ReturnOrder, transition: Transition) -> None:
            refund = self._refund_of(ro)
            if refund is None:
                if final is not None:
                    raise ValidationError(
                        "refund_amount",
                        f"return {ro.return_number} was approved without a refund",
                    )
                return
            if EFFECT_COMPLETE_REFUND in transition.effects:
                refund.processed_amount = final if final is not None else refund.amount
                refund.completed_at = ro.completed_at
                self._move_refund(ro, "complete", refund)
                ro.refund_amount = refund.processed_amount

        return self._transition(return_order_id, "complete", actor_id, stage, perform)

    def cancel(self, return_order_id: UUID, actor_id: UUID, reason: str) -> ReturnOrderInfo:
        """Cancel from draft, submitted or approved.  A pending refund is
        cancelled with it."""
        reason = require_text("reason", reason)

        def stage(ro: ReturnOrder) -> None:
            ro.cancel_reason = reason
            ro.cancelled_at = self._clock.now()

        def perform(ro: ReturnOrder, transition: Transition) -> None:
            if EFFECT_CANCEL_REFUND in transition.effects:
                self._move_refund(ro, "cancel")

        return self._transition(return_order_id, "cancel", actor_id, stage, perform)

    def delete(self, return_order_id: UUID, actor_id: UUID) -> ReturnOrderInfo:
        """Remove a draft return and its items."""

        def perform(ro: ReturnOrder, transition: Transition) -> None:
            if EFFECT_REMOVE_RECORD in transition.effects:
                self.session.delete(ro)

        return self._transition(return_order_id, "delete", actor_id, perform=perform)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        return_order_id: UUID,
        action: str,
        actor_id: UUID,
        stage: Stage | None = None,
        perform: Perform | None = None,
    ) -> ReturnOrderInfo:
        """Lock, resolve, stage field changes, check guards, perform effects,
        write the state.  Any failure rolls the whole sequence back."""
        actor_id = require_actor(actor_id)
        with LogContext.bind(actor_id=actor_id, return_order_id=return_order_id):
            with self._transaction(f"{action}_return_order"):
                ro = self._lock_return_order(return_order_id)
                previous = ro.status
                transition = RETURN_ORDER_WORKFLOW.resolve(previous, action, _ENTITY)

                ro.updated_by_id = actor_id
                snapshot = None
                if EFFECT_REMOVE_RECORD in transition.effects:
                    snapshot = self._to_info(ro)
                if stage is not None:
                    stage(ro)
                RETURN_ORDER_WORKFLOW.check_guards(transition, ro, self._guard_checks, _ENTITY)
                if perform is not None:
                    perform(ro, transition)
                if snapshot is None:
                    ro.status = transition.to_state
                self.session.flush()
                result = snapshot or self._to_info(ro)

            logger.info(
                "return_order_transitioned",
                extra={
                    "return_number": result.return_number,
                    "action": action,
                    "from_status": previous,
                    "to_status": transition.to_state,
                    "total_amount": str(result.total_amount),
                },
            )
        if EFFECT_INVALIDATE_RECEIVABLES in transition.effects and result.refund is not None:
            self._invalidate_receivables(result.party_id)
        return result

    def _lock_return_order(self, return_order_id: UUID) -> ReturnOrder:
        """Lock the parent order, then the return order.

        The order lock is what serializes returns and payments against the
        same order; the fixed order -> return -> sequence lock order keeps
        concurrent operations from deadlocking.
        """
        order_id = self.session.execute(
            select(ReturnOrder.order_id).where(ReturnOrder.id == return_order_id)
        ).scalar_one_or_none()
        if order_id is None:
            raise ReturnOrderNotFoundError(str(return_order_id))
        self._orders.get_order(order_id, for_update=True)
        ro = self.session.execute(
            select(ReturnOrder)
            .where(ReturnOrder.id == return_order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if ro is None:
            raise ReturnOrderNotFoundError(str(return_order_id))
        return ro

    def _check_order_returnable(self, order: OrderInfo) -> None:
        if order.status in self._blocked:
            raise ValidationError(
                "order_id",
                f"order {order.order_number} in status '{order.status}' "
                f"cannot be returned",
            )

    def _items_returnable(self, ro: ReturnOrder) -> bool:
        for item in ro.items:
            line = self._order_line(ro.order_id, item.order_line_id)
            self._check_returnable(ro, line, item.return_quantity)
        return True

    @staticmethod
    def _refund_within_total(ro: ReturnOrder) -> bool:
        requested = ro.refund_amount or ZERO
        if requested > ro.total_amount:
            raise OverRefundError(ro.return_number, requested, ro.total_amount)
        return True

    def _refund_within_paid(self, ro: ReturnOrder) -> bool:
        requested = ro.refund_amount or ZERO
        if requested == ZERO:
            return True
        refundable = self._payments.refundable_amount(ro.order_id)
        if requested > refundable:
            logger.warning(
                "over_refund_rejected",
                extra={
                    "return_number": ro.return_number,
                    "requested": str(requested),
                    "refundable": str(refundable),
                },
            )
            raise OverRefundError(ro.return_number, requested, refundable)
        return True

    def _attach_item(self, ro: ReturnOrder, item: ReturnItemInput, actor_id: UUID) -> None:
        quantity = _parse_quantity(item.quantity)
        condition = _parse(ItemCondition, "condition", item.condition)
        if any(existing.order_line_id == item.order_line_id for existing in ro.items):
            raise ValidationError(
                "order_line_id",
                f"order line {item.order_line_id} is already on return {ro.return_number}",
            )
        line = self._order_line(ro.order_id, item.order_line_id)
        ro.items.append(
            ReturnOrderItem(
                order_line_id=line.id,
                product_id=line.product_id,
                return_quantity=quantity,
                original_quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=round_money(quantity * line.unit_price),
                condition=condition.value,
                reason=item.reason,
                created_by_id=actor_id,
            )
        )

    def _order_line(self, order_id: UUID, order_line_id: UUID) -> OrderLine:
        line = self.session.execute(
            select(OrderLine)
            .where(OrderLine.id == order_line_id)
            .where(OrderLine.order_id == order_id)
        ).scalar_one_or_none()
        if line is None:
            raise OrderLineNotFoundError(str(order_line_id))
        return line

    @staticmethod
    def _find_item(ro: ReturnOrder, item_id: UUID) -> ReturnOrderItem:
        for item in ro.items:
            if item.id == item_id:
                return item
        raise ValidationError(
            "item_id", f"item {item_id} is not on return {ro.return_number}",
        )

    def _returned_elsewhere(self, order_line_id: UUID, return_order_id: UUID) -> Decimal:
        total = self.session.execute(
            select(func.coalesce(func.sum(ReturnOrderItem.return_quantity), ZERO))
            .join(ReturnOrder, ReturnOrder.id == ReturnOrderItem.return_order_id)
            .where(ReturnOrderItem.order_line_id == order_line_id)
            .where(ReturnOrder.id != return_order_id)
            .where(ReturnOrder.status.in_(ACTIVE_RETURN_STATES))
        ).scalar_one()
        return round_quantity(to_decimal(total))

    def _check_returnable(self, ro: ReturnOrder, line: OrderLine, quantity: Decimal) -> None:
        returnable = line.quantity - self._returned_elsewhere(line.id, ro.id)
        if quantity > returnable:
            logger.warning(
                "over_return_rejected",
                extra={
                    "order_line_id": str(line.id),
                    "requested": str(quantity),
                    "returnable": str(returnable),
                },
            )
            raise OverReturnError(str(line.id), quantity, round_quantity(returnable))

    def _refund_of(self, ro: ReturnOrder) -> RefundRecord | None:
        return self.session.execute(
            select(RefundRecord)
            .where(RefundRecord.return_order_id == ro.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create_refund(self, ro: ReturnOrder, amount: Decimal, method: RefundMethod) -> None:
        refund = RefundRecord(
            refund_number=self._sequences.next_number(
                SequenceService.REFUND, self._refund_prefix,
            ),
            order_id=ro.order_id,
            return_order_id=ro.id,
            party_id=ro.party_id,
            refund_type=refund_type_for(amount, ro.total_amount).value,
            method=method.value,
            amount=amount,
            refund_date=self._clock.today(),
            reason=ro.reason,
            status=REFUND_WORKFLOW.initial_state,
            created_by_id=ro.updated_by_id,
        )
        self.session.add(refund)
        logger.info(
            "return_refund_created",
            extra={
                "return_number": ro.return_number,
                "refund_number": refund.refund_number,
                "amount": str(amount),
            },
        )

    def _move_refund(
        self,
        ro: ReturnOrder,
        action: str,
        refund: RefundRecord | None = None,
    ) -> None:
        refund = refund or self._refund_of(ro)
        if refund is None:
            return
        transition = REFUND_WORKFLOW.resolve(refund.status, action, "refund")
        if action == "process":
            refund.processed_at = self._clock.now()
        REFUND_WORKFLOW.check_guards(transition, refund, REFUND_GUARD_CHECKS, "refund")
        refund.status = transition.to_state
        refund.updated_by_id = ro.updated_by_id

    def _to_info(self, ro: ReturnOrder) -> ReturnOrderInfo:
        self.session.flush()
        refund = self.session.execute(
            select(RefundRecord).where(RefundRecord.return_order_id == ro.id)
        ).scalar_one_or_none()
        return ReturnOrderInfo.from_model(ro, refund)
