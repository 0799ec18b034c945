"""
Ledger document lifecycles.

Transition tables for payments, refunds and return orders, with the guards
each transition must pass and the side effects it carries.  Services never
compare statuses themselves: they resolve the transition, evaluate its
guards through ``Workflow.check_guards`` and perform the named effects.
"""

from ledger_kernel.domain.workflow import Guard, Transition, Workflow
from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.lifecycles")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_ITEMS = Guard(
    name="has_items",
    description="Return order has at least one line item",
)

HAS_REASON = Guard(
    name="has_reason",
    description="Return order carries a non-empty reason",
)

WITHIN_OUTSTANDING = Guard(
    name="within_outstanding",
    description="Confirmed payments stay within the order total",
)

COVERS_OPEN_REFUNDS = Guard(
    name="covers_open_refunds",
    description="Remaining confirmed payments still cover every open refund",
)

WITHIN_RETURN_TOTAL = Guard(
    name="within_return_total",
    description="Refund amount does not exceed the return order total",
)

WITHIN_REFUNDABLE = Guard(
    name="within_refundable",
    description="Refund amount fits confirmed payments not claimed by open refunds",
)

WITHIN_APPROVED_REFUND = Guard(
    name="within_approved_refund",
    description="Processed refund amount does not exceed the requested amount",
)

WITHIN_RETURNABLE = Guard(
    name="within_returnable",
    description="Item quantities fit the unreturned remainder of their lines",
)


# Effects performed by the owning service in the transition's transaction.
EFFECT_CREATE_REFUND = "create_refund"
EFFECT_PROCESS_REFUND = "process_refund"
EFFECT_COMPLETE_REFUND = "complete_refund"
EFFECT_CANCEL_REFUND = "cancel_refund"
EFFECT_REMOVE_RECORD = "remove_record"
# Performed after commit: the party's receivables view is stale.
EFFECT_INVALIDATE_RECEIVABLES = "invalidate_receivables"


# -----------------------------------------------------------------------------
# Payment
# -----------------------------------------------------------------------------

# Voiding a pending payment changes no confirmed total, so nothing to
# invalidate.
PAYMENT_WORKFLOW = Workflow(
    name="payment",
    description="Payment record lifecycle; payments are voided, never deleted",
    initial_state="pending",
    states=("pending", "confirmed", "voided"),
    transitions=(
        Transition(
            "pending", "confirmed", action="confirm",
            guards=(WITHIN_OUTSTANDING,),
            effects=(EFFECT_INVALIDATE_RECEIVABLES,),
        ),
        Transition("pending", "voided", action="void"),
        Transition(
            "confirmed", "voided", action="void",
            guards=(COVERS_OPEN_REFUNDS,),
            effects=(EFFECT_INVALIDATE_RECEIVABLES,),
        ),
    ),
    terminal_states=("voided",),
)


# -----------------------------------------------------------------------------
# Refund
# -----------------------------------------------------------------------------

REFUND_WORKFLOW = Workflow(
    name="refund",
    description="Refund record lifecycle",
    initial_state="pending",
    states=("pending", "processing", "completed", "rejected", "cancelled"),
    transitions=(
        Transition(
            "pending", "processing", action="process",
            effects=(EFFECT_INVALIDATE_RECEIVABLES,),
        ),
        Transition(
            "processing", "completed", action="complete",
            guards=(WITHIN_APPROVED_REFUND,),
            effects=(EFFECT_INVALIDATE_RECEIVABLES,),
        ),
        Transition(
            "pending", "rejected", action="reject",
            effects=(EFFECT_INVALIDATE_RECEIVABLES,),
        ),
        Transition(
            "processing", "rejected", action="reject",
            effects=(EFFECT_INVALIDATE_RECEIVABLES,),
        ),
        Transition(
            "pending", "cancelled", action="cancel",
            effects=(EFFECT_INVALIDATE_RECEIVABLES,),
        ),
        Transition(
            "processing", "cancelled", action="cancel",
            effects=(EFFECT_INVALIDATE_RECEIVABLES,),
        ),
    ),
    terminal_states=("completed", "rejected", "cancelled"),
)


# -----------------------------------------------------------------------------
# Return order
# -----------------------------------------------------------------------------

# "deleted" is never stored: the delete transition removes the row.
RETURN_ORDER_WORKFLOW = Workflow(
    name="return_order",
    description="Return request approval and refund lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "submitted",
        "approved",
        "rejected",
        "processing",
        "completed",
        "cancelled",
        "deleted",
    ),
    transitions=(
        Transition("draft", "draft", action="edit", guards=(WITHIN_RETURNABLE,)),
        Transition(
            "draft", "submitted", action="submit",
            guards=(HAS_ITEMS, HAS_REASON, WITHIN_RETURNABLE),
        ),
        Transition("draft", "cancelled", action="cancel"),
        Transition(
            "draft", "deleted", action="delete",
            effects=(EFFECT_REMOVE_RECORD,),
        ),
        Transition(
            "submitted", "approved", action="approve",
            guards=(WITHIN_RETURN_TOTAL, WITHIN_REFUNDABLE),
            effects=(EFFECT_CREATE_REFUND, EFFECT_INVALIDATE_RECEIVABLES),
        ),
        Transition("submitted", "rejected", action="reject"),
        Transition("submitted", "cancelled", action="cancel"),
        Transition(
            "approved", "processing", action="start_processing",
            effects=(EFFECT_PROCESS_REFUND, EFFECT_INVALIDATE_RECEIVABLES),
        ),
        Transition(
            "approved", "cancelled", action="cancel",
            effects=(EFFECT_CANCEL_REFUND, EFFECT_INVALIDATE_RECEIVABLES),
        ),
        Transition(
            "processing", "completed", action="complete",
            effects=(EFFECT_COMPLETE_REFUND, EFFECT_INVALIDATE_RECEIVABLES),
        ),
    ),
    terminal_states=("rejected", "completed", "cancelled", "deleted"),
)

# States in which items still count against an order line's returnable
# remainder.
ACTIVE_RETURN_STATES = ("draft", "submitted", "approved", "processing", "completed")


for _workflow in (PAYMENT_WORKFLOW, REFUND_WORKFLOW, RETURN_ORDER_WORKFLOW):
    logger.debug(
        "workflow_registered",
        extra={
            "workflow_name": _workflow.name,
            "state_count": len(_workflow.states),
            "transition_count": len(_workflow.transitions),
            "initial_state": _workflow.initial_state,
        },
    )
