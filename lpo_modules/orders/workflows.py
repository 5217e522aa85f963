"""
Order Workflow.

The LPO state machine: one transition table plus the pure function that
derives an order's status from its stored stamps and line counters.
"""

from lpo_engines.approval import next_tier
from lpo_engines.quantity_ledger import LineQuantities, OrderReceiptStatus, aggregate_status
from lpo_kernel.domain.approval import ApprovalPolicy, ApprovalSubject, Tier
from lpo_kernel.logging_config import get_logger
from lpo_modules._workflow import Guard, Transition, Workflow
from lpo_modules.orders.models import OrderStatus

logger = get_logger("modules.orders.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ORDER_COMPLETE = Guard(
    name="order_complete",
    description="Vendor named and at least one valid line",
)

TIER_CAPABILITY = Guard(
    name="tier_capability",
    description="Actor holds the approval capability for the pending tier",
)

NEXT_TIER_REQUIRED = Guard(
    name="next_tier_required",
    description="Approval router reports a further required tier",
)

ALL_TIERS_APPROVED = Guard(
    name="all_tiers_approved",
    description="Approval router reports no remaining tier",
)

REASON_GIVEN = Guard(
    name="reason_given",
    description="A non-empty reason accompanies the action",
)

SOME_LINES_OUTSTANDING = Guard(
    name="some_lines_outstanding",
    description="At least one line still has a pending quantity",
)

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="Every line is fully received",
)

logger.info(
    "order_workflow_guards_defined",
    extra={
        "guards": [
            ORDER_COMPLETE.name,
            TIER_CAPABILITY.name,
            NEXT_TIER_REQUIRED.name,
            ALL_TIERS_APPROVED.name,
            REASON_GIVEN.name,
            SOME_LINES_OUTSTANDING.name,
            ALL_LINES_RECEIVED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# LPO Workflow
# -----------------------------------------------------------------------------

_S = OrderStatus

_PENDING = (
    _S.PENDING_DEPT_APPROVAL.value,
    _S.PENDING_GM_APPROVAL.value,
    _S.PENDING_ACC_APPROVAL.value,
)


def _approval_transitions() -> tuple[Transition, ...]:
    transitions = []
    for source in _PENDING:
        later = _PENDING[_PENDING.index(source) + 1:]
        for target in later:
            transitions.append(
                Transition(source, target, action="approve", guard=NEXT_TIER_REQUIRED)
            )
        transitions.append(
            Transition(source, _S.APPROVED.value, action="approve", guard=ALL_TIERS_APPROVED)
        )
        tier = _S(source).pending_tier
        transitions.append(
            Transition(source, _S.rejected_at(tier).value, action="reject", guard=REASON_GIVEN)
        )
        transitions.append(
            Transition(source, _S.CANCELLED.value, action="cancel", guard=REASON_GIVEN)
        )
    return tuple(transitions)


ORDER_WORKFLOW = Workflow(
    name="lpo",
    description="Local purchase order lifecycle",
    initial_state=_S.DRAFT.value,
    states=tuple(s.value for s in OrderStatus),
    transitions=(
        Transition(_S.DRAFT.value, _S.DRAFT.value, action="edit"),
        *(
            Transition(_S.DRAFT.value, target, action="submit", guard=ORDER_COMPLETE)
            for target in _PENDING
        ),
        Transition(_S.DRAFT.value, _S.CANCELLED.value, action="cancel", guard=REASON_GIVEN),
        *_approval_transitions(),
        Transition(_S.APPROVED.value, _S.SENT_TO_VENDOR.value, action="send_to_vendor"),
        Transition(_S.APPROVED.value, _S.CANCELLED.value, action="cancel", guard=REASON_GIVEN),
        Transition(_S.SENT_TO_VENDOR.value, _S.PARTIALLY_RECEIVED.value, action="receive", guard=SOME_LINES_OUTSTANDING),
        Transition(_S.SENT_TO_VENDOR.value, _S.FULLY_RECEIVED.value, action="receive", guard=ALL_LINES_RECEIVED),
        Transition(_S.PARTIALLY_RECEIVED.value, _S.PARTIALLY_RECEIVED.value, action="receive", guard=SOME_LINES_OUTSTANDING),
        Transition(_S.PARTIALLY_RECEIVED.value, _S.FULLY_RECEIVED.value, action="receive", guard=ALL_LINES_RECEIVED),
        Transition(_S.FULLY_RECEIVED.value, _S.INVOICED.value, action="mark_invoiced"),
        Transition(_S.INVOICED.value, _S.CLOSED.value, action="close"),
    ),
    terminal_states=tuple(
        s.value for s in (
            _S.CLOSED, _S.CANCELLED, _S.REJECTED_DEPT, _S.REJECTED_GM, _S.REJECTED_ACC,
        )
    ),
)

logger.info(
    "order_workflow_registered",
    extra={
        "workflow_name": ORDER_WORKFLOW.name,
        "state_count": len(ORDER_WORKFLOW.states),
        "transition_count": len(ORDER_WORKFLOW.transitions),
        "initial_state": ORDER_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Status derivation
# -----------------------------------------------------------------------------


def approval_subject(order) -> ApprovalSubject:
    """The approval router's view of an ``OrderModel``."""
    return ApprovalSubject(
        order_id=str(order.id),
        total_amount=order.total_amount,
        fx_rate_to_base=order.fx_rate_to_base,
        department_id=order.department_id,
        approved_tiers=order.approved_tiers,
    )


def line_quantities(order) -> list[LineQuantities]:
    return [
        LineQuantities(
            line_id=str(line.id),
            ordered=line.quantity_ordered,
            received=line.quantity_received,
        )
        for line in order.active_lines
    ]


def derive_status(order, policy: ApprovalPolicy) -> OrderStatus:
    """
    Derive the status of an ``OrderModel`` from its stamps and counters.

    Never reads ``order.status``; the stored column is a cache of this
    function's result.
    """
    if order.cancelled_at is not None:
        return OrderStatus.CANCELLED
    if order.closed_at is not None:
        return OrderStatus.CLOSED
    if order.invoiced_at is not None:
        return OrderStatus.INVOICED
    if order.rejected_tier:
        return OrderStatus.rejected_at(Tier(order.rejected_tier))
    if order.submitted_at is None:
        return OrderStatus.DRAFT

    tier = next_tier(approval_subject(order), policy)
    if tier is not None:
        return OrderStatus.pending_for(tier)
    if order.sent_to_vendor_at is None:
        return OrderStatus.APPROVED

    received = aggregate_status(line_quantities(order))
    if received == OrderReceiptStatus.FULLY_RECEIVED:
        return OrderStatus.FULLY_RECEIVED
    if received == OrderReceiptStatus.PARTIALLY_RECEIVED:
        return OrderStatus.PARTIALLY_RECEIVED
    return OrderStatus.SENT_TO_VENDOR
