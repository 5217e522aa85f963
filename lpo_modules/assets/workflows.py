"""
Asset Workflow.

PENDING_ACTIVATION -> ACTIVE happens only through ``put_to_use``.  In use,
an asset moves freely between ACTIVE, UNDER_REPAIR and IN_STORAGE; any of
those may be DISPOSED, which is terminal and needs a reason.
"""

from lpo_kernel.logging_config import get_logger
from lpo_modules._workflow import Guard, Transition, Workflow
from lpo_modules.assets.models import AssetStatus

logger = get_logger("modules.assets.workflows")

REASON_GIVEN = Guard(
    name="reason_given",
    description="A disposal reason is recorded",
)

_IN_USE = (AssetStatus.ACTIVE, AssetStatus.UNDER_REPAIR, AssetStatus.IN_STORAGE)


def _in_use_transitions() -> tuple[Transition, ...]:
    transitions = []
    for source in _IN_USE:
        for target in _IN_USE:
            if target is not source:
                transitions.append(Transition(source.value, target.value, action="change_status"))
        transitions.append(
            Transition(
                source.value, AssetStatus.DISPOSED.value,
                action="change_status", guard=REASON_GIVEN,
            )
        )
    return tuple(transitions)


ASSET_WORKFLOW = Workflow(
    name="asset",
    description="Fixed asset lifecycle from receipt to disposal",
    initial_state=AssetStatus.PENDING_ACTIVATION.value,
    states=tuple(s.value for s in AssetStatus),
    transitions=(
        Transition(
            AssetStatus.PENDING_ACTIVATION.value, AssetStatus.ACTIVE.value, action="put_to_use"
        ),
        *_in_use_transitions(),
    ),
    terminal_states=(AssetStatus.DISPOSED.value,),
)

logger.info(
    "asset_workflow_registered",
    extra={
        "workflow_name": ASSET_WORKFLOW.name,
        "state_count": len(ASSET_WORKFLOW.states),
        "transition_count": len(ASSET_WORKFLOW.transitions),
        "initial_state": ASSET_WORKFLOW.initial_state,
    },
)
