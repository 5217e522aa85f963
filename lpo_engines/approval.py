"""
lpo_engines.approval -- Pure approval routing for the LPO sign-off chain.

Responsibility:
    Decide which tiers an order must pass, which tier is next, and whether
    an actor holds the capability to act at a tier.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import lpo_kernel/domain/ types.

Invariants enforced:
    - DEPT and ACC are always required; GM is required iff the order total,
      normalized to the policy base currency, is strictly greater than
      ``policy.gm_threshold``.
    - Tiers are always returned in DEPT, GM, ACC order.
    - Routing is re-evaluated against the current policy only until the
      ACC stamp exists; after that ``next_tier`` is None.
    - ``can_act`` is total: it returns a bool for every input and never raises.

Failure modes:
    - None.  Authorization failures are reported by the caller as
      ``ForbiddenError``.
"""

from __future__ import annotations

from lpo_kernel.domain.actor import Actor
from lpo_kernel.domain.approval import (
    TIER_ORDER,
    ApprovalPolicy,
    ApprovalSubject,
    Tier,
)


def requires_gm(subject: ApprovalSubject, policy: ApprovalPolicy) -> bool:
    return subject.normalized_total > policy.gm_threshold


def required_tiers(subject: ApprovalSubject, policy: ApprovalPolicy) -> list[Tier]:
    """Ordered list of tiers the order must pass before it is APPROVED."""
    gm_needed = requires_gm(subject, policy)
    return [t for t in TIER_ORDER if t is not Tier.GM or gm_needed]


def next_tier(subject: ApprovalSubject, policy: ApprovalPolicy) -> Tier | None:
    """The first required tier without an approval stamp, or None when done.

    ACC is always the last tier, so an ACC stamp closes the chain whatever
    the current threshold says.  Lowering ``gm_threshold`` later never
    reopens an approved order.
    """
    if Tier.ACC in subject.approved_tiers:
        return None
    for tier in required_tiers(subject, policy):
        if tier not in subject.approved_tiers:
            return tier
    return None


def roles_for_tier(tier: Tier, policy: ApprovalPolicy) -> tuple[str, ...]:
    """Role names that may act at ``tier`` (delegates included)."""
    roles = policy.roles
    primary = {
        Tier.DEPT: roles.head_of_department,
        Tier.GM: roles.general_manager,
        Tier.ACC: roles.final_approver,
    }[tier]
    return (primary, *roles.superuser_delegates)


def can_act(
    actor: Actor,
    tier: Tier,
    department_id: str | None,
    policy: ApprovalPolicy,
) -> bool:
    """Whether ``actor`` may approve or reject ``tier`` for an order.

    DEPT requires a head of department whose own department matches the
    order's department.  When the order has no department only superuser
    delegates may act at DEPT.
    """
    try:
        roles = policy.roles
        if actor.has_any_role(roles.superuser_delegates):
            return True
        if tier == Tier.DEPT:
            if department_id is None or actor.department_id is None:
                return False
            return (
                actor.has_any_role((roles.head_of_department,))
                and actor.department_id.strip().upper() == department_id.strip().upper()
            )
        if tier == Tier.GM:
            return actor.has_any_role((roles.general_manager,))
        if tier == Tier.ACC:
            return actor.has_any_role((roles.final_approver,))
    except (AttributeError, TypeError):
        return False
    return False
