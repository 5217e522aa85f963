"""
Approval domain types (``lpo_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the tiered LPO sign-off chain: the tiers, the
amount-threshold policy, and the read-only view of an order that the
approval router evaluates.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Consumed by ``lpo_engines.approval``
and by the orders module.

Invariants enforced
-------------------
* Tier order is fixed: DEPT, then GM (conditional), then ACC.
* The GM threshold lives in exactly one place: ``ApprovalPolicy``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Tier(str, Enum):
    """An approval stage in the sign-off chain."""

    DEPT = "DEPT"
    GM = "GM"
    ACC = "ACC"


TIER_ORDER: tuple[Tier, ...] = (Tier.DEPT, Tier.GM, Tier.ACC)


@dataclass(frozen=True)
class ApprovalRoles:
    """Role names that grant each tier capability."""

    head_of_department: str = "HOD"
    general_manager: str = "GM"
    final_approver: str = "FINAL_APPROVER"
    superuser_delegates: tuple[str, ...] = ("ADMIN",)


@dataclass(frozen=True)
class ApprovalPolicy:
    """Amount-threshold routing policy.

    ``gm_threshold`` is compared against the order total normalized to
    ``base_currency``; GM sign-off is required when the normalized total is
    strictly greater than the threshold.
    """

    gm_threshold: Decimal = Decimal("100")
    base_currency: str = "OMR"
    roles: ApprovalRoles = field(default_factory=ApprovalRoles)


@dataclass(frozen=True)
class ApprovalSubject:
    """What the router needs to know about an order.

    ``approved_tiers`` are the tiers that already carry an approval stamp.
    """

    order_id: str
    total_amount: Decimal
    fx_rate_to_base: Decimal = Decimal("1")
    department_id: str | None = None
    approved_tiers: frozenset[Tier] = frozenset()

    @property
    def normalized_total(self) -> Decimal:
        return self.total_amount * self.fx_rate_to_base
