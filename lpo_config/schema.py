"""
Configuration Schema (``lpo_config.schema``).

Frozen dataclasses describing every tunable of the lifecycle engine.  The
loader builds them from YAML; services receive them by constructor
injection and never read files or environment variables themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from lpo_kernel.domain.approval import ApprovalPolicy, ApprovalRoles


@dataclass(frozen=True)
class AssetCategoryDef:
    """A capital category and whether its units are tracked individually."""

    code: str
    serialized: bool = True


@dataclass(frozen=True)
class RoleConfig:
    """Role names granting lifecycle capabilities."""

    head_of_department: str = "HOD"
    general_manager: str = "GM"
    final_approver: str = "FINAL_APPROVER"
    superuser_delegates: tuple[str, ...] = ("ADMIN",)
    receivers: tuple[str, ...] = ("STORE_KEEPER", "ADMIN")
    asset_managers: tuple[str, ...] = ("ASSET_MANAGER", "ADMIN")


@dataclass(frozen=True)
class ProcurementConfig:
    """
    Complete configuration for the LPO lifecycle engine.

    Field defaults mirror ``lpo_config/default.yaml``.
    """

    base_currency: str = "OMR"
    default_currency: str = "OMR"
    gm_approval_threshold: Decimal = Decimal("100")
    roles: RoleConfig = field(default_factory=RoleConfig)
    asset_categories: tuple[AssetCategoryDef, ...] = ()
    integral_units: frozenset[str] = frozenset({"EA", "PCS", "NOS", "UNIT", "SET", "BOX"})
    lpo_number_prefix: str = "LPO"
    asset_tag_prefix: str = "FA"
    lock_timeout_seconds: float = 5.0

    def __post_init__(self):
        if self.gm_approval_threshold < 0:
            raise ValueError("gm_approval_threshold must be >= 0")
        if self.lock_timeout_seconds <= 0:
            raise ValueError("lock_timeout_seconds must be > 0")

    @property
    def approval_policy(self) -> ApprovalPolicy:
        return ApprovalPolicy(
            gm_threshold=self.gm_approval_threshold,
            base_currency=self.base_currency,
            roles=ApprovalRoles(
                head_of_department=self.roles.head_of_department,
                general_manager=self.roles.general_manager,
                final_approver=self.roles.final_approver,
                superuser_delegates=self.roles.superuser_delegates,
            ),
        )

    def asset_category(self, code: str | None) -> AssetCategoryDef | None:
        """The capital category definition for ``code``, or None if not capital."""
        if not code:
            return None
        wanted = code.strip().upper()
        for category in self.asset_categories:
            if category.code == wanted:
                return category
        return None

    def is_integral_unit(self, unit_of_measure: str) -> bool:
        return unit_of_measure.strip().upper() in self.integral_units
