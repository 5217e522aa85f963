"""
Asset Domain Models.

Fixed assets created from received capital goods, and their status history.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class AssetStatus(str, Enum):
    """Asset lifecycle states."""
    PENDING_ACTIVATION = "PENDING_ACTIVATION"
    ACTIVE = "ACTIVE"
    UNDER_REPAIR = "UNDER_REPAIR"
    IN_STORAGE = "IN_STORAGE"
    DISPOSED = "DISPOSED"


@dataclass(frozen=True)
class Asset:
    """A fixed asset awaiting or in use."""
    id: UUID
    status: AssetStatus
    order_id: UUID
    order_line_id: UUID
    receipt_event_id: UUID
    description: str
    quantity: Decimal
    purchase_value: Decimal
    currency: str
    branch_id: str
    received_on: date
    condition: str
    asset_tag: str | None = None
    unit_index: int | None = None
    category: str | None = None
    serial_number: str | None = None
    department_id: str | None = None
    put_to_use_on: date | None = None
    depreciation_start_date: date | None = None
    activated_by_id: UUID | None = None
    disposed_on: date | None = None
    disposal_reason: str | None = None
    version: int = 1


@dataclass(frozen=True)
class AssetStatusChange:
    """One asset status transition.  Append-only."""
    id: UUID
    asset_id: UUID
    sequence: int
    from_status: AssetStatus | None
    to_status: AssetStatus
    actor_id: UUID
    changed_at: datetime
    reason: str | None = None
