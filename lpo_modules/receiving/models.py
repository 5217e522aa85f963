"""
Receiving Domain Models.

Receipt requests, the immutable receipt event, and what a receipt produced.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class ReceiptCondition(str, Enum):
    """Condition of goods as recorded by the receiver."""
    NEW = "NEW"
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    DEFECTIVE = "DEFECTIVE"


@dataclass(frozen=True)
class LineReceipt:
    """One line of a delivery as entered by the receiver."""
    line_id: UUID
    quantity: Decimal
    condition: ReceiptCondition = ReceiptCondition.NEW
    serial_numbers: tuple[str, ...] = ()
    condition_notes: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReceiptEvent:
    """An append-only record of goods received against one order line."""
    id: UUID
    order_id: UUID
    order_line_id: UUID
    quantity: Decimal
    received_on: date
    destination_branch_id: str
    condition: ReceiptCondition
    receiver_id: UUID
    recorded_at: datetime
    destination_department_id: str | None = None
    serial_numbers: tuple[str, ...] = ()
    condition_notes: str | None = None
    notes: str | None = None
    delivery_note_ref: str | None = None


@dataclass(frozen=True)
class ReceiptResult:
    """A receipt event and the pending assets it created."""
    receipt: ReceiptEvent
    asset_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class DeliveryResult:
    """Everything recorded for one delivery note."""
    order_id: UUID
    order_status: str
    delivery_note_ref: str | None
    receipts: tuple[ReceiptResult, ...] = field(default_factory=tuple)

    @property
    def asset_ids(self) -> tuple[UUID, ...]:
        return tuple(a for r in self.receipts for a in r.asset_ids)
