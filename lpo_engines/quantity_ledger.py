"""
lpo_engines.quantity_ledger -- Ordered vs. received quantity arithmetic.

Responsibility:
    Apply a receipt to one line's counters and derive per-line and
    order-level receipt status.

Invariants enforced:
    - received + pending == ordered, and pending >= 0, after every call.
    - A receipt larger than pending raises ``OverReceiptError`` and returns
      nothing; the input value is never modified.
    - Order status is derived from the lines, never stored here.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from lpo_kernel.exceptions import OverReceiptError, ValidationError


class LineReceiptStatus(str, Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    FULL = "FULL"


class OrderReceiptStatus(str, Enum):
    NONE_RECEIVED = "NONE_RECEIVED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"


@dataclass(frozen=True)
class LineQuantities:
    """Counters for one order line."""

    line_id: str
    ordered: Decimal
    received: Decimal = Decimal("0")

    @property
    def pending(self) -> Decimal:
        return self.ordered - self.received

    @property
    def status(self) -> LineReceiptStatus:
        if self.received <= 0:
            return LineReceiptStatus.PENDING
        if self.received >= self.ordered:
            return LineReceiptStatus.FULL
        return LineReceiptStatus.PARTIAL


def apply_receipt(
    line: LineQuantities,
    quantity: Decimal,
    order_id: str | None = None,
) -> tuple[LineQuantities, LineReceiptStatus]:
    """Apply ``quantity`` to ``line`` and return the new counters and status.

    Raises:
        ValidationError: quantity is not positive.
        OverReceiptError: quantity exceeds the line's pending quantity.
    """
    if quantity <= 0:
        raise ValidationError(
            f"Receipt quantity must be positive, got {quantity}",
            field="quantity",
            order_id=order_id,
            line_id=line.line_id,
        )
    if quantity > line.pending:
        raise OverReceiptError(
            line.line_id, requested=quantity, pending=line.pending, order_id=order_id
        )
    updated = LineQuantities(
        line_id=line.line_id,
        ordered=line.ordered,
        received=line.received + quantity,
    )
    return updated, updated.status


def aggregate_status(lines: Iterable[LineQuantities]) -> OrderReceiptStatus:
    statuses = [line.status for line in lines]
    if statuses and all(s == LineReceiptStatus.FULL for s in statuses):
        return OrderReceiptStatus.FULLY_RECEIVED
    if any(s != LineReceiptStatus.PENDING for s in statuses):
        return OrderReceiptStatus.PARTIALLY_RECEIVED
    return OrderReceiptStatus.NONE_RECEIVED
