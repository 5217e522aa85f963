"""
Order Domain Models.

The nouns of the LPO lifecycle: orders, lines, line edits and the audit
trail.  Frozen dataclasses returned by ``OrderService``; the ORM rows in
``orm.py`` never leave the module.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from lpo_engines.quantity_ledger import LineReceiptStatus
from lpo_kernel.domain.approval import Tier


class OrderStatus(str, Enum):
    """LPO lifecycle states."""
    DRAFT = "DRAFT"
    PENDING_DEPT_APPROVAL = "PENDING_DEPT_APPROVAL"
    PENDING_GM_APPROVAL = "PENDING_GM_APPROVAL"
    PENDING_ACC_APPROVAL = "PENDING_ACC_APPROVAL"
    APPROVED = "APPROVED"
    SENT_TO_VENDOR = "SENT_TO_VENDOR"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"
    INVOICED = "INVOICED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"
    REJECTED_DEPT = "REJECTED_DEPT"
    REJECTED_GM = "REJECTED_GM"
    REJECTED_ACC = "REJECTED_ACC"

    @classmethod
    def pending_for(cls, tier: Tier) -> "OrderStatus":
        return cls(f"PENDING_{Tier(tier).value}_APPROVAL")

    @classmethod
    def rejected_at(cls, tier: Tier) -> "OrderStatus":
        return cls(f"REJECTED_{Tier(tier).value}")

    @property
    def pending_tier(self) -> Tier | None:
        if self.name.startswith("PENDING_"):
            return Tier(self.name.split("_")[1])
        return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    OrderStatus.CLOSED,
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED_DEPT,
    OrderStatus.REJECTED_GM,
    OrderStatus.REJECTED_ACC,
})

RECEIVABLE_STATUSES = frozenset({
    OrderStatus.SENT_TO_VENDOR,
    OrderStatus.PARTIALLY_RECEIVED,
})

CANCELLABLE_STATUSES = frozenset({
    OrderStatus.DRAFT,
    OrderStatus.PENDING_DEPT_APPROVAL,
    OrderStatus.PENDING_GM_APPROVAL,
    OrderStatus.PENDING_ACC_APPROVAL,
    OrderStatus.APPROVED,
})


class LineOp(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class AuditAction(str, Enum):
    """Actions recorded in the order audit trail."""
    CREATED = "CREATED"
    EDITED = "EDITED"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SENT_TO_VENDOR = "SENT_TO_VENDOR"
    GOODS_RECEIVED = "GOODS_RECEIVED"
    CANCELLED = "CANCELLED"
    INVOICED = "INVOICED"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class LineInput:
    """A new order line as supplied by the requester."""
    description: str
    quantity: Decimal
    unit_price: Decimal
    unit_of_measure: str = "EA"
    category: str | None = None
    item_code: str | None = None


@dataclass(frozen=True)
class LineChange:
    """
    One edit to a DRAFT order's lines.

    ``ADD`` carries ``line``; ``UPDATE`` carries ``line_id`` plus the fields
    to change (None leaves a field as is); ``DELETE`` carries ``line_id``
    and soft-deletes the line.
    """
    op: LineOp
    line_id: UUID | None = None
    line: LineInput | None = None
    description: str | None = None
    quantity: Decimal | None = None
    unit_price: Decimal | None = None
    unit_of_measure: str | None = None
    category: str | None = None

    @classmethod
    def add(cls, line: LineInput) -> "LineChange":
        return cls(op=LineOp.ADD, line=line)

    @classmethod
    def update(cls, line_id: UUID, **fields) -> "LineChange":
        return cls(op=LineOp.UPDATE, line_id=line_id, **fields)

    @classmethod
    def delete(cls, line_id: UUID) -> "LineChange":
        return cls(op=LineOp.DELETE, line_id=line_id)


@dataclass(frozen=True)
class OrderLine:
    """A line on an LPO with its receiving counters."""
    id: UUID
    order_id: UUID
    line_number: int
    description: str
    unit_of_measure: str
    quantity_ordered: Decimal
    unit_price: Decimal
    line_total: Decimal
    category: str | None = None
    item_code: str | None = None
    quantity_received: Decimal = Decimal("0")
    is_deleted: bool = False
    version: int = 1

    @property
    def quantity_pending(self) -> Decimal:
        return self.quantity_ordered - self.quantity_received

    @property
    def receipt_status(self) -> LineReceiptStatus:
        if self.quantity_received <= 0:
            return LineReceiptStatus.PENDING
        if self.quantity_received >= self.quantity_ordered:
            return LineReceiptStatus.FULL
        return LineReceiptStatus.PARTIAL


@dataclass(frozen=True)
class ApprovalStamp:
    """Who signed off a tier, when, and with what comment."""
    tier: Tier
    approver_id: UUID
    approved_at: datetime
    comment: str | None = None


@dataclass(frozen=True)
class Order:
    """A Local Purchase Order."""
    id: UUID
    lpo_number: str
    status: OrderStatus
    requester_id: UUID
    branch_id: str
    vendor_name: str
    currency: str
    order_date: date
    department_id: str | None = None
    vendor_id: str | None = None
    vendor_code: str | None = None
    vendor_address: str | None = None
    vendor_phone: str | None = None
    fx_rate_to_base: Decimal = Decimal("1")
    subtotal: Decimal = Decimal("0")
    vat_percent: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    quotation_ref: str | None = None
    document_ref: str | None = None
    expected_delivery_date: date | None = None
    delivery_address: str | None = None
    payment_terms: str | None = None
    notes: str | None = None
    submitted_at: datetime | None = None
    approvals: tuple[ApprovalStamp, ...] = ()
    rejected_tier: Tier | None = None
    rejected_by_id: UUID | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    sent_to_vendor_at: datetime | None = None
    invoiced_at: datetime | None = None
    invoice_ref: str | None = None
    closed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    lines: tuple[OrderLine, ...] = field(default_factory=tuple)
    version: int = 1

    @property
    def active_lines(self) -> tuple[OrderLine, ...]:
        return tuple(line for line in self.lines if not line.is_deleted)

    @property
    def normalized_total(self) -> Decimal:
        return self.total_amount * self.fx_rate_to_base

    def approval_for(self, tier: Tier) -> ApprovalStamp | None:
        for stamp in self.approvals:
            if stamp.tier == tier:
                return stamp
        return None


@dataclass(frozen=True)
class OrderAuditEntry:
    """One row of the order's append-only lifecycle trail."""
    id: UUID
    order_id: UUID
    sequence: int
    action: AuditAction
    actor_id: UUID
    occurred_at: datetime
    from_status: OrderStatus | None
    to_status: OrderStatus
    tier: Tier | None = None
    comment: str | None = None


@dataclass(frozen=True)
class OrderStats:
    """Counts per status plus value totals in the base currency."""
    total_orders: int
    by_status: dict[str, int]
    pending_approval_value: Decimal
    approved_value: Decimal
    base_currency: str
