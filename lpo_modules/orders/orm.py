"""
SQLAlchemy ORM persistence models for the Orders module.

Responsibility
--------------
Persist LPOs, their lines, and the append-only order audit trail.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``OrderService`` (and by the
receiving module for line counters).  Inherits from ``TrackedBase``.

Invariants enforced
-------------------
* All monetary and quantity fields use ``Decimal`` (Numeric(38,9)).
* Enum fields stored as String(50).
* ``OrderModel`` and ``OrderLineModel`` carry a ``version`` column wired
  as ``version_id_col``: every UPDATE is a compare-and-swap.
* ``status`` is a cache written only from ``derive_status``; the approval
  stamps, lifecycle timestamps and line counters are the source of truth.
* ``(order_id, line_number)`` is unique.
* ``OrderAuditEventModel`` rows are append-only (see
  ``lpo_kernel.db.immutability``).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lpo_kernel.db.base import TrackedBase
from lpo_kernel.domain.approval import TIER_ORDER, Tier

# ---------------------------------------------------------------------------
# OrderModel
# ---------------------------------------------------------------------------


class OrderModel(TrackedBase):
    """
    A Local Purchase Order.

    Maps to the ``Order`` DTO in ``lpo_modules.orders.models``.
    """

    __tablename__ = "lpo_orders"

    __table_args__ = (
        UniqueConstraint("lpo_number", name="uq_lpo_number"),
        Index("idx_lpo_status", "status"),
        Index("idx_lpo_branch", "branch_id"),
        Index("idx_lpo_department", "department_id"),
        Index("idx_lpo_vendor", "vendor_name"),
    )

    lpo_number: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="DRAFT")
    requester_id: Mapped[UUID]
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    branch_id: Mapped[str] = mapped_column(String(100), nullable=False)
    department_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    vendor_name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    vendor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vendor_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    vendor_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    vendor_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="OMR")
    fx_rate_to_base: Mapped[Decimal] = mapped_column(default=Decimal("1"))
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    vat_percent: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    vat_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_percent: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    quotation_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    # Opaque document-store reference (quotation / LPO PDF)
    document_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)
    expected_delivery_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    delivery_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    submitted_at: Mapped[datetime | None]
    submitted_by_id: Mapped[UUID | None]

    dept_approver_id: Mapped[UUID | None]
    dept_approved_at: Mapped[datetime | None]
    dept_approval_comment: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    gm_approver_id: Mapped[UUID | None]
    gm_approved_at: Mapped[datetime | None]
    gm_approval_comment: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    acc_approver_id: Mapped[UUID | None]
    acc_approved_at: Mapped[datetime | None]
    acc_approval_comment: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    rejected_tier: Mapped[str | None] = mapped_column(String(10), nullable=True)
    rejected_by_id: Mapped[UUID | None]
    rejected_at: Mapped[datetime | None]
    rejection_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    sent_to_vendor_at: Mapped[datetime | None]
    sent_by_id: Mapped[UUID | None]
    invoiced_at: Mapped[datetime | None]
    invoice_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    closed_at: Mapped[datetime | None]
    cancelled_at: Mapped[datetime | None]
    cancellation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    lines: Mapped[list["OrderLineModel"]] = relationship(
        "OrderLineModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderLineModel.line_number",
    )

    @property
    def active_lines(self) -> list["OrderLineModel"]:
        return [line for line in self.lines if not line.is_deleted]

    def approval_stamp(self, tier: Tier) -> tuple[UUID | None, datetime | None, str | None]:
        prefix = Tier(tier).value.lower()
        return (
            getattr(self, f"{prefix}_approver_id"),
            getattr(self, f"{prefix}_approved_at"),
            getattr(self, f"{prefix}_approval_comment"),
        )

    def set_approval_stamp(
        self, tier: Tier, approver_id: UUID, approved_at: datetime, comment: str | None
    ) -> None:
        prefix = Tier(tier).value.lower()
        setattr(self, f"{prefix}_approver_id", approver_id)
        setattr(self, f"{prefix}_approved_at", approved_at)
        setattr(self, f"{prefix}_approval_comment", comment)

    @property
    def approved_tiers(self) -> frozenset[Tier]:
        return frozenset(t for t in TIER_ORDER if self.approval_stamp(t)[1] is not None)

    def to_dto(self):
        from lpo_modules.orders.models import ApprovalStamp, Order, OrderStatus

        approvals = []
        for tier in TIER_ORDER:
            approver_id, approved_at, comment = self.approval_stamp(tier)
            if approved_at is not None:
                approvals.append(ApprovalStamp(tier, approver_id, approved_at, comment))

        return Order(
            id=self.id,
            lpo_number=self.lpo_number,
            status=OrderStatus(self.status),
            requester_id=self.requester_id,
            branch_id=self.branch_id,
            department_id=self.department_id,
            vendor_name=self.vendor_name,
            vendor_id=self.vendor_id,
            vendor_code=self.vendor_code,
            vendor_address=self.vendor_address,
            vendor_phone=self.vendor_phone,
            currency=self.currency,
            order_date=self.order_date,
            fx_rate_to_base=self.fx_rate_to_base,
            subtotal=self.subtotal,
            vat_percent=self.vat_percent,
            vat_amount=self.vat_amount,
            discount_percent=self.discount_percent,
            discount_amount=self.discount_amount,
            total_amount=self.total_amount,
            quotation_ref=self.quotation_ref,
            document_ref=self.document_ref,
            expected_delivery_date=self.expected_delivery_date,
            delivery_address=self.delivery_address,
            payment_terms=self.payment_terms,
            notes=self.notes,
            submitted_at=self.submitted_at,
            approvals=tuple(approvals),
            rejected_tier=Tier(self.rejected_tier) if self.rejected_tier else None,
            rejected_by_id=self.rejected_by_id,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            sent_to_vendor_at=self.sent_to_vendor_at,
            invoiced_at=self.invoiced_at,
            invoice_ref=self.invoice_ref,
            closed_at=self.closed_at,
            cancelled_at=self.cancelled_at,
            cancellation_reason=self.cancellation_reason,
            lines=tuple(line.to_dto() for line in self.lines),
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<OrderModel {self.lpo_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# OrderLineModel
# ---------------------------------------------------------------------------


class OrderLineModel(TrackedBase):
    """
    A line on an LPO.

    ``quantity_received`` is written only by the receiving module through
    the quantity ledger; it always equals the sum of the line's receipt
    events.
    """

    __tablename__ = "lpo_order_lines"

    __table_args__ = (
        UniqueConstraint("order_id", "line_number", name="uq_lpo_line_number"),
        Index("idx_lpo_line_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("lpo_orders.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(String(20), nullable=False, default="EA")
    quantity_ordered: Mapped[Decimal]
    unit_price: Mapped[Decimal]
    line_total: Mapped[Decimal]
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    item_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quantity_received: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    order: Mapped["OrderModel"] = relationship("OrderModel", back_populates="lines")

    def to_dto(self):
        from lpo_modules.orders.models import OrderLine

        return OrderLine(
            id=self.id,
            order_id=self.order_id,
            line_number=self.line_number,
            description=self.description,
            unit_of_measure=self.unit_of_measure,
            quantity_ordered=self.quantity_ordered,
            unit_price=self.unit_price,
            line_total=self.line_total,
            category=self.category,
            item_code=self.item_code,
            quantity_received=self.quantity_received,
            is_deleted=self.is_deleted,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<OrderLineModel #{self.line_number} {self.description}>"


# ---------------------------------------------------------------------------
# OrderAuditEventModel
# ---------------------------------------------------------------------------


class OrderAuditEventModel(TrackedBase):
    """One lifecycle transition of an order.  Append-only."""

    __tablename__ = "lpo_order_audit_events"

    __table_args__ = (
        UniqueConstraint("order_id", "sequence", name="uq_lpo_audit_sequence"),
        Index("idx_lpo_audit_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("lpo_orders.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID]
    occurred_at: Mapped[datetime]
    from_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    to_status: Mapped[str] = mapped_column(String(50), nullable=False)
    tier: Mapped[str | None] = mapped_column(String(10), nullable=True)
    comment: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def to_dto(self):
        from lpo_modules.orders.models import AuditAction, OrderAuditEntry, OrderStatus

        return OrderAuditEntry(
            id=self.id,
            order_id=self.order_id,
            sequence=self.sequence,
            action=AuditAction(self.action),
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            from_status=OrderStatus(self.from_status) if self.from_status else None,
            to_status=OrderStatus(self.to_status),
            tier=Tier(self.tier) if self.tier else None,
            comment=self.comment,
        )
