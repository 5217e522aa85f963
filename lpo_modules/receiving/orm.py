"""
SQLAlchemy ORM persistence model for the Receiving module.

``ReceiptEventModel`` is the receiving ledger: one row per receipt against
an order line.  Rows are append-only (see ``lpo_kernel.db.immutability``);
a line's ``quantity_received`` always equals the sum of its rows.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from lpo_kernel.db.base import TrackedBase


class ReceiptEventModel(TrackedBase):
    """
    Goods received against one order line.

    Maps to the ``ReceiptEvent`` DTO in ``lpo_modules.receiving.models``.
    """

    __tablename__ = "lpo_receipt_events"

    __table_args__ = (
        Index("idx_receipt_order", "order_id"),
        Index("idx_receipt_line", "order_line_id"),
        Index("idx_receipt_delivery_note", "delivery_note_ref"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("lpo_orders.id"), nullable=False)
    order_line_id: Mapped[UUID] = mapped_column(ForeignKey("lpo_order_lines.id"), nullable=False)
    quantity: Mapped[Decimal]
    received_on: Mapped[date] = mapped_column(Date, nullable=False)
    destination_branch_id: Mapped[str] = mapped_column(String(100), nullable=False)
    destination_department_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    condition: Mapped[str] = mapped_column(String(20), nullable=False, default="NEW")
    condition_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    serial_numbers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    receiver_id: Mapped[UUID]
    recorded_at: Mapped[datetime]
    delivery_note_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    def to_dto(self):
        from lpo_modules.receiving.models import ReceiptCondition, ReceiptEvent

        return ReceiptEvent(
            id=self.id,
            order_id=self.order_id,
            order_line_id=self.order_line_id,
            quantity=self.quantity,
            received_on=self.received_on,
            destination_branch_id=self.destination_branch_id,
            destination_department_id=self.destination_department_id,
            condition=ReceiptCondition(self.condition),
            condition_notes=self.condition_notes,
            serial_numbers=tuple(self.serial_numbers or ()),
            receiver_id=self.receiver_id,
            recorded_at=self.recorded_at,
            delivery_note_ref=self.delivery_note_ref,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return f"<ReceiptEventModel line={self.order_line_id} qty={self.quantity}>"
