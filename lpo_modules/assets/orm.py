"""
SQLAlchemy ORM persistence models for the Assets module.

Invariants enforced
-------------------
* ``asset_tag`` is unique and stays NULL until the asset is put to use.
* A serial number is unique within its order line.
* ``AssetModel`` is versioned (``version_id_col``).
* ``AssetStatusChangeModel`` rows are append-only.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from lpo_kernel.db.base import TrackedBase


class AssetModel(TrackedBase):
    """
    A fixed asset.

    Maps to the ``Asset`` DTO in ``lpo_modules.assets.models``.  The order,
    line and receipt references are lookup-only back-references.
    """

    __tablename__ = "lpo_assets"

    __table_args__ = (
        UniqueConstraint("asset_tag", name="uq_asset_tag"),
        UniqueConstraint("order_line_id", "serial_number", name="uq_asset_line_serial"),
        Index("idx_asset_status", "status"),
        Index("idx_asset_order", "order_id"),
        Index("idx_asset_branch", "branch_id"),
    )

    asset_tag: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="PENDING_ACTIVATION")
    order_id: Mapped[UUID] = mapped_column(ForeignKey("lpo_orders.id"), nullable=False)
    order_line_id: Mapped[UUID] = mapped_column(ForeignKey("lpo_order_lines.id"), nullable=False)
    receipt_event_id: Mapped[UUID] = mapped_column(
        ForeignKey("lpo_receipt_events.id"), nullable=False
    )
    unit_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    serial_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quantity: Mapped[Decimal]
    purchase_value: Mapped[Decimal]
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(100), nullable=False)
    department_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    condition: Mapped[str] = mapped_column(String(20), nullable=False)
    received_on: Mapped[date] = mapped_column(Date, nullable=False)
    put_to_use_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    depreciation_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    activated_by_id: Mapped[UUID | None]
    disposed_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    disposal_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self):
        from lpo_modules.assets.models import Asset, AssetStatus

        return Asset(
            id=self.id,
            asset_tag=self.asset_tag,
            status=AssetStatus(self.status),
            order_id=self.order_id,
            order_line_id=self.order_line_id,
            receipt_event_id=self.receipt_event_id,
            unit_index=self.unit_index,
            description=self.description,
            category=self.category,
            serial_number=self.serial_number,
            quantity=self.quantity,
            purchase_value=self.purchase_value,
            currency=self.currency,
            branch_id=self.branch_id,
            department_id=self.department_id,
            condition=self.condition,
            received_on=self.received_on,
            put_to_use_on=self.put_to_use_on,
            depreciation_start_date=self.depreciation_start_date,
            activated_by_id=self.activated_by_id,
            disposed_on=self.disposed_on,
            disposal_reason=self.disposal_reason,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<AssetModel {self.asset_tag or self.id} [{self.status}]>"


class AssetStatusChangeModel(TrackedBase):
    """One asset status transition.  Append-only."""

    __tablename__ = "lpo_asset_status_changes"

    __table_args__ = (
        UniqueConstraint("asset_id", "sequence", name="uq_asset_change_sequence"),
        Index("idx_asset_change_asset", "asset_id"),
    )

    asset_id: Mapped[UUID] = mapped_column(ForeignKey("lpo_assets.id"), nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID]
    changed_at: Mapped[datetime]
    reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def to_dto(self):
        from lpo_modules.assets.models import AssetStatus, AssetStatusChange

        return AssetStatusChange(
            id=self.id,
            asset_id=self.asset_id,
            sequence=self.sequence,
            from_status=AssetStatus(self.from_status) if self.from_status else None,
            to_status=AssetStatus(self.to_status),
            actor_id=self.actor_id,
            changed_at=self.changed_at,
            reason=self.reason,
        )
