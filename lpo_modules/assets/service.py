"""
Assets Module Service (``lpo_modules.assets.service``).

Responsibility
--------------
The Asset Registrar: creates PENDING_ACTIVATION assets for received capital
goods, assigns the permanent asset tag when an asset is put to use, and
moves assets through their in-use states.

Architecture position
---------------------
**Modules layer**.  ``create_pending_for_receipt`` is called by the
receiving module inside its own transaction and never commits; every other
public method owns its transaction boundary.

Invariants enforced
-------------------
* Tags are allocated lazily, at put-to-use, from the yearly asset-tag
  sequence.  Callers never supply a tag.
* ``put_to_use`` is legal only from PENDING_ACTIVATION; a second call fails
  with ``InvalidStateError``.
* ``depreciation_start_date`` equals the put-to-use date and never changes.
* Every status change appends one ``AssetStatusChangeModel`` row.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lpo_config import AssetCategoryDef, ProcurementConfig, get_active_config
from lpo_kernel.db.locking import check_version, lock_row
from lpo_kernel.domain.actor import Actor
from lpo_kernel.domain.clock import Clock, SystemClock
from lpo_kernel.domain.currency import quantize_amount
from lpo_kernel.exceptions import AssetNotFoundError, InvalidStateError, ValidationError
from lpo_kernel.logging_config import get_logger
from lpo_kernel.services.entity_lock import EntityLockRegistry
from lpo_kernel.services.sequence_service import SequenceService
from lpo_modules._service_helpers import require_role, require_text, service_transaction
from lpo_modules.assets.models import Asset, AssetStatus, AssetStatusChange
from lpo_modules.assets.orm import AssetModel, AssetStatusChangeModel
from lpo_modules.assets.workflows import ASSET_WORKFLOW

logger = get_logger("modules.assets.service")


class AssetService:
    """Registrar for fixed assets originating from goods receipts."""

    def __init__(
        self,
        session: Session,
        config: ProcurementConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _load(self, asset_id: UUID, lock: bool = True) -> AssetModel:
        stmt = select(AssetModel).where(AssetModel.id == asset_id)
        if lock:
            asset = lock_row(
                self._session,
                stmt,
                EntityLockRegistry.asset_key(asset_id),
                self._config.lock_timeout_seconds,
            )
        else:
            asset = self._session.execute(stmt).scalar_one_or_none()
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    def _record_change(
        self,
        asset: AssetModel,
        from_status: AssetStatus | None,
        to_status: AssetStatus,
        actor_id: UUID,
        reason: str | None = None,
    ) -> None:
        last = self._session.execute(
            select(func.max(AssetStatusChangeModel.sequence)).where(
                AssetStatusChangeModel.asset_id == asset.id
            )
        ).scalar()
        self._session.add(
            AssetStatusChangeModel(
                id=uuid4(),
                asset_id=asset.id,
                sequence=(last or 0) + 1,
                from_status=from_status.value if from_status else None,
                to_status=to_status.value,
                actor_id=actor_id,
                changed_at=self._clock.now(),
                reason=reason,
                created_by_id=actor_id,
            )
        )

    def _require_manager(self, actor: Actor, action: str) -> None:
        require_role(actor, self._config.roles.asset_managers, action)

    # =========================================================================
    # Creation (called by receiving)
    # =========================================================================

    def create_pending_for_receipt(
        self,
        receipt,
        line,
        currency: str,
        category: AssetCategoryDef,
        actor_id: UUID,
    ) -> list[AssetModel]:
        """
        Create PENDING_ACTIVATION assets for one receipt event.

        Serialized categories yield one asset per serial number; others
        yield a single asset carrying the whole received quantity.

        Does NOT commit -- the receiving transaction owns the boundary.
        """
        if category.serialized:
            units = [
                (index, serial, Decimal("1"))
                for index, serial in enumerate(receipt.serial_numbers, start=1)
            ]
        else:
            units = [(None, None, receipt.quantity)]

        assets = []
        for unit_index, serial, quantity in units:
            asset = AssetModel(
                id=uuid4(),
                asset_tag=None,
                status=AssetStatus.PENDING_ACTIVATION.value,
                order_id=receipt.order_id,
                order_line_id=line.id,
                receipt_event_id=receipt.id,
                unit_index=unit_index,
                description=line.description,
                category=category.code,
                serial_number=serial,
                quantity=quantity,
                purchase_value=quantize_amount(line.unit_price * quantity, currency),
                currency=currency,
                branch_id=receipt.destination_branch_id,
                department_id=receipt.destination_department_id,
                condition=receipt.condition,
                received_on=receipt.received_on,
                created_by_id=actor_id,
            )
            self._session.add(asset)
            self._record_change(asset, None, AssetStatus.PENDING_ACTIVATION, actor_id)
            assets.append(asset)

        self._session.flush()
        logger.info(
            "pending_assets_created",
            extra={
                "receipt_event_id": str(receipt.id),
                "order_line_id": str(line.id),
                "category": category.code,
                "asset_count": len(assets),
            },
        )
        return assets

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def put_to_use(
        self,
        asset_id: UUID,
        actor: Actor,
        in_service_date: date | None = None,
        branch_id: str | None = None,
        department_id: str | None = None,
        expected_version: int | None = None,
    ) -> Asset:
        """PENDING_ACTIVATION -> ACTIVE; assigns the tag and fixes depreciation start."""
        with service_transaction(
            self._session, logger, "asset_put_to_use", "asset", asset_id,
            asset_id=asset_id, actor_id=actor.actor_id,
        ) as outcome:
            asset = self._load(asset_id)
            check_version("asset", asset.id, asset.version, expected_version)
            current = AssetStatus(asset.status)
            ASSET_WORKFLOW.require(current.value, "put_to_use", "asset", asset.id)
            self._require_manager(actor, "put_to_use")

            effective = in_service_date or self._clock.today()
            if effective < asset.received_on:
                raise ValidationError(
                    f"in-service date {effective} precedes receipt date {asset.received_on}",
                    field="in_service_date",
                    order_id=asset.order_id,
                )
            asset.asset_tag = self._sequences.format_asset_tag(
                self._config.asset_tag_prefix, effective.year
            )
            asset.put_to_use_on = effective
            asset.depreciation_start_date = effective
            asset.activated_by_id = actor.actor_id
            if branch_id:
                asset.branch_id = branch_id
            if department_id:
                asset.department_id = department_id
            asset.status = AssetStatus.ACTIVE.value
            asset.updated_by_id = actor.actor_id
            self._record_change(asset, current, AssetStatus.ACTIVE, actor.actor_id)
            self._session.flush()
            outcome.update(asset_tag=asset.asset_tag, depreciation_start_date=effective)
        return asset.to_dto()

    def change_status(
        self,
        asset_id: UUID,
        actor: Actor,
        new_status: AssetStatus | str,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> Asset:
        """Move an in-use asset; DISPOSED is terminal and requires ``reason``."""
        try:
            target = AssetStatus(new_status)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown asset status {new_status!r}", field="new_status"
            ) from exc
        with service_transaction(
            self._session, logger, "asset_change_status", "asset", asset_id,
            asset_id=asset_id, actor_id=actor.actor_id, to_status=target.value,
        ):
            asset = self._load(asset_id)
            check_version("asset", asset.id, asset.version, expected_version)
            current = AssetStatus(asset.status)
            ASSET_WORKFLOW.require(current.value, "change_status", "asset", asset.id)
            ASSET_WORKFLOW.check_target(
                current.value, "change_status", target.value, "asset", asset.id
            )
            self._require_manager(actor, "change_status")
            if target == AssetStatus.DISPOSED:
                reason = require_text(reason, "reason")
                asset.disposed_on = self._clock.today()
                asset.disposal_reason = reason
            asset.status = target.value
            asset.updated_by_id = actor.actor_id
            self._record_change(asset, current, target, actor.actor_id, reason)
            self._session.flush()
        return asset.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_asset(self, asset_id: UUID) -> Asset:
        return self._load(asset_id, lock=False).to_dto()

    def list_assets(
        self,
        status: AssetStatus | str | None = None,
        branch_id: str | None = None,
        order_id: UUID | None = None,
    ) -> list[Asset]:
        stmt = select(AssetModel)
        if status is not None:
            stmt = stmt.where(AssetModel.status == AssetStatus(status).value)
        if branch_id is not None:
            stmt = stmt.where(AssetModel.branch_id == branch_id)
        if order_id is not None:
            stmt = stmt.where(AssetModel.order_id == order_id)
        stmt = stmt.order_by(AssetModel.received_on, AssetModel.order_line_id, AssetModel.unit_index)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def list_pending_assets(self, branch_id: str | None = None) -> list[Asset]:
        return self.list_assets(status=AssetStatus.PENDING_ACTIVATION, branch_id=branch_id)

    def get_asset_history(self, asset_id: UUID) -> list[AssetStatusChange]:
        self._load(asset_id, lock=False)
        rows = self._session.execute(
            select(AssetStatusChangeModel)
            .where(AssetStatusChangeModel.asset_id == asset_id)
            .order_by(AssetStatusChangeModel.sequence)
        ).scalars()
        return [row.to_dto() for row in rows]
