"""
Receiving Module Service (``lpo_modules.receiving.service``).

Responsibility
--------------
The Goods-Receipt Processor: validates a receipt against the order's
lifecycle state and the line's pending quantity, appends the immutable
receipt event, applies it to the quantity ledger, re-derives the order
status and creates pending assets for capital lines.

Single-line receiving (``receive_goods``) and delivery-note receiving
(``receive_delivery``) are two entry points into the same ledger.

Invariants enforced
-------------------
* received + pending == ordered on every line after every call; pending
  never goes negative.
* The ledger update, the order status, the receipt events and the assets
  commit together or not at all.
* A serialized capital line needs exactly one unique serial per unit.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from lpo_config import ProcurementConfig, get_active_config
from lpo_engines.quantity_ledger import LineQuantities, apply_receipt
from lpo_kernel.db.locking import check_version, lock_row
from lpo_kernel.domain.actor import Actor
from lpo_kernel.domain.clock import Clock, SystemClock
from lpo_kernel.exceptions import (
    OrderLineNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from lpo_kernel.logging_config import get_logger
from lpo_kernel.services.entity_lock import EntityLockRegistry
from lpo_modules._service_helpers import (
    is_integral,
    require_role,
    service_transaction,
    to_decimal,
)
from lpo_modules.assets.service import AssetService
from lpo_modules.orders.models import AuditAction, OrderStatus
from lpo_modules.orders.orm import OrderLineModel, OrderModel
from lpo_modules.orders.service import OrderService
from lpo_modules.orders.workflows import ORDER_WORKFLOW, derive_status
from lpo_modules.receiving.models import (
    DeliveryResult,
    LineReceipt,
    ReceiptCondition,
    ReceiptEvent,
    ReceiptResult,
)
from lpo_modules.receiving.orm import ReceiptEventModel

logger = get_logger("modules.receiving.service")


class ReceivingService:
    """
    Records deliveries against LPO lines.

    Guarantees
    ----------
    * Session is committed only when every line of the request succeeded.
    * The quantity ledger engine is the only code that computes new
      received counters.
    """

    def __init__(
        self,
        session: Session,
        config: ProcurementConfig | None = None,
        clock: Clock | None = None,
        assets: AssetService | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._orders = OrderService(session, self._config, self._clock)
        self._assets = assets or AssetService(session, self._config, self._clock)

    # =========================================================================
    # Public operations
    # =========================================================================

    def receive_goods(
        self,
        actor: Actor,
        line_id: UUID,
        quantity: Decimal,
        *,
        condition: ReceiptCondition | str = ReceiptCondition.NEW,
        serial_numbers: Sequence[str] = (),
        destination_branch_id: str | None = None,
        destination_department_id: str | None = None,
        received_on: date | None = None,
        condition_notes: str | None = None,
        notes: str | None = None,
        delivery_note_ref: str | None = None,
        expected_version: int | None = None,
    ) -> ReceiptResult:
        """
        Receive ``quantity`` units against one order line.

        ``expected_version`` is compared with the line's version.
        """
        order_id = self.order_id_for_line(line_id)
        request = LineReceipt(
            line_id=line_id,
            quantity=quantity,
            condition=condition,
            serial_numbers=tuple(serial_numbers),
            condition_notes=condition_notes,
            notes=notes,
        )
        delivery = self._receive(
            actor,
            order_id,
            [request],
            destination_branch_id=destination_branch_id,
            destination_department_id=destination_department_id,
            received_on=received_on,
            delivery_note_ref=delivery_note_ref,
            line_expected_version=expected_version,
            operation="goods_receipt",
        )
        return delivery.receipts[0]

    def receive_delivery(
        self,
        actor: Actor,
        order_id: UUID,
        receipts: Sequence[LineReceipt],
        *,
        delivery_note_ref: str | None = None,
        destination_branch_id: str | None = None,
        destination_department_id: str | None = None,
        received_on: date | None = None,
        expected_version: int | None = None,
    ) -> DeliveryResult:
        """
        Receive several lines of one order under one delivery note.

        ``expected_version`` is compared with the order's version.
        """
        if not receipts:
            raise ValidationError("delivery has no lines", field="receipts", order_id=order_id)
        return self._receive(
            actor,
            order_id,
            list(receipts),
            destination_branch_id=destination_branch_id,
            destination_department_id=destination_department_id,
            received_on=received_on,
            delivery_note_ref=delivery_note_ref,
            order_expected_version=expected_version,
            operation="delivery_receipt",
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def order_id_for_line(self, line_id: UUID) -> UUID:
        order_id = self._session.execute(
            select(OrderLineModel.order_id).where(OrderLineModel.id == line_id)
        ).scalar_one_or_none()
        if order_id is None:
            raise OrderLineNotFoundError(line_id)
        return order_id

    def list_receipts(
        self,
        order_id: UUID | None = None,
        line_id: UUID | None = None,
        delivery_note_ref: str | None = None,
    ) -> list[ReceiptEvent]:
        stmt = select(ReceiptEventModel)
        if order_id is not None:
            stmt = stmt.where(ReceiptEventModel.order_id == order_id)
        if line_id is not None:
            stmt = stmt.where(ReceiptEventModel.order_line_id == line_id)
        if delivery_note_ref is not None:
            stmt = stmt.where(ReceiptEventModel.delivery_note_ref == delivery_note_ref)
        stmt = stmt.order_by(ReceiptEventModel.received_on, ReceiptEventModel.recorded_at)
        return [row.to_dto() for row in self._session.execute(stmt).scalars()]

    def received_total(self, line_id: UUID) -> Decimal:
        """Sum of the line's receipt events, independent of the cached counter."""
        rows = self._session.execute(
            select(ReceiptEventModel.quantity).where(ReceiptEventModel.order_line_id == line_id)
        ).scalars()
        return sum(rows, Decimal("0"))

    # =========================================================================
    # Internals
    # =========================================================================

    def _receive(
        self,
        actor: Actor,
        order_id: UUID,
        requests: list[LineReceipt],
        *,
        destination_branch_id: str | None,
        destination_department_id: str | None,
        received_on: date | None,
        delivery_note_ref: str | None,
        operation: str,
        order_expected_version: int | None = None,
        line_expected_version: int | None = None,
    ) -> DeliveryResult:
        with service_transaction(
            self._session, logger, operation, "order", order_id,
            order_id=order_id, actor_id=actor.actor_id,
            line_count=len(requests), delivery_note_ref=delivery_note_ref,
        ) as outcome:
            order = lock_row(
                self._session,
                select(OrderModel).where(OrderModel.id == order_id),
                EntityLockRegistry.order_key(order_id),
                self._config.lock_timeout_seconds,
            )
            if order is None:
                raise OrderNotFoundError(order_id)
            check_version("order", order.id, order.version, order_expected_version)

            policy = self._config.approval_policy
            current = derive_status(order, policy)
            ORDER_WORKFLOW.require(current.value, "receive", "order", order.id)
            require_role(actor, self._config.roles.receivers, "receive", order_id=order.id)

            common = {
                "destination_branch_id": destination_branch_id or order.branch_id,
                "destination_department_id": destination_department_id or order.department_id,
                "received_on": received_on or self._clock.today(),
                "delivery_note_ref": delivery_note_ref,
            }
            results = []
            for request in requests:
                line = self._lock_line(order, request.line_id)
                if line_expected_version is not None:
                    check_version("order_line", line.id, line.version, line_expected_version)
                results.append(self._receive_line(actor, order, line, request, common))

            new_status = derive_status(order, policy)
            ORDER_WORKFLOW.check_target(
                current.value, "receive", new_status.value, "order", order.id
            )
            order.status = new_status.value
            order.updated_by_id = actor.actor_id
            received = sum((r.receipt.quantity for r in results), Decimal("0"))
            self._orders.record_audit(
                order,
                AuditAction.GOODS_RECEIVED,
                actor.actor_id,
                current,
                new_status,
                comment=f"{received} unit(s) on {len(results)} line(s)"
                + (f", delivery note {delivery_note_ref}" if delivery_note_ref else ""),
            )
            self._session.flush()
            outcome.update(
                status=new_status.value,
                quantity_received=str(received),
                asset_count=sum(len(r.asset_ids) for r in results),
            )
        return DeliveryResult(
            order_id=order.id,
            order_status=OrderStatus(order.status).value,
            delivery_note_ref=delivery_note_ref,
            receipts=tuple(results),
        )

    def _lock_line(self, order: OrderModel, line_id: UUID) -> OrderLineModel:
        line = lock_row(
            self._session,
            select(OrderLineModel).where(
                OrderLineModel.id == line_id,
                OrderLineModel.order_id == order.id,
            ),
            f"order_line:{line_id}",
            self._config.lock_timeout_seconds,
        )
        if line is None or line.is_deleted:
            raise OrderLineNotFoundError(line_id, order_id=order.id)
        return line

    def _validate_serials(
        self,
        order: OrderModel,
        line: OrderLineModel,
        quantity: Decimal,
        serials: tuple[str, ...],
        serialized: bool,
    ) -> tuple[str, ...]:
        ctx: dict[str, Any] = {"order_id": order.id, "line_id": line.id, "field": "serial_numbers"}
        cleaned = tuple(str(s).strip() for s in serials)
        if any(not s for s in cleaned):
            raise ValidationError("serial numbers must not be blank", **ctx)
        if serialized and len(cleaned) != quantity:
            raise ValidationError(
                f"{len(cleaned)} serial number(s) given for {quantity} unit(s)", **ctx
            )
        if len(set(cleaned)) != len(cleaned):
            raise ValidationError("duplicate serial numbers in receipt", **ctx)
        if cleaned:
            previous = set()
            for row in self._session.execute(
                select(ReceiptEventModel.serial_numbers).where(
                    ReceiptEventModel.order_line_id == line.id
                )
            ).scalars():
                previous.update(row or ())
            clash = sorted(previous.intersection(cleaned))
            if clash:
                raise ValidationError(
                    f"serial numbers already received on this line: {clash}", **ctx
                )
        return cleaned

    def _receive_line(
        self,
        actor: Actor,
        order: OrderModel,
        line: OrderLineModel,
        request: LineReceipt,
        common: dict[str, Any],
    ) -> ReceiptResult:
        ctx = {"order_id": order.id, "line_id": line.id}
        quantity = to_decimal(request.quantity, "quantity", **ctx)
        try:
            condition = ReceiptCondition(request.condition.strip().upper())
        except (AttributeError, ValueError) as exc:
            raise ValidationError(
                f"Unknown condition {request.condition!r}", field="condition", **ctx
            ) from exc

        category = self._config.asset_category(line.category)
        serialized = category is not None and category.serialized
        if quantity > 0 and (serialized or self._config.is_integral_unit(line.unit_of_measure)):
            if not is_integral(quantity):
                raise ValidationError(
                    f"quantity must be a whole number for unit {line.unit_of_measure}",
                    field="quantity",
                    **ctx,
                )

        # Ledger first: over-receipt and non-positive quantities fail here.
        updated, line_status = apply_receipt(
            LineQuantities(
                line_id=str(line.id),
                ordered=line.quantity_ordered,
                received=line.quantity_received,
            ),
            quantity,
            order_id=str(order.id),
        )
        serials = self._validate_serials(order, line, quantity, request.serial_numbers, serialized)

        receipt = ReceiptEventModel(
            id=uuid4(),
            order_id=order.id,
            order_line_id=line.id,
            quantity=quantity,
            condition=condition.value,
            condition_notes=request.condition_notes,
            serial_numbers=list(serials),
            receiver_id=actor.actor_id,
            recorded_at=self._clock.now(),
            notes=request.notes,
            created_by_id=actor.actor_id,
            **common,
        )
        self._session.add(receipt)
        line.quantity_received = updated.received
        line.updated_by_id = actor.actor_id
        self._session.flush()

        asset_ids: tuple[UUID, ...] = ()
        if category is not None:
            assets = self._assets.create_pending_for_receipt(
                receipt, line, order.currency, category, actor.actor_id
            )
            asset_ids = tuple(a.id for a in assets)

        logger.info(
            "line_receipt_applied",
            extra={
                "order_id": str(order.id),
                "line_id": str(line.id),
                "quantity": str(quantity),
                "quantity_received": str(updated.received),
                "quantity_pending": str(updated.pending),
                "line_status": line_status.value,
                "asset_count": len(asset_ids),
            },
        )
        return ReceiptResult(receipt=receipt.to_dto(), asset_ids=asset_ids)
