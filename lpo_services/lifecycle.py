"""
lpo_services.lifecycle -- The public operation surface of the LPO engine.

Responsibility:
    One method per lifecycle operation.  Each call opens its own session,
    holds the per-entity lock, binds the log context, and delegates to the
    module service that owns the transaction.

Architecture position:
    Services -- the only layer callers (UI, API, batch jobs) talk to.
    Constructs module services per call; owns no business rules.

Invariants enforced:
    - Mutations of one order (or one asset) are serialized; different
      orders proceed in parallel.
    - Lock waits are bounded by ``config.lock_timeout_seconds``; a timeout
      raises ``LockTimeoutError``.
    - Vendor dispatch runs after the SENT_TO_VENDOR commit and cannot roll
      it back.

Usage:
    lifecycle = ProcurementLifecycle(get_session_factory(), clock=clock)
    order = lifecycle.create_order(requester, branch_id="MCT", vendor_name="Acme")
    order = lifecycle.submit_order(order.id, requester)
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Sequence
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from lpo_config import ProcurementConfig, get_active_config
from lpo_kernel.domain.actor import Actor
from lpo_kernel.domain.approval import Tier
from lpo_kernel.domain.clock import Clock, SystemClock
from lpo_kernel.logging_config import LogContext, get_logger
from lpo_kernel.services.entity_lock import EntityLockRegistry
from lpo_modules.assets.models import Asset, AssetStatus, AssetStatusChange
from lpo_modules.assets.service import AssetService
from lpo_modules.orders.models import (
    LineChange,
    LineInput,
    Order,
    OrderAuditEntry,
    OrderStats,
    OrderStatus,
)
from lpo_modules.orders.service import OrderService
from lpo_modules.receiving.models import (
    DeliveryResult,
    LineReceipt,
    ReceiptCondition,
    ReceiptEvent,
    ReceiptResult,
)
from lpo_modules.receiving.service import ReceivingService
from lpo_services.notifications import LoggingDispatcher, VendorDispatcher

logger = get_logger("services.lifecycle")


class ProcurementLifecycle:
    """Facade over the order, receiving and asset services.

    Contract:
        Every argument that identifies the caller is an explicit ``Actor``;
        nothing is looked up from ambient state.

    Non-goals:
        - Does NOT retry ``ConflictError``; callers refetch and retry.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: ProcurementConfig | None = None,
        clock: Clock | None = None,
        lock_registry: EntityLockRegistry | None = None,
        dispatcher: VendorDispatcher | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._locks = lock_registry or EntityLockRegistry(self._config.lock_timeout_seconds)
        self._dispatcher = dispatcher or LoggingDispatcher()

    @property
    def locks(self) -> EntityLockRegistry:
        return self._locks

    @contextmanager
    def _operation(
        self,
        operation: str,
        actor: Actor | None = None,
        order_id: UUID | None = None,
        asset_id: UUID | None = None,
    ) -> Generator[Session, None, None]:
        key = None
        if order_id is not None:
            key = EntityLockRegistry.order_key(order_id)
        elif asset_id is not None:
            key = EntityLockRegistry.asset_key(asset_id)

        with LogContext.bind(
            correlation_id=uuid4(),
            actor_id=actor.actor_id if actor else None,
            order_id=order_id,
            asset_id=asset_id,
            operation=operation,
        ):
            if key is None:
                with self._session() as session:
                    yield session
            else:
                with self._locks.hold(key), self._session() as session:
                    yield session

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def _orders(self, session: Session) -> OrderService:
        return OrderService(session, self._config, self._clock)

    def _assets(self, session: Session) -> AssetService:
        return AssetService(session, self._config, self._clock)

    def _receiving(self, session: Session) -> ReceivingService:
        return ReceivingService(session, self._config, self._clock, self._assets(session))

    # =========================================================================
    # Orders
    # =========================================================================

    def create_order(
        self,
        actor: Actor,
        *,
        branch_id: str,
        vendor_name: str = "",
        lines: Sequence[LineInput] = (),
        department_id: str | None = None,
        currency: str | None = None,
        order_date: date | None = None,
        **header: Any,
    ) -> Order:
        with self._operation("create_order", actor) as session:
            return self._orders(session).create_order(
                actor,
                branch_id=branch_id,
                vendor_name=vendor_name,
                lines=lines,
                department_id=department_id,
                currency=currency,
                order_date=order_date,
                **header,
            )

    def edit_order(
        self,
        order_id: UUID,
        actor: Actor,
        line_changes: Sequence[LineChange] = (),
        *,
        header: dict[str, Any] | None = None,
        expected_version: int | None = None,
    ) -> Order:
        with self._operation("edit_order", actor, order_id=order_id) as session:
            return self._orders(session).edit_order(
                order_id, actor, line_changes, header=header, expected_version=expected_version
            )

    def submit_order(
        self,
        order_id: UUID,
        actor: Actor,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> Order:
        with self._operation("submit_order", actor, order_id=order_id) as session:
            return self._orders(session).submit_order(order_id, actor, comment, expected_version)

    def approve_order(
        self,
        order_id: UUID,
        actor: Actor,
        tier: Tier | str,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> Order:
        with self._operation("approve_order", actor, order_id=order_id) as session:
            return self._orders(session).approve_order(
                order_id, actor, tier, comment, expected_version
            )

    def reject_order(
        self,
        order_id: UUID,
        actor: Actor,
        tier: Tier | str,
        reason: str,
        expected_version: int | None = None,
    ) -> Order:
        with self._operation("reject_order", actor, order_id=order_id) as session:
            return self._orders(session).reject_order(
                order_id, actor, tier, reason, expected_version
            )

    def send_to_vendor(
        self,
        order_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Order:
        with self._operation("send_to_vendor", actor, order_id=order_id) as session:
            order = self._orders(session).send_to_vendor(order_id, actor, expected_version)
            try:
                self._dispatcher.dispatch(order)
            except Exception:
                # Fire-and-forget: the transition is already committed.
                logger.exception(
                    "vendor_dispatch_failed",
                    extra={"order_id": str(order.id), "lpo_number": order.lpo_number},
                )
            return order

    def cancel_order(
        self,
        order_id: UUID,
        actor: Actor,
        reason: str,
        expected_version: int | None = None,
    ) -> Order:
        with self._operation("cancel_order", actor, order_id=order_id) as session:
            return self._orders(session).cancel_order(order_id, actor, reason, expected_version)

    def mark_invoiced(
        self,
        order_id: UUID,
        actor: Actor,
        invoice_ref: str | None = None,
        expected_version: int | None = None,
    ) -> Order:
        with self._operation("mark_invoiced", actor, order_id=order_id) as session:
            return self._orders(session).mark_invoiced(
                order_id, actor, invoice_ref, expected_version
            )

    def close_order(
        self,
        order_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Order:
        with self._operation("close_order", actor, order_id=order_id) as session:
            return self._orders(session).close_order(order_id, actor, expected_version)

    # =========================================================================
    # Receiving
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
        with self._session() as session:
            order_id = self._receiving(session).order_id_for_line(line_id)
        with self._operation("receive_goods", actor, order_id=order_id) as session:
            return self._receiving(session).receive_goods(
                actor,
                line_id,
                quantity,
                condition=condition,
                serial_numbers=serial_numbers,
                destination_branch_id=destination_branch_id,
                destination_department_id=destination_department_id,
                received_on=received_on,
                condition_notes=condition_notes,
                notes=notes,
                delivery_note_ref=delivery_note_ref,
                expected_version=expected_version,
            )

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
        with self._operation("receive_delivery", actor, order_id=order_id) as session:
            return self._receiving(session).receive_delivery(
                actor,
                order_id,
                receipts,
                delivery_note_ref=delivery_note_ref,
                destination_branch_id=destination_branch_id,
                destination_department_id=destination_department_id,
                received_on=received_on,
                expected_version=expected_version,
            )

    # =========================================================================
    # Assets
    # =========================================================================

    def put_asset_to_use(
        self,
        asset_id: UUID,
        actor: Actor,
        in_service_date: date | None = None,
        branch_id: str | None = None,
        department_id: str | None = None,
        expected_version: int | None = None,
    ) -> Asset:
        with self._operation("put_asset_to_use", actor, asset_id=asset_id) as session:
            return self._assets(session).put_to_use(
                asset_id, actor, in_service_date, branch_id, department_id, expected_version
            )

    def change_asset_status(
        self,
        asset_id: UUID,
        actor: Actor,
        new_status: AssetStatus | str,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> Asset:
        with self._operation("change_asset_status", actor, asset_id=asset_id) as session:
            return self._assets(session).change_status(
                asset_id, actor, new_status, reason, expected_version
            )

    # =========================================================================
    # Read accessors
    # =========================================================================

    def get_order(self, order_id: UUID) -> Order:
        with self._session() as session:
            return self._orders(session).get_order(order_id)

    def get_order_history(self, order_id: UUID) -> list[OrderAuditEntry]:
        with self._session() as session:
            return self._orders(session).get_order_history(order_id)

    def derived_status(self, order_id: UUID) -> OrderStatus:
        with self._session() as session:
            return self._orders(session).derived_status(order_id)

    def required_tiers(self, order_id: UUID) -> list[Tier]:
        with self._session() as session:
            return self._orders(session).required_tiers(order_id)

    def list_orders(self, **filters: Any) -> list[Order]:
        with self._session() as session:
            return self._orders(session).list_orders(**filters)

    def list_pending_for(self, actor: Actor) -> list[Order]:
        with self._session() as session:
            return self._orders(session).list_pending_for(actor)

    def order_stats(self) -> OrderStats:
        with self._session() as session:
            return self._orders(session).order_stats()

    def list_receipts(
        self,
        order_id: UUID | None = None,
        line_id: UUID | None = None,
        delivery_note_ref: str | None = None,
    ) -> list[ReceiptEvent]:
        with self._session() as session:
            return self._receiving(session).list_receipts(order_id, line_id, delivery_note_ref)

    def received_total(self, line_id: UUID) -> Decimal:
        with self._session() as session:
            return self._receiving(session).received_total(line_id)

    def get_asset(self, asset_id: UUID) -> Asset:
        with self._session() as session:
            return self._assets(session).get_asset(asset_id)

    def list_assets(
        self,
        status: AssetStatus | str | None = None,
        branch_id: str | None = None,
        order_id: UUID | None = None,
    ) -> list[Asset]:
        with self._session() as session:
            return self._assets(session).list_assets(status, branch_id, order_id)

    def list_pending_assets(self, branch_id: str | None = None) -> list[Asset]:
        with self._session() as session:
            return self._assets(session).list_pending_assets(branch_id)

    def get_asset_history(self, asset_id: UUID) -> list[AssetStatusChange]:
        with self._session() as session:
            return self._assets(session).get_asset_history(asset_id)
