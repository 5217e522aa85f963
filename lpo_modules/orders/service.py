"""
Orders Module Service (``lpo_modules.orders.service``).

Responsibility
--------------
The Order State Machine: create, edit, submit, approve, reject, send,
cancel, invoice and close LPOs.  Pricing and approval routing are
delegated to ``lpo_engines``; the status exposed to callers is always
``derive_status`` of the stored stamps and line counters.

Architecture position
---------------------
**Modules layer**.  ``OrderService`` is the sole writer of order headers,
lines and the order audit trail.  Line receiving counters are written by
``lpo_modules.receiving`` through the quantity ledger.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on success,
  ``rollback`` on any exception).
* Totals are recomputed from the active lines in the same flush as any
  line mutation.
* Approve/reject are legal only from ``PENDING_<tier>`` for the named
  tier; a passed tier fails with ``InvalidStateError`` and leaves every
  stamp untouched.
* Every transition appends one ``OrderAuditEventModel`` row.

Failure modes
-------------
* ``ValidationError``, ``InvalidStateError``, ``ForbiddenError``,
  ``OrderNotFoundError``, ``ConflictError``, ``LockTimeoutError``; the
  session is rolled back before any of them propagates.

Usage::

    service = OrderService(session, config, clock=clock)
    order = service.create_order(
        requester, branch_id="MCT", department_id="IT", vendor_name="Acme LLC",
        lines=[LineInput("Laptop", Decimal("10"), Decimal("15"), category="IT_EQUIPMENT")],
        vat_percent=Decimal("5"),
    )
    order = service.submit_order(order.id, requester)
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lpo_config import ProcurementConfig, get_active_config
from lpo_engines.approval import can_act, required_tiers, roles_for_tier
from lpo_engines.pricing import PricedLine, compute_totals, line_total
from lpo_kernel.db.locking import check_version, lock_row
from lpo_kernel.domain.actor import Actor
from lpo_kernel.domain.approval import Tier
from lpo_kernel.domain.clock import Clock, SystemClock
from lpo_kernel.domain.currency import CurrencyRegistry, quantize_amount
from lpo_kernel.exceptions import (
    ForbiddenError,
    InvalidStateError,
    OrderLineNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from lpo_kernel.logging_config import get_logger
from lpo_kernel.services.entity_lock import EntityLockRegistry
from lpo_kernel.services.sequence_service import SequenceService
from lpo_modules._service_helpers import (
    is_integral,
    require_role,
    require_text,
    service_transaction,
    to_decimal,
)
from lpo_modules.orders.models import (
    AuditAction,
    LineChange,
    LineInput,
    LineOp,
    Order,
    OrderAuditEntry,
    OrderStats,
    OrderStatus,
)
from lpo_modules.orders.orm import OrderAuditEventModel, OrderLineModel, OrderModel
from lpo_modules.orders.workflows import ORDER_WORKFLOW, approval_subject, derive_status

logger = get_logger("modules.orders.service")

HUNDRED = Decimal("100")

# Header fields a requester may set at creation and change while DRAFT.
HEADER_FIELDS = frozenset({
    "vendor_name",
    "vendor_id",
    "vendor_code",
    "vendor_address",
    "vendor_phone",
    "branch_id",
    "department_id",
    "currency",
    "fx_rate_to_base",
    "vat_percent",
    "discount_percent",
    "quotation_ref",
    "document_ref",
    "expected_delivery_date",
    "delivery_address",
    "payment_terms",
    "notes",
})

_APPROVED_OR_LATER = frozenset({
    OrderStatus.APPROVED,
    OrderStatus.SENT_TO_VENDOR,
    OrderStatus.PARTIALLY_RECEIVED,
    OrderStatus.FULLY_RECEIVED,
    OrderStatus.INVOICED,
    OrderStatus.CLOSED,
})


class OrderService:
    """
    Orchestrates the LPO lifecycle.

    Contract
    --------
    * Every mutating method takes the acting ``Actor`` explicitly and an
      optional ``expected_version``; it returns the refreshed ``Order`` DTO.
    * Read methods never commit.

    Non-goals
    ---------
    * Does NOT notify vendors (``lpo_services`` owns the dispatch hook).
    * Does NOT serialize callers in-process; ``lpo_services`` holds the
      per-order lock.  Row locks and the row version protect the database.
    """

    def __init__(
        self,
        session: Session,
        config: ProcurementConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or get_active_config()
        self._clock = clock or SystemClock()
        self._policy = self._config.approval_policy
        self._sequences = SequenceService(session)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _load(self, order_id: UUID, lock: bool = True) -> OrderModel:
        stmt = select(OrderModel).where(OrderModel.id == order_id)
        if lock:
            order = lock_row(
                self._session,
                stmt,
                EntityLockRegistry.order_key(order_id),
                self._config.lock_timeout_seconds,
            )
        else:
            order = self._session.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _load_for_update(self, order_id: UUID, expected_version: int | None) -> OrderModel:
        order = self._load(order_id)
        check_version("order", order.id, order.version, expected_version)
        return order

    def _status(self, order: OrderModel) -> OrderStatus:
        return derive_status(order, self._policy)

    def _transition(
        self,
        order: OrderModel,
        action: AuditAction,
        workflow_action: str,
        from_status: OrderStatus,
        actor: Actor,
        tier: Tier | None = None,
        comment: str | None = None,
    ) -> OrderStatus:
        """Re-derive and cache the status, check it against the table, audit it."""
        to_status = self._status(order)
        ORDER_WORKFLOW.check_target(
            from_status.value, workflow_action, to_status.value, "order", order.id
        )
        order.status = to_status.value
        order.updated_by_id = actor.actor_id
        self.record_audit(order, action, actor.actor_id, from_status, to_status, tier, comment)
        return to_status

    def record_audit(
        self,
        order: OrderModel,
        action: AuditAction,
        actor_id: UUID,
        from_status: OrderStatus | None,
        to_status: OrderStatus,
        tier: Tier | None = None,
        comment: str | None = None,
    ) -> OrderAuditEventModel:
        """Append one audit row.  Does NOT commit -- caller owns the boundary."""
        last = self._session.execute(
            select(func.max(OrderAuditEventModel.sequence)).where(
                OrderAuditEventModel.order_id == order.id
            )
        ).scalar()
        event = OrderAuditEventModel(
            id=uuid4(),
            order_id=order.id,
            sequence=(last or 0) + 1,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            tier=tier.value if tier else None,
            comment=comment,
            created_by_id=actor_id,
        )
        self._session.add(event)
        return event

    def refresh_status(self, order: OrderModel) -> OrderStatus:
        """Write the derived status into the cache column.  Does NOT commit."""
        status = self._status(order)
        order.status = status.value
        return status

    def _require_state(
        self, order: OrderModel, action: str, tier: Tier | None = None
    ) -> OrderStatus:
        current = self._status(order)
        ORDER_WORKFLOW.require(
            current.value, action, "order", order.id,
            tier=tier.value if tier else None,
        )
        return current

    def _require_requester(self, order: OrderModel, actor: Actor, action: str) -> None:
        if actor.actor_id == order.requester_id:
            return
        if actor.has_any_role(self._config.roles.superuser_delegates):
            return
        raise ForbiddenError(actor.actor_id, action, order_id=order.id)

    def _require_accounts(self, order: OrderModel, actor: Actor, action: str) -> None:
        roles = (self._config.roles.final_approver, *self._config.roles.superuser_delegates)
        require_role(actor, roles, action, order_id=order.id)

    @staticmethod
    def _parse_tier(tier: Tier | str, order_id: UUID) -> Tier:
        try:
            return Tier(tier.upper() if isinstance(tier, str) else tier)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown approval tier {tier!r}", field="tier", order_id=order_id
            ) from exc

    def _apply_header(self, order: OrderModel, header: Mapping[str, Any]) -> None:
        unknown = set(header) - HEADER_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown order fields: {sorted(unknown)}", order_id=order.id
            )
        for name, value in header.items():
            if name == "currency":
                try:
                    value = CurrencyRegistry.validate(value)
                except ValueError as exc:
                    raise ValidationError(str(exc), field="currency", order_id=order.id) from exc
            elif name == "fx_rate_to_base":
                value = to_decimal(value, name, order_id=order.id)
                if value <= 0:
                    raise ValidationError(
                        "fx_rate_to_base must be positive", field=name, order_id=order.id
                    )
            elif name in ("vat_percent", "discount_percent"):
                value = to_decimal(value, name, order_id=order.id)
                if value < 0 or value > HUNDRED:
                    raise ValidationError(
                        f"{name} must be between 0 and 100", field=name, order_id=order.id
                    )
            elif name == "branch_id":
                value = require_text(value, name, order_id=order.id)
            elif name == "vendor_name":
                value = (value or "").strip()
            elif name == "expected_delivery_date":
                if value is not None and not isinstance(value, date):
                    raise ValidationError(
                        "expected_delivery_date must be a date", field=name, order_id=order.id
                    )
            elif isinstance(value, str):
                value = value.strip() or None
            setattr(order, name, value)

    def _validate_line_values(
        self,
        order: OrderModel,
        description: str,
        quantity: Any,
        unit_price: Any,
        unit_of_measure: str,
        line_id: UUID | None = None,
    ) -> tuple[str, Decimal, Decimal, str]:
        ctx = {"order_id": order.id, "line_id": line_id}
        description = require_text(description, "description", **ctx)
        unit_of_measure = require_text(unit_of_measure, "unit_of_measure", **ctx).upper()
        quantity = to_decimal(quantity, "quantity", **ctx)
        unit_price = to_decimal(unit_price, "unit_price", **ctx)
        if quantity <= 0:
            raise ValidationError("quantity must be positive", field="quantity", **ctx)
        if unit_price < 0:
            raise ValidationError("unit_price must not be negative", field="unit_price", **ctx)
        if self._config.is_integral_unit(unit_of_measure) and not is_integral(quantity):
            raise ValidationError(
                f"quantity must be a whole number for unit {unit_of_measure}",
                field="quantity",
                **ctx,
            )
        return description, quantity, unit_price, unit_of_measure

    def _add_line(self, order: OrderModel, line: LineInput, actor: Actor) -> OrderLineModel:
        description, quantity, unit_price, uom = self._validate_line_values(
            order, line.description, line.quantity, line.unit_price, line.unit_of_measure
        )
        # Numbers are never reused, even after a soft delete.
        number = max((l.line_number for l in order.lines), default=0) + 1
        model = OrderLineModel(
            id=uuid4(),
            line_number=number,
            description=description,
            unit_of_measure=uom,
            quantity_ordered=quantity,
            unit_price=unit_price,
            line_total=Decimal("0"),
            category=line.category.strip().upper() if line.category else None,
            item_code=line.item_code,
            quantity_received=Decimal("0"),
            is_deleted=False,
            created_by_id=actor.actor_id,
        )
        order.lines.append(model)
        return model

    def _find_line(self, order: OrderModel, line_id: UUID | None) -> OrderLineModel:
        for line in order.lines:
            if line.id == line_id and not line.is_deleted:
                return line
        raise OrderLineNotFoundError(line_id, order_id=order.id)

    def _apply_line_change(self, order: OrderModel, change: LineChange, actor: Actor) -> None:
        if change.op == LineOp.ADD:
            if change.line is None:
                raise ValidationError("add requires a line", field="line", order_id=order.id)
            self._add_line(order, change.line, actor)
            return

        line = self._find_line(order, change.line_id)
        if change.op == LineOp.DELETE:
            line.is_deleted = True
        elif change.op == LineOp.UPDATE:
            description, quantity, unit_price, uom = self._validate_line_values(
                order,
                change.description if change.description is not None else line.description,
                change.quantity if change.quantity is not None else line.quantity_ordered,
                change.unit_price if change.unit_price is not None else line.unit_price,
                change.unit_of_measure if change.unit_of_measure is not None else line.unit_of_measure,
                line_id=line.id,
            )
            line.description = description
            line.quantity_ordered = quantity
            line.unit_price = unit_price
            line.unit_of_measure = uom
            if change.category is not None:
                line.category = change.category.strip().upper() or None
        else:
            raise ValidationError(f"Unknown line operation {change.op!r}", order_id=order.id)
        line.updated_by_id = actor.actor_id

    def _recompute_totals(self, order: OrderModel) -> None:
        active = order.active_lines
        for line in active:
            line.line_total = line_total(line.quantity_ordered, line.unit_price, order.currency)
        totals = compute_totals(
            [PricedLine(l.quantity_ordered, l.unit_price) for l in active],
            order.vat_percent,
            order.discount_percent,
            order.currency,
        )
        order.subtotal = totals.subtotal
        order.vat_amount = totals.vat_amount
        order.discount_amount = totals.discount_amount
        order.total_amount = totals.total

    # =========================================================================
    # Draft
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
        """
        Create a DRAFT order owned by ``actor``.

        ``header`` accepts any of ``HEADER_FIELDS``.  The LPO number is
        allocated from the yearly sequence of ``order_date`` (default today).
        """
        order_id = uuid4()
        with service_transaction(
            self._session, logger, "order_create", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id, line_count=len(lines),
        ) as outcome:
            today = order_date or self._clock.today()
            order = OrderModel(
                id=order_id,
                lpo_number=self._sequences.format_lpo_number(
                    self._config.lpo_number_prefix, today.year
                ),
                status=OrderStatus.DRAFT.value,
                requester_id=actor.actor_id,
                order_date=today,
                branch_id="",
                currency=self._config.default_currency,
                fx_rate_to_base=Decimal("1"),
                vat_percent=Decimal("0"),
                discount_percent=Decimal("0"),
                created_by_id=actor.actor_id,
            )
            fields = {
                **header,
                "branch_id": branch_id,
                "vendor_name": vendor_name,
                "department_id": department_id,
            }
            if currency is not None:
                fields["currency"] = currency
            self._apply_header(order, fields)
            self._session.add(order)
            for line in lines:
                self._add_line(order, line, actor)
            self._recompute_totals(order)
            self.record_audit(
                order, AuditAction.CREATED, actor.actor_id, None, OrderStatus.DRAFT
            )
            self._session.flush()
            outcome.update(lpo_number=order.lpo_number, total_amount=str(order.total_amount))
        return order.to_dto()

    def edit_order(
        self,
        order_id: UUID,
        actor: Actor,
        line_changes: Sequence[LineChange] = (),
        *,
        header: Mapping[str, Any] | None = None,
        expected_version: int | None = None,
    ) -> Order:
        """Apply header and line changes to a DRAFT order atomically."""
        with service_transaction(
            self._session, logger, "order_edit", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id, change_count=len(line_changes),
        ) as outcome:
            order = self._load_for_update(order_id, expected_version)
            current = self._require_state(order, "edit")
            self._require_requester(order, actor, "edit")
            if header:
                self._apply_header(order, header)
            for change in line_changes:
                self._apply_line_change(order, change, actor)
            self._recompute_totals(order)
            self._transition(
                order, AuditAction.EDITED, "edit", current, actor,
                comment=f"{len(line_changes)} line change(s)",
            )
            self._session.flush()
            outcome.update(total_amount=str(order.total_amount), version=order.version)
        return order.to_dto()

    # =========================================================================
    # Approval chain
    # =========================================================================

    def submit_order(
        self,
        order_id: UUID,
        actor: Actor,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> Order:
        """DRAFT -> PENDING_<first required tier>."""
        with service_transaction(
            self._session, logger, "order_submit", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id,
        ) as outcome:
            order = self._load_for_update(order_id, expected_version)
            current = self._require_state(order, "submit")
            self._require_requester(order, actor, "submit")

            if not (order.vendor_name or "").strip():
                raise ValidationError(
                    "vendor name is required", field="vendor_name", order_id=order.id
                )
            active = order.active_lines
            if not active:
                raise ValidationError(
                    "order has no lines", field="lines", order_id=order.id
                )
            for line in active:
                self._validate_line_values(
                    order, line.description, line.quantity_ordered, line.unit_price,
                    line.unit_of_measure, line_id=line.id,
                )
            self._recompute_totals(order)

            order.submitted_at = self._clock.now()
            order.submitted_by_id = actor.actor_id
            status = self._transition(
                order, AuditAction.SUBMITTED, "submit", current, actor, comment=comment
            )
            outcome.update(
                status=status.value,
                total_amount=str(order.total_amount),
                required_tiers=[t.value for t in required_tiers(approval_subject(order), self._policy)],
            )
        return order.to_dto()

    def approve_order(
        self,
        order_id: UUID,
        actor: Actor,
        tier: Tier | str,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> Order:
        """Stamp ``tier`` and advance to the next tier or APPROVED."""
        tier = self._parse_tier(tier, order_id)
        with service_transaction(
            self._session, logger, "order_approve", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id, tier=tier.value,
        ) as outcome:
            order = self._load_for_update(order_id, expected_version)
            current = self._require_pending_tier(order, "approve", tier)
            if not can_act(actor, tier, order.department_id, self._policy):
                raise ForbiddenError(
                    actor.actor_id, "approve", order_id=order.id, tier=tier.value,
                    required_roles=roles_for_tier(tier, self._policy),
                )
            order.set_approval_stamp(tier, actor.actor_id, self._clock.now(), comment)
            status = self._transition(
                order, AuditAction.APPROVED, "approve", current, actor, tier=tier, comment=comment
            )
            outcome.update(status=status.value)
        return order.to_dto()

    def reject_order(
        self,
        order_id: UUID,
        actor: Actor,
        tier: Tier | str,
        reason: str,
        expected_version: int | None = None,
    ) -> Order:
        """PENDING_<tier> -> REJECTED_<tier> (terminal).  ``reason`` is mandatory."""
        tier = self._parse_tier(tier, order_id)
        with service_transaction(
            self._session, logger, "order_reject", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id, tier=tier.value,
        ) as outcome:
            order = self._load_for_update(order_id, expected_version)
            current = self._require_pending_tier(order, "reject", tier)
            if not can_act(actor, tier, order.department_id, self._policy):
                raise ForbiddenError(
                    actor.actor_id, "reject", order_id=order.id, tier=tier.value,
                    required_roles=roles_for_tier(tier, self._policy),
                )
            reason = require_text(reason, "reason", order_id=order.id)
            order.rejected_tier = tier.value
            order.rejected_by_id = actor.actor_id
            order.rejected_at = self._clock.now()
            order.rejection_reason = reason
            status = self._transition(
                order, AuditAction.REJECTED, "reject", current, actor, tier=tier, comment=reason
            )
            outcome.update(status=status.value)
        return order.to_dto()

    def _require_pending_tier(self, order: OrderModel, action: str, tier: Tier) -> OrderStatus:
        current = self._require_state(order, action, tier)
        if current.pending_tier != tier:
            raise InvalidStateError(
                "order", order.id, current.value, action,
                tier=tier.value, detail=f"order is awaiting {current.pending_tier.value} approval",
            )
        return current

    # =========================================================================
    # Post-approval
    # =========================================================================

    def send_to_vendor(
        self,
        order_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Order:
        """APPROVED -> SENT_TO_VENDOR.  Vendor notification is the caller's concern."""
        with service_transaction(
            self._session, logger, "order_send_to_vendor", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id,
        ) as outcome:
            order = self._load_for_update(order_id, expected_version)
            current = self._require_state(order, "send_to_vendor")
            if actor.actor_id != order.requester_id:
                self._require_accounts(order, actor, "send_to_vendor")
            order.sent_to_vendor_at = self._clock.now()
            order.sent_by_id = actor.actor_id
            status = self._transition(
                order, AuditAction.SENT_TO_VENDOR, "send_to_vendor", current, actor
            )
            outcome.update(status=status.value)
        return order.to_dto()

    def cancel_order(
        self,
        order_id: UUID,
        actor: Actor,
        reason: str,
        expected_version: int | None = None,
    ) -> Order:
        """DRAFT, PENDING_* or APPROVED -> CANCELLED (terminal)."""
        with service_transaction(
            self._session, logger, "order_cancel", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id,
        ) as outcome:
            order = self._load_for_update(order_id, expected_version)
            current = self._require_state(order, "cancel")
            self._require_requester(order, actor, "cancel")
            reason = require_text(reason, "reason", order_id=order.id)
            order.cancelled_at = self._clock.now()
            order.cancellation_reason = reason
            status = self._transition(
                order, AuditAction.CANCELLED, "cancel", current, actor, comment=reason
            )
            outcome.update(status=status.value)
        return order.to_dto()

    def mark_invoiced(
        self,
        order_id: UUID,
        actor: Actor,
        invoice_ref: str | None = None,
        expected_version: int | None = None,
    ) -> Order:
        """FULLY_RECEIVED -> INVOICED."""
        with service_transaction(
            self._session, logger, "order_mark_invoiced", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id,
        ) as outcome:
            order = self._load_for_update(order_id, expected_version)
            current = self._require_state(order, "mark_invoiced")
            self._require_accounts(order, actor, "mark_invoiced")
            order.invoiced_at = self._clock.now()
            order.invoice_ref = invoice_ref
            status = self._transition(
                order, AuditAction.INVOICED, "mark_invoiced", current, actor, comment=invoice_ref
            )
            outcome.update(status=status.value)
        return order.to_dto()

    def close_order(
        self,
        order_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
    ) -> Order:
        """INVOICED -> CLOSED (terminal)."""
        with service_transaction(
            self._session, logger, "order_close", "order", order_id,
            order_id=order_id, actor_id=actor.actor_id,
        ) as outcome:
            order = self._load_for_update(order_id, expected_version)
            current = self._require_state(order, "close")
            self._require_accounts(order, actor, "close")
            order.closed_at = self._clock.now()
            status = self._transition(order, AuditAction.CLOSED, "close", current, actor)
            outcome.update(status=status.value)
        return order.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: UUID) -> Order:
        return self._load(order_id, lock=False).to_dto()

    def derived_status(self, order_id: UUID) -> OrderStatus:
        """Re-derive the status from stamps and counters, ignoring the cache column."""
        return self._status(self._load(order_id, lock=False))

    def required_tiers(self, order_id: UUID) -> list[Tier]:
        order = self._load(order_id, lock=False)
        return required_tiers(approval_subject(order), self._policy)

    def get_order_history(self, order_id: UUID) -> list[OrderAuditEntry]:
        self._load(order_id, lock=False)
        rows = self._session.execute(
            select(OrderAuditEventModel)
            .where(OrderAuditEventModel.order_id == order_id)
            .order_by(OrderAuditEventModel.sequence)
        ).scalars()
        return [row.to_dto() for row in rows]

    def list_orders(
        self,
        status: OrderStatus | str | None = None,
        branch_id: str | None = None,
        department_id: str | None = None,
        vendor_name: str | None = None,
    ) -> list[Order]:
        stmt = select(OrderModel)
        if status is not None:
            stmt = stmt.where(OrderModel.status == OrderStatus(status).value)
        if branch_id is not None:
            stmt = stmt.where(OrderModel.branch_id == branch_id)
        if department_id is not None:
            stmt = stmt.where(OrderModel.department_id == department_id)
        if vendor_name:
            stmt = stmt.where(OrderModel.vendor_name.ilike(f"%{vendor_name}%"))
        rows = self._session.execute(stmt.order_by(OrderModel.lpo_number)).scalars()
        return [row.to_dto() for row in rows]

    def list_pending_for(self, actor: Actor) -> list[Order]:
        """Orders awaiting a tier that ``actor`` may approve."""
        pending = [OrderStatus.pending_for(t).value for t in Tier]
        rows = self._session.execute(
            select(OrderModel)
            .where(OrderModel.status.in_(pending))
            .order_by(OrderModel.lpo_number)
        ).scalars()
        result = []
        for row in rows:
            tier = OrderStatus(row.status).pending_tier
            if can_act(actor, tier, row.department_id, self._policy):
                result.append(row.to_dto())
        return result

    def order_stats(self) -> OrderStats:
        counts = dict(
            self._session.execute(
                select(OrderModel.status, func.count()).group_by(OrderModel.status)
            ).all()
        )
        pending_value = Decimal("0")
        approved_value = Decimal("0")
        pending = {OrderStatus.pending_for(t).value for t in Tier}
        approved = {s.value for s in _APPROVED_OR_LATER}
        rows = self._session.execute(
            select(OrderModel.status, OrderModel.total_amount, OrderModel.fx_rate_to_base)
        ).all()
        for status, total, fx in rows:
            if status in pending:
                pending_value += total * fx
            elif status in approved:
                approved_value += total * fx
        base = self._config.base_currency
        return OrderStats(
            total_orders=sum(counts.values()),
            by_status={s.value: counts.get(s.value, 0) for s in OrderStatus},
            pending_approval_value=quantize_amount(pending_value, base),
            approved_value=quantize_amount(approved_value, base),
            base_currency=base,
        )
