"""
End-to-end tests for ProcurementLifecycle.

Drives orders through the public facade, one session per call, and checks
the cross-module outcomes: totals, tier routing, the receiving ledger,
asset creation and activation, terminal states and vendor dispatch.
"""

from decimal import Decimal

import pytest

from lpo_kernel.domain.approval import Tier
from lpo_kernel.exceptions import ForbiddenError, InvalidStateError
from lpo_modules.assets.models import AssetStatus
from lpo_modules.orders.models import AuditAction, OrderStatus
from lpo_modules.receiving.models import LineReceipt
from lpo_services.lifecycle import ProcurementLifecycle
from tests.conftest import laptop_line, stationery_line


# =============================================================================
# Full lifecycle
# =============================================================================


class TestFullLifecycle:

    def test_order_to_active_asset(
        self, lifecycle, draft_order, requester, hod, gm, accountant,
        store_keeper, asset_manager, put_to_use_date, dispatcher,
    ):
        order = draft_order()
        assert order.total_amount == Decimal("157.5")
        assert lifecycle.required_tiers(order.id) == [Tier.DEPT, Tier.GM, Tier.ACC]

        order = lifecycle.submit_order(order.id, requester)
        assert order.status == OrderStatus.PENDING_DEPT_APPROVAL
        order = lifecycle.approve_order(order.id, hod, Tier.DEPT)
        assert order.status == OrderStatus.PENDING_GM_APPROVAL
        order = lifecycle.approve_order(order.id, gm, Tier.GM)
        assert order.status == OrderStatus.PENDING_ACC_APPROVAL
        order = lifecycle.approve_order(order.id, accountant, Tier.ACC)
        assert order.status == OrderStatus.APPROVED

        order = lifecycle.send_to_vendor(order.id, requester)
        assert order.status == OrderStatus.SENT_TO_VENDOR
        assert dispatcher.dispatched == [order.id]

        line_id = order.lines[0].id
        first = lifecycle.receive_goods(
            store_keeper, line_id, Decimal("6"),
            serial_numbers=[f"SN-{n}" for n in range(6)],
        )
        assert lifecycle.get_order(order.id).status == OrderStatus.PARTIALLY_RECEIVED
        lifecycle.receive_goods(
            store_keeper, line_id, Decimal("4"),
            serial_numbers=[f"SN-{n}" for n in range(6, 10)],
        )
        order = lifecycle.get_order(order.id)
        assert order.status == OrderStatus.FULLY_RECEIVED
        assert lifecycle.received_total(line_id) == Decimal("10")

        assets = lifecycle.list_pending_assets()
        assert len(assets) == 10
        assert all(a.asset_tag is None for a in assets)

        asset = lifecycle.put_asset_to_use(
            first.asset_ids[0], asset_manager, in_service_date=put_to_use_date
        )
        assert asset.status == AssetStatus.ACTIVE
        assert asset.asset_tag == "FA-2024-000001"
        assert asset.depreciation_start_date == put_to_use_date
        assert len(lifecycle.list_pending_assets()) == 9

        order = lifecycle.mark_invoiced(order.id, accountant, invoice_ref="INV-2024-17")
        assert order.status == OrderStatus.INVOICED
        order = lifecycle.close_order(order.id, accountant)
        assert order.status == OrderStatus.CLOSED

        history = lifecycle.get_order_history(order.id)
        assert [e.action for e in history] == [
            AuditAction.CREATED,
            AuditAction.SUBMITTED,
            AuditAction.APPROVED,
            AuditAction.APPROVED,
            AuditAction.APPROVED,
            AuditAction.SENT_TO_VENDOR,
            AuditAction.GOODS_RECEIVED,
            AuditAction.GOODS_RECEIVED,
            AuditAction.INVOICED,
            AuditAction.CLOSED,
        ]
        assert history[-1].to_status == lifecycle.derived_status(order.id)

    def test_small_order_never_reaches_gm(self, lifecycle, draft_order, requester, hod, gm, accountant):
        order = draft_order(lines=[stationery_line()], vat_percent="0")
        assert order.total_amount == Decimal("80")
        order = lifecycle.submit_order(order.id, requester)
        order = lifecycle.approve_order(order.id, hod, Tier.DEPT)
        assert order.status == OrderStatus.PENDING_ACC_APPROVAL
        assert lifecycle.list_pending_for(gm) == []
        order = lifecycle.approve_order(order.id, accountant, Tier.ACC)
        assert order.status == OrderStatus.APPROVED

    def test_delivery_note_through_facade(self, lifecycle, sent_order, store_keeper):
        order = sent_order(lines=[stationery_line(quantity="6")])
        line_id = order.lines[0].id
        result = lifecycle.receive_delivery(
            store_keeper, order.id, [LineReceipt(line_id, Decimal("6"))],
            delivery_note_ref="DN-9",
        )
        assert result.order_status == OrderStatus.FULLY_RECEIVED.value
        assert [r.delivery_note_ref for r in lifecycle.list_receipts(order_id=order.id)] == ["DN-9"]

    def test_entity_locks_released_between_operations(self, lifecycle, sent_order, store_keeper):
        order = sent_order(lines=[stationery_line(quantity="6")])
        lifecycle.receive_goods(store_keeper, order.lines[0].id, Decimal("2"))
        assert lifecycle.locks.active_count() == 0


# =============================================================================
# Terminal states
# =============================================================================


class TestTerminalStates:

    def test_rejected_order_accepts_nothing(self, lifecycle, draft_order, requester, hod, gm, store_keeper):
        order = draft_order()
        lifecycle.submit_order(order.id, requester)
        lifecycle.approve_order(order.id, hod, Tier.DEPT)
        order = lifecycle.reject_order(order.id, gm, Tier.GM, "budget frozen")
        assert order.status == OrderStatus.REJECTED_GM

        with pytest.raises(InvalidStateError):
            lifecycle.approve_order(order.id, gm, Tier.GM)
        with pytest.raises(InvalidStateError):
            lifecycle.reject_order(order.id, gm, Tier.GM, "again")
        with pytest.raises(InvalidStateError):
            lifecycle.send_to_vendor(order.id, requester)
        with pytest.raises(InvalidStateError):
            lifecycle.receive_goods(store_keeper, order.lines[0].id, Decimal("1"), serial_numbers=["A"])
        assert lifecycle.get_order(order.id).status == OrderStatus.REJECTED_GM

    def test_cancelled_order_accepts_nothing(self, lifecycle, draft_order, requester, hod):
        order = draft_order()
        lifecycle.submit_order(order.id, requester)
        order = lifecycle.cancel_order(order.id, requester, "duplicate request")
        assert order.status == OrderStatus.CANCELLED
        with pytest.raises(InvalidStateError):
            lifecycle.approve_order(order.id, hod, Tier.DEPT)
        with pytest.raises(InvalidStateError):
            lifecycle.cancel_order(order.id, requester, "again")

    def test_closed_order_rejects_receipts(self, lifecycle, sent_order, store_keeper, accountant):
        order = sent_order(lines=[stationery_line()])
        line_id = order.lines[0].id
        lifecycle.receive_goods(store_keeper, line_id, Decimal("4"))
        lifecycle.mark_invoiced(order.id, accountant)
        lifecycle.close_order(order.id, accountant)
        with pytest.raises(InvalidStateError):
            lifecycle.receive_goods(store_keeper, line_id, Decimal("1"))

    def test_invoice_needs_accounts_role(self, lifecycle, sent_order, store_keeper, requester):
        order = sent_order(lines=[stationery_line()])
        lifecycle.receive_goods(store_keeper, order.lines[0].id, Decimal("4"))
        with pytest.raises(ForbiddenError):
            lifecycle.mark_invoiced(order.id, requester)


# =============================================================================
# Vendor dispatch
# =============================================================================


class FailingDispatcher:
    def dispatch(self, order):
        raise ConnectionError("mail relay unreachable")


class TestVendorDispatch:

    def test_dispatch_failure_keeps_order_sent(
        self, session_factory, config, clock, requester, hod, accountant, captured_logs,
    ):
        lifecycle = ProcurementLifecycle(
            session_factory, config=config, clock=clock, dispatcher=FailingDispatcher()
        )
        order = lifecycle.create_order(
            requester, branch_id="MCT", department_id="IT", vendor_name="Acme",
            lines=[stationery_line()],
        )
        lifecycle.submit_order(order.id, requester)
        lifecycle.approve_order(order.id, hod, Tier.DEPT)
        lifecycle.approve_order(order.id, accountant, Tier.ACC)

        order = lifecycle.send_to_vendor(order.id, requester)
        assert order.status == OrderStatus.SENT_TO_VENDOR
        assert lifecycle.get_order(order.id).status == OrderStatus.SENT_TO_VENDOR
        failures = [r for r in captured_logs() if r["message"] == "vendor_dispatch_failed"]
        assert len(failures) == 1
        assert failures[0]["exc_type"] == "ConnectionError"

    def test_dispatch_not_called_when_send_fails(self, lifecycle, draft_order, requester, dispatcher):
        order = draft_order()
        with pytest.raises(InvalidStateError):
            lifecycle.send_to_vendor(order.id, requester)
        assert dispatcher.dispatched == []


# =============================================================================
# Structured logs
# =============================================================================


class TestOperationLogs:

    def test_completed_operation_logs_with_context(self, lifecycle, draft_order, requester, captured_logs):
        order = draft_order()
        lifecycle.submit_order(order.id, requester)
        records = captured_logs()
        completed = [r for r in records if r["message"] == "order_submit_completed"]
        assert len(completed) == 1
        assert completed[0]["order_id"] == str(order.id)
        assert completed[0]["actor_id"] == str(requester.actor_id)
        assert completed[0]["operation"] == "submit_order"
        assert completed[0]["status"] == "PENDING_DEPT_APPROVAL"
        assert "correlation_id" in completed[0]

    def test_rejected_operation_logs_error_code(self, lifecycle, draft_order, hod, captured_logs):
        order = draft_order()
        with pytest.raises(InvalidStateError):
            lifecycle.approve_order(order.id, hod, Tier.DEPT)
        rejected = [r for r in captured_logs() if r["message"] == "order_approve_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["error_code"] == InvalidStateError.code
