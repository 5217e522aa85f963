"""
Tests for the Orders Module Service.

Validates:
- Draft creation, numbering and totals
- Line edits (add/update/soft delete) with atomic total recomputation
- Submit validation and first-tier routing
- Tiered approval, rejection, double approval and authorization
- Cancel, invoice and close
- Audit trail, listings, pending queues and stats
"""

from __future__ import annotations

import inspect
from decimal import Decimal
from uuid import uuid4

import pytest

from lpo_kernel.domain.approval import Tier
from lpo_kernel.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    OrderLineNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from lpo_modules.orders.models import AuditAction, LineChange, LineInput, OrderStatus
from lpo_modules.orders.service import OrderService
from tests.conftest import laptop_line, stationery_line


@pytest.fixture
def create(order_service, requester):
    def _create(lines=None, vat="5", discount="0", **kwargs):
        kwargs.setdefault("branch_id", "MCT")
        kwargs.setdefault("department_id", "IT")
        kwargs.setdefault("vendor_name", "Acme Trading LLC")
        return order_service.create_order(
            requester,
            lines=lines if lines is not None else [laptop_line()],
            vat_percent=Decimal(vat),
            discount_percent=Decimal(discount),
            **kwargs,
        )

    return _create


# =============================================================================
# Structural Tests
# =============================================================================


class TestOrderServiceStructure:

    def test_constructor_signature(self):
        params = list(inspect.signature(OrderService.__init__).parameters)
        assert params[:4] == ["self", "session", "config", "clock"]

    def test_has_public_methods(self):
        for name in (
            "create_order", "edit_order", "submit_order", "approve_order",
            "reject_order", "send_to_vendor", "cancel_order", "mark_invoiced",
            "close_order", "get_order", "get_order_history", "list_orders",
            "list_pending_for", "order_stats", "required_tiers",
        ):
            assert callable(getattr(OrderService, name))


# =============================================================================
# Draft
# =============================================================================


class TestCreateOrder:

    def test_creates_draft_with_totals(self, create):
        order = create()
        assert order.status == OrderStatus.DRAFT
        assert order.subtotal == Decimal("150")
        assert order.vat_amount == Decimal("7.5")
        assert order.total_amount == Decimal("157.5")
        assert order.lines[0].line_number == 1
        assert order.lines[0].line_total == Decimal("150")
        assert order.lines[0].quantity_received == 0

    def test_lpo_numbers_are_sequential_per_year(self, create):
        first = create()
        second = create()
        assert first.lpo_number == "LPO-2024-00001"
        assert second.lpo_number == "LPO-2024-00002"

    def test_metadata_is_kept(self, create):
        order = create(
            vendor_code="V-100",
            quotation_ref="Q-77",
            document_ref="docs/quotations/q-77.pdf",
            payment_terms="30 days",
            currency="AED",
            fx_rate_to_base=Decimal("0.105"),
        )
        assert order.vendor_code == "V-100"
        assert order.quotation_ref == "Q-77"
        assert order.document_ref == "docs/quotations/q-77.pdf"
        assert order.currency == "AED"
        assert order.fx_rate_to_base == Decimal("0.105")

    def test_unknown_currency_rejected(self, create):
        with pytest.raises(ValidationError) as exc_info:
            create(currency="XXX")
        assert exc_info.value.field == "currency"

    def test_unknown_header_field_rejected(self, create):
        with pytest.raises(ValidationError):
            create(colour="blue")

    @pytest.mark.parametrize("vat", ["-1", "101"])
    def test_vat_out_of_range_rejected(self, create, vat):
        with pytest.raises(ValidationError):
            create(vat=vat)

    def test_non_positive_quantity_rejected(self, create):
        with pytest.raises(ValidationError):
            create(lines=[laptop_line(quantity="0")])

    def test_negative_price_rejected(self, create):
        with pytest.raises(ValidationError):
            create(lines=[laptop_line(unit_price="-1")])

    def test_fractional_quantity_in_whole_unit_rejected(self, create):
        with pytest.raises(ValidationError):
            create(lines=[laptop_line(quantity="1.5")])

    def test_fractional_quantity_in_measured_unit_accepted(self, create):
        line = LineInput("Diesel", Decimal("12.5"), Decimal("0.23"), unit_of_measure="LTR")
        order = create(lines=[line], vat="0")
        assert order.total_amount == Decimal("2.875")

    def test_creation_is_audited(self, create, order_service):
        order = create()
        history = order_service.get_order_history(order.id)
        assert [e.action for e in history] == [AuditAction.CREATED]
        assert history[0].to_status == OrderStatus.DRAFT


class TestEditOrder:

    def test_add_update_delete_recomputes_total(self, create, order_service, requester):
        order = create(vat="0")
        first = order.lines[0]
        order = order_service.edit_order(
            order.id,
            requester,
            [
                LineChange.add(stationery_line()),
                LineChange.update(first.id, quantity=Decimal("2")),
            ],
        )
        assert order.subtotal == Decimal("110")
        second = [l for l in order.lines if l.line_number == 2][0]

        order = order_service.edit_order(order.id, requester, [LineChange.delete(second.id)])
        assert order.total_amount == Decimal("30")
        assert len(order.active_lines) == 1
        assert len(order.lines) == 2

    def test_line_numbers_not_reused_after_delete(self, create, order_service, requester):
        order = create()
        order = order_service.edit_order(
            order.id, requester, [LineChange.delete(order.lines[0].id)]
        )
        order = order_service.edit_order(order.id, requester, [LineChange.add(laptop_line())])
        assert [l.line_number for l in order.active_lines] == [2]

    def test_failed_edit_applies_nothing(self, create, order_service, requester):
        order = create()
        with pytest.raises(ValidationError):
            order_service.edit_order(
                order.id,
                requester,
                [
                    LineChange.add(stationery_line()),
                    LineChange.update(order.lines[0].id, unit_price=Decimal("-5")),
                ],
            )
        after = order_service.get_order(order.id)
        assert after.total_amount == order.total_amount
        assert len(after.lines) == 1
        assert after.version == order.version

    def test_header_edit(self, create, order_service, requester):
        order = create()
        order = order_service.edit_order(
            order.id, requester, header={"discount_percent": Decimal("10")}
        )
        assert order.total_amount == Decimal("142.5")

    def test_unknown_line_rejected(self, create, order_service, requester):
        order = create()
        with pytest.raises(OrderLineNotFoundError):
            order_service.edit_order(order.id, requester, [LineChange.delete(uuid4())])

    def test_only_requester_may_edit(self, create, order_service, gm):
        order = create()
        with pytest.raises(ForbiddenError):
            order_service.edit_order(order.id, gm, [LineChange.add(laptop_line())])

    def test_edit_after_submit_is_invalid_state(self, create, order_service, requester):
        order = create()
        order_service.submit_order(order.id, requester)
        with pytest.raises(InvalidStateError):
            order_service.edit_order(order.id, requester, [LineChange.add(laptop_line())])

    def test_stale_version_conflicts(self, create, order_service, requester):
        order = create()
        order_service.edit_order(order.id, requester, [LineChange.add(laptop_line())])
        with pytest.raises(ConflictError) as exc_info:
            order_service.edit_order(
                order.id, requester, [LineChange.add(laptop_line())],
                expected_version=order.version,
            )
        assert exc_info.value.expected_version == order.version

    def test_missing_order(self, order_service, requester):
        with pytest.raises(OrderNotFoundError):
            order_service.edit_order(uuid4(), requester, [])


# =============================================================================
# Submit and approve
# =============================================================================


class TestSubmit:

    def test_large_order_goes_to_dept(self, create, order_service, requester):
        order = order_service.submit_order(create().id, requester, comment="urgent")
        assert order.status == OrderStatus.PENDING_DEPT_APPROVAL
        assert order.submitted_at is not None
        history = order_service.get_order_history(order.id)
        assert history[-1].action == AuditAction.SUBMITTED
        assert history[-1].comment == "urgent"

    def test_requires_lines(self, create, order_service, requester):
        order = create(lines=[])
        with pytest.raises(ValidationError) as exc_info:
            order_service.submit_order(order.id, requester)
        assert exc_info.value.field == "lines"

    def test_requires_vendor(self, create, order_service, requester):
        order = create(vendor_name="  ")
        with pytest.raises(ValidationError) as exc_info:
            order_service.submit_order(order.id, requester)
        assert exc_info.value.field == "vendor_name"

    def test_only_lines_left_after_delete_count(self, create, order_service, requester):
        order = create()
        order_service.edit_order(order.id, requester, [LineChange.delete(order.lines[0].id)])
        with pytest.raises(ValidationError):
            order_service.submit_order(order.id, requester)

    def test_second_submit_is_invalid_state(self, create, order_service, requester):
        order = create()
        order_service.submit_order(order.id, requester)
        with pytest.raises(InvalidStateError):
            order_service.submit_order(order.id, requester)


class TestApprovalChain:

    def test_large_order_passes_three_tiers(self, create, order_service, requester, hod, gm, accountant):
        order = order_service.submit_order(create().id, requester)
        order = order_service.approve_order(order.id, hod, Tier.DEPT, comment="ok")
        assert order.status == OrderStatus.PENDING_GM_APPROVAL
        order = order_service.approve_order(order.id, gm, "GM")
        assert order.status == OrderStatus.PENDING_ACC_APPROVAL
        order = order_service.approve_order(order.id, accountant, Tier.ACC)
        assert order.status == OrderStatus.APPROVED
        assert [s.tier for s in order.approvals] == [Tier.DEPT, Tier.GM, Tier.ACC]
        assert order.approval_for(Tier.DEPT).approver_id == hod.actor_id
        assert order.approval_for(Tier.DEPT).comment == "ok"

    def test_small_order_skips_gm(self, create, order_service, requester, hod, accountant):
        order = create(lines=[laptop_line(quantity="4", unit_price="20")], vat="0")
        assert order.total_amount == Decimal("80")
        assert order_service.required_tiers(order.id) == [Tier.DEPT, Tier.ACC]
        order = order_service.submit_order(order.id, requester)
        order = order_service.approve_order(order.id, hod, Tier.DEPT)
        assert order.status == OrderStatus.PENDING_ACC_APPROVAL
        order = order_service.approve_order(order.id, accountant, Tier.ACC)
        assert order.status == OrderStatus.APPROVED
        tiers = {e.tier for e in order_service.get_order_history(order.id)}
        assert Tier.GM not in tiers

    def test_editing_total_across_threshold_changes_route(self, create, order_service, requester):
        order = create(lines=[laptop_line(quantity="1", unit_price="95")], vat="0")
        assert Tier.GM not in order_service.required_tiers(order.id)
        order = order_service.edit_order(
            order.id, requester, [LineChange.update(order.lines[0].id, unit_price=Decimal("105"))]
        )
        assert Tier.GM in order_service.required_tiers(order.id)
        order = order_service.edit_order(
            order.id, requester, [LineChange.update(order.lines[0].id, unit_price=Decimal("95"))]
        )
        assert Tier.GM not in order_service.required_tiers(order.id)

    def test_double_approval_is_invalid_state_and_leaves_stamps(self, create, order_service, requester, hod):
        order = order_service.submit_order(create().id, requester)
        order = order_service.approve_order(order.id, hod, Tier.DEPT)
        approver_id = order.approval_for(Tier.DEPT).approver_id
        with pytest.raises(InvalidStateError) as exc_info:
            order_service.approve_order(order.id, hod, Tier.DEPT)
        assert exc_info.value.tier == "DEPT"
        after = order_service.get_order(order.id)
        assert [s.tier for s in after.approvals] == [Tier.DEPT]
        assert after.approval_for(Tier.DEPT).approver_id == approver_id
        assert after.version == order.version

    def test_skipping_ahead_is_invalid_state(self, create, order_service, requester, accountant):
        order = order_service.submit_order(create().id, requester)
        with pytest.raises(InvalidStateError):
            order_service.approve_order(order.id, accountant, Tier.ACC)
        assert order_service.get_order(order.id).approvals == ()

    def test_wrong_department_hod_forbidden(self, create, order_service, requester, other_hod):
        order = order_service.submit_order(create().id, requester)
        with pytest.raises(ForbiddenError) as exc_info:
            order_service.approve_order(order.id, other_hod, Tier.DEPT)
        assert exc_info.value.tier == "DEPT"
        assert exc_info.value.order_id == str(order.id)

    def test_requester_cannot_approve(self, create, order_service, requester):
        order = order_service.submit_order(create().id, requester)
        with pytest.raises(ForbiddenError):
            order_service.approve_order(order.id, requester, Tier.DEPT)

    def test_admin_delegate_approves_any_tier(self, create, order_service, requester, admin):
        order = order_service.submit_order(create().id, requester)
        for tier in (Tier.DEPT, Tier.GM, Tier.ACC):
            order = order_service.approve_order(order.id, admin, tier)
        assert order.status == OrderStatus.APPROVED

    def test_approve_on_draft_is_invalid_state(self, create, order_service, hod):
        with pytest.raises(InvalidStateError):
            order_service.approve_order(create().id, hod, Tier.DEPT)

    def test_unknown_tier_is_validation_error(self, create, order_service, requester, hod):
        order = order_service.submit_order(create().id, requester)
        with pytest.raises(ValidationError):
            order_service.approve_order(order.id, hod, "CEO")


class TestReject:

    def test_empty_reason_rejected(self, create, order_service, requester, hod):
        order = order_service.submit_order(create().id, requester)
        with pytest.raises(ValidationError):
            order_service.reject_order(order.id, hod, Tier.DEPT, "   ")
        assert order_service.get_order(order.id).status == OrderStatus.PENDING_DEPT_APPROVAL

    def test_reject_is_terminal(self, create, order_service, requester, hod):
        order = order_service.submit_order(create().id, requester)
        order = order_service.reject_order(order.id, hod, Tier.DEPT, "over budget")
        assert order.status == OrderStatus.REJECTED_DEPT
        assert order.rejection_reason == "over budget"
        with pytest.raises(InvalidStateError):
            order_service.approve_order(order.id, hod, Tier.DEPT)
        with pytest.raises(InvalidStateError):
            order_service.reject_order(order.id, hod, Tier.DEPT, "again")
        with pytest.raises(InvalidStateError):
            order_service.cancel_order(order.id, requester, "nevermind")

    def test_reject_at_gm(self, create, order_service, requester, hod, gm):
        order = order_service.submit_order(create().id, requester)
        order_service.approve_order(order.id, hod, Tier.DEPT)
        order = order_service.reject_order(order.id, gm, Tier.GM, "not needed")
        assert order.status == OrderStatus.REJECTED_GM
        # the DEPT stamp survives rejection
        assert order.approval_for(Tier.DEPT) is not None

    def test_reject_wrong_tier_is_invalid_state(self, create, order_service, requester, gm):
        order = order_service.submit_order(create().id, requester)
        with pytest.raises(InvalidStateError):
            order_service.reject_order(order.id, gm, Tier.GM, "no")


# =============================================================================
# Post-approval
# =============================================================================


class TestAfterApproval:

    def test_send_requires_approved(self, create, order_service, requester):
        order = order_service.submit_order(create().id, requester)
        with pytest.raises(InvalidStateError):
            order_service.send_to_vendor(order.id, requester)

    def test_send_by_stranger_forbidden(self, create, order_service, requester, hod, gm, accountant, store_keeper):
        order = order_service.submit_order(create().id, requester)
        order_service.approve_order(order.id, hod, Tier.DEPT)
        order_service.approve_order(order.id, gm, Tier.GM)
        order_service.approve_order(order.id, accountant, Tier.ACC)
        with pytest.raises(ForbiddenError):
            order_service.send_to_vendor(order.id, store_keeper)

    def test_cancel_from_approved(self, create, order_service, requester, hod, gm, accountant):
        order = order_service.submit_order(create().id, requester)
        for actor, tier in ((hod, Tier.DEPT), (gm, Tier.GM), (accountant, Tier.ACC)):
            order_service.approve_order(order.id, actor, tier)
        order = order_service.cancel_order(order.id, requester, "vendor closed")
        assert order.status == OrderStatus.CANCELLED
        assert order.cancellation_reason == "vendor closed"

    def test_cancel_requires_reason(self, create, order_service, requester):
        with pytest.raises(ValidationError):
            order_service.cancel_order(create().id, requester, "")

    def test_cancel_after_sending_is_invalid_state(self, create, order_service, drive_to_sent, requester):
        order = drive_to_sent(create())
        with pytest.raises(InvalidStateError):
            order_service.cancel_order(order.id, requester, "too late")

    def test_invoice_requires_fully_received(self, create, order_service, drive_to_sent, accountant):
        order = drive_to_sent(create())
        with pytest.raises(InvalidStateError):
            order_service.mark_invoiced(order.id, accountant, "INV-1")


# =============================================================================
# Queries
# =============================================================================


class TestQueries:

    def test_list_orders_filters(self, create, order_service):
        create(vendor_name="Acme Trading LLC")
        create(vendor_name="Gulf Supplies", department_id="FINANCE")
        assert len(order_service.list_orders()) == 2
        assert len(order_service.list_orders(vendor_name="gulf")) == 1
        assert len(order_service.list_orders(department_id="IT")) == 1
        assert len(order_service.list_orders(status="DRAFT")) == 2
        assert order_service.list_orders(status=OrderStatus.APPROVED) == []

    def test_pending_queue_by_capability(self, create, order_service, requester, hod, other_hod, gm):
        order = order_service.submit_order(create().id, requester)
        assert [o.id for o in order_service.list_pending_for(hod)] == [order.id]
        assert order_service.list_pending_for(other_hod) == []
        assert order_service.list_pending_for(gm) == []
        order_service.approve_order(order.id, hod, Tier.DEPT)
        assert [o.id for o in order_service.list_pending_for(gm)] == [order.id]
        assert order_service.list_pending_for(hod) == []

    def test_stats(self, create, order_service, requester):
        create()
        order = create()
        order_service.submit_order(order.id, requester)
        stats = order_service.order_stats()
        assert stats.total_orders == 2
        assert stats.by_status["DRAFT"] == 1
        assert stats.by_status["PENDING_DEPT_APPROVAL"] == 1
        assert stats.pending_approval_value == Decimal("157.5")
        assert stats.approved_value == 0
        assert stats.base_currency == "OMR"

    def test_stored_status_matches_derivation(self, create, order_service, requester, hod):
        order = order_service.submit_order(create().id, requester)
        order_service.approve_order(order.id, hod, Tier.DEPT)
        assert order_service.derived_status(order.id) == order_service.get_order(order.id).status

    def test_history_ends_in_current_status(self, create, order_service, requester, hod):
        order = order_service.submit_order(create().id, requester)
        order = order_service.approve_order(order.id, hod, Tier.DEPT)
        history = order_service.get_order_history(order.id)
        assert [e.sequence for e in history] == [1, 2, 3]
        assert history[-1].to_status == order.status
        assert history[-1].from_status == OrderStatus.PENDING_DEPT_APPROVAL
