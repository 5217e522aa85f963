"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The receiving ledger is append-only: a receipt event, once written, is the
evidence that goods arrived, and the received/pending counters are derived
from it.  The order audit trail and asset status history play the same role
for approvals and asset lifecycle.  Editing or deleting any of those rows
would make the derived status unverifiable.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  These listeners intercept them:

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity               | When Immutable                 | Why
---------------------|--------------------------------|------------------------------
ReceiptEvent         | ALWAYS (from creation)         | Append-only receiving ledger
OrderAuditEvent      | ALWAYS (from creation)         | Status re-derivation evidence
AssetStatusChange    | ALWAYS (from creation)         | Asset lifecycle history
OrderLine            | line_number, once order left   | Line numbers are printed on
                     | DRAFT                          | the LPO sent to the vendor

===============================================================================
USAGE
===============================================================================

    from lpo_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called by create_tables()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from lpo_kernel.exceptions import ImmutabilityViolationError
from lpo_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(entity_type, str(target.id), reason)


def _check_receipt_event_update(mapper, connection, target):
    _block("ReceiptEvent", target, "UPDATE", "receipt events are append-only")


def _check_receipt_event_delete(mapper, connection, target):
    _block("ReceiptEvent", target, "DELETE", "receipt events are append-only")


def _check_order_audit_event_update(mapper, connection, target):
    _block("OrderAuditEvent", target, "UPDATE", "order audit trail is append-only")


def _check_order_audit_event_delete(mapper, connection, target):
    _block("OrderAuditEvent", target, "DELETE", "order audit trail is append-only")


def _check_asset_status_change_update(mapper, connection, target):
    _block("AssetStatusChange", target, "UPDATE", "asset status history is append-only")


def _check_asset_status_change_delete(mapper, connection, target):
    _block("AssetStatusChange", target, "DELETE", "asset status history is append-only")


def _check_order_line_number(mapper, connection, target):
    """Block renumbering of a line whose order has already been submitted."""
    history = get_history(target, "line_number")
    if not history.deleted:
        return
    order = target.order
    if order is not None and order.submitted_at is not None:
        _block(
            "OrderLine",
            target,
            "UPDATE",
            f"line_number is fixed once order {order.id} left DRAFT",
        )



def _listener_table() -> list[tuple[type, str, object]]:
    # Inline imports: models import from db, db must not import models at load time.
    from lpo_modules.assets.orm import AssetStatusChangeModel
    from lpo_modules.orders.orm import OrderAuditEventModel, OrderLineModel
    from lpo_modules.receiving.orm import ReceiptEventModel

    return [
        (ReceiptEventModel, "before_update", _check_receipt_event_update),
        (ReceiptEventModel, "before_delete", _check_receipt_event_delete),
        (OrderAuditEventModel, "before_update", _check_order_audit_event_update),
        (OrderAuditEventModel, "before_delete", _check_order_audit_event_delete),
        (AssetStatusChangeModel, "before_update", _check_asset_status_change_update),
        (AssetStatusChangeModel, "before_delete", _check_asset_status_change_delete),
        (OrderLineModel, "before_update", _check_order_line_number),
    ]


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, name, fn in _listener_table():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners. FOR TESTING ONLY."""
    for target, name, fn in _listener_table():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
    logger.debug("immutability_listeners_unregistered")
