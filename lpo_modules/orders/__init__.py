"""
Orders Module (``lpo_modules.orders``).

The LPO state machine: drafting, tiered approval, dispatch, cancellation,
invoicing and closing.  Status is derived, never set directly.
"""

from lpo_modules.orders.models import (
    ApprovalStamp,
    AuditAction,
    LineChange,
    LineInput,
    LineOp,
    Order,
    OrderAuditEntry,
    OrderLine,
    OrderStats,
    OrderStatus,
)
from lpo_modules.orders.workflows import ORDER_WORKFLOW, derive_status

__all__ = [
    "ApprovalStamp",
    "AuditAction",
    "LineChange",
    "LineInput",
    "LineOp",
    "ORDER_WORKFLOW",
    "Order",
    "OrderAuditEntry",
    "OrderLine",
    "OrderStats",
    "OrderStatus",
    "derive_status",
]
