"""
Pure calculation engines (``lpo_engines``).

Engines import only ``lpo_kernel.domain`` and ``lpo_kernel.exceptions``.
No clock access, no I/O, no database.
"""

from lpo_engines.approval import can_act, next_tier, required_tiers
from lpo_engines.pricing import OrderTotals, PricedLine, compute_totals
from lpo_engines.quantity_ledger import (
    LineQuantities,
    LineReceiptStatus,
    OrderReceiptStatus,
    aggregate_status,
    apply_receipt,
)

__all__ = [
    "LineQuantities",
    "LineReceiptStatus",
    "OrderReceiptStatus",
    "OrderTotals",
    "PricedLine",
    "aggregate_status",
    "apply_receipt",
    "can_act",
    "compute_totals",
    "next_tier",
    "required_tiers",
]
