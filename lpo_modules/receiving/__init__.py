"""Receiving Module (``lpo_modules.receiving``): the goods-receipt processor."""

from lpo_modules.receiving.models import (
    DeliveryResult,
    LineReceipt,
    ReceiptCondition,
    ReceiptEvent,
    ReceiptResult,
)

__all__ = [
    "DeliveryResult",
    "LineReceipt",
    "ReceiptCondition",
    "ReceiptEvent",
    "ReceiptResult",
]
