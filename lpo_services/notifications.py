"""
Vendor dispatch hook.

Sending an approved LPO to its vendor is a notification side effect owned
by an external collaborator (mail, portal, print queue).  The lifecycle
calls ``dispatch`` after the SENT_TO_VENDOR transition has committed;
whatever the dispatcher raises is logged and never undoes the transition.
"""

from typing import Protocol, runtime_checkable

from lpo_kernel.logging_config import get_logger
from lpo_modules.orders.models import Order

logger = get_logger("services.notifications")


@runtime_checkable
class VendorDispatcher(Protocol):
    """Delivers an LPO to its vendor."""

    def dispatch(self, order: Order) -> None: ...


class LoggingDispatcher:
    """Default dispatcher: records the request in the log and does nothing else."""

    def dispatch(self, order: Order) -> None:
        logger.info(
            "vendor_dispatch_requested",
            extra={
                "order_id": str(order.id),
                "lpo_number": order.lpo_number,
                "vendor_name": order.vendor_name,
                "document_ref": order.document_ref,
            },
        )
