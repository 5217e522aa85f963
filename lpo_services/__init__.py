"""Public operation surface of the LPO lifecycle engine."""

from lpo_services.lifecycle import ProcurementLifecycle
from lpo_services.notifications import LoggingDispatcher, VendorDispatcher

__all__ = ["LoggingDispatcher", "ProcurementLifecycle", "VendorDispatcher"]
