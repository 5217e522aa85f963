"""
Shared fixtures for module tests.

Module services are exercised directly on one session, without the
lifecycle facade, so each test sees exactly one transaction boundary per
call.
"""

import pytest

from lpo_modules.assets.service import AssetService
from lpo_modules.orders.service import OrderService
from lpo_modules.receiving.service import ReceivingService


@pytest.fixture
def order_service(session, config, clock) -> OrderService:
    return OrderService(session, config, clock=clock)


@pytest.fixture
def asset_service(session, config, clock) -> AssetService:
    return AssetService(session, config, clock=clock)


@pytest.fixture
def receiving_service(session, config, clock, asset_service) -> ReceivingService:
    return ReceivingService(session, config, clock=clock, assets=asset_service)


@pytest.fixture
def approvers(hod, gm, accountant):
    return {"DEPT": hod, "GM": gm, "ACC": accountant}


@pytest.fixture
def drive_to_sent(order_service, requester, approvers):
    """Submit, approve every required tier, and send an order."""

    def _drive(order):
        order = order_service.submit_order(order.id, requester)
        while order.status.pending_tier is not None:
            tier = order.status.pending_tier
            order = order_service.approve_order(order.id, approvers[tier.value], tier)
        return order_service.send_to_vendor(order.id, requester)

    return _drive
