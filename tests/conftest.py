from decimal import Decimal

import pytest

from ordering.db.session import build_engine, make_session_factory
from ordering.models import Base
from ordering.services.identity import Identity, Role
from ordering.services.order_service import OrderService
from ordering.services.payment_service import PaymentService
from ordering.services.pricing import PricingPolicy

from .factories import ADMIN_ID, CLIENT_ID, OTHER_CLIENT_ID, STAFF_ID, seed


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    factory = make_session_factory(engine)
    seed(factory)
    return factory


@pytest.fixture
def pricing():
    return PricingPolicy(tax_rate=Decimal("0.10"), delivery_fee=Decimal("5.00"))


@pytest.fixture
def order_service(session_factory, pricing):
    return OrderService(session_factory, pricing=pricing)


@pytest.fixture
def payment_service(session_factory):
    return PaymentService(session_factory)


@pytest.fixture
def client_identity():
    return Identity(user_id=CLIENT_ID, role=Role.CLIENT)


@pytest.fixture
def other_client_identity():
    return Identity(user_id=OTHER_CLIENT_ID, role=Role.CLIENT)


@pytest.fixture
def staff_identity():
    return Identity(user_id=STAFF_ID, role=Role.STAFF)


@pytest.fixture
def admin_identity():
    return Identity(user_id=ADMIN_ID, role=Role.ADMIN)


@pytest.fixture
def dine_in_order(order_service, client_identity):
    """Two burgers and fries: subtotal 25.00, tax 2.50, total 27.50."""
    return order_service.create_order(
        client_identity,
        [{"menu_item_id": 1, "quantity": 2}, {"menu_item_id": 2, "quantity": 1}],
        "dine_in",
    )
