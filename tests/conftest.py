"""
Pytest configuration and shared test fixtures.

Tests run against in-memory fakes of the order store and the collaborators;
no database or network access is needed.
"""

import os
import uuid
from decimal import Decimal

os.environ.setdefault("APP_ENVIRONMENT", "test")

import pytest

from ordering.services.collaborators.interfaces import CartLine
from ordering.services.orders.compensation import ReservationCompensator
from ordering.services.orders.state_machine import OrderStateMachine
from tests.fakes import (
    FakeCatalogClient,
    FakeInventoryClient,
    FakeOrderStore,
    FakeWarehouseClient,
)


@pytest.fixture
def store() -> FakeOrderStore:
    return FakeOrderStore()


@pytest.fixture
def inventory() -> FakeInventoryClient:
    return FakeInventoryClient()


@pytest.fixture
def catalog() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def warehouse() -> FakeWarehouseClient:
    return FakeWarehouseClient()


@pytest.fixture
def compensator(inventory: FakeInventoryClient) -> ReservationCompensator:
    return ReservationCompensator(inventory)


@pytest.fixture
def state_machine(store: FakeOrderStore, compensator: ReservationCompensator) -> OrderStateMachine:
    """
    Create an OrderStateMachine over the in-memory store.

    Returns:
        OrderStateMachine whose reservation releases land in the fake inventory
    """
    return OrderStateMachine(store.uow, compensator)


@pytest.fixture
def product_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def cart_line(product_id: uuid.UUID) -> CartLine:
    return CartLine(product_id=product_id, quantity=Decimal("2"), unit_of_measure="UN")
