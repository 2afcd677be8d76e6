"""
Pytest configuration and shared test fixtures.

This module provides order builders, an in-memory persistence gateway that
records every call, confirmation doubles, and a coordinator wired to them.
"""

from typing import Any, Callable, Optional
from unittest.mock import AsyncMock

import pytest

from orderdesk.core.config import get_settings
from orderdesk.core.logging import clear_context
from orderdesk.schemas.orders import (
    LineItem,
    Order,
    OrderContentPatch,
    OrderPatch,
    OrderStatusPatch,
)
from orderdesk.services.orders.enums import OrderStatus
from orderdesk.services.orders.repository import OrderGateway, OrderNotFoundError
from orderdesk.services.orders.service import (
    AlwaysConfirm,
    NeverConfirm,
    OrderLifecycleCoordinator,
)

PENDING_ID = "64f1a2b3c4d5e6f7a8b9c0d1"
PACKED_ID = "64f1a2b3c4d5e6f7a8b9c0d2"
DELIVERED_ID = "64f1a2b3c4d5e6f7a8b9c0d3"
CATALOG_ID = "650000000000000000000abc"


def build_order_document(
    order_id: str = PENDING_ID,
    status: str = "Pending",
    products: Optional[list[dict[str, Any]]] = None,
    **overrides: Any,
) -> dict[str, Any]:
    """Build an order document shaped like the backend's JSON."""
    products = products if products is not None else [
        {"name": "Rice", "price": 200, "quantity": 2, "productId": CATALOG_ID},
    ]
    document = {
        "_id": order_id,
        "client": {
            "name": "Ayesha Khan",
            "contact": "03001234567",
            "city": "Lahore",
            "address": "12 Mall Road",
        },
        "paymentMethod": "COD",
        "products": products,
        "status": status,
        "totalPrice": sum(p.get("price", 0) * p["quantity"] for p in products),
        "createdAt": "2024-05-01T09:30:00.000Z",
    }
    document.update(overrides)
    return document


class FakeOrderGateway:
    """In-memory gateway recording every call.

    ``fail_on`` maps a method name to an exception raised on its next calls.
    """

    def __init__(self, orders: list[Order]):
        self.orders: dict[str, Order] = {order.id: order for order in orders}
        self.calls: list[tuple[Any, ...]] = []
        self.fail_on: dict[str, Exception] = {}

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        if method in self.fail_on:
            raise self.fail_on[method]

    async def fetch_pending_orders(self) -> list[Order]:
        self._record("fetch_pending_orders")
        return [o for o in self.orders.values() if o.status is OrderStatus.PENDING]

    async def fetch_confirmed_orders(self) -> list[Order]:
        self._record("fetch_confirmed_orders")
        return [o for o in self.orders.values() if o.status is not OrderStatus.PENDING]

    async def update_order(self, order_id: str, patch: OrderPatch) -> Order:
        self._record("update_order", order_id, patch)
        if order_id not in self.orders:
            raise OrderNotFoundError("Order not found", order_id=order_id)

        order = self.orders[order_id]
        if isinstance(patch, OrderStatusPatch):
            updated = order.model_copy(update={"status": patch.status})
        elif isinstance(patch, OrderContentPatch):
            updated = order.model_copy(
                update={
                    "client": patch.client,
                    "payment_method": patch.payment_method,
                    "products": [
                        LineItem(
                            name=item.name,
                            price=item.price,
                            quantity=item.quantity,
                            product_id=item.product_id,
                        )
                        for item in patch.products
                    ],
                    "total_price": patch.total_price,
                }
            )
        else:
            raise TypeError(f"Unexpected patch {patch!r}")

        self.orders[order_id] = updated
        return updated

    async def delete_order(self, order_id: str) -> None:
        self._record("delete_order", order_id)
        if order_id not in self.orders:
            raise OrderNotFoundError("Order not found", order_id=order_id)
        del self.orders[order_id]


@pytest.fixture
def order_factory() -> Callable[..., Order]:
    """
    Build Order models from backend-shaped documents.

    Example:
        def test_something(order_factory):
            order = order_factory(status="Packed")
    """

    def factory(**kwargs: Any) -> Order:
        return Order.model_validate(build_order_document(**kwargs))

    return factory


@pytest.fixture
def pending_order(order_factory) -> Order:
    return order_factory(order_id=PENDING_ID, status="Pending")


@pytest.fixture
def packed_order(order_factory) -> Order:
    return order_factory(order_id=PACKED_ID, status="Packed")


@pytest.fixture
def delivered_order(order_factory) -> Order:
    return order_factory(
        order_id=DELIVERED_ID,
        status="Delivered",
        products=[{"name": "Oil", "price": 450.5, "quantity": 2}],
    )


@pytest.fixture
def fake_gateway(pending_order, packed_order, delivered_order) -> FakeOrderGateway:
    return FakeOrderGateway([pending_order, packed_order, delivered_order])


@pytest.fixture
def mock_gateway() -> AsyncMock:
    """
    Create mock gateway returning empty listings.

    Returns:
        AsyncMock: Mock persistence gateway
    """
    gateway = AsyncMock(spec=OrderGateway)
    gateway.fetch_pending_orders = AsyncMock(return_value=[])
    gateway.fetch_confirmed_orders = AsyncMock(return_value=[])
    gateway.update_order = AsyncMock()
    gateway.delete_order = AsyncMock(return_value=None)
    return gateway


@pytest.fixture
def confirmer() -> AlwaysConfirm:
    return AlwaysConfirm()


@pytest.fixture
def declining_confirmer() -> NeverConfirm:
    return NeverConfirm()


@pytest.fixture
def coordinator(fake_gateway, confirmer) -> OrderLifecycleCoordinator:
    """Coordinator over the in-memory gateway, accepting every prompt."""
    return OrderLifecycleCoordinator(gateway=fake_gateway, confirmer=confirmer)


@pytest.fixture
def test_config(monkeypatch):
    """
    Override configuration for testing.

    Returns:
        dict: Test configuration values
    """
    test_settings = {
        "environment": "staging",
        "log_level": "DEBUG",
        "api_base_url": "http://orders.test/api",
    }

    for key, value in test_settings.items():
        monkeypatch.setenv(f"ORDERDESK_{key.upper()}", str(value))

    get_settings.cache_clear()
    yield test_settings
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_app_state():
    """Reset correlation context between tests."""
    yield
    clear_context()