"""Shared fixtures for API tests."""

from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from storefront.api.dependencies import get_notifier
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import get_session
from storefront.main import app


@pytest.fixture
def client(session_factory, notifier) -> TestClient:
    """Test client bound to the per-test database and a recording notifier."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Get admin authentication headers."""
    return {"Authorization": f"Bearer {settings.admin_api_key}"}


@pytest.fixture
def checkout(client: TestClient, make_product) -> Callable[..., dict]:
    """Place an order through the API and return the checkout response."""

    def _checkout(user_id: str = "user-1", quantity: int = 1, **order_fields) -> dict:
        product = make_product(**order_fields.pop("product", {}))
        headers = {"X-User-Id": user_id}

        response = client.post(
            "/cart/items",
            json={"product_id": product.id, "quantity": quantity},
            headers=headers,
        )
        assert response.status_code == 201, response.text

        body = {"customer_name": "Anna", "customer_phone": "+79001234567", **order_fields}
        response = client.post("/orders", json=body, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _checkout
