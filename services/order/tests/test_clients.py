"""
Tests for the identity / catalog / payment HTTP clients against httpx.MockTransport.
"""

import json
from decimal import Decimal

import httpx
import pytest

from app.clients import CatalogClient, IdentityClient, PaymentClient
from app.errors import DependencyUnavailable


def _transport(handler):
    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_identity_client_parses_profile():
    def handler(request: httpx.Request):
        assert request.url.path == "/api/users/1"
        return httpx.Response(
            200,
            json={"id": 1, "email": "a@x.com", "name": "Ann", "phone": "555", "role": "CUSTOMER"},
        )

    client = IdentityClient("http://users/", transport=_transport(handler))
    user = await client.get_user(1)
    assert user.email == "a@x.com"
    assert user.display_name == "Ann"
    assert user.role == "CUSTOMER"


@pytest.mark.asyncio
async def test_identity_client_returns_none_on_404():
    client = IdentityClient(
        "http://users", transport=_transport(lambda request: httpx.Response(404))
    )
    assert await client.get_user(5) is None


@pytest.mark.asyncio
async def test_identity_client_server_error_is_unavailable():
    client = IdentityClient(
        "http://users", transport=_transport(lambda request: httpx.Response(500))
    )
    with pytest.raises(DependencyUnavailable) as exc_info:
        await client.get_user(5)
    assert exc_info.value.which == "user-service"


@pytest.mark.asyncio
async def test_catalog_client_timeout_is_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = CatalogClient("http://restaurants", transport=_transport(handler))
    with pytest.raises(DependencyUnavailable) as exc_info:
        await client.get_restaurant(2)
    assert exc_info.value.which == "restaurant-service"


@pytest.mark.asyncio
async def test_catalog_client_parses_profile():
    def handler(request):
        assert request.url.path == "/api/restaurants/2"
        return httpx.Response(
            200,
            json={
                "id": 2,
                "name": "Joe's",
                "address": "1 Main St",
                "ownerEmail": "o@x.com",
                "isActive": True,
                "cuisine": "diner",
            },
        )

    client = CatalogClient("http://restaurants", transport=_transport(handler))
    restaurant = await client.get_restaurant(2)
    assert restaurant.name == "Joe's"
    assert restaurant.owner_email == "o@x.com"
    assert restaurant.active is True


@pytest.mark.asyncio
async def test_catalog_client_malformed_body_is_unavailable():
    client = CatalogClient(
        "http://restaurants",
        transport=_transport(lambda request: httpx.Response(200, json={"unexpected": True})),
    )
    with pytest.raises(DependencyUnavailable):
        await client.get_restaurant(2)


@pytest.mark.asyncio
async def test_payment_client_posts_charge():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"paymentId": 77, "status": "SUCCESS", "message": "ok"})

    client = PaymentClient("http://payments", transport=_transport(handler))
    result = await client.charge(10, 1, Decimal("18.00"), "tok_1")

    assert result.succeeded
    assert result.payment_id == 77
    assert seen["path"] == "/api/payments"
    assert seen["body"] == {
        "orderId": 10,
        "userId": 1,
        "amount": "18.00",
        "paymentMethodId": "tok_1",
        "currency": "usd",
    }


@pytest.mark.asyncio
async def test_payment_client_decline_is_a_result():
    client = PaymentClient(
        "http://payments",
        transport=_transport(
            lambda request: httpx.Response(
                200, json={"paymentId": 78, "status": "FAILED", "message": "card declined"}
            )
        ),
    )
    result = await client.charge(10, 1, Decimal("18.00"), "tok_1")
    assert not result.succeeded
    assert result.message == "card declined"


@pytest.mark.asyncio
async def test_payment_client_connect_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = PaymentClient("http://payments", transport=_transport(handler))
    with pytest.raises(DependencyUnavailable) as exc_info:
        await client.charge(10, 1, Decimal("18.00"), "tok_1")
    assert exc_info.value.which == "payment-service"


def test_payment_client_defaults_to_thirty_second_timeout():
    assert PaymentClient("http://payments").timeout == 30.0
    assert IdentityClient("http://users").timeout == 10.0
