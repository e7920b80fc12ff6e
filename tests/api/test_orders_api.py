# tests/api/test_orders_api.py
import asyncio
import re

import httpx
import pytest

from tests.helpers.orders import example_body

pytestmark = pytest.mark.asyncio

ORDER_ID = re.compile(r"^ORD-\d{4}-\d{6}$")


def _bearer(token: str):
    return {"Authorization": f"Bearer {token}"}


async def _create(client: httpx.AsyncClient, **over) -> str:
    r = await client.post("/orders", json=example_body(**over))
    assert r.status_code == 201, r.text
    return r.json()["order_id"]


async def test_healthz(client: httpx.AsyncClient):
    r = await client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


async def test_create_order_contract(client: httpx.AsyncClient):
    r = await client.post("/orders", json=example_body())
    assert r.status_code == 201, r.text
    body = r.json()

    assert body["success"] is True
    assert ORDER_ID.match(body["order_id"])
    assert body["status"] == "pending"
    assert body["shippingCost"] == "5.00"
    assert body["estimatedDelivery"] == "1-2 business days"
    assert body["message"]


async def test_validation_failure_shape(client: httpx.AsyncClient, admin_headers):
    r = await client.post("/orders", json=example_body(location={"lat": 123, "lng": 0}))
    assert r.status_code == 400, r.text
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "INVALID_GPS"
    assert body["status"] == 400
    assert body["error"]
    assert body["trace_id"].startswith("t_")

    # 失败的请求不落库
    listed = await client.get("/orders", headers=admin_headers)
    assert listed.json()["total"] == 0


async def test_non_object_body_is_validation_error(client: httpx.AsyncClient):
    r = await client.post("/orders", json=["not", "an", "object"])
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"


async def test_unknown_product(client: httpx.AsyncClient):
    r = await client.post("/orders", json=example_body(product="spaceship"))
    assert r.status_code == 400
    assert r.json()["code"] == "UNKNOWN_PRODUCT"


async def test_duplicate_returns_409_with_existing_id(client: httpx.AsyncClient, admin_headers):
    first = await client.post("/orders", json=example_body(email="john@example.com"))
    second = await client.post("/orders", json=example_body(email="john@example.com"))

    assert first.status_code == 201
    assert second.status_code == 409, second.text
    dup = second.json()
    assert dup["code"] == "DUPLICATE_ORDER"
    assert dup["order_id"] == first.json()["order_id"]

    listed = await client.get("/orders", headers=admin_headers)
    assert listed.json()["total"] == 1


async def test_idempotency_key_header_identifies_buyer(client: httpx.AsyncClient):
    h = {"Idempotency-Key": "retry-abc"}
    first = await client.post("/orders", json=example_body(), headers=h)
    second = await client.post("/orders", json=example_body(name="Someone Else"), headers=h)
    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["order_id"] == first.json()["order_id"]


async def test_list_requires_admin(client: httpx.AsyncClient, make_token):
    r = await client.get("/orders")
    assert r.status_code == 401
    assert r.json()["code"] == "UNAUTHORIZED"

    r = await client.get("/orders", headers=_bearer(make_token("c-1")))
    assert r.status_code == 403
    assert r.json()["code"] == "FORBIDDEN"

    # 无效凭证：不升级，403 而不是 401
    r = await client.get("/orders", headers=_bearer("not-a-jwt"))
    assert r.status_code == 403


async def test_list_pagination_and_errors(client: httpx.AsyncClient, admin_headers):
    for i in range(3):
        await _create(client, email=f"b{i}@example.com")

    r = await client.get("/orders", params={"limit": 2, "offset": 0, "sort": "-createdAt"}, headers=admin_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["count"] == 2
    assert body["total"] == 3
    assert body["orders"][0]["orderId"]

    r = await client.get("/orders", params={"limit": "abc", "offset": "-4"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["count"] == 3

    r = await client.get("/orders", params={"sort": "secret"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_SORT"

    r = await client.get("/orders", params={"status": "lost"}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_FILTER"


async def test_ship_deliver_flow(client: httpx.AsyncClient, admin_headers):
    oid = await _create(client)

    r = await client.post(f"/orders/{oid}/ship", json={}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["code"] == "MISSING_TRACKING_NUMBER"

    r = await client.post(f"/orders/{oid}/ship", json={"trackingNumber": "1Z999"}, headers=admin_headers)
    assert r.status_code == 200, r.text
    order = r.json()["order"]
    assert order["status"] == "shipped"
    assert order["trackingNumber"] == "1Z999"

    r = await client.post(f"/orders/{oid}/ship", json={"trackingNumber": "1Z000"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_TRANSITION"

    r = await client.post(f"/orders/{oid}/deliver", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "delivered"

    r = await client.post(f"/orders/{oid}/cancel", headers=admin_headers)
    assert r.status_code == 409


async def test_ship_unknown_order_is_404(client: httpx.AsyncClient, admin_headers):
    r = await client.post("/orders/ORD-2025-999999/ship", json={"trackingNumber": "T"}, headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"


async def test_ship_without_credential_is_401(client: httpx.AsyncClient):
    oid = await _create(client)
    r = await client.post(f"/orders/{oid}/ship", json={"trackingNumber": "T"})
    assert r.status_code == 401


async def test_buyer_cancels_own_order(client: httpx.AsyncClient, make_token):
    buyer = _bearer(make_token("c-1"))
    r = await client.post("/orders", json=example_body(), headers=buyer)
    assert r.status_code == 201
    oid = r.json()["order_id"]

    other = await client.post(f"/orders/{oid}/cancel", json={}, headers=_bearer(make_token("c-2")))
    assert other.status_code == 403

    got = await client.get(f"/orders/{oid}", headers=buyer)
    assert got.status_code == 200
    assert got.json()["order"]["customerId"] == "c-1"

    r = await client.post(f"/orders/{oid}/cancel", json={"reason": "wrong size"}, headers=buyer)
    assert r.status_code == 200, r.text
    order = r.json()["order"]
    assert order["status"] == "cancelled"
    assert order["cancelledBy"] == "customer"
    assert order["cancelReason"] == "wrong size"


async def test_get_requires_credential(client: httpx.AsyncClient):
    oid = await _create(client)
    r = await client.get(f"/orders/{oid}")
    assert r.status_code == 401


async def test_unknown_route_uses_failure_shape(client: httpx.AsyncClient):
    r = await client.get("/nope")
    assert r.status_code == 404
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "NOT_FOUND"


async def test_double_click_yields_one_order(client: httpx.AsyncClient, admin_headers):
    body = example_body(email="john@example.com")
    r1, r2 = await asyncio.gather(client.post("/orders", json=body), client.post("/orders", json=body))

    assert sorted([r1.status_code, r2.status_code]) == [201, 409]
    created, dup = (r1, r2) if r1.status_code == 201 else (r2, r1)
    assert dup.json()["code"] == "DUPLICATE_ORDER"
    assert dup.json()["order_id"] == created.json()["order_id"]

    listed = await client.get("/orders", headers=admin_headers)
    assert listed.json()["total"] == 1


async def test_amount_beyond_storable_range_is_client_error(client: httpx.AsyncClient):
    r = await client.post("/orders", json=example_body(amount=1e11))
    assert r.status_code == 400, r.text
    assert r.json()["code"] == "INVALID_AMOUNT"


async def test_long_idempotency_key_is_accepted(client: httpx.AsyncClient):
    r = await client.post("/orders", json=example_body(), headers={"Idempotency-Key": "k" * 200})
    assert r.status_code == 201, r.text
