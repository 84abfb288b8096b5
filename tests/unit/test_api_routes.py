"""HTTP surface over the in-memory world: envelopes, auth and status codes."""

from types import SimpleNamespace

from httpx import AsyncClient

from tests.fakes import FakeProvider, bearer

ORDER_BODY = {
    "items": [{"productId": "prod-tomato", "quantity": 2, "price": 15000}],
    "delivery": {
        "firstName": "Aminata",
        "lastName": "Kamara",
        "phone": "23276123456",
        "address": "12 Wilkinson Road",
        "district": "Bo",
    },
    "total": 30000,
}


async def create_order(client: AsyncClient) -> dict:
    resp = await client.post("/api/v1/orders", json=ORDER_BODY, headers=bearer("buyer-1"))
    assert resp.status_code == 201
    return resp.json()["data"]


async def initialize(client: AsyncClient, order_id: str) -> dict:
    resp = await client.post(
        "/api/v1/payments/initialize",
        json={"orderId": order_id, "paymentMethod": "orange_money", "phoneNumber": "23276123456"},
        headers=bearer("buyer-1"),
    )
    assert resp.status_code == 200
    return resp.json()["data"]


class TestOrderRoutes:
    async def test_create_returns_envelope(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/orders", json=ORDER_BODY, headers=bearer("buyer-1"))
        assert resp.status_code == 201
        body = resp.json()
        assert body["code"] == 0
        assert body["request_id"]
        data = body["data"]
        assert data["orderNumber"].startswith("FT-")
        assert data["totalDisplay"] == "Le 30,000"
        assert data["delivery"]["city"] == "Bo"
        assert data["items"][0]["unitPrice"] == 15000

    async def test_requires_token(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/orders", json=ORDER_BODY)
        assert resp.status_code == 401

    async def test_validation_error_envelope(self, client: AsyncClient) -> None:
        body = {**ORDER_BODY, "items": []}
        resp = await client.post("/api/v1/orders", json=body, headers=bearer("buyer-1"))
        assert resp.status_code == 422
        assert resp.json()["code"] == 3001
        assert resp.json()["data"] is None

    async def test_other_buyer_cannot_read(self, client: AsyncClient) -> None:
        order = await create_order(client)
        resp = await client.get(f"/api/v1/orders/{order['id']}", headers=bearer("buyer-2"))
        assert resp.status_code == 403

    async def test_list_and_cancel(self, client: AsyncClient) -> None:
        order = await create_order(client)
        listed = await client.get("/api/v1/orders", headers=bearer("buyer-1"))
        assert [o["id"] for o in listed.json()["data"]["items"]] == [order["id"]]

        resp = await client.post(
            f"/api/v1/orders/{order['id']}/cancel", json={"reason": "Wrong address"},
            headers=bearer("buyer-1"),
        )
        assert resp.json()["data"]["status"] == "cancelled"

    async def test_buyer_cannot_set_fulfilment_status(self, client: AsyncClient) -> None:
        order = await create_order(client)
        resp = await client.post(
            f"/api/v1/orders/{order['id']}/status", json={"status": "shipped"},
            headers=bearer("buyer-1"),
        )
        assert resp.status_code == 403


class TestPaymentRoutes:
    async def test_initialize_and_webhook(self, client: AsyncClient, world: SimpleNamespace) -> None:
        order = await create_order(client)
        handle = await initialize(client, order["id"])
        assert handle["amount"] == 30000
        assert handle["checkoutUrl"].endswith(handle["reference"])

        escrow = await client.get(
            f"/api/v1/orders/{order['id']}/escrow-status", headers=bearer("buyer-1")
        )
        assert escrow.json()["data"]["status"] == "pending"

        payload = (
            '{"event":"payment.completed","data":{"reference":"%s","status":"completed"}}'
            % handle["reference"]
        )
        resp = await client.post(
            "/api/v1/payments/monime/webhook",
            content=payload,
            headers={"x-monime-signature": FakeProvider.WEBHOOK_SIGNATURE,
                     "content-type": "application/json"},
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["escrowStatus"] == "funded"
        assert world.orders.orders[order["id"]].status == "confirmed"

    async def test_webhook_bad_signature(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/v1/payments/monime/webhook", content=b"{}",
            headers={"x-monime-signature": "sha256=nope"},
        )
        assert resp.status_code == 401

    async def test_payments_not_configured(self, client: AsyncClient, world: SimpleNamespace) -> None:
        order = await create_order(client)
        world.provider.configured = False
        resp = await client.post(
            "/api/v1/payments/initialize",
            json={"orderId": order["id"], "paymentMethod": "orange_money",
                  "phoneNumber": "23276123456"},
            headers=bearer("buyer-1"),
        )
        assert resp.status_code == 503

    async def test_poll(self, client: AsyncClient) -> None:
        order = await create_order(client)
        handle = await initialize(client, order["id"])
        resp = await client.get(
            "/api/v1/payments/verify", params={"reference": handle["reference"]},
            headers=bearer("buyer-1"),
        )
        assert resp.json()["data"]["paymentStatus"] == "pending"

    async def test_methods(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/payments/methods")
        ids = [m["id"] for m in resp.json()["data"]]
        assert ids == ["orange_money", "afrimoney", "africell_money"]


async def pay(client: AsyncClient, order_id: str) -> None:
    handle = await initialize(client, order_id)
    payload = (
        '{"event":"payment.completed","data":{"reference":"%s","status":"completed"}}'
        % handle["reference"]
    )
    resp = await client.post(
        "/api/v1/payments/monime/webhook",
        content=payload,
        headers={"x-monime-signature": FakeProvider.WEBHOOK_SIGNATURE,
                 "content-type": "application/json"},
    )
    assert resp.status_code == 200


class TestBuyerEscrowRoutes:
    async def test_history(self, client: AsyncClient) -> None:
        await create_order(client)
        order = await create_order(client)
        await initialize(client, order["id"])

        resp = await client.get("/api/v1/payments/history", headers=bearer("buyer-1"))
        data = resp.json()["data"]
        assert [i["orderId"] for i in data["items"]] == [order["id"]]
        assert data["items"][0]["amountDisplay"] == "Le 30,000"
        assert data["hasMore"] is False

        other = await client.get("/api/v1/payments/history", headers=bearer("buyer-2"))
        assert other.json()["data"]["items"] == []

    async def test_release(self, client: AsyncClient) -> None:
        order = await create_order(client)
        await pay(client, order["id"])

        denied = await client.post(
            f"/api/v1/payments/release/{order['id']}", json={}, headers=bearer("vendor-1", "vendor")
        )
        assert denied.status_code == 403

        resp = await client.post(
            f"/api/v1/payments/release/{order['id']}",
            json={"releaseReason": "Picked up at the market"},
            headers=bearer("buyer-1"),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Escrow released successfully"
        assert body["data"]["orderStatus"] == "completed"
        assert body["data"]["escrow"]["status"] == "released_to_vendor"

    async def test_refund_needs_reason(self, client: AsyncClient) -> None:
        order = await create_order(client)
        await pay(client, order["id"])
        vendor = bearer("vendor-1", "vendor")

        missing = await client.post(f"/api/v1/payments/refund/{order['id']}", json={}, headers=vendor)
        assert missing.status_code == 422

        resp = await client.post(
            f"/api/v1/payments/refund/{order['id']}",
            json={"refundReason": "Out of stock after harvest"},
            headers=vendor,
        )
        assert resp.json()["data"]["orderStatus"] == "refunded"
        assert resp.json()["data"]["escrow"]["status"] == "refunded_to_buyer"

        again = await client.post(
            f"/api/v1/payments/refund/{order['id']}",
            json={"refundReason": "twice"},
            headers=bearer("admin-1", "admin"),
        )
        assert again.status_code == 409

    async def test_scoped_escrows_and_stats(self, client: AsyncClient) -> None:
        order = await create_order(client)
        await pay(client, order["id"])

        mine = await client.get("/api/v1/payments/escrows", headers=bearer("buyer-1"))
        [escrow] = mine.json()["data"]["items"]
        assert escrow["orderId"] == order["id"]

        vendor = await client.get(
            "/api/v1/payments/escrows", params={"status": "funded"},
            headers=bearer("vendor-1", "vendor"),
        )
        assert len(vendor.json()["data"]["items"]) == 1
        stranger = await client.get("/api/v1/payments/escrows", headers=bearer("buyer-2"))
        assert stranger.json()["data"]["items"] == []

        stats = await client.get("/api/v1/payments/escrows/stats", headers=bearer("vendor-1", "vendor"))
        assert stats.json()["data"]["fundedAmount"] == 30000
        assert stats.json()["data"]["totalEscrows"] == 1


class TestAdminRoutes:
    async def test_buyer_is_forbidden(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/admin/escrow/stats", headers=bearer("buyer-1"))
        assert resp.status_code == 403

    async def test_stats_and_listing(self, client: AsyncClient) -> None:
        order = await create_order(client)
        await initialize(client, order["id"])
        admin = bearer("admin-1", "admin")

        stats = await client.get("/api/v1/admin/escrow/stats", headers=admin)
        assert stats.json()["data"]["totalEscrows"] == 1
        assert stats.json()["data"]["pendingAmount"] == 30000

        listed = await client.get("/api/v1/admin/escrow", params={"status": "pending"}, headers=admin)
        [escrow] = listed.json()["data"]["items"]
        events = await client.get(f"/api/v1/admin/escrow/{escrow['id']}/events", headers=admin)
        assert [e["toStatus"] for e in events.json()["data"]] == ["pending"]

    async def test_auto_release_job(self, client: AsyncClient) -> None:
        resp = await client.post("/api/v1/admin/escrow/auto-release", headers=bearer("admin-1", "admin"))
        assert resp.json()["data"]["processed"] == 0
