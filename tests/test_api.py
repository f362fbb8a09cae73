"""
HTTP surface tests, driven through httpx's ASGI transport.
"""

import httpx
import pytest
import pytest_asyncio

from wagateway.client.bridge import BaileysBridgeClient
from wagateway.context import GatewayContext
from wagateway.main import create_app

from tests.conftest import RECONNECT_DELAY

BRIDGE_KEY = "bridge-test-key"


@pytest_asyncio.fixture
async def api(gateway):
    app = create_app(gateway=gateway)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await gateway.manager.shutdown()


class TestService:
    @pytest.mark.asyncio
    async def test_health(self, api):
        response = await api.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["active_sessions"] == 0

    @pytest.mark.asyncio
    async def test_root(self, api):
        response = await api.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "online"
        assert "timestamp" in response.json()


class TestSessionRoutes:
    @pytest.mark.asyncio
    async def test_connect_requires_tenant(self, api, fake_client):
        response = await api.post("/connect", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "tenant_id or tenantId is required"
        assert fake_client.opens == []

    @pytest.mark.parametrize("tenant_id", ["team/a", "acme?x=1", "acme#1"])
    @pytest.mark.asyncio
    async def test_connect_rejects_unroutable_tenant_id(self, api, fake_client, tenant_id):
        response = await api.post("/connect", json={"tenant_id": tenant_id})

        assert response.status_code == 400
        assert fake_client.opens == []

    @pytest.mark.asyncio
    async def test_connect_accepts_camel_case(self, api, fake_client):
        response = await api.post("/connect", json={"tenantId": "acme"})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["message"] == "Initializing WhatsApp connection"
        assert fake_client.opens == [("acme", None)]

    @pytest.mark.asyncio
    async def test_malformed_body(self, api):
        response = await api.post("/connect", content="not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_pair_then_send(self, api, fake_client, sample_phone):
        await api.post("/connect", json={"tenant_id": "acme"})
        handle = fake_client.last_handle()

        await handle.emit_qr("2@challenge")
        pairing = (await api.get("/status/acme")).json()
        assert pairing["status"] == "awaiting_pairing"
        assert pairing["qr_code"] == "2@challenge"
        assert pairing["connected"] is False

        await handle.emit_open()
        connected = (await api.get("/status/acme")).json()
        assert connected["status"] == "connected"
        assert connected["qr_code"] is None
        assert connected["connected"] is True

        response = await api.post(
            "/send-message",
            json={"tenant_id": "acme", "phone": f"+{sample_phone}", "message": "Olá!"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["messageId"].startswith("MSG")
        assert body["data"]["timestamp"] == "2026-01-01T00:00:00+00:00"
        assert handle.sent == [("5511999999999@s.whatsapp.net", "Olá!")]

    @pytest.mark.asyncio
    async def test_send_without_session(self, api):
        response = await api.post(
            "/send-message",
            json={"tenant_id": "ghost", "phone": "5511999999999", "message": "hi"},
        )

        assert response.status_code == 500
        assert response.json()["error"] == "WhatsApp session is not active"

    @pytest.mark.parametrize("body, error", [
        ({"phone": "5511999999999", "message": "hi"}, "tenant_id is required"),
        ({"tenant_id": "acme", "message": "hi"}, "phone is required"),
        ({"tenant_id": "acme", "phone": "5511999999999", "message": "   "}, "message cannot be empty"),
    ])
    @pytest.mark.asyncio
    async def test_send_validation(self, api, body, error):
        response = await api.post("/send-message", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == error

    @pytest.mark.asyncio
    async def test_logout_resets_stored_session(self, api, fake_client, db_store):
        await api.post("/connect", json={"tenant_id": "acme"})
        handle = fake_client.last_handle()
        await handle.emit_creds({"creds": {"registered": True}})
        await handle.emit_open()

        response = await api.post("/logout", json={"tenant_id": "acme"})

        assert response.status_code == 200
        assert response.json()["status"] == "disconnected"
        stored = await db_store.get("acme")
        assert stored.status == "disconnected"
        assert stored.qr_code is None
        assert stored.has_credentials is False
        assert handle.closed

    @pytest.mark.asyncio
    async def test_disconnect(self, api, fake_client, db_store):
        await api.post("/connect", json={"tenant_id": "acme"})
        handle = fake_client.last_handle()
        await handle.emit_creds({"creds": {"registered": True}})

        first = await api.post("/disconnect", json={"tenant_id": "acme"})
        second = await api.post("/disconnect", json={"tenant_id": "acme"})

        assert first.json()["message"] == "Disconnected successfully"
        assert second.json()["message"] == "No active connection"
        assert (await db_store.get("acme")).has_credentials is True

    @pytest.mark.asyncio
    async def test_status_list(self, api):
        await api.post("/connect", json={"tenant_id": "acme"})
        await api.post("/connect", json={"tenant_id": "globex"})

        response = await api.get("/status")

        tenants = sorted(s["tenant_id"] for s in response.json()["sessions"])
        assert tenants == ["acme", "globex"]

    @pytest.mark.asyncio
    async def test_status_unknown_tenant(self, api):
        response = await api.get("/status/ghost")

        assert response.status_code == 200
        assert response.json()["status"] == "uninitialized"


class TestBridgeCallbacks:
    @pytest_asyncio.fixture
    async def bridge_api(self, db_store, dispatcher):
        client = BaileysBridgeClient(
            base_url="http://bridge.test",
            api_key=BRIDGE_KEY,
            callback_url="http://test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"success": True})),
        )
        gateway = GatewayContext.create(
            client=client,
            store=db_store,
            dispatcher=dispatcher,
            reconnect_delay=RECONNECT_DELAY,
            bridge_api_key=BRIDGE_KEY,
        )
        app = create_app(gateway=gateway)
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as api:
            yield api, gateway
        await gateway.manager.shutdown()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_rejects_wrong_key(self, bridge_api):
        api, _ = bridge_api

        response = await api.post(
            "/bridge/acme/events",
            json={"event": "connection.update", "data": {"connection": "open"}},
            headers={"X-API-Key": "wrong"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_events_drive_the_session(self, bridge_api):
        api, gateway = bridge_api
        headers = {"X-API-Key": BRIDGE_KEY}
        await api.post("/connect", json={"tenant_id": "acme"})

        qr = await api.post(
            "/bridge/acme/events",
            json={"event": "connection.update", "data": {"qr": "2@challenge"}},
            headers=headers,
        )
        assert qr.json() == {"status": "received"}
        assert (await api.get("/status/acme")).json()["qr_code"] == "2@challenge"

        await api.post(
            "/bridge/acme/events",
            json={"event": "creds.update", "data": {"credentials": {"creds": {"registered": True}}}},
            headers=headers,
        )
        await api.post(
            "/bridge/acme/events",
            json={"event": "connection.update", "data": {"connection": "open"}},
            headers=headers,
        )

        assert (await api.get("/status/acme")).json()["status"] == "connected"
        assert await gateway.store.load("acme") == {"creds": {"registered": True}}

    @pytest.mark.asyncio
    async def test_event_for_unknown_tenant(self, bridge_api):
        api, _ = bridge_api

        response = await api.post(
            "/bridge/ghost/events",
            json={"event": "connection.update", "data": {"connection": "open"}},
            headers={"X-API-Key": BRIDGE_KEY},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
