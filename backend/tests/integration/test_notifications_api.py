"""
Integration Tests for the notification endpoints
HTTP through httpx, WebSocket through the Starlette test client (runs lifespan)
"""
from datetime import datetime
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from sitepulse.core.database import get_session_local
from sitepulse.core.security import create_access_token
from sitepulse.main import create_app
from sitepulse.models import RFIStatus, TenderStatus
from sitepulse.services.notification_service import create_notification_hub


def bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


@pytest.fixture
async def hub(session_factory):
    notification_hub = create_notification_hub(session_factory)
    yield notification_hub
    await notification_hub.shutdown()


@pytest.fixture
async def client(hub):
    """HTTP client; lifespan does not run so the hub is wired to the test database"""
    app = create_app()
    app.state.notification_hub = hub

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def scenario(live_seed, user_id, other_user_id):
    """2 unread messages, 1 overdue RFI, 0 new documents, 1 open tender"""
    project_id = await live_seed.project(user_id, other_user_id)
    await live_seed.message(project_id, other_user_id)
    await live_seed.message(project_id, other_user_id)
    await live_seed.rfi(project_id, user_id, RFIStatus.OVERDUE.value)
    await live_seed.tender(project_id, TenderStatus.OPEN.value)
    return project_id


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client: AsyncClient):
        response = await client.get("/api/v1/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"
        assert response.headers["X-Response-Time"].endswith("ms")


class TestCountsEndpoint:

    @pytest.mark.asyncio
    async def test_requires_auth(self, client: AsyncClient):
        response = await client.get("/api/v1/notifications/counts")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_invalid_token(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/notifications/counts",
            headers={"Authorization": "Bearer invalid"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_returns_counts(self, client: AsyncClient, scenario, user_id):
        response = await client.get("/api/v1/notifications/counts", headers=bearer(user_id))

        assert response.status_code == 200
        data = response.json()
        assert data["counts"] == {"messages": 2, "rfis": 1, "documents": 0, "tenders": 1}
        assert data["total"] == 4
        assert data["connection_status"] == "disconnected"

    @pytest.mark.asyncio
    async def test_user_without_projects(self, client: AsyncClient, scenario):
        response = await client.get("/api/v1/notifications/counts", headers=bearer(str(uuid4())))

        assert response.status_code == 200
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_refresh(self, client: AsyncClient, scenario, live_seed, user_id, other_user_id):
        await live_seed.document(scenario, other_user_id)

        response = await client.post("/api/v1/notifications/refresh", headers=bearer(user_id))

        assert response.status_code == 200
        assert response.json()["counts"]["documents"] == 1


class TestMarkAsReadEndpoint:

    @pytest.mark.asyncio
    async def test_decrements_live_aggregator(self, client: AsyncClient, hub, scenario, user_id):
        live = await hub.acquire(user_id)

        response = await client.post(
            "/api/v1/notifications/read",
            json={"type": "messages", "entity_id": "m-1"},
            headers=bearer(user_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["accepted"] is True
        assert data["counts"]["messages"] == 1
        assert data["counts"]["rfis"] == 1
        assert live.counts.messages == 1

        counts = await client.get("/api/v1/notifications/counts", headers=bearer(user_id))
        assert counts.json()["counts"]["messages"] == 1
        assert counts.json()["connection_status"] == "disconnected"

        await hub.release(user_id)

    @pytest.mark.asyncio
    async def test_without_live_session_nothing_is_decremented(
        self, client: AsyncClient, hub, scenario, user_id
    ):
        response = await client.post(
            "/api/v1/notifications/read",
            json={"type": "messages", "entity_id": "m-1"},
            headers=bearer(user_id),
        )

        assert response.status_code == 200
        assert response.json()["accepted"] is False
        assert response.json()["counts"]["messages"] == 2

        counts = await client.get("/api/v1/notifications/counts", headers=bearer(user_id))
        assert counts.json()["counts"]["messages"] == 2
        assert hub.active_users == []

    @pytest.mark.asyncio
    async def test_unknown_type_is_rejected(self, client: AsyncClient, user_id):
        response = await client.post(
            "/api/v1/notifications/read",
            json={"type": "projects"},
            headers=bearer(user_id),
        )

        assert response.status_code == 422


class TestNotificationsWebSocket:
    """Full stack: lifespan, change capture, local transport, live aggregator"""

    def test_live_updates(self, make_seeder, user_id, other_user_id):
        with TestClient(create_app()) as client:
            seeder = make_seeder(get_session_local(), datetime.utcnow())
            project_id = client.portal.call(seeder.project, user_id, other_user_id)
            client.portal.call(seeder.tender, project_id, TenderStatus.OPEN.value)

            url = f"/api/v1/notifications/ws?token={create_access_token({'sub': user_id})}"
            with client.websocket_connect(url) as websocket:
                initial = websocket.receive_json()
                assert initial["type"] == "counts"
                assert initial["data"]["tenders"] == 1
                assert initial["data"]["messages"] == 0
                assert initial["data"]["connection_status"] == "subscribed"

                client.portal.call(seeder.message, project_id, other_user_id)
                update = websocket.receive_json()
                assert update["data"]["messages"] == 1
                assert update["data"]["total"] == 2

                websocket.send_json({"type": "mark_as_read", "data": {"type": "messages"}})
                assert websocket.receive_json()["data"]["messages"] == 0

                websocket.send_json({"type": "ping"})
                assert websocket.receive_json() == {"type": "pong"}

                websocket.send_json({"type": "mark_as_read", "data": {"type": "projects"}})
                assert websocket.receive_json()["type"] == "error"

                websocket.send_json({"type": "refresh"})
                refreshed = websocket.receive_json()
                assert refreshed["data"]["messages"] == 1

    def test_invalid_token_is_rejected(self):
        with TestClient(create_app()) as client:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                with client.websocket_connect("/api/v1/notifications/ws?token=invalid") as websocket:
                    websocket.receive_json()

        assert exc_info.value.code == 4001
