"""
Socket.IO handler and HTTP endpoint tests for the collaboration server.
"""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from nuvia.core.config import Settings
from nuvia.main import create_app
from nuvia.websocket.server import CollaborationServer


def emitted(server, sid, name=None):
    """Events emitted to one sid through the mocked Socket.IO server."""
    result = []
    for args, kwargs in server.sio.emit.call_args_list:
        event, data = args
        if kwargs.get("to") == sid and (name is None or event == name):
            result.append(data)
    return result


@pytest.fixture
def settings():
    return Settings(allowed_origins=["*"], session_timeout_minutes=30, sweep_interval_minutes=15)


@pytest_asyncio.fixture
async def server(settings):
    server = CollaborationServer(settings)
    server.sio.emit = AsyncMock()
    yield server
    await server.shutdown()


async def trigger(server, event, sid, *args):
    return await server.sio.handlers["/"][event](sid, *args)


class TestSocketHandlers:

    @pytest.mark.asyncio
    async def test_join_edit_leave_flow(self, server):
        await trigger(server, "connect", "sidA", {}, None)
        await trigger(server, "connect", "sidB", {}, None)

        ack = await trigger(server, "join-project", "sidA", {"projectId": "proj1"})
        assert ack == {"status": "joined", "projectId": "proj1", "roomName": "project-proj1", "participantCount": 1}

        # Bare string payload, as sent by the web client
        await trigger(server, "join-project", "sidB", "proj1")

        ack = await trigger(server, "code-change", "sidB", {
            "projectId": "proj1", "filePath": "main.ts", "newContent": "console.log(1)"
        })
        assert ack["status"] == "relayed"
        assert ack["deliveredTo"] == 1

        await trigger(server, "leave-project", "sidA", {"projectId": "proj1"})
        await server.connection_manager.drain()

        assert emitted(server, "sidA", "joined-project")[0]["participantCount"] == 1
        assert emitted(server, "sidA", "user-joined")[0]["connectionId"] == "sidB"
        assert emitted(server, "sidA", "code-update")[0]["newContent"] == "console.log(1)"
        assert emitted(server, "sidB", "code-update") == []
        assert emitted(server, "sidB", "user-left") == [
            {"connectionId": "sidA", "projectId": "proj1", "participantCount": 1}
        ]

    @pytest.mark.asyncio
    async def test_invalid_join_reports_error_to_caller_only(self, server):
        await trigger(server, "connect", "sidA", {}, None)
        await trigger(server, "connect", "sidB", {}, None)
        await trigger(server, "join-project", "sidB", "proj1")

        ack = await trigger(server, "join-project", "sidA", {})
        await server.connection_manager.drain()

        assert ack["code"] == "INVALID_REQUEST"
        assert emitted(server, "sidA", "error")[0]["code"] == "INVALID_REQUEST"
        assert emitted(server, "sidB", "error") == []
        assert server.stats["total_errors"] == 1

    @pytest.mark.asyncio
    async def test_edit_without_join_is_not_joined(self, server):
        await trigger(server, "connect", "sidA", {}, None)

        ack = await trigger(server, "code-change", "sidA", {
            "projectId": "proj1", "filePath": "main.ts", "newContent": "x"
        })
        await server.connection_manager.drain()

        assert ack["code"] == "NOT_JOINED"
        assert emitted(server, "sidA", "error")[0]["code"] == "NOT_JOINED"
        assert server.coordinator.get_status("proj1").is_active is False

    @pytest.mark.asyncio
    async def test_cursor_change_relayed(self, server):
        for sid in ("sidA", "sidB"):
            await trigger(server, "connect", sid, {}, None)
            await trigger(server, "join-project", sid, "proj1")

        await trigger(server, "cursor-change", "sidA", {
            "projectId": "proj1", "filePath": "main.ts", "cursorPosition": 7,
            "selection": {"start": 3, "end": 7}
        })
        await server.connection_manager.drain()

        update = emitted(server, "sidB", "cursor-update")[0]
        assert update["cursorPosition"] == 7
        assert update["selection"] == {"start": 3, "end": 7}

    @pytest.mark.asyncio
    async def test_project_status_and_ping(self, server):
        await trigger(server, "connect", "sidA", {}, None)
        await trigger(server, "join-project", "sidA", "proj1")

        status = await trigger(server, "get-project-status", "sidA", "proj1")
        pong = await trigger(server, "ping", "sidA")
        await server.connection_manager.drain()

        assert status["isActive"] is True
        assert status["participantCount"] == 1
        assert emitted(server, "sidA", "project-status") == [status]
        assert pong == {"status": "pong"}
        assert len(emitted(server, "sidA", "pong")) == 1

    @pytest.mark.asyncio
    async def test_disconnect_notifies_and_unregisters(self, server):
        for sid in ("sidA", "sidB"):
            await trigger(server, "connect", sid, {}, None)
            await trigger(server, "join-project", sid, "proj1")

        await trigger(server, "disconnect", "sidB", "client disconnect")
        await trigger(server, "disconnect", "sidB", "client disconnect")
        await server.connection_manager.drain()

        assert emitted(server, "sidA", "user-left") == [
            {"connectionId": "sidB", "projectId": "proj1", "participantCount": 1}
        ]
        assert not server.connection_manager.is_connected("sidB")


class TestHTTPEndpoints:

    @pytest.fixture
    def client(self, settings):
        app, _ = create_app(settings)
        return TestClient(app)

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_unknown_project_status(self, client):
        response = client.get("/api/collaboration/projects/unknown")

        assert response.status_code == 200
        assert response.json() == {
            "projectId": "unknown",
            "isActive": False,
            "participantCount": 0,
            "lastActivity": None
        }

    def test_project_status_reflects_coordinator(self, client):
        coordinator = client.app.state.collaboration.coordinator
        coordinator.join("sidA", "proj1")

        response = client.get("/api/collaboration/projects/proj1")

        assert response.json()["isActive"] is True
        assert response.json()["participantCount"] == 1

    def test_blank_project_id_is_invalid_request(self, client):
        response = client.get("/api/collaboration/projects/%20")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["error_code"] == "INVALID_REQUEST"
        assert error["message"] == "projectId is required"
        assert error["request_id"] == response.headers["x-request-id"]

    def test_responses_carry_request_id(self, client):
        first = client.get("/health")
        second = client.get("/health")

        assert first.headers["x-request-id"]
        assert first.headers["x-request-id"] != second.headers["x-request-id"]

    def test_stats(self, client):
        response = client.get("/api/collaboration/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["sessions"]["totalSessions"] == 0
        assert data["connections"]["active_connections"] == 0
        assert "uptime_seconds" in data["server"]

    def test_unknown_route_uses_error_format(self, client):
        response = client.get("/api/collaboration/nothing/here")

        assert response.status_code == 404
        assert response.json()["error"]["error_code"] == "HTTP_ERROR"

    def test_readiness_without_lifespan(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "not_ready"
        assert response.json()["checks"]["collaboration_server"] is True
