# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the HTTP/WebSocket command bridge."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest
import structlog
from starlette.testclient import TestClient

from streamswitch.bridge import MAX_BUTTONS, button_to_index, create_app
from streamswitch.engine import StreamEngine
from streamswitch.errors import EvaluationError, InvalidButtonError, TargetNotFoundError, TransportError
from tests._engine_helpers import FakeTileSource, tile


def _records():
    return [tile("A", area=400), tile("B", area=150), tile("C", "grid", area=900)]


@pytest.fixture
def source():
    return FakeTileSource(_records())


@pytest.fixture
def engine(source):
    return StreamEngine(source)


@pytest.fixture
def check_target():
    return AsyncMock()


@pytest.fixture
def app(engine, check_target):
    return create_app(engine, check_target=check_target)


@pytest.fixture
def client(app):
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://testserver")


class TestButtonToIndex:
    @pytest.mark.parametrize("raw,expected", [("1", 0), (5, 4), ("32", 31)])
    def test_valid(self, raw, expected):
        assert button_to_index(raw) == expected

    @pytest.mark.parametrize("raw", ["0", "33", "-1", "abc", "", "1.5", None])
    def test_invalid(self, raw):
        with pytest.raises(InvalidButtonError):
            button_to_index(raw)

    def test_max_buttons(self):
        assert MAX_BUTTONS == 32


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["timestamp"].endswith("Z")

    async def test_target_connected(self, client, check_target):
        resp = await client.get("/api/discord/status")
        assert resp.status_code == 200
        assert resp.json()["status"] == "connected"
        check_target.assert_awaited_once()

    async def test_target_unreachable_is_503_with_hint(self, client, check_target):
        check_target.side_effect = TransportError("connection refused")
        resp = await client.get("/api/discord/status")
        assert resp.status_code == 503
        data = resp.json()
        assert data["status"] == "disconnected"
        assert data["message"] == "connection refused"
        assert "remote-debugging-port" in data["hint"]

    async def test_target_page_missing(self, client, check_target):
        check_target.side_effect = TargetNotFoundError("no page", hint="Open the conference")
        resp = await client.get("/api/discord/status")
        assert resp.status_code == 503
        assert resp.json()["hint"] == "Open the conference"

    async def test_cors_headers(self, client):
        resp = await client.get("/health", headers={"Origin": "http://deck.local"})
        assert resp.headers["access-control-allow-origin"] == "*"


class TestStreamsApi:
    async def test_get_streams_before_refresh(self, client, source):
        resp = await client.get("/api/streams")
        assert resp.status_code == 200
        assert resp.json() == {"streams": [], "currentIndex": 0, "totalStreams": 0, "pairs": []}
        assert source.scans == 0

    async def test_refresh_returns_status(self, client):
        resp = await client.post("/api/streams/refresh")
        assert resp.status_code == 200
        data = resp.json()
        assert [s["id"] for s in data["streams"]] == ["A", "B", "C"]
        assert data["streams"][2]["kind"] == "grid"
        assert data["totalStreams"] == 3
        assert ["A", "B"] in data["pairs"]

    async def test_next_then_status(self, client, source):
        await client.post("/api/streams/refresh")
        resp = await client.post("/api/streams/next")
        assert resp.json() == {"success": True}
        assert (await client.get("/api/streams")).json()["currentIndex"] == 1
        assert source.clicked == ["B"]

    async def test_previous(self, client, source):
        await client.post("/api/streams/refresh")
        resp = await client.post("/api/streams/previous")
        assert resp.json() == {"success": True}
        assert source.clicked == ["C"]

    async def test_swap(self, client, source):
        await client.post("/api/streams/refresh")
        resp = await client.post("/api/streams/swap")
        assert resp.json() == {"success": True}
        assert source.clicked == ["B"]

    async def test_switch_by_id(self, client, source):
        await client.post("/api/streams/refresh")
        resp = await client.post("/api/streams/switch-by-id/C")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "streamId": "C"}

    async def test_switch_by_id_escaped(self, client, source):
        source.records.append(tile("x y"))
        resp = await client.post("/api/streams/switch-by-id/x%20y")
        assert resp.json() == {"success": True, "streamId": "x y"}
        assert source.clicked == ["x y"]

    async def test_switch_by_unknown_id_is_200_false(self, client):
        resp = await client.post("/api/streams/switch-by-id/ghost")
        assert resp.status_code == 200
        assert resp.json() == {"success": False, "streamId": "ghost"}

    async def test_switch_by_index(self, client):
        await client.post("/api/streams/refresh")
        resp = await client.post("/api/streams/switch-by-index/1")
        assert resp.json() == {"success": True, "index": 1}

    async def test_switch_by_index_out_of_range(self, client):
        await client.post("/api/streams/refresh")
        resp = await client.post("/api/streams/switch-by-index/-1")
        assert resp.status_code == 200
        assert resp.json() == {"success": False, "index": -1}

    async def test_switch_by_index_not_integer(self, client):
        resp = await client.post("/api/streams/switch-by-index/abc")
        assert resp.status_code == 400
        assert "integer" in resp.json()["error"]

    async def test_get_not_allowed_on_commands(self, client):
        resp = await client.get("/api/streams/next")
        assert resp.status_code == 405


class TestStreamDeckButton:
    async def test_button_maps_to_index(self, client, source):
        await client.post("/api/streams/refresh")
        resp = await client.post("/api/stream-deck/button/2")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "buttonNumber": 2, "streamIndex": 1}
        assert source.clicked == ["B"]

    async def test_button_beyond_streams(self, client):
        await client.post("/api/streams/refresh")
        resp = await client.post("/api/stream-deck/button/10")
        assert resp.json() == {"success": False, "buttonNumber": 10, "streamIndex": 9}

    @pytest.mark.parametrize("button", ["0", "33", "abc"])
    async def test_invalid_button_is_400(self, client, button):
        resp = await client.post(f"/api/stream-deck/button/{button}")
        assert resp.status_code == 400
        assert "error" in resp.json()


class TestErrorMapping:
    async def test_transport_error_is_500_with_hint(self, client, source):
        source.scan = AsyncMock(side_effect=TransportError("timed out"))
        resp = await client.post("/api/streams/refresh")
        assert resp.status_code == 500
        data = resp.json()
        assert data["error"] == "timed out"
        assert "hint" in data

    async def test_evaluation_error_is_500(self, client, source):
        await client.post("/api/streams/refresh")
        source.activate = AsyncMock(side_effect=EvaluationError("Page script error: boom"))
        resp = await client.post("/api/streams/next")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Page script error: boom"}

    async def test_unexpected_error_is_500(self, client, source):
        source.scan = AsyncMock(side_effect=RuntimeError("kaboom"))
        resp = await client.post("/api/streams/refresh")
        assert resp.status_code == 500
        assert resp.json()["error"] == "kaboom"

    async def test_button_transport_error(self, client, source):
        await client.post("/api/streams/refresh")
        source.activate = AsyncMock(side_effect=TransportError("closed"))
        resp = await client.post("/api/stream-deck/button/1")
        assert resp.status_code == 500


class TestWebSocket:
    def test_status_pushed_on_connect(self, engine):
        app = create_app(engine, check_target=AsyncMock())
        with TestClient(app) as tc, tc.websocket_connect("/") as ws:
            msg = ws.receive_json()
            assert msg["type"] == "stream_status"
            assert msg["data"]["totalStreams"] == 0
            assert msg["timestamp"].endswith("Z")

    def test_error_pushed_on_connect_when_unreachable(self, engine):
        app = create_app(engine, check_target=AsyncMock(side_effect=TransportError("refused")))
        with TestClient(app) as tc, tc.websocket_connect("/") as ws:
            msg = ws.receive_json()
            assert msg["type"] == "discord_error"
            assert msg["error"] == "refused"

    def test_commands(self, engine, source):
        app = create_app(engine, check_target=AsyncMock())
        with TestClient(app) as tc, tc.websocket_connect("/") as ws:
            ws.receive_json()
            ws.send_json({"command": "refresh"})
            assert ws.receive_json()["totalStreams"] == 3
            ws.send_json({"command": "next"})
            assert ws.receive_json() == {"success": True}
            ws.send_json({"command": "switch_by_index", "params": {"index": 2}})
            assert ws.receive_json() == {"success": True, "index": 2}
            ws.send_json({"command": "switch_by_id", "params": {"streamId": "A"}})
            assert ws.receive_json() == {"success": True, "streamId": "A"}
            ws.send_json({"command": "swap"})
            assert ws.receive_json() == {"success": True}
            ws.send_json({"command": "previous"})
            assert ws.receive_json() == {"success": True}
            ws.send_json({"command": "get_streams"})
            assert ws.receive_json()["currentIndex"] == 0
        assert source.clicked == ["B", "C", "A", "B", "A"]

    def test_bad_messages_get_error_reply(self, engine):
        app = create_app(engine, check_target=AsyncMock())
        with TestClient(app) as tc, tc.websocket_connect("/") as ws:
            ws.receive_json()
            ws.send_json({"command": "dance"})
            assert "Unknown command" in ws.receive_json()["error"]
            ws.send_text("not json")
            assert "error" in ws.receive_json()
            ws.send_json(["list"])
            assert "error" in ws.receive_json()
            ws.send_json({"command": "switch_by_index", "params": {}})
            assert "error" in ws.receive_json()
            ws.send_json({"command": "switch_by_id", "params": ["A"]})
            assert "JSON object" in ws.receive_json()["error"]
            ws.send_json({"command": "switch_by_index", "params": "0"})
            assert "JSON object" in ws.receive_json()["error"]
            # Connection still usable
            ws.send_json({"command": "get_streams"})
            assert "streams" in ws.receive_json()

    @pytest.mark.parametrize("index", [1.9, True, "1", None])
    def test_switch_by_index_rejects_non_integer(self, engine, source, index):
        app = create_app(engine, check_target=AsyncMock())
        with TestClient(app) as tc, tc.websocket_connect("/") as ws:
            ws.receive_json()
            ws.send_json({"command": "refresh"})
            ws.receive_json()
            ws.send_json({"command": "switch_by_index", "params": {"index": index}})
            assert "integer" in ws.receive_json()["error"]
            # Connection still usable
            ws.send_json({"command": "get_streams"})
            assert "streams" in ws.receive_json()
        assert source.clicked == []

    def test_commands_logged_with_controller_address(self):
        seen: list[dict] = []

        class RecordingSource(FakeTileSource):
            async def scan(self):
                seen.append(structlog.contextvars.get_contextvars())
                return await super().scan()

        app = create_app(StreamEngine(RecordingSource(_records())), check_target=AsyncMock())
        with TestClient(app) as tc, tc.websocket_connect("/") as ws:
            ws.receive_json()
            ws.send_json({"command": "refresh"})
            ws.receive_json()
        assert len(seen) == 1
        assert seen[0]["controller"] == "testclient:50000"

    def test_subscriber_set_tracks_connections(self, engine):
        app = create_app(engine, check_target=AsyncMock())
        broadcaster = app.state.broadcaster
        with TestClient(app) as tc, tc.websocket_connect("/") as ws1:
            ws1.receive_json()
            assert len(broadcaster.clients) == 1
            with tc.websocket_connect("/") as ws2:
                ws2.receive_json()
                assert len(broadcaster.clients) == 2

    def test_lifespan_runs_shutdown_hook(self, engine):
        on_shutdown = AsyncMock()
        app = create_app(engine, check_target=AsyncMock(), on_shutdown=on_shutdown)
        with TestClient(app):
            pass
        on_shutdown.assert_awaited_once()
