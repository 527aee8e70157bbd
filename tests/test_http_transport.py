"""
Tests for slide_mcp.mcp.http_transport: POST/GET /mcp, sessions and the SSE hub.

The FastAPI app is exercised through starlette's TestClient; the event
stream generator is driven directly on an asyncio loop with a fake request.
"""

import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from conftest import StubSession
from slide_mcp.api.client import SlideClient
from slide_mcp.mcp.handlers import McpDispatcher
from slide_mcp.mcp.http_transport import (
    SESSION_HEADER,
    SessionManager,
    SessionSweeper,
    SseHub,
    create_app,
    event_stream,
    format_event,
)
from slide_mcp.mcp.protocol import PARSE_ERROR


@pytest.fixture
def app(make_config):
    config = make_config(session_idle_timeout=0)
    dispatcher = McpDispatcher(config, SlideClient("test-key", session=StubSession()))
    return create_app(dispatcher, config)


@pytest.fixture
def http(app):
    return TestClient(app)


class _FakeRequest:
    def __init__(self):
        self.disconnected = False

    async def is_disconnected(self):
        return self.disconnected


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestPost:
    def test_health(self, http):
        response = http.get("/health")
        assert response.status_code == 200
        assert response.text == "OK"

    def test_request_creates_session(self, http):
        response = http.post("/mcp", content='{"jsonrpc":"2.0","id":1,"method":"ping"}')
        assert response.status_code == 200
        assert response.json() == {"jsonrpc": "2.0", "id": 1, "result": {}}
        assert len(response.headers[SESSION_HEADER]) == 32

    def test_known_session_is_reused(self, http):
        first = http.post("/mcp", content='{"jsonrpc":"2.0","id":1,"method":"ping"}')
        session_id = first.headers[SESSION_HEADER]
        second = http.post(
            "/mcp", content='{"jsonrpc":"2.0","id":2,"method":"ping"}', headers={SESSION_HEADER: session_id}
        )
        assert second.headers[SESSION_HEADER] == session_id

    def test_unknown_session_is_replaced(self, http):
        response = http.post(
            "/mcp", content='{"jsonrpc":"2.0","id":1,"method":"ping"}', headers={SESSION_HEADER: "stale"}
        )
        assert response.headers[SESSION_HEADER] != "stale"

    def test_notification_is_accepted(self, http):
        response = http.post("/mcp", content='{"jsonrpc":"2.0","method":"notifications/initialized"}')
        assert response.status_code == 202
        assert response.content == b""
        assert SESSION_HEADER in response.headers

    def test_parse_error_with_id(self, http):
        response = http.post("/mcp", content='{"jsonrpc":"2.0","id":4,"method":')
        assert response.status_code == 400
        assert response.json()["id"] == 4
        assert response.json()["error"]["code"] == PARSE_ERROR

    def test_non_object_body_echoes_id(self, http):
        response = http.post("/mcp", content='[{"jsonrpc":"2.0","id":7,"method":"ping"}]')
        assert response.status_code == 400
        assert response.json()["id"] == 7
        assert response.json()["error"]["code"] == PARSE_ERROR

    def test_garbage_body(self, http):
        response = http.post("/mcp", content="nonsense")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == PARSE_ERROR

    def test_tool_call_in_band_error(self, http):
        response = http.post(
            "/mcp",
            content='{"jsonrpc":"2.0","id":3,"method":"tools/call","params":{"name":"slide_agents","arguments":{}}}',
        )
        assert response.status_code == 200
        assert response.json()["result"]["isError"] is True

    def test_requests_are_logged(self, http, caplog):
        caplog.set_level(logging.INFO, logger="Slide.mcp.http")
        http.get("/health")
        messages = [record.getMessage() for record in caplog.records if record.name == "Slide.mcp.http"]
        assert "GET /health testclient" in messages
        assert any(message.startswith("GET /health testclient -> 200 (") for message in messages)

    def test_bodies_logged_at_debug(self, http, caplog):
        caplog.set_level(logging.DEBUG, logger="Slide.mcp.http")
        http.post("/mcp", content='{"jsonrpc":"2.0","id":1,"method":"ping"}')
        messages = [record.getMessage() for record in caplog.records if record.name == "Slide.mcp.http"]
        assert 'Request body: {"jsonrpc":"2.0","id":1,"method":"ping"}' in messages
        assert any(message.startswith("Response body: ") and '"result":{}' in message for message in messages)

    def test_unsupported_method(self, http):
        assert http.put("/mcp", content="{}").status_code == 405


class TestGet:
    def test_requires_event_stream_accept(self, http):
        assert http.get("/mcp").status_code == 406

    def test_requires_known_session(self, http):
        response = http.get("/mcp", headers={"Accept": "text/event-stream", SESSION_HEADER: "missing"})
        assert response.status_code == 401
        assert response.text == "Invalid or missing session ID"


class TestSessionManager:
    def test_create_and_validate(self):
        sessions = SessionManager()
        session_id = sessions.create()
        assert sessions.validate(session_id)
        assert not sessions.validate("other")
        assert not sessions.validate(None)
        assert len(sessions) == 1

    def test_evicts_idle_sessions(self):
        clock = _Clock()
        sessions = SessionManager(idle_timeout=60, clock=clock)
        stale = sessions.create()
        clock.now += 30
        fresh = sessions.create()
        clock.now += 40
        assert sessions.evict_idle() == [stale]
        assert sessions.validate(fresh)

    def test_validate_touches_session(self):
        clock = _Clock()
        sessions = SessionManager(idle_timeout=60, clock=clock)
        session_id = sessions.create()
        clock.now += 50
        sessions.validate(session_id)
        clock.now += 50
        assert sessions.evict_idle() == []

    def test_zero_timeout_never_evicts(self):
        clock = _Clock()
        sessions = SessionManager(idle_timeout=0, clock=clock)
        sessions.create()
        clock.now += 10 ** 6
        assert sessions.evict_idle() == []

    def test_sweeper_removes_sessions(self):
        clock = _Clock()
        sessions = SessionManager(idle_timeout=1, clock=clock)
        session_id = sessions.create()
        clock.now += 5
        assert SessionSweeper(sessions, SseHub()).sweep_once() == [session_id]
        assert len(sessions) == 0


class TestSse:
    def test_format_event(self):
        assert format_event("a\nb", "message", "e1") == "id: e1\nevent: message\ndata: a\ndata: b\n\n"

    def test_format_event_generates_id(self):
        frame = format_event("x")
        assert frame.startswith("id: ")
        assert frame.endswith("data: x\n\n")

    def test_send_without_reader(self):
        assert SseHub().send_event("nobody", "hello") is False

    def test_stream_delivers_events_and_heartbeats(self):
        async def scenario():
            hub = SseHub()
            reader = hub.attach("s1")
            stream = event_stream(hub, _FakeRequest(), reader, heartbeat_interval=0.05)
            frames = [await stream.__anext__()]
            assert hub.send_event("s1", "hello", "message")
            frames.append(await stream.__anext__())
            frames.append(await stream.__anext__())
            hub.close("s1")
            with pytest.raises(StopAsyncIteration):
                await stream.__anext__()
            return frames, hub.has_reader("s1")

        frames, attached = asyncio.run(scenario())
        assert frames[0].startswith(": connected at ")
        assert "event: message\ndata: hello\n\n" in frames[1]
        assert frames[2].startswith(": heartbeat ")
        assert attached is False

    def test_disconnect_detaches_reader(self):
        async def scenario():
            hub = SseHub()
            request = _FakeRequest()
            reader = hub.attach("s1")
            stream = event_stream(hub, request, reader, heartbeat_interval=0.05)
            await stream.__anext__()
            request.disconnected = True
            with pytest.raises(StopAsyncIteration):
                await stream.__anext__()
            return hub.has_reader("s1")

        assert asyncio.run(scenario()) is False

    def test_new_reader_replaces_old(self):
        async def scenario():
            hub = SseHub()
            first = hub.attach("s1")
            second = hub.attach("s1")
            closed = await asyncio.wait_for(first.queue.get(), timeout=1)
            return closed, hub.has_reader("s1"), hub.detach("s1", first), second

        closed, attached, detached_old, _ = asyncio.run(scenario())
        assert closed is None
        assert attached is True
        assert detached_old is False

    def test_broadcast(self):
        async def scenario():
            hub = SseHub()
            readers = [hub.attach("s1"), hub.attach("s2")]
            counts = hub.broadcast("news")
            frames = [await asyncio.wait_for(reader.queue.get(), timeout=1) for reader in readers]
            return counts, frames

        counts, frames = asyncio.run(scenario())
        assert counts == (2, 0)
        assert all(frame.endswith("data: news\n\n") for frame in frames)
