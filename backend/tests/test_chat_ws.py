"""
WebSocket and HTTP surface tests (starlette TestClient, mocked model).
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from main import create_app
from services.llm_client import LLMClient
from services.portal import DEFAULT_ROUTES, InMemoryAuthService, InMemoryRouter, InMemoryThemeService, User

from conftest import ALL_PERMISSIONS, HOTLINE, FakeModelServer, hanging_response, make_config


def _receive_state(ws, predicate, limit=10):
    """Read frames until a state frame satisfies predicate."""
    for _ in range(limit):
        frame = ws.receive_json()
        if frame["type"] == "state" and predicate(frame):
            return frame
    raise AssertionError("expected state frame not received")


@pytest.fixture
def client():
    yield from _serve(FakeModelServer())


@pytest.fixture
def hanging_client():
    yield from _serve(FakeModelServer(hanging_response("Đang kiểm tra ")))


def _serve(server):
    config = make_config()

    def portal_factory():
        auth = InMemoryAuthService(User(full_name="Nguyễn Văn An", permissions=list(ALL_PERMISSIONS)), token="t")
        return auth, InMemoryThemeService(), InMemoryRouter(DEFAULT_ROUTES, url="/app/home")

    llm = LLMClient(config, transport=httpx.MockTransport(server))
    app = create_app(config=config, portal_factory=portal_factory, llm_client=llm)
    with TestClient(app) as test_client:
        test_client.server = server
        yield test_client


class TestHealthEndpoint:
    """Test GET /api/health."""

    def test_health(self, client):
        """Health reports status, instance id and public config."""
        body = client.get("/api/health").json()
        assert body["status"] == "ok"
        assert body["instance_id"]
        assert body["config"]["hotline"] == HOTLINE


class TestAssistantWebSocket:
    """Test the /ws/assistant protocol."""

    def test_initial_state(self, client):
        """A state frame is pushed on connect."""
        with client.websocket_connect("/ws/assistant") as ws:
            frame = ws.receive_json()
            assert frame["type"] == "state"
            assert frame["messages"] == []
            assert frame["is_open"] is False
            assert frame["hotline"] == HOTLINE

    def test_invalid_frame(self, client):
        """Malformed frames get an error frame and the socket stays open."""
        with client.websocket_connect("/ws/assistant") as ws:
            ws.receive_json()
            ws.send_text("not json")
            error = ws.receive_json()
            assert error == {"type": "error", "code": "VALIDATION_INVALID_TYPE", "content": "Invalid frame"}

            ws.send_json({"type": "explode"})
            assert ws.receive_json()["code"] == "VALIDATION_INVALID_TYPE"

    def test_empty_send(self, client):
        """Empty messages are rejected."""
        with client.websocket_connect("/ws/assistant") as ws:
            ws.receive_json()
            ws.send_json({"type": "send", "content": "  "})
            assert ws.receive_json()["code"] == "VALIDATION_MISSING_PARAM"

    def test_toggle_greets(self, client):
        """Opening the widget loads health and greets the user."""
        with client.websocket_connect("/ws/assistant") as ws:
            ws.receive_json()
            ws.send_json({"type": "toggle"})
            frame = _receive_state(ws, lambda f: f["is_open"] and f["messages"])
            assert "Nguyễn Văn An" in frame["messages"][0]["content"]
            assert frame["is_offline"] is False

    def test_send_message(self, client):
        """A message produces state frames ending with the reply."""
        with client.websocket_connect("/ws/assistant") as ws:
            ws.receive_json()
            ws.send_json({"type": "send", "content": "quên mật khẩu"})
            frame = _receive_state(ws, lambda f: len(f["messages"]) == 2)
            user, reply = frame["messages"]
            assert user["role"] == "user"
            assert reply["role"] == "assistant"
            assert HOTLINE in reply["content"]
        assert client.server.chat_calls == 0

    def test_reset(self, client):
        """Reset replaces the conversation with a greeting."""
        with client.websocket_connect("/ws/assistant") as ws:
            ws.receive_json()
            ws.send_json({"type": "send", "content": "quên mật khẩu"})
            _receive_state(ws, lambda f: len(f["messages"]) == 2)
            ws.send_json({"type": "reset"})
            frame = _receive_state(ws, lambda f: len(f["messages"]) == 1)
            assert frame["messages"][0]["role"] == "assistant"

    def test_connections_are_isolated(self, client):
        """Each connection has its own conversation."""
        with client.websocket_connect("/ws/assistant") as first:
            first.receive_json()
            first.send_json({"type": "send", "content": "quên mật khẩu"})
            _receive_state(first, lambda f: len(f["messages"]) == 2)

            with client.websocket_connect("/ws/assistant") as second:
                assert second.receive_json()["messages"] == []

    def test_second_send_while_answering(self, hanging_client):
        """A send arriving while the previous answer streams gets an error frame."""
        with hanging_client.websocket_connect("/ws/assistant") as ws:
            ws.receive_json()
            ws.send_json({"type": "send", "content": "máy in bị lỗi"})
            ws.send_json({"type": "send", "content": "wifi bị lỗi"})
            codes, streaming = [], False
            for _ in range(30):
                frame = ws.receive_json()
                if frame["type"] == "error":
                    codes.append(frame["code"])
                elif any("Đang kiểm tra" in m["content"] for m in frame["messages"] if m["role"] == "assistant"):
                    streaming = True
                if codes and streaming:
                    break
            assert codes == ["INTERNAL_STATE_ERROR"]

            ws.send_json({"type": "stop"})
            frame = _receive_state(ws, lambda f: not f["is_generating"] and len(f["messages"]) == 2, limit=20)
            assert frame["messages"][0]["content"] == "máy in bị lỗi"
            assert frame["messages"][1]["content"] == "Đang kiểm tra."
        assert hanging_client.server.chat_calls == 1
