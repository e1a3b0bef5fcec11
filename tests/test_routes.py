"""
Integration tests for the HTTP and WebSocket routes.

The app runs with an in-memory transport and a temporary audit database.
"""

import time

import pytest
from starlette.testclient import TestClient

from wagate.config import Config
from wagate.server import create_app

from conftest import FakeTransportFactory


def _config(**overrides):
    return Config(reconnect_delay=0.05, history_limit=5, **overrides)


@pytest.fixture
def factory():
    return FakeTransportFactory()


@pytest.fixture
def client(factory, temp_db):
    app = create_app(config=_config(), transport_factory=factory, database=temp_db)
    with TestClient(app) as c:
        yield c


def _wait_for_state(client, state, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get("/session").json()
        if body["state"] == state:
            return body
        time.sleep(0.01)
    raise AssertionError(f"session never reached {state}: {body}")


class TestSendMessage:
    def test_not_ready_is_failed_and_recorded(self, client, temp_db, factory):
        resp = client.post("/send-message", json={"recipient": "0812", "body": "hi"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["failed"] is True
        assert data["outcome"] == "FAILED"
        assert data["display_message"] == "session not ready / reconnecting"
        assert temp_db.count_message_logs() == 1
        assert factory.latest.sent == []

    @pytest.mark.parametrize(
        "payload",
        [{"recipient": "", "body": "hi"}, {"recipient": "0812"}, {}],
    )
    def test_missing_fields_rejected(self, client, temp_db, payload):
        resp = client.post("/send-message", json=payload)

        assert resp.status_code == 400
        assert resp.json() == {
            "failed": True,
            "outcome": None,
            "display_message": "Recipient and message are required",
        }
        assert temp_db.count_message_logs() == 0

    def test_malformed_json_rejected(self, client, temp_db):
        resp = client.post(
            "/send-message",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert resp.status_code == 400
        assert resp.json()["failed"] is True
        assert temp_db.count_message_logs() == 0

    def test_sent_once_ready(self, temp_db):
        factory = FakeTransportFactory(auto_ready=True)
        app = create_app(config=_config(), transport_factory=factory, database=temp_db)

        with TestClient(app) as client:
            _wait_for_state(client, "READY")
            resp = client.post(
                "/send-message", json={"recipient": "+62 812-34", "body": "hi"}
            )

        assert resp.json() == {
            "failed": False,
            "outcome": "SENT",
            "display_message": "message sent",
        }
        assert factory.latest.sent == [("6281234@c.us", "hi")]


class TestMessages:
    def test_lists_recent_entries(self, client, temp_db):
        for i in range(7):
            temp_db.insert_message_log(f"08{i}", f"m{i}", "FAILED", "offline")

        data = client.get("/messages").json()
        assert data["count"] == 5
        assert data["entries"][0]["body"] == "m6"

        data = client.get("/messages", params={"limit": 2}).json()
        assert [e["body"] for e in data["entries"]] == ["m6", "m5"]

    def test_bad_limit(self, client):
        resp = client.get("/messages", params={"limit": "many"})
        assert resp.status_code == 400


class TestSessionAndHealth:
    def test_session_starts_in_init(self, client):
        assert client.get("/session").json() == {
            "state": "INIT",
            "ready": False,
            "identity": None,
        }

    def test_health(self, client, temp_db):
        temp_db.insert_message_log("0811", "a", "SENT")

        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["session_state"] == "INIT"
        assert data["ready"] is False
        assert data["messages_logged"] == 1

    def test_disconnect_then_reconnect(self, client, factory):
        data = client.post("/session/disconnect").json()
        assert data["state"] == "DISCONNECTED"
        assert factory.latest.destroyed

        data = client.post("/session/reconnect").json()
        assert data["state"] == "RECONNECTING"
        _wait_for_state(client, "RECONNECTING")
        deadline = time.monotonic() + 2.0
        while len(factory.created) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(factory.created) == 2

    def test_ready_session_reports_identity(self, temp_db):
        factory = FakeTransportFactory(auto_ready=True)
        app = create_app(config=_config(), transport_factory=factory, database=temp_db)

        with TestClient(app) as client:
            body = _wait_for_state(client, "READY")
            health = client.get("/health").json()

        assert body["ready"] is True
        assert body["identity"] == {
            "address": "628111222333",
            "display_name": "Front Desk",
            "platform": "android",
        }
        assert health["ready"] is True


class TestObserverWebSocket:
    def test_replay_on_connect(self, client, temp_db):
        temp_db.insert_message_log("0811", "earlier", "SENT")

        with client.websocket_connect("/ws") as ws:
            status = ws.receive_json()
            history = ws.receive_json()

        assert status == {"type": "status", "data": {"state": "INIT", "ready": False}}
        assert history["type"] == "history_init"
        assert [e["body"] for e in history["data"]] == ["earlier"]

    def test_send_pushes_history_update(self, client, temp_db):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.receive_json()

            client.post("/send-message", json={"recipient": "0812", "body": "hi"})
            # The update is only pushed once the attempt is stored.
            assert temp_db.count_message_logs() == 1
            update = ws.receive_json()

        assert update["type"] == "history_update"
        assert update["data"]["outcome"] == "FAILED"
        assert update["data"]["recipient"] == "0812"

    def test_request_disconnect(self, client, factory):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.receive_json()

            ws.send_json({"type": "request_disconnect"})
            first = ws.receive_json()
            second = ws.receive_json()

        assert first["data"]["state"] == "DISCONNECTING"
        assert second["data"]["state"] == "DISCONNECTED"
        assert factory.latest.destroyed

    def test_unknown_request_is_ignored(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.receive_json()
            ws.send_json({"type": "self_destruct"})
            ws.send_json({"type": "request_disconnect"})

            assert ws.receive_json()["data"]["state"] == "DISCONNECTING"
