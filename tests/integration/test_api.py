"""Integration smoke tests for REST and WebSocket (in-memory UoW factory)."""
from __future__ import annotations

import uuid

import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from support_relay.app import create_app
from support_relay.config import settings
from support_relay.domain.entities.conversation import CustomerProfile
from support_relay.infrastructure.auth.hs256_verifier import HS256Verifier
from support_relay.infrastructure.ws.protocol import MAX_SESSION_ID_LENGTH
from support_relay.services.auto_reply_scheduler import AutoReplyScheduler
from tests.conftest import FakeUoWFactory, make_conversation, make_message

ADMIN_PREFIX = "/api/v1/support/admin/conversations"
SECRET = "integration-secret-0123456789abcdef01"


def _make_token(sub: str = "7", role: str = "staff", name: str = "Lan") -> str:
    return jwt.encode({"sub": sub, "role": role, "name": name}, SECRET, algorithm="HS256")


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def uow_factory():
    return FakeUoWFactory()


@pytest.fixture
def client(uow_factory):
    app = create_app(
        app_settings=settings,
        uow_factory=uow_factory,
        verifier=HS256Verifier(SECRET),
        scheduler=AutoReplyScheduler(0, 0),
    )
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def staff_headers():
    return _auth(_make_token())


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_missing_token_rejected(client):
    resp = client.get(ADMIN_PREFIX)
    assert resp.status_code in (401, 403)


def test_invalid_token_is_401(client):
    resp = client.get(ADMIN_PREFIX, headers=_auth("not-a-jwt"))
    assert resp.status_code == 401


def test_customer_cannot_access_console(client):
    resp = client.get(ADMIN_PREFIX, headers=_auth(_make_token(sub="42", role="customer")))
    assert resp.status_code == 403


def test_list_conversations(client, uow_factory, staff_headers):
    uow_factory.store.add(make_conversation(customer=CustomerProfile(name="Lan", phone="090")))
    uow_factory.store.add(make_conversation(owner="7"))

    resp = client.get(ADMIN_PREFIX, headers=staff_headers, params={"owned": "false"})

    assert resp.status_code == 200
    body = resp.json()
    assert len(body["items"]) == 1
    assert body["items"][0]["customer"]["name"] == "Lan"
    assert body["items"][0]["ownerStaffId"] is None
    assert body["nextCursor"] is None


def test_active_and_stats(client, uow_factory, staff_headers):
    uow_factory.store.add(make_conversation(unread_for_staff=3))
    uow_factory.store.add(make_conversation(status="closed"))

    active = client.get(f"{ADMIN_PREFIX}/active", headers=staff_headers)
    stats = client.get(f"{ADMIN_PREFIX}/stats", headers=staff_headers)

    assert len(active.json()) == 1
    assert stats.json()["activeChats"] == 1
    assert stats.json()["unreadMessages"] == 3


def test_get_conversation_with_messages(client, uow_factory, staff_headers):
    conv = uow_factory.store.add(make_conversation())
    uow_factory.store.messages.append(make_message(conversation_id=conv.id, content="xin chào"))

    resp = client.get(f"{ADMIN_PREFIX}/{conv.id}", headers=staff_headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["id"] == str(conv.id)
    assert [m["content"] for m in data["messages"]] == ["xin chào"]


def test_get_missing_conversation(client, staff_headers):
    resp = client.get(f"{ADMIN_PREFIX}/{uuid.uuid4()}", headers=staff_headers)
    assert resp.status_code == 404


def test_update_notes_and_tags(client, uow_factory, staff_headers):
    conv = uow_factory.store.add(make_conversation())

    notes = client.put(
        f"{ADMIN_PREFIX}/{conv.id}/notes", headers=staff_headers, json={"notes": "khách quen"},
    )
    tags = client.put(
        f"{ADMIN_PREFIX}/{conv.id}/tags", headers=staff_headers, json={"tags": ["vip", "vip"]},
    )

    assert notes.json()["staffNotes"] == "khách quen"
    assert tags.json()["tags"] == ["vip"]


def test_delete_conversation(client, uow_factory, staff_headers):
    conv = uow_factory.store.add(make_conversation())

    resp = client.delete(f"{ADMIN_PREFIX}/{conv.id}", headers=staff_headers)

    assert resp.status_code == 204
    assert conv.id not in uow_factory.store.conversations


def test_export_csv(client, uow_factory, staff_headers):
    uow_factory.store.add(make_conversation(customer=CustomerProfile(name="Lan")))

    resp = client.get(f"{ADMIN_PREFIX}/export/csv", headers=staff_headers)

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert "Lan" in resp.text


def test_bad_cursor_is_422(client, staff_headers):
    resp = client.get(ADMIN_PREFIX, headers=staff_headers, params={"cursor": "%%%"})
    assert resp.status_code == 422


def test_ws_customer_session(client, uow_factory):
    with client.websocket_connect("/ws/chat?session_id=s1") as ws:
        greeting = ws.receive_json()
        assert greeting["type"] == "message"
        assert greeting["data"]["sender"] == "automated"
        assert ws.receive_json() == {"type": "agentOnlineStatus", "data": {"online": False}}

        ws.send_json({"type": "message", "data": {"content": "cho mình số hotline"}})
        echo = ws.receive_json()
        assert echo["data"]["sender"] == "customer"
        reply = ws.receive_json()
        assert reply["data"]["sender"] == "automated"
        assert "Hotline" in reply["data"]["content"]

        ws.send_json({"type": "ping", "data": {}})
        assert ws.receive_json()["type"] == "pong"

    conv = next(iter(uow_factory.store.conversations.values()))
    assert conv.session_id == "s1"
    assert conv.message_count == 3


def test_ws_invalid_token_falls_back_to_customer(client):
    with client.websocket_connect("/ws/chat?token=garbage") as ws:
        first = ws.receive_json()
        assert first["type"] == "session"
        assert first["data"]["sessionId"]


def test_ws_oversized_session_id_closes_with_policy_violation(client, uow_factory):
    session_id = "x" * (MAX_SESSION_ID_LENGTH + 1)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/ws/chat?session_id={session_id}"):
            pass

    assert exc_info.value.code == 1008
    assert uow_factory.store.conversations == {}


def test_ws_staff_dashboard(client, uow_factory):
    uow_factory.store.add(make_conversation())
    with client.websocket_connect(f"/ws/chat?token={_make_token()}") as ws:
        assert ws.receive_json()["type"] == "stats"
        listing = ws.receive_json()
        assert listing["type"] == "conversationList"
        assert len(listing["data"]["conversations"]) == 1
