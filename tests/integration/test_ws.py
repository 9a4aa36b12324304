"""End-to-end WebSocket tests against the in-memory storage."""
from __future__ import annotations

import time

import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from realtime_chat.app import create_app
from realtime_chat.config import settings
from realtime_chat.infrastructure.ws.hub import ChatHub
from tests.conftest import FakeChatStorage, make_chat


def _url(sub: int, provider: bool = False) -> str:
    token = jwt.encode(
        {"sub": str(sub), "provider": provider},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    return f"/ws/chat?token={token}"


@pytest.fixture
def storage() -> FakeChatStorage:
    return FakeChatStorage()


@pytest.fixture
def chat(storage):
    return storage.add_chat(make_chat())


@pytest.fixture
def app(storage):
    return create_app(hub=ChatHub.from_settings(storage))


def _join(ws, chat) -> None:
    ws.send_json({"event": "chat:join", "data": {"chatId": str(chat.chat_id)}})
    assert ws.receive_json() == {"event": "chat:joined", "data": {"chatId": str(chat.chat_id)}}


def test_bad_token_closes_with_4001(app):
    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/chat?token=garbage"):
                pass

    assert exc_info.value.code == 4001


def test_connection_success_carries_identity(app):
    with TestClient(app) as client:
        with client.websocket_connect(_url(7, provider=True)) as ws:
            frame = ws.receive_json()

    assert frame["event"] == "connection:success"
    assert frame["data"]["userId"] == 7
    assert frame["data"]["isProvider"] is True
    assert frame["data"]["connectionId"]


def test_send_and_receive(app, storage, chat):
    with TestClient(app) as client:
        with client.websocket_connect(_url(42)) as customer, \
                client.websocket_connect(_url(7, provider=True)) as provider:
            assert customer.receive_json()["event"] == "connection:success"
            assert provider.receive_json()["event"] == "connection:success"
            _join(customer, chat)
            _join(provider, chat)

            customer.send_json(
                {
                    "event": "message:send",
                    "data": {"chatId": str(chat.chat_id), "content": "Hello", "tempId": "temp-1"},
                }
            )
            sent = customer.receive_json()
            received = provider.receive_json()

    assert sent["event"] == "message:sent"
    assert sent["data"]["tempId"] == "temp-1"
    assert received["event"] == "message:received"
    assert "tempId" not in received["data"]
    assert received["data"]["message_id"] == sent["data"]["message_id"]
    assert received["data"]["content"] == "Hello"
    (stored,) = storage.uow.messages._messages
    assert stored.read_by_user is True
    assert stored.read_by_provider is False


def test_send_without_join_is_rejected(app, storage, chat):
    with TestClient(app) as client:
        with client.websocket_connect(_url(42)) as ws:
            ws.receive_json()
            ws.send_json(
                {
                    "event": "message:send",
                    "data": {"chatId": str(chat.chat_id), "content": "hi", "tempId": "temp-1"},
                }
            )
            error = ws.receive_json()
            ws.send_json({"event": "ping", "data": {}})
            pong = ws.receive_json()

    assert error["event"] == "error"
    assert error["data"]["code"] == "not_joined"
    assert error["data"]["tempId"] == "temp-1"
    assert pong["event"] == "pong"
    assert storage.uow.messages._messages == []


def test_two_devices_one_presence(app, chat):
    online = {"event": "user:online", "data": {"userId": 42}}
    offline = {"event": "user:offline", "data": {"userId": 42}}

    with TestClient(app) as client:
        with client.websocket_connect(_url(7, provider=True)) as provider:
            provider.receive_json()
            _join(provider, chat)

            with client.websocket_connect(_url(42)) as phone:
                phone.receive_json()
                assert provider.receive_json() == online

                with client.websocket_connect(_url(42)) as laptop:
                    laptop.receive_json()
                    provider.send_json({"event": "ping", "data": {}})
                    assert provider.receive_json()["event"] == "pong"

                provider.send_json({"event": "ping", "data": {}})
                assert provider.receive_json()["event"] == "pong"

            assert provider.receive_json() == offline
            provider.send_json({"event": "ping", "data": {}})
            assert provider.receive_json()["event"] == "pong"


def _receive_until(ws, event: str) -> dict:
    while True:
        frame = ws.receive_json()
        if frame["event"] == event:
            return frame


@pytest.fixture
def short_idle(monkeypatch):
    monkeypatch.setattr(settings, "WS_HEARTBEAT_SECONDS", 0.05)
    monkeypatch.setattr(settings, "WS_IDLE_TIMEOUT_SECONDS", 0.3)


def test_pinging_listener_outlives_idle_window(app, chat, short_idle):
    with TestClient(app) as client:
        with client.websocket_connect(_url(42)) as ws:
            ws.receive_json()
            ws.send_json({"event": "chat:join", "data": {"chatId": str(chat.chat_id)}})
            _receive_until(ws, "chat:joined")

            for _ in range(8):
                time.sleep(0.1)
                ws.send_json({"event": "ping", "data": {}})

            assert app.state.hub.is_online(42)
            ws.send_json({"event": "chat:leave", "data": {"chatId": str(chat.chat_id)}})
            assert _receive_until(ws, "chat:left")["data"] == {"chatId": str(chat.chat_id)}


def test_silent_connection_is_closed_after_idle_window(app, short_idle):
    with TestClient(app) as client:
        with client.websocket_connect(_url(42)) as ws:
            ws.receive_json()
            time.sleep(0.6)

            with pytest.raises(WebSocketDisconnect):
                _receive_until(ws, "never")
