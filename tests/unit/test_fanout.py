from __future__ import annotations

import json
import uuid

import pytest

from chat_sync.domain.events.stream import MessagesRead
from chat_sync.domain.value_objects.enums import StreamChannel, WithdrawalStatus
from chat_sync.infrastructure.bus.serializer import (
    SSE_HEARTBEAT,
    deserialize_envelope,
    encode_sse,
    serialize_envelope,
)
from chat_sync.infrastructure.sse.manager import ConnectionManager, channel_for
from chat_sync.services import broadcast
from tests.conftest import FakePublisher, make_preview


def test_envelope_carries_event_type_and_recipients():
    raw = serialize_envelope(["u1", "u2"], {"type": "messages_read", "conversationId": "c1"})

    assert json.loads(raw)["event"] == "messages_read"
    assert deserialize_envelope(raw) == (["u1", "u2"], {"type": "messages_read", "conversationId": "c1"})


def test_envelope_encodes_uuid_values():
    request_id = uuid.uuid4()

    _, data = deserialize_envelope(serialize_envelope(["u1"], {"type": "x", "id": request_id}))

    assert data["id"] == str(request_id)


def test_sse_framing():
    assert encode_sse({"type": "connected"}) == 'data: {"type": "connected"}\n\n'
    assert SSE_HEARTBEAT.startswith(":")
    assert SSE_HEARTBEAT.endswith("\n\n")


@pytest.mark.asyncio
async def test_manager_delivers_to_every_stream_of_a_user():
    manager = ConnectionManager()
    tab1 = manager.connect("u1")
    tab2 = manager.connect("u1")
    other = manager.connect("u2")

    manager.broadcast_to_users(["u1", "u1"], {"type": "connected"})

    assert tab1.qsize() == tab2.qsize() == 1
    assert other.empty()
    assert manager.connection_count() == 3
    assert manager.connection_count("u1") == 2


@pytest.mark.asyncio
async def test_manager_drops_stalled_queue():
    manager = ConnectionManager(max_queue=1)
    queue = manager.connect("u1")

    manager.send_to_user("u1", {"n": 1})
    manager.send_to_user("u1", {"n": 2})

    assert not manager.is_connected("u1", queue)
    assert manager.connection_count() == 0


@pytest.mark.asyncio
async def test_manager_keeps_chat_and_wallet_streams_apart():
    manager = ConnectionManager()
    chat = manager.connect("agent-1")
    wallet = manager.connect("agent-1", StreamChannel.WALLET)

    manager.send_to_user("agent-1", {"type": "new_message", "conversationId": "c1"})
    manager.send_to_user("agent-1", {"type": "withdrawal_requested", "requestId": "r1"})

    assert chat.get_nowait()["type"] == "new_message"
    assert chat.empty()
    assert wallet.get_nowait()["type"] == "withdrawal_requested"
    assert wallet.empty()
    assert manager.connection_count("agent-1") == 2


@pytest.mark.parametrize(
    ("event_type", "channel"),
    [
        ("new_message", StreamChannel.CHAT),
        ("messages_read", StreamChannel.CHAT),
        ("withdrawal_requested", StreamChannel.WALLET),
        ("withdrawal_processed", StreamChannel.WALLET),
    ],
)
def test_channel_for_event_type(event_type, channel):
    assert channel_for({"type": event_type}) is channel

@pytest.mark.asyncio
async def test_disconnect_is_safe_to_repeat():
    manager = ConnectionManager()
    queue = manager.connect("u1")

    manager.disconnect("u1", queue)
    manager.disconnect("u1", queue)

    assert manager.connection_count("u1") == 0


@pytest.mark.asyncio
async def test_broadcast_helpers_publish_wire_frames():
    publisher = FakePublisher()

    await broadcast.broadcast_new_message(publisher, ["u1", "u2"], "c1", make_preview(message_id="m1"))
    await broadcast.broadcast_messages_read(publisher, ["u1"], "c1", read_by="u2")
    await broadcast.broadcast_withdrawal_processed(
        publisher, "agent", "r1", WithdrawalStatus.REJECTED, admin_note="no",
    )

    (ids1, first), (ids2, second), (ids3, third) = publisher.published
    assert ids1 == ["u1", "u2"]
    assert first["type"] == "new_message"
    assert first["message"]["id"] == "m1"
    assert second == {"type": "messages_read", "conversationId": "c1", "readBy": "u2"}
    assert ids3 == ["agent"]
    assert third == {
        "type": "withdrawal_processed",
        "status": "rejected",
        "adminNote": "no",
        "requestId": "r1",
    }


@pytest.mark.asyncio
async def test_broadcast_without_recipients_is_noop():
    publisher = FakePublisher()

    await broadcast.broadcast(publisher, [], MessagesRead("c1"))

    assert publisher.published == []
