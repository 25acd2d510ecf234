from __future__ import annotations

import json

import pytest

from chat_sync.application.exceptions import ProtocolError
from chat_sync.domain.events.stream import (
    Connected,
    MessagesRead,
    NewMessage,
    WithdrawalProcessed,
    WithdrawalRequested,
)
from chat_sync.domain.value_objects.enums import MessageKind, WithdrawalStatus
from chat_sync.infrastructure.stream.protocol import decode_event, encode_event, parse_frame
from tests.conftest import BASE_TIME, make_preview, new_message_frame


def test_new_message_frame_maps_to_event():
    raw = new_message_frame("c1", text="photo", message_id="m1", message_type="image")

    event = decode_event(raw)

    assert isinstance(event, NewMessage)
    assert event.conversation_id == "c1"
    assert event.message.message_id == "m1"
    assert event.message.kind is MessageKind.IMAGE
    assert event.message.created_at == BASE_TIME


def test_wallet_frames_map_to_events():
    requested = decode_event(json.dumps({"type": "withdrawal_requested", "requestId": "r1", "amount": 5}))
    processed = decode_event(json.dumps({
        "type": "withdrawal_processed",
        "status": "approved",
        "approvedAmount": 12.25,
        "extra": "ignored",
    }))

    assert requested == WithdrawalRequested(request_id="r1", amount=5.0)
    assert processed == WithdrawalProcessed(status=WithdrawalStatus.APPROVED, approved_amount=12.25)


def test_connected_hello_with_message():
    event = decode_event('{"type":"connected","message":"AGENT_WALLET_STREAM_CONNECTED"}')

    assert event == Connected(message="AGENT_WALLET_STREAM_CONNECTED")


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not json",
        "[]",
        '{"no_type": 1}',
        '{"type": "messages_read"}',
        '{"type": "withdrawal_processed", "status": "maybe"}',
    ],
)
def test_malformed_frames_raise_protocol_error(raw):
    with pytest.raises(ProtocolError):
        parse_frame(raw)
    assert decode_event(raw) is None


def test_unknown_type_is_ignored():
    assert parse_frame('{"type": "typing", "conversationId": "c1"}') is None
    assert decode_event('{"type": "typing"}') is None


def test_encode_event_uses_wire_names():
    event = NewMessage("c1", make_preview(text="hi", message_id="m9"))

    payload = encode_event(event)

    assert payload["type"] == "new_message"
    assert payload["conversationId"] == "c1"
    assert payload["message"]["senderId"] == "other"
    assert payload["message"]["messageType"] == "text"
    assert decode_event(json.dumps(payload)) == event


def test_encode_event_drops_missing_fields():
    assert encode_event(MessagesRead("c1")) == {"type": "messages_read", "conversationId": "c1"}
