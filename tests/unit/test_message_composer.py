from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from chat_sync.application.dto.audio import VoiceClip
from chat_sync.application.dto.message import (
    ChatTarget,
    OutboundDraft,
    SendOptions,
    SendResult,
    UploadResult,
)
from chat_sync.application.exceptions import (
    ConflictError,
    SendError,
    TransportError,
    UploadError,
    ValidationError,
)
from chat_sync.domain.events.stream import NewMessage
from chat_sync.domain.value_objects.enums import ComposerState, MessageKind
from chat_sync.services.conversation_store import ConversationListStore
from chat_sync.services.message_composer import MessageComposer
from chat_sync.services.voice_recorder import VoiceRecorder
from tests.conftest import FakeGateway, at, make_conversation, make_preview


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now


def _composer(gateway: FakeGateway, target: ChatTarget | None = None, **kwargs) -> MessageComposer:
    return MessageComposer(
        gateway,
        target or ChatTarget(conversation_id="A"),
        sender_id="me",
        clock=FixedClock(at(30)),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_text_send_trims_and_clears_draft(gateway):
    composer = _composer(gateway)
    composer.set_text("  hello there  ")

    result = await composer.send()

    assert result.ok
    assert gateway.sent[0].text == "hello there"
    assert gateway.sent[0].kind is MessageKind.TEXT
    assert composer.draft == OutboundDraft()
    assert composer.state is ComposerState.SENT


@pytest.mark.asyncio
async def test_validation_happens_before_any_io(gateway):
    composer = _composer(gateway, max_length=10)

    with pytest.raises(ValidationError):
        await composer.send("   ")
    with pytest.raises(ValidationError):
        await composer.send("x" * 11)
    with pytest.raises(ValidationError):
        await composer.send(None, SendOptions(kind=MessageKind.IMAGE))
    with pytest.raises(ValidationError):
        await composer.send_location(float("nan"), 10)
    with pytest.raises(ValidationError):
        await composer.send_location(95, 10)

    assert gateway.calls == []
    assert composer.draft.text == "x" * 11


@pytest.mark.asyncio
async def test_send_failure_restores_draft(gateway):
    gateway.send_result = SendResult(ok=False, error="blocked")
    composer = _composer(gateway)

    with pytest.raises(SendError) as exc_info:
        await composer.send("please restore me")

    assert exc_info.value.detail == "blocked"
    assert composer.draft.text == "please restore me"
    assert composer.state is ComposerState.CAPTURING
    assert composer.last_error is exc_info.value


@pytest.mark.asyncio
async def test_transport_error_during_send_becomes_send_error(gateway):
    gateway.send_error = TransportError("connection reset")
    composer = _composer(gateway)

    with pytest.raises(SendError):
        await composer.send("hi")

    assert composer.draft.text == "hi"


@pytest.mark.asyncio
async def test_image_is_uploaded_before_send(gateway):
    composer = _composer(gateway)
    composer.attach(MessageKind.IMAGE, b"\x89PNG....", "photo.png", "image/png")
    composer.set_text("look")

    await composer.send()

    assert gateway.calls == ["upload", "send"]
    request = gateway.sent[0]
    assert request.kind is MessageKind.IMAGE
    assert request.media_url == "https://cdn.test/media/1"
    assert request.media_type == "image/png"
    assert request.text == "look"
    assert composer.draft.pending_media is None


@pytest.mark.asyncio
async def test_failed_upload_skips_send_and_keeps_attachment(gateway):
    gateway.upload_result = UploadResult(ok=False, error="too large")
    composer = _composer(gateway)
    composer.attach(MessageKind.FILE, b"%PDF", "doc.pdf", "application/pdf")

    with pytest.raises(UploadError):
        await composer.send("contract")

    assert gateway.calls == ["upload"]
    assert composer.draft.pending_media.filename == "doc.pdf"
    assert composer.draft.text == "contract"


@pytest.mark.asyncio
async def test_oversize_and_empty_attachments_are_rejected(gateway):
    composer = _composer(gateway, max_upload_bytes=4)

    composer.attach(MessageKind.FILE, b"12345", "big.bin")
    with pytest.raises(UploadError):
        await composer.send()

    composer.attach(MessageKind.FILE, b"", "empty.bin")
    with pytest.raises(UploadError):
        await composer.send()

    assert gateway.calls == []


@pytest.mark.asyncio
async def test_preuploaded_media_skips_upload(gateway):
    composer = _composer(gateway)

    await composer.send(
        None,
        SendOptions(kind=MessageKind.IMAGE, media_url="https://cdn.test/x.png", media_type="image/png"),
    )

    assert gateway.calls == ["send"]


@pytest.mark.asyncio
async def test_location_send_keeps_typed_text(gateway):
    composer = _composer(gateway)
    composer.set_text("half typed")

    await composer.send_location(23.58, 58.38)

    request = gateway.sent[0]
    assert request.kind is MessageKind.LOCATION
    assert (request.location_lat, request.location_lng) == (23.58, 58.38)
    assert request.text == ""
    assert composer.draft.text == "half typed"


@pytest.mark.asyncio
async def test_staged_location_is_restored_on_failure(gateway):
    gateway.send_error = TransportError("offline")
    composer = _composer(gateway)
    composer.attach_location(23.58, 58.38)

    with pytest.raises(SendError):
        await composer.send()

    assert composer.draft.location == (23.58, 58.38)
    gateway.send_error = None
    await composer.send()
    assert composer.draft.location is None
    assert gateway.sent[-1].kind is MessageKind.LOCATION


@pytest.mark.asyncio
async def test_voice_clip_is_uploaded_as_voice(gateway):
    composer = _composer(gateway)
    clip = VoiceClip(data=b"RIFF....", mime_type="audio/wav", duration_seconds=3)

    await composer.send_voice(clip)

    upload = gateway.uploads[0]
    assert upload.kind is MessageKind.VOICE
    assert upload.filename == "voice-message.wav"
    assert gateway.sent[0].kind is MessageKind.VOICE


@pytest.mark.asyncio
async def test_empty_recording_is_upload_failure_not_send(gateway, capture):
    recorder = VoiceRecorder(capture)
    await recorder.start()
    clip = await recorder.stop()
    composer = _composer(gateway)

    with pytest.raises(UploadError):
        await composer.send_voice(clip)

    assert gateway.calls == []
    assert composer.state is ComposerState.CAPTURING


@pytest.mark.asyncio
async def test_attach_rejects_non_uploadable_kind(gateway):
    composer = _composer(gateway)

    with pytest.raises(ValidationError):
        composer.attach(MessageKind.TEXT, b"abc", "a.txt")


@pytest.mark.asyncio
async def test_second_send_while_in_flight_conflicts(gateway):
    gateway.gate = asyncio.Event()
    composer = _composer(gateway)

    first = asyncio.create_task(composer.send("one"))
    await asyncio.sleep(0)
    assert composer.state is ComposerState.SENDING
    with pytest.raises(ConflictError):
        await composer.send("two")

    gateway.gate.set()
    await first
    assert len(gateway.sent) == 1


@pytest.mark.asyncio
async def test_cancelled_send_restores_draft(gateway):
    gateway.gate = asyncio.Event()
    composer = _composer(gateway)

    task = asyncio.create_task(composer.send("cancel me"))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert composer.draft.text == "cancel me"
    assert composer.state is ComposerState.CAPTURING


@pytest.mark.asyncio
async def test_success_writes_optimistic_preview_and_echo_is_absorbed(gateway):
    gateway.conversations = [make_conversation("A"), make_conversation("B", last_activity_at=at(10))]
    store = ConversationListStore(gateway.fetch_conversations, self_id="me")
    await store.refresh()
    composer = _composer(gateway, store=store)

    await composer.send("on my way")

    conv = store.snapshot()[0]
    assert conv.id == "A"
    assert conv.last_message.text == "on my way"
    assert conv.last_message.is_local

    store.apply(NewMessage("A", make_preview(text="on my way", sender_id="me", created_at=at(31))))
    assert store.get("A").unread_count == 0
    assert not store.get("A").last_message.is_local


@pytest.mark.asyncio
async def test_first_send_adopts_returned_conversation_id(gateway):
    gateway.send_result = SendResult(ok=True, conversation_id="new-conv")
    composer = _composer(gateway, ChatTarget(business_slug="acme"))

    await composer.send("hello")

    assert composer.target.conversation_id == "new-conv"
    assert composer.target.business_slug == "acme"


@pytest.mark.asyncio
async def test_echo_arriving_before_send_response_is_kept(gateway):
    gateway.conversations = [make_conversation("A")]
    store = ConversationListStore(gateway.fetch_conversations, self_id="me")
    await store.refresh()
    gateway.gate = asyncio.Event()
    composer = _composer(gateway, store=store)

    task = asyncio.create_task(composer.send("on my way"))
    await asyncio.sleep(0)
    store.apply(NewMessage("A", make_preview(text="on my way", sender_id="me", message_id="srv-1", created_at=at(20))))
    gateway.gate.set()
    await task

    preview = store.get("A").last_message
    assert preview.message_id == "srv-1"
    assert preview.created_at == at(20)
