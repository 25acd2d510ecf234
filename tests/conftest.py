"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Sequence

import pytest

from chat_sync.application.dto.audio import Tone
from chat_sync.application.dto.message import (
    MediaPayload,
    SendRequest,
    SendResult,
    UploadResult,
)
from chat_sync.application.exceptions import DeviceError, TransportError
from chat_sync.application.ports.audio import ChunkCallback
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import MessagePreview
from chat_sync.domain.value_objects.enums import MessageKind

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds)


def make_preview(
    *,
    text: str = "hello",
    sender_id: str = "other",
    kind: MessageKind = MessageKind.TEXT,
    created_at: datetime | None = None,
    message_id: str | None = "auto",
) -> MessagePreview:
    return MessagePreview(
        text=text,
        sender_id=sender_id,
        kind=kind,
        created_at=created_at or BASE_TIME,
        message_id=uuid.uuid4().hex if message_id == "auto" else message_id,
    )


def make_conversation(
    conversation_id: str,
    *,
    counterpart_ref: str | None = None,
    last_activity_at: datetime | None = None,
    unread_count: int = 0,
) -> Conversation:
    return Conversation(
        id=conversation_id,
        counterpart_id=f"user-{conversation_id}",
        counterpart_ref=counterpart_ref or f"slug-{conversation_id}",
        last_message=None,
        last_activity_at=last_activity_at or BASE_TIME,
        unread_count=unread_count,
    )


def new_message_frame(
    conversation_id: str,
    *,
    text: str = "hi",
    sender_id: str = "other",
    created_at: datetime | None = None,
    message_id: str | None = None,
    message_type: str = "text",
) -> str:
    return json.dumps({
        "type": "new_message",
        "conversationId": conversation_id,
        "message": {
            "id": message_id or uuid.uuid4().hex,
            "text": text,
            "senderId": sender_id,
            "messageType": message_type,
            "createdAt": (created_at or BASE_TIME).isoformat(),
        },
    })


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


_CLOSE = object()


@dataclass
class FakeConnection:
    """In-memory stream connection fed by the test."""

    url: str
    closed: bool = False
    _queue: asyncio.Queue = field(default_factory=asyncio.Queue)

    def push(self, raw: str) -> None:
        self._queue.put_nowait(raw)

    def fail(self, exc: Exception | None = None) -> None:
        self._queue.put_nowait(exc or TransportError("connection reset"))

    def finish(self) -> None:
        self._queue.put_nowait(_CLOSE)

    async def frames(self):
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True


@dataclass
class FakeTransport:
    fail_next: int = 0
    connect_calls: list[str] = field(default_factory=list)
    connections: list[FakeConnection] = field(default_factory=list)

    async def connect(self, url: str) -> FakeConnection:
        self.connect_calls.append(url)
        if self.fail_next > 0:
            self.fail_next -= 1
            raise TransportError("connection refused")
        conn = FakeConnection(url)
        self.connections.append(conn)
        return conn

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]


@dataclass
class FakeGateway:
    upload_result: UploadResult = field(
        default_factory=lambda: UploadResult(ok=True, url="https://cdn.test/media/1")
    )
    send_result: SendResult = field(default_factory=lambda: SendResult(ok=True))
    send_error: Exception | None = None
    upload_error: Exception | None = None
    conversations: list[Conversation] = field(default_factory=list)
    gate: asyncio.Event | None = None
    calls: list[str] = field(default_factory=list)
    uploads: list[MediaPayload] = field(default_factory=list)
    sent: list[SendRequest] = field(default_factory=list)
    marked_read: list[str] = field(default_factory=list)

    async def upload(self, media: MediaPayload) -> UploadResult:
        self.calls.append("upload")
        self.uploads.append(media)
        if self.upload_error is not None:
            raise self.upload_error
        return self.upload_result

    async def send(self, request: SendRequest) -> SendResult:
        self.calls.append("send")
        self.sent.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.send_error is not None:
            raise self.send_error
        return self.send_result

    async def fetch_conversations(self) -> list[Conversation]:
        self.calls.append("fetch")
        if self.gate is not None:
            await self.gate.wait()
        return list(self.conversations)

    async def mark_read(self, conversation_id: str) -> None:
        self.calls.append("mark_read")
        self.marked_read.append(conversation_id)


@dataclass
class FakeCapture:
    mime_type: str = "audio/webm"
    deny: bool = False
    flush_chunk: bytes | None = None
    started: bool = False
    stopped: bool = False
    aborted: bool = False
    _on_chunk: ChunkCallback | None = None

    async def start(self, on_chunk: ChunkCallback) -> None:
        if self.deny:
            raise DeviceError("Permission denied")
        self._on_chunk = on_chunk
        self.started = True

    def emit(self, chunk: bytes) -> None:
        assert self._on_chunk is not None
        self._on_chunk(chunk)

    async def stop(self) -> None:
        if self.flush_chunk is not None and self._on_chunk is not None:
            self._on_chunk(self.flush_chunk)
        self.stopped = True

    def abort(self) -> None:
        self.aborted = True

    def encode(self, chunks: Sequence[bytes]) -> bytes:
        return b"".join(chunks)


@dataclass
class FakeSynthesizer:
    broken: bool = False
    played: list[tuple[Tone, ...]] = field(default_factory=list)

    def play(self, tones: Sequence[Tone]) -> None:
        if self.broken:
            raise DeviceError("no audio output")
        self.played.append(tuple(tones))


@dataclass
class FakePublisher:
    published: list[tuple[list[str], dict[str, Any]]] = field(default_factory=list)

    async def publish(self, user_ids: Sequence[str], payload: dict[str, Any]) -> None:
        self.published.append((list(user_ids), payload))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def capture() -> FakeCapture:
    return FakeCapture()
