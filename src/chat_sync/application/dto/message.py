from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chat_sync.domain.value_objects.enums import MessageKind


@dataclass(frozen=True, slots=True)
class MediaPayload:
    kind: MessageKind
    data: bytes
    filename: str
    content_type: str = "application/octet-stream"


@dataclass(frozen=True, slots=True)
class OutboundDraft:
    text: str = ""
    pending_media: MediaPayload | None = None
    location: tuple[float, float] | None = None


@dataclass(frozen=True, slots=True)
class SendOptions:
    """Selects a non-text kind; media_url marks media that is already uploaded."""

    kind: MessageKind = MessageKind.TEXT
    media_url: str | None = None
    media_type: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None


@dataclass(frozen=True, slots=True)
class ChatTarget:
    conversation_id: str | None = None
    participant_id: str | None = None
    participant_type: str | None = None
    business_slug: str | None = None


@dataclass(frozen=True, slots=True)
class SendRequest:
    target: ChatTarget
    text: str
    kind: MessageKind = MessageKind.TEXT
    media_url: str | None = None
    media_type: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None


@dataclass(frozen=True, slots=True)
class UploadResult:
    ok: bool
    url: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class SendResult:
    ok: bool
    error: str | None = None
    conversation_id: str | None = None
    message: dict[str, Any] = field(default_factory=dict)
