from __future__ import annotations

from typing import Protocol

from chat_sync.application.dto.message import (
    MediaPayload,
    SendRequest,
    SendResult,
    UploadResult,
)
from chat_sync.domain.entities.conversation import Conversation


class ChatGateway(Protocol):
    async def upload(self, media: MediaPayload) -> UploadResult: ...

    async def send(self, request: SendRequest) -> SendResult: ...

    async def fetch_conversations(self) -> list[Conversation]: ...

    async def mark_read(self, conversation_id: str) -> None: ...
