"""Response bodies of the chat HTTP endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chat_sync.infrastructure.stream.protocol import WireMessage


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UploadResponse(_Body):
    ok: bool
    url: str | None = None
    error: str | None = None


class ConversationRef(_Body):
    id: str


class SendResponse(_Body):
    ok: bool
    error: str | None = None
    message: dict[str, Any] | None = None
    conversation: ConversationRef | None = None


class ConversationOut(_Body):
    id: str
    counterpart_id: str = Field(alias="counterpartId")
    counterpart_ref: str = Field(alias="counterpartRef")
    last_message: WireMessage | None = Field(default=None, alias="lastMessage")
    last_activity_at: datetime = Field(alias="lastActivityAt")
    unread_count: int = Field(default=0, ge=0, alias="unreadCount")


class ConversationsResponse(_Body):
    ok: bool = True
    error: str | None = None
    conversations: list[ConversationOut] = []
