from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_sync.domain.entities.message import MessagePreview


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    counterpart_id: str
    counterpart_ref: str
    last_message: MessagePreview | None
    last_activity_at: datetime
    unread_count: int = 0

    def __post_init__(self) -> None:
        if self.unread_count < 0:
            raise ValueError("unread_count must be non-negative")
