from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_sync.domain.value_objects.enums import MessageKind


@dataclass(frozen=True, slots=True)
class MessagePreview:
    text: str
    sender_id: str
    kind: MessageKind
    created_at: datetime
    message_id: str | None = None

    @property
    def is_local(self) -> bool:
        """True for optimistic previews that the server has not echoed yet."""
        return self.message_id is None

    def same_content(self, other: MessagePreview) -> bool:
        return (
            self.text == other.text
            and self.sender_id == other.sender_id
            and self.kind == other.kind
        )
