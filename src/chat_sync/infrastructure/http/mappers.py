from __future__ import annotations

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import MessagePreview
from chat_sync.infrastructure.http.schemas import ConversationOut


def conversation_to_entity(row: ConversationOut) -> Conversation:
    last = row.last_message
    return Conversation(
        id=row.id,
        counterpart_id=row.counterpart_id,
        counterpart_ref=row.counterpart_ref,
        last_message=MessagePreview(
            text=last.text,
            sender_id=last.sender_id,
            kind=last.message_type,
            created_at=last.created_at,
            message_id=last.id,
        ) if last else None,
        last_activity_at=row.last_activity_at,
        unread_count=row.unread_count,
    )
