from __future__ import annotations

from typing import Sequence

from chat_sync.application.ports.bus import EventPublisher
from chat_sync.domain.entities.message import MessagePreview
from chat_sync.domain.events.stream import (
    MessagesRead,
    NewMessage,
    StreamEvent,
    WithdrawalProcessed,
    WithdrawalRequested,
)
from chat_sync.domain.value_objects.enums import WithdrawalStatus
from chat_sync.infrastructure.stream.protocol import encode_event


async def broadcast(publisher: EventPublisher, user_ids: Sequence[str], event: StreamEvent) -> None:
    if not user_ids:
        return
    await publisher.publish(list(user_ids), encode_event(event))


async def broadcast_new_message(
    publisher: EventPublisher,
    participant_ids: Sequence[str],
    conversation_id: str,
    message: MessagePreview,
) -> None:
    """Sidebar update for every participant, the sender included."""
    await broadcast(
        publisher,
        participant_ids,
        NewMessage(conversation_id=conversation_id, message=message),
    )


async def broadcast_messages_read(
    publisher: EventPublisher,
    participant_ids: Sequence[str],
    conversation_id: str,
    read_by: str,
) -> None:
    await broadcast(
        publisher,
        participant_ids,
        MessagesRead(conversation_id=conversation_id, read_by=read_by),
    )


async def broadcast_withdrawal_requested(
    publisher: EventPublisher,
    admin_ids: Sequence[str],
    request_id: str,
    amount: float,
) -> None:
    await broadcast(
        publisher,
        admin_ids,
        WithdrawalRequested(request_id=request_id, amount=amount),
    )


async def broadcast_withdrawal_processed(
    publisher: EventPublisher,
    agent_user_id: str,
    request_id: str,
    status: WithdrawalStatus,
    *,
    approved_amount: float | None = None,
    admin_note: str | None = None,
) -> None:
    await broadcast(
        publisher,
        [agent_user_id],
        WithdrawalProcessed(
            status=status,
            approved_amount=approved_amount,
            admin_note=admin_note,
            request_id=request_id,
        ),
    )
