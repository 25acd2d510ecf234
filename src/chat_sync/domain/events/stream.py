"""Events pushed by the server over the realtime stream."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from chat_sync.domain.entities.message import MessagePreview
from chat_sync.domain.value_objects.enums import WithdrawalStatus


@dataclass(frozen=True, slots=True)
class Connected:
    message: str | None = None


@dataclass(frozen=True, slots=True)
class NewMessage:
    conversation_id: str
    message: MessagePreview


@dataclass(frozen=True, slots=True)
class MessagesRead:
    conversation_id: str
    read_by: str | None = None


@dataclass(frozen=True, slots=True)
class WithdrawalRequested:
    request_id: str | None = None
    amount: float | None = None


@dataclass(frozen=True, slots=True)
class WithdrawalProcessed:
    status: WithdrawalStatus
    approved_amount: float | None = None
    admin_note: str | None = None
    request_id: str | None = None


StreamEvent = Union[
    Connected,
    NewMessage,
    MessagesRead,
    WithdrawalRequested,
    WithdrawalProcessed,
]
