"""Wire models for stream frames and their mapping onto domain events."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from chat_sync.application.exceptions import ProtocolError
from chat_sync.domain.entities.message import MessagePreview
from chat_sync.domain.events.stream import (
    Connected,
    MessagesRead,
    NewMessage,
    StreamEvent,
    WithdrawalProcessed,
    WithdrawalRequested,
)
from chat_sync.domain.value_objects.enums import MessageKind, WithdrawalStatus

logger = logging.getLogger(__name__)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WireMessage(_WireModel):
    id: str | None = None
    text: str = ""
    sender_id: str = Field(alias="senderId")
    message_type: MessageKind = Field(default=MessageKind.TEXT, alias="messageType")
    created_at: datetime = Field(alias="createdAt")


class ConnectedFrame(_WireModel):
    type: Literal["connected"]
    message: str | None = None


class NewMessageFrame(_WireModel):
    type: Literal["new_message"]
    conversation_id: str = Field(alias="conversationId")
    message: WireMessage


class MessagesReadFrame(_WireModel):
    type: Literal["messages_read"]
    conversation_id: str = Field(alias="conversationId")
    read_by: str | None = Field(default=None, alias="readBy")


class WithdrawalRequestedFrame(_WireModel):
    type: Literal["withdrawal_requested"]
    request_id: str | None = Field(default=None, alias="requestId")
    amount: float | None = None


class WithdrawalProcessedFrame(_WireModel):
    type: Literal["withdrawal_processed"]
    status: WithdrawalStatus
    approved_amount: float | None = Field(default=None, alias="approvedAmount")
    admin_note: str | None = Field(default=None, alias="adminNote")
    request_id: str | None = Field(default=None, alias="requestId")


StreamFrame = Annotated[
    Union[
        ConnectedFrame,
        NewMessageFrame,
        MessagesReadFrame,
        WithdrawalRequestedFrame,
        WithdrawalProcessedFrame,
    ],
    Field(discriminator="type"),
]

_frame_adapter: TypeAdapter[StreamFrame] = TypeAdapter(StreamFrame)

KNOWN_TYPES = frozenset(
    {"connected", "new_message", "messages_read", "withdrawal_requested", "withdrawal_processed"}
)


class _TypeProbe(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str


def parse_frame(raw: str | bytes) -> StreamFrame | None:
    """Validate one JSON frame.

    Returns None for unknown ``type`` values. Raises ProtocolError for
    anything that is not a JSON object with a string ``type``, or a known
    type with the wrong shape.
    """
    try:
        probe = _TypeProbe.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise ProtocolError(f"unparsable frame: {exc.error_count()} error(s)") from exc
    if probe.type not in KNOWN_TYPES:
        return None
    try:
        return _frame_adapter.validate_json(raw)
    except PydanticValidationError as exc:
        raise ProtocolError(f"invalid {probe.type} frame: {exc.error_count()} error(s)") from exc


def to_event(frame: StreamFrame) -> StreamEvent:
    if isinstance(frame, ConnectedFrame):
        return Connected(message=frame.message)
    if isinstance(frame, NewMessageFrame):
        msg = frame.message
        return NewMessage(
            conversation_id=frame.conversation_id,
            message=MessagePreview(
                text=msg.text,
                sender_id=msg.sender_id,
                kind=msg.message_type,
                created_at=msg.created_at,
                message_id=msg.id,
            ),
        )
    if isinstance(frame, MessagesReadFrame):
        return MessagesRead(conversation_id=frame.conversation_id, read_by=frame.read_by)
    if isinstance(frame, WithdrawalRequestedFrame):
        return WithdrawalRequested(request_id=frame.request_id, amount=frame.amount)
    return WithdrawalProcessed(
        status=frame.status,
        approved_amount=frame.approved_amount,
        admin_note=frame.admin_note,
        request_id=frame.request_id,
    )


def decode_event(raw: str | bytes) -> StreamEvent | None:
    """Parse a frame into a domain event; malformed and unknown frames give None."""
    try:
        frame = parse_frame(raw)
    except ProtocolError as exc:
        logger.debug("Dropping stream frame: %s", exc.detail)
        return None
    if frame is None:
        logger.debug("Ignoring stream frame of unknown type")
        return None
    return to_event(frame)


def encode_event(event: StreamEvent) -> dict:
    """Inverse of to_event, producing the camelCase wire dict."""
    if isinstance(event, Connected):
        frame: BaseModel = ConnectedFrame(type="connected", message=event.message)
    elif isinstance(event, NewMessage):
        msg = event.message
        frame = NewMessageFrame(
            type="new_message",
            conversation_id=event.conversation_id,
            message=WireMessage(
                id=msg.message_id,
                text=msg.text,
                sender_id=msg.sender_id,
                message_type=msg.kind,
                created_at=msg.created_at,
            ),
        )
    elif isinstance(event, MessagesRead):
        frame = MessagesReadFrame(
            type="messages_read", conversation_id=event.conversation_id, read_by=event.read_by,
        )
    elif isinstance(event, WithdrawalRequested):
        frame = WithdrawalRequestedFrame(
            type="withdrawal_requested", request_id=event.request_id, amount=event.amount,
        )
    else:
        frame = WithdrawalProcessedFrame(
            type="withdrawal_processed",
            status=event.status,
            approved_amount=event.approved_amount,
            admin_note=event.admin_note,
            request_id=event.request_id,
        )
    return frame.model_dump(mode="json", by_alias=True, exclude_none=True)
