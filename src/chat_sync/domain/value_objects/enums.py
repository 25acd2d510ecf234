from __future__ import annotations

from enum import StrEnum


class MessageKind(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    VOICE = "voice"
    LOCATION = "location"

    @property
    def is_uploadable(self) -> bool:
        return self in (MessageKind.IMAGE, MessageKind.FILE, MessageKind.VOICE)


class WithdrawalStatus(StrEnum):
    APPROVED = "approved"
    REJECTED = "rejected"


class StreamState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class RecordingState(StrEnum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"
    CANCELLED = "cancelled"


class ComposerState(StrEnum):
    IDLE = "idle"
    CAPTURING = "capturing"
    UPLOADING_MEDIA = "uploading_media"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class ToastLevel(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class StreamChannel(StrEnum):
    CHAT = "chat"
    WALLET = "wallet"
