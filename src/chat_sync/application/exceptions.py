from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ValidationError(AppError):
    """Rejected before any network call."""


class ConflictError(AppError):
    pass


class TransportError(AppError):
    """Stream drop or HTTP failure; recovered by reconnect/polling."""


class ProtocolError(AppError):
    """Frame that is not valid JSON or does not match a known event shape."""


class UploadError(AppError):
    pass


class SendError(AppError):
    pass


class DeviceError(AppError):
    """Capture or playback device denied or missing."""


class AudioUnavailableError(DeviceError):
    pass
