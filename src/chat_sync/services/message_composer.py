"""Draft -> optional upload -> send pipeline with rollback on failure."""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import replace

from chat_sync.application.dto.audio import VoiceClip
from chat_sync.application.dto.message import (
    ChatTarget,
    MediaPayload,
    OutboundDraft,
    SendOptions,
    SendRequest,
    SendResult,
)
from chat_sync.application.exceptions import (
    AppError,
    ConflictError,
    SendError,
    UploadError,
    ValidationError,
)
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.gateway import ChatGateway
from chat_sync.config import settings
from chat_sync.domain.entities.message import MessagePreview
from chat_sync.domain.value_objects.enums import ComposerState, MessageKind
from chat_sync.services.conversation_store import ConversationListStore

logger = logging.getLogger(__name__)

_IN_FLIGHT = (ComposerState.UPLOADING_MEDIA, ComposerState.SENDING)


class MessageComposer:
    """Owns the outbound draft for one chat target.

    ``send`` validates before touching the network, uploads a pending
    attachment first, then sends. A failure at either step restores the draft
    exactly as it was, records ``last_error``, returns to CAPTURING and
    re-raises. Success clears the draft and writes an optimistic preview to
    the conversation store.
    """

    def __init__(
        self,
        gateway: ChatGateway,
        target: ChatTarget,
        *,
        sender_id: str,
        store: ConversationListStore | None = None,
        max_length: int = settings.MAX_MESSAGE_LENGTH,
        max_upload_bytes: int = settings.MAX_UPLOAD_BYTES,
        clock: Clock | None = None,
    ) -> None:
        self._gateway = gateway
        self._target = target
        self._sender_id = sender_id
        self._store = store
        self._max_length = max_length
        self._max_upload_bytes = max_upload_bytes
        self._clock = clock or SystemClock()
        self._draft = OutboundDraft()
        self._state = ComposerState.IDLE
        self.last_error: AppError | None = None

    @property
    def state(self) -> ComposerState:
        return self._state

    @property
    def draft(self) -> OutboundDraft:
        return self._draft

    @property
    def target(self) -> ChatTarget:
        return self._target

    # -- capture ---------------------------------------------------------------

    def set_text(self, text: str) -> None:
        self._ensure_idle()
        self._draft = replace(self._draft, text=text)
        self._state = ComposerState.CAPTURING

    def attach(
        self,
        kind: MessageKind,
        data: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._ensure_idle()
        if not kind.is_uploadable:
            raise ValidationError(f"{kind} messages have no attachment")
        media = MediaPayload(kind=kind, data=data, filename=filename, content_type=content_type)
        self._draft = replace(self._draft, pending_media=media)
        self._state = ComposerState.CAPTURING

    def attach_voice(self, clip: VoiceClip) -> None:
        extension = clip.mime_type.split("/")[-1].split(";")[0] or "webm"
        self.attach(
            MessageKind.VOICE,
            clip.data,
            filename=f"voice-message.{extension}",
            content_type=clip.mime_type,
        )

    def attach_location(self, lat: float, lng: float) -> None:
        """Stage a location; coordinates are checked when it is sent."""
        self._ensure_idle()
        self._draft = replace(self._draft, location=(lat, lng))
        self._state = ComposerState.CAPTURING

    def clear_attachment(self) -> None:
        self._ensure_idle()
        self._draft = replace(self._draft, pending_media=None, location=None)

    # -- send ------------------------------------------------------------------

    async def send_location(self, lat: float, lng: float) -> SendResult:
        self.attach_location(lat, lng)
        try:
            return await self.send()
        except ValidationError:
            self._draft = replace(self._draft, location=None)
            raise

    async def send_voice(self, clip: VoiceClip) -> SendResult:
        self.attach_voice(clip)
        return await self.send(None, SendOptions(kind=MessageKind.VOICE))

    async def send(self, text: str | None = None, options: SendOptions | None = None) -> SendResult:
        self._ensure_idle()
        if text is not None:
            self._draft = replace(self._draft, text=text)
        options = options or self._default_options()
        saved = self._draft

        request_text = self._validate(saved, options)

        # Clear at submission; restored verbatim below if anything fails.
        # A location carries no text, so it leaves the typed draft alone.
        if options.kind is MessageKind.LOCATION:
            self._draft = replace(saved, location=None)
        else:
            self._draft = OutboundDraft()
        try:
            media_url, media_type = options.media_url, options.media_type
            if options.kind.is_uploadable and media_url is None:
                assert saved.pending_media is not None
                media_url = await self._upload(saved.pending_media)
                media_type = media_type or saved.pending_media.content_type

            self._state = ComposerState.SENDING
            request = SendRequest(
                target=self._target,
                text=request_text,
                kind=options.kind,
                media_url=media_url,
                media_type=media_type,
                location_lat=options.location_lat,
                location_lng=options.location_lng,
            )
            result = await self._deliver(request)
        except asyncio.CancelledError:
            self._rollback(saved, None)
            raise
        except AppError as exc:
            self._rollback(saved, exc)
            raise

        self._state = ComposerState.SENT
        self.last_error = None
        if result.conversation_id and not self._target.conversation_id:
            self._target = replace(self._target, conversation_id=result.conversation_id)
        self._apply_optimistic(request)
        return result

    def _default_options(self) -> SendOptions:
        if self._draft.location is not None:
            lat, lng = self._draft.location
            return SendOptions(kind=MessageKind.LOCATION, location_lat=lat, location_lng=lng)
        media = self._draft.pending_media
        if media is not None:
            return SendOptions(kind=media.kind)
        return SendOptions()

    def _validate(self, draft: OutboundDraft, options: SendOptions) -> str:
        text = draft.text.strip()
        kind = options.kind

        if kind is MessageKind.LOCATION:
            lat, lng = options.location_lat, options.location_lng
            if not _is_coordinate(lat) or not _is_coordinate(lng):
                raise ValidationError("location requires numeric latitude and longitude")
            if not (-90 <= lat <= 90 and -180 <= lng <= 180):
                raise ValidationError("location coordinates out of range")
            return ""

        if len(text) > self._max_length:
            raise ValidationError(f"message exceeds {self._max_length} characters")

        if kind is MessageKind.TEXT:
            if not text:
                raise ValidationError("message text is empty")
            return text

        if options.media_url is None:
            media = draft.pending_media
            if media is None:
                raise ValidationError(f"{kind} message has no attachment")
            if media.kind is not kind:
                raise ValidationError(f"attachment is {media.kind}, not {kind}")
        return text

    async def _upload(self, media: MediaPayload) -> str:
        self._state = ComposerState.UPLOADING_MEDIA
        if not media.data:
            raise UploadError("attachment is empty")
        if len(media.data) > self._max_upload_bytes:
            raise UploadError(f"attachment larger than {self._max_upload_bytes} bytes")

        try:
            result = await self._gateway.upload(media)
        except UploadError:
            raise
        except AppError as exc:
            raise UploadError(exc.detail or "upload failed") from exc
        except Exception as exc:
            raise UploadError(f"upload failed: {exc}") from exc
        if not result.ok or not result.url:
            raise UploadError(result.error or "upload failed")
        logger.debug("Uploaded %s attachment: %s", media.kind, result.url)
        return result.url

    async def _deliver(self, request: SendRequest) -> SendResult:
        try:
            result = await self._gateway.send(request)
        except SendError:
            raise
        except AppError as exc:
            raise SendError(exc.detail or "send failed") from exc
        except Exception as exc:
            raise SendError(f"send failed: {exc}") from exc
        if not result.ok:
            raise SendError(result.error or "send failed")
        return result

    def _rollback(self, saved: OutboundDraft, exc: AppError | None) -> None:
        self._state = ComposerState.FAILED
        self._draft = saved
        self.last_error = exc
        if exc is not None:
            logger.warning("Send failed, draft restored: %s", exc.detail)
        self._state = ComposerState.CAPTURING

    def _apply_optimistic(self, request: SendRequest) -> None:
        conversation_id = self._target.conversation_id
        if self._store is None or conversation_id is None:
            return
        preview = MessagePreview(
            text=request.text,
            sender_id=self._sender_id,
            kind=request.kind,
            created_at=self._clock.now(),
        )
        self._store.apply_local(conversation_id, preview)

    def _ensure_idle(self) -> None:
        if self._state in _IN_FLIGHT:
            raise ConflictError("a message is already being sent")


def _is_coordinate(value: object) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )
