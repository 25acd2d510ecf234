"""aiohttp client for the chat upload/send/refetch endpoints."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from chat_sync.application.dto.message import (
    MediaPayload,
    SendRequest,
    SendResult,
    UploadResult,
)
from chat_sync.application.exceptions import ProtocolError, TransportError
from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.infrastructure.http.mappers import conversation_to_entity
from chat_sync.infrastructure.http.schemas import (
    ConversationsResponse,
    SendResponse,
    UploadResponse,
)

logger = logging.getLogger(__name__)


def build_send_body(request: SendRequest) -> dict[str, Any]:
    body: dict[str, Any] = {
        "text": request.text,
        "messageType": request.kind.value,
        "mediaUrl": request.media_url,
        "mediaType": request.media_type,
        "locationLat": request.location_lat,
        "locationLng": request.location_lng,
    }
    target = request.target
    if target.conversation_id:
        body["conversationId"] = target.conversation_id
    elif target.participant_id:
        body["participantId"] = target.participant_id
        if target.participant_type:
            body["participantType"] = target.participant_type
    elif target.business_slug:
        body["businessSlug"] = target.business_slug
    return {k: v for k, v in body.items() if v is not None}


class AiohttpChatGateway:
    """Implements application.ports.gateway.ChatGateway."""

    def __init__(
        self,
        base_url: str = settings.API_BASE_URL,
        session: aiohttp.ClientSession | None = None,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._headers = headers or {}
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=self._headers)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        session = self._get_session()
        try:
            async with session.request(method, self._url(path), **kwargs) as resp:
                try:
                    return await resp.json(content_type=None)
                except ValueError as exc:
                    raise ProtocolError(
                        f"{method} {path} returned non-JSON body (status={resp.status})"
                    ) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

    async def upload(self, media: MediaPayload) -> UploadResult:
        form = aiohttp.FormData()
        form.add_field(
            "file",
            media.data,
            filename=media.filename,
            content_type=media.content_type,
        )
        form.add_field("type", media.kind.value)

        raw = await self._request_json("POST", settings.CHAT_UPLOAD_PATH, data=form)
        try:
            body = UploadResponse.model_validate(raw)
        except PydanticValidationError as exc:
            raise ProtocolError("malformed upload response") from exc
        if body.ok and not body.url:
            return UploadResult(ok=False, error="upload response missing url")
        return UploadResult(ok=body.ok, url=body.url, error=body.error)

    async def send(self, request: SendRequest) -> SendResult:
        raw = await self._request_json(
            "POST", settings.CHAT_MESSAGES_PATH, json=build_send_body(request),
        )
        try:
            body = SendResponse.model_validate(raw)
        except PydanticValidationError as exc:
            raise ProtocolError("malformed send response") from exc
        return SendResult(
            ok=body.ok,
            error=body.error,
            conversation_id=body.conversation.id if body.conversation else None,
            message=body.message or {},
        )

    async def fetch_conversations(self) -> list[Conversation]:
        raw = await self._request_json("GET", settings.CHAT_CONVERSATIONS_PATH)
        try:
            body = ConversationsResponse.model_validate(raw)
        except PydanticValidationError as exc:
            raise ProtocolError("malformed conversations response") from exc
        if not body.ok:
            raise TransportError(body.error or "conversation refetch rejected")
        return [conversation_to_entity(row) for row in body.conversations]

    async def mark_read(self, conversation_id: str) -> None:
        raw = await self._request_json(
            "POST", settings.CHAT_READ_PATH, json={"conversationId": conversation_id},
        )
        if not isinstance(raw, dict) or not raw.get("ok"):
            error = raw.get("error") if isinstance(raw, dict) else None
            raise TransportError(error or "mark-read rejected")
