from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from chat_sync.api.deps import CurrentUserId, ManagerDep
from chat_sync.config import settings
from chat_sync.domain.value_objects.enums import StreamChannel
from chat_sync.infrastructure.bus.serializer import SSE_HEARTBEAT, encode_sse
from chat_sync.infrastructure.sse.manager import ConnectionManager

logger = logging.getLogger(__name__)
router = APIRouter(tags=["stream"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def event_source(
    request: Request,
    manager: ConnectionManager,
    user_id: str,
    *,
    hello: dict[str, Any],
    channel: StreamChannel = StreamChannel.CHAT,
    heartbeat_seconds: float = settings.SSE_HEARTBEAT_SECONDS,
) -> AsyncIterator[str]:
    """Yield SSE text for one subscriber until the client goes away."""
    queue = manager.connect(user_id, channel)
    try:
        yield encode_sse(hello)
        while True:
            if await request.is_disconnected() or not manager.is_connected(user_id, queue, channel):
                break
            try:
                payload = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield SSE_HEARTBEAT
                continue
            yield encode_sse(payload)
    finally:
        manager.disconnect(user_id, queue, channel)


def _stream_response(source: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(source, media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/api/chat/user-stream")
async def chat_user_stream(
    request: Request,
    user_id: CurrentUserId,
    manager: ManagerDep,
) -> StreamingResponse:
    return _stream_response(
        event_source(request, manager, user_id, hello={"type": "connected"}),
    )


@router.get("/api/agent/wallet/stream")
async def agent_wallet_stream(
    request: Request,
    user_id: CurrentUserId,
    manager: ManagerDep,
) -> StreamingResponse:
    return _stream_response(
        event_source(
            request,
            manager,
            user_id,
            hello={"type": "connected", "message": "AGENT_WALLET_STREAM_CONNECTED"},
            channel=StreamChannel.WALLET,
        ),
    )
