"""In-process registry of open SSE responses."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from chat_sync.domain.value_objects.enums import StreamChannel

logger = logging.getLogger(__name__)

WALLET_EVENT_TYPES = frozenset({"withdrawal_requested", "withdrawal_processed"})

_Key = tuple[StreamChannel, str]


def channel_for(payload: dict[str, Any]) -> StreamChannel:
    """Wallet events go to wallet streams; everything else is chat."""
    if payload.get("type") in WALLET_EVENT_TYPES:
        return StreamChannel.WALLET
    return StreamChannel.CHAT


class ConnectionManager:
    """Tracks one outbound queue per open stream, grouped by channel and user id."""

    def __init__(self, *, max_queue: int = 256) -> None:
        self._connections: dict[_Key, set[asyncio.Queue[dict[str, Any]]]] = {}
        self._max_queue = max_queue

    def connect(
        self,
        user_id: str,
        channel: StreamChannel = StreamChannel.CHAT,
    ) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._max_queue)
        self._connections.setdefault((channel, user_id), set()).add(queue)
        logger.debug("SSE connected: %s/%s (streams=%d)", channel, user_id, len(self._connections))
        return queue

    def disconnect(
        self,
        user_id: str,
        queue: asyncio.Queue[dict[str, Any]],
        channel: StreamChannel = StreamChannel.CHAT,
    ) -> None:
        conns = self._connections.get((channel, user_id))
        if conns:
            conns.discard(queue)
            if not conns:
                del self._connections[(channel, user_id)]
        logger.debug("SSE disconnected: %s/%s", channel, user_id)

    def is_connected(
        self,
        user_id: str,
        queue: asyncio.Queue[dict[str, Any]],
        channel: StreamChannel = StreamChannel.CHAT,
    ) -> bool:
        return queue in self._connections.get((channel, user_id), ())

    def connection_count(self, user_id: str | None = None) -> int:
        return sum(
            len(conns)
            for (_, owner), conns in self._connections.items()
            if user_id is None or owner == user_id
        )

    def send_to_user(self, user_id: str, payload: dict[str, Any]) -> None:
        """Queue a payload on every stream of the matching channel the user has open."""
        channel = channel_for(payload)
        dead: list[asyncio.Queue[dict[str, Any]]] = []
        for queue in self._connections.get((channel, user_id), set()):
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                dead.append(queue)
        for queue in dead:
            logger.warning("Dropping stalled %s subscriber for %s", channel, user_id)
            self.disconnect(user_id, queue, channel)

    def broadcast_to_users(self, user_ids: Iterable[str], payload: dict[str, Any]) -> None:
        for user_id in dict.fromkeys(user_ids):
            self.send_to_user(user_id, payload)
