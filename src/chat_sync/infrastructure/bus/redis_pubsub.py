"""Redis Pub/Sub: publish side, fan-out subscriber, and a stream transport."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Coroutine, Sequence

import redis.asyncio as aioredis

from chat_sync.application.exceptions import TransportError
from chat_sync.infrastructure.bus.serializer import (
    deserialize_envelope,
    encode_frame,
    serialize_envelope,
)

logger = logging.getLogger(__name__)


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def publish(self, user_ids: Sequence[str], payload: dict[str, Any]) -> None:
        raw = serialize_envelope(user_ids, payload)
        await self._redis.publish(self._channel, raw)


OnEnvelopeCallback = Callable[[list[str], dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to a Redis channel and dispatches envelopes."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEnvelopeCallback,
        *,
        retry_seconds: float = 5.0,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._retry_seconds = retry_seconds
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="redis-pubsub-subscriber")
        logger.info("Redis Pub/Sub subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Redis Pub/Sub subscriber stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Pub/Sub listener error, retrying in %.0fs", self._retry_seconds)
                await asyncio.sleep(self._retry_seconds)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    user_ids, data = deserialize_envelope(message["data"])
                    await self._callback(user_ids, data)
                except Exception:
                    logger.exception("Error processing pubsub message")
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()


class RedisChannelConnection:
    def __init__(self, pubsub: aioredis.client.PubSub, channel: str) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._closed = False

    async def frames(self) -> AsyncIterator[str]:
        async for message in self._pubsub.listen():
            if message["type"] != "message":
                continue
            _user_ids, data = deserialize_envelope(message["data"])
            yield encode_frame(data)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._pubsub.unsubscribe(self._channel)
        finally:
            await self._pubsub.aclose()


class RedisPubSubTransport:
    """StreamTransport reading envelopes from a Redis channel.

    For server-side consumers that want the same event feed as browsers; the
    ``url`` passed to connect() is the channel name.
    """

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def connect(self, url: str) -> RedisChannelConnection:
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(url)
        except aioredis.RedisError as exc:
            await pubsub.aclose()
            raise TransportError(f"redis subscribe failed: {exc}") from exc
        logger.info("Subscribed to redis channel %s", url)
        return RedisChannelConnection(pubsub, url)
