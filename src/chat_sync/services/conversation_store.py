"""Ordered, keyed view of the user's conversations kept in sync with the stream."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import replace
from typing import Awaitable, Callable, Iterable, Sequence, assert_never

from chat_sync.config import settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import MessagePreview
from chat_sync.domain.events.stream import (
    Connected,
    MessagesRead,
    NewMessage,
    StreamEvent,
    WithdrawalProcessed,
    WithdrawalRequested,
)

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Sequence[Conversation]]]
Listener = Callable[[tuple[Conversation, ...]], None]
ThreadMatcher = Callable[[str, Conversation], bool]


def match_slug_or_handle(route_ref: str, conversation: Conversation) -> bool:
    """Case-sensitive match of a route reference against a counterpart.

    Accepts both the bare reference and its ``@``-prefixed handle form.
    """
    ref = route_ref.strip()
    if not ref:
        return False
    counterpart = conversation.counterpart_ref
    return ref == counterpart or ref == f"@{counterpart}"


class ConversationListStore:
    """Sole owner of the conversation collection.

    Readers get immutable snapshots sorted by ``last_activity_at`` descending.
    ``apply`` never suspends, so applies are atomic on the event loop; an
    event for an unknown conversation schedules a full refetch instead.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        self_id: str | None = None,
        matcher: ThreadMatcher = match_slug_or_handle,
        seen_capacity: int = settings.SEEN_MESSAGE_IDS,
    ) -> None:
        self._fetcher = fetcher
        self._self_id = self_id
        self._matcher = matcher
        self._items: list[Conversation] = []
        self._listeners: list[Listener] = []
        self._open_ref: str | None = None
        self._seen_ids: deque[str] = deque(maxlen=seen_capacity)
        self._seen_lookup: set[str] = set()
        self._refetch_task: asyncio.Task[None] | None = None
        self._refetch_again = False

    # -- reading -------------------------------------------------------------

    def snapshot(self) -> tuple[Conversation, ...]:
        return tuple(self._items)

    def get(self, conversation_id: str) -> Conversation | None:
        index = self._index_of(conversation_id)
        return self._items[index] if index is not None else None

    @property
    def open_ref(self) -> str | None:
        return self._open_ref

    @property
    def refetch_in_flight(self) -> bool:
        return self._refetch_task is not None and not self._refetch_task.done()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- stream events -------------------------------------------------------

    def apply(self, event: StreamEvent) -> None:
        if isinstance(event, NewMessage):
            self._apply_new_message(event)
        elif isinstance(event, MessagesRead):
            self._apply_messages_read(event)
        elif isinstance(event, (Connected, WithdrawalRequested, WithdrawalProcessed)):
            return
        else:
            assert_never(event)

    def _apply_new_message(self, event: NewMessage) -> None:
        index = self._index_of(event.conversation_id)
        if index is None:
            logger.info("Unknown conversation %s, refetching list", event.conversation_id)
            self.request_refetch()
            return

        message = event.message
        if message.message_id is not None and message.message_id in self._seen_lookup:
            logger.debug("Duplicate message %s ignored", message.message_id)
            return
        self._remember(message.message_id)

        current = self._items[index]
        previous = current.last_message
        is_echo = (
            previous is not None
            and previous.is_local
            and previous.same_content(message)
        )

        unread = current.unread_count
        if not is_echo and self._counts_as_unread(current, message):
            unread += 1

        # An out-of-order delivery still counts, but never rolls the preview back.
        newest = is_echo or previous is None or message.created_at >= current.last_activity_at
        updated = replace(
            current,
            last_message=message if newest else previous,
            last_activity_at=max(current.last_activity_at, message.created_at),
            unread_count=unread,
        )
        self._reposition(index, updated)
        self._notify()

    def _apply_messages_read(self, event: MessagesRead) -> None:
        index = self._index_of(event.conversation_id)
        if index is None:
            return
        current = self._items[index]
        if current.unread_count == 0:
            return
        self._items[index] = replace(current, unread_count=0)
        self._notify()

    def _counts_as_unread(self, conversation: Conversation, message: MessagePreview) -> bool:
        if self._self_id is not None and message.sender_id == self._self_id:
            return False
        return not self._is_open(conversation)

    def _is_open(self, conversation: Conversation) -> bool:
        return self._open_ref is not None and self._matcher(self._open_ref, conversation)

    # -- local actions -------------------------------------------------------

    def mark_opened(self, conversation_id: str) -> None:
        """User opened this conversation: it becomes the open thread and is read."""
        index = self._index_of(conversation_id)
        if index is None:
            logger.debug("mark_opened for unknown conversation %s", conversation_id)
            return
        current = self._items[index]
        self._open_ref = current.counterpart_ref
        if current.unread_count:
            self._items[index] = replace(current, unread_count=0)
            self._notify()

    def open_thread(self, route_ref: str | None) -> None:
        """Record the displayed thread by its raw route reference."""
        self._open_ref = route_ref
        if route_ref is None:
            return
        changed = False
        for i, conv in enumerate(self._items):
            if conv.unread_count and self._matcher(route_ref, conv):
                self._items[i] = replace(conv, unread_count=0)
                changed = True
        if changed:
            self._notify()

    def apply_local(self, conversation_id: str, preview: MessagePreview) -> bool:
        """Optimistic write of our own just-sent message.

        Returns False when the conversation is unknown; the server echo will
        then trigger the usual refetch. An echo that already arrived is kept.
        """
        index = self._index_of(conversation_id)
        if index is None:
            return False
        current = self._items[index]
        confirmed = current.last_message
        if confirmed is not None and not confirmed.is_local and confirmed.same_content(preview):
            logger.debug("Echo for %s already applied, optimistic preview skipped", conversation_id)
            return True
        updated = replace(
            current,
            last_message=preview,
            last_activity_at=max(current.last_activity_at, preview.created_at),
        )
        self._reposition(index, updated)
        self._notify()
        return True

    # -- refetch -------------------------------------------------------------

    def replace_all(self, conversations: Iterable[Conversation]) -> None:
        by_id: dict[str, Conversation] = {}
        for conv in conversations:
            existing = by_id.get(conv.id)
            if existing is None or conv.last_activity_at > existing.last_activity_at:
                by_id[conv.id] = conv
        self._items = sorted(by_id.values(), key=lambda c: c.last_activity_at, reverse=True)
        for conv in self._items:
            if conv.last_message is not None:
                self._remember(conv.last_message.message_id)
        if self._open_ref is not None:
            self._items = [
                replace(c, unread_count=0) if c.unread_count and self._matcher(self._open_ref, c) else c
                for c in self._items
            ]
        self._notify()

    async def refresh(self) -> None:
        conversations = await self._fetcher()
        self.replace_all(conversations)
        logger.debug("Conversation list refreshed (%d items)", len(self._items))

    def request_refetch(self) -> None:
        """Start a refetch unless one is running; a running one will repeat once."""
        if self.refetch_in_flight:
            self._refetch_again = True
            return
        self._refetch_task = asyncio.get_running_loop().create_task(
            self._refetch_loop(), name="conversation-refetch",
        )

    async def _refetch_loop(self) -> None:
        while True:
            self._refetch_again = False
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Conversation refetch failed")
            if not self._refetch_again:
                return

    async def aclose(self) -> None:
        task, self._refetch_task = self._refetch_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # -- internals -----------------------------------------------------------

    def _index_of(self, conversation_id: str) -> int | None:
        for i, conv in enumerate(self._items):
            if conv.id == conversation_id:
                return i
        return None

    def _reposition(self, index: int, updated: Conversation) -> None:
        del self._items[index]
        position = 0
        while (
            position < len(self._items)
            and self._items[position].last_activity_at > updated.last_activity_at
        ):
            position += 1
        self._items.insert(position, updated)

    def _remember(self, message_id: str | None) -> None:
        if message_id is None or message_id in self._seen_lookup:
            return
        if len(self._seen_ids) == self._seen_ids.maxlen:
            self._seen_lookup.discard(self._seen_ids[0])
        self._seen_ids.append(message_id)
        self._seen_lookup.add(message_id)

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Conversation listener failed")
