from __future__ import annotations

from typing import Any, Protocol, Sequence


class EventPublisher(Protocol):
    async def publish(self, user_ids: Sequence[str], payload: dict[str, Any]) -> None: ...
