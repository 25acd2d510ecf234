from __future__ import annotations

from typing import AsyncIterator, Protocol


class StreamConnection(Protocol):
    """One live server-push connection."""

    def frames(self) -> AsyncIterator[str]: ...

    async def close(self) -> None: ...


class StreamTransport(Protocol):
    async def connect(self, url: str) -> StreamConnection: ...
