"""Incremental decoder for text/event-stream bodies."""
from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_EVENT = "message"


@dataclass(slots=True)
class SseEvent:
    data: str
    event: str = DEFAULT_EVENT
    id: str | None = None


@dataclass
class SseDecoder:
    """Feeds raw text in, yields completed events.

    Follows the EventSource framing rules: ``field: value`` lines, ``:``
    comments, multi-line ``data`` joined with newlines, dispatch on a blank
    line. Frames with no data are discarded.
    """

    _buffer: str = ""
    _data: list[str] = field(default_factory=list)
    _event: str = ""
    _last_id: str | None = None
    retry_ms: int | None = None

    def feed(self, chunk: str) -> list[SseEvent]:
        self._buffer += chunk
        # A trailing CR may be the first half of a CRLF split across chunks.
        held = ""
        if self._buffer.endswith("\r"):
            self._buffer, held = self._buffer[:-1], "\r"
        self._buffer = self._buffer.replace("\r\n", "\n").replace("\r", "\n")
        events: list[SseEvent] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        self._buffer += held
        return events

    def flush(self) -> list[SseEvent]:
        """End of stream: a held CR still terminates its line."""
        if not self._buffer.endswith("\r"):
            return []
        return self.feed("\n")

    def _process_line(self, line: str) -> SseEvent | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data.append(value)
        elif name == "event":
            self._event = value
        elif name == "id":
            if "\0" not in value:
                self._last_id = value
        elif name == "retry":
            if value.isdigit():
                self.retry_ms = int(value)
        return None

    def _dispatch(self) -> SseEvent | None:
        if not self._data:
            self._event = ""
            return None
        event = SseEvent(
            data="\n".join(self._data),
            event=self._event or DEFAULT_EVENT,
            id=self._last_id,
        )
        self._data = []
        self._event = ""
        return event
