"""Line-oriented server-sent events decoder used by streaming adapters."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass

DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True, slots=True)
class SSEEvent:
    data: str
    event: str | None = None
    id: str | None = None
    retry: str | None = None

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_SENTINEL


class SSEEventParser:
    """Accepts one line at a time and emits complete events."""

    def __init__(self) -> None:
        self._reset_buffer()

    def _reset_buffer(self) -> None:
        self._event: str | None = None
        self._data: list[str] = []
        self._id: str | None = None
        self._retry: str | None = None

    def _finalize_event(self) -> SSEEvent | None:
        if not self._data:
            self._reset_buffer()
            return None
        event = SSEEvent(
            data="\n".join(self._data),
            event=self._event,
            id=self._id,
            retry=self._retry,
        )
        self._reset_buffer()
        return event

    def feed_line(self, line: str | None) -> list[SSEEvent]:
        normalized_line = (line or "").rstrip("\r")
        events: list[SSEEvent] = []

        # blank line terminates the pending event
        if normalized_line == "":
            event = self._finalize_event()
            if event is not None:
                events.append(event)
            return events

        if normalized_line.startswith(":"):
            return events

        field_name, _, rest = normalized_line.partition(":")
        value = rest[1:] if rest.startswith(" ") else rest

        if field_name == "data":
            # Some vendors omit the blank separator between consecutive data lines.
            if self._data:
                event = self._finalize_event()
                if event is not None:
                    events.append(event)
            self._data.append(value)
        elif field_name == "event":
            self._event = value.strip() or None
        elif field_name == "id":
            self._id = value.strip() or None
        elif field_name == "retry":
            self._retry = value.strip() or None
        else:
            self._data.append(normalized_line)
        return events

    def flush(self) -> list[SSEEvent]:
        """Emit whatever is still buffered once the stream has ended."""

        event = self._finalize_event()
        return [event] if event is not None else []


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[SSEEvent]:
    parser = SSEEventParser()
    async for line in lines:
        for event in parser.feed_line(line):
            yield event
    for event in parser.flush():
        yield event


__all__ = ["DONE_SENTINEL", "SSEEvent", "SSEEventParser", "iter_sse_events"]
