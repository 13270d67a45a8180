"""Server-sent events parsing for streaming HTTP adapters."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass


@dataclass
class SSEEvent:
    event: str = "message"
    data: str = ""
    id: str | None = None


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[SSEEvent]:
    """Group raw SSE lines into events.

    Works on ``httpx.Response.aiter_lines()``. Multi-line ``data`` fields are
    joined with ``\\n``; comment lines (starting with ``:``) are skipped; an
    event is dispatched on each blank line and once more at end of stream if
    data is buffered.
    """
    event = "message"
    data: list[str] = []
    last_id: str | None = None

    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data:
                yield SSEEvent(event=event, data="\n".join(data), id=last_id)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
        elif name == "id":
            last_id = value
        # "retry" and unknown fields are ignored.

    if data:
        yield SSEEvent(event=event, data="\n".join(data), id=last_id)


__all__ = ["SSEEvent", "iter_sse_events"]
