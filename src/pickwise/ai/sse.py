"""Incremental server-sent event framing for chat-completion streams."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterator, List

from ..errors import FramingDecodeFailure

__all__ = [
    "DONE_SENTINEL",
    "ServerSentEvent",
    "ServerSentEventParser",
    "extract_delta",
    "split_legacy_payload",
]

DONE_SENTINEL = "[DONE]"


@dataclass(slots=True)
class ServerSentEvent:
    """One dispatched event; ``data`` joins multi-line payloads with ``\\n``."""

    data: str
    event: str | None = None
    id: str | None = None

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_SENTINEL


class ServerSentEventParser:
    """Line-oriented event-stream parser fed with decoded text of any chunk size.

    Lines may be split across ``feed`` calls; an event is dispatched on the
    blank line that terminates it.
    """

    def __init__(self) -> None:
        self._pending = ""
        self._data: List[str] = []
        self._event: str | None = None
        self._id: str | None = None

    def feed(self, text: str) -> list[ServerSentEvent]:
        if not text:
            return []
        self._pending += text
        events: list[ServerSentEvent] = []
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            event = self._process_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[ServerSentEvent]:
        """Dispatch whatever is buffered once the transport has closed."""

        events: list[ServerSentEvent] = []
        if self._pending:
            line, self._pending = self._pending.rstrip("\r"), ""
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> ServerSentEvent | None:
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
            self._event = value or None
        elif name == "id":
            self._id = value or None
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._data:
            self._event = None
            return None
        event = ServerSentEvent(data="\n".join(self._data), event=self._event, id=self._id)
        self._data = []
        self._event = None
        return event


def split_legacy_payload(data: str, separator: str) -> Iterator[str]:
    """Yield the JSON segments bundled into one legacy event payload."""

    if not separator:
        segments = [data]
    else:
        segments = data.split(separator)
    for segment in segments:
        stripped = segment.strip()
        if stripped:
            yield stripped


def extract_delta(payload: str) -> str | None:
    """Return ``choices[0].delta.content`` or ``None`` when the field is absent.

    Raises :class:`FramingDecodeFailure` when ``payload`` is not JSON.
    """

    try:
        parsed: Any = json.loads(payload)
    except (json.JSONDecodeError, ValueError) as exc:
        raise FramingDecodeFailure(
            message=f"Stream payload is not valid JSON: {exc}",
            details={"payload": payload[:200]},
        ) from exc
    if not isinstance(parsed, dict):
        return None
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None
