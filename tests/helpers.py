"""Shared test helpers: canned event-stream bodies and a recording MockTransport handler.

Import from here instead of duplicating stream builders in individual test files.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable, Iterable, Sequence

import httpx

Handler = Callable[[httpx.Request], httpx.Response]


def delta_payload(content: str | None) -> str:
    delta = {} if content is None else {"content": content}
    return json.dumps({"choices": [{"index": 0, "delta": delta}]}, ensure_ascii=False)


def provider_body(fragments: Iterable[str], *, done: bool = True) -> bytes:
    """Standard event stream: one ``data:`` event per fragment."""

    events = [f"data: {delta_payload(fragment)}\n\n" for fragment in fragments]
    if done:
        events.append("data: [DONE]\n\n")
    return "".join(events).encode("utf-8")


def legacy_body(fragments: Iterable[str], *, done: bool = True, per_event: int = 2) -> bytes:
    """Legacy stream: several JSON segments bundled per event with ``\\ `` between them."""

    segments = [delta_payload(fragment) for fragment in fragments]
    if done:
        segments.append("[DONE]")
    events = []
    for start in range(0, len(segments), per_event):
        events.append("data: " + "\\ ".join(segments[start : start + per_event]) + "\n\n")
    return "".join(events).encode("utf-8")


def chunked(body: bytes, size: int) -> list[bytes]:
    return [body[index : index + size] for index in range(0, len(body), size)]


async def _aiter(chunks: Sequence[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


def streaming_response(chunks: Sequence[bytes], status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        content=_aiter(chunks),
    )


class RecordingHandler:
    """MockTransport handler that records requests and replays canned responses.

    The last response factory is reused once the list is exhausted.
    """

    def __init__(self, *responses: Callable[[], httpx.Response]) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._responses)) - 1
        return self._responses[index]()

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]
