"""Async streaming chat-completion client for provider and legacy endpoints."""

from __future__ import annotations

import asyncio
import codecs
import inspect
import json
import logging
import threading
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    Iterator,
    List,
    Mapping,
    Sequence,
    Union,
)

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..errors import PickwiseError, StreamCancelled, TransportFailure
from ..services.settings import (
    AIProvider,
    ClientSettings,
    ProviderConfig,
    resolve_provider_config,
)
from ..utils.logging import redact_headers
from .ai_types import ChatMessage, SessionState, StreamOutcome, coerce_messages
from .sse import (
    DONE_SENTINEL,
    ServerSentEvent,
    ServerSentEventParser,
    extract_delta,
    split_legacy_payload,
)

LOGGER = logging.getLogger(__name__)

DeltaCallback = Callable[[str], Union[None, Awaitable[None]]]
DoneCallback = Callable[[], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[PickwiseError], Union[None, Awaitable[None]]]

_ERROR_BODY_PREVIEW = 500


class CancellationToken:
    """Explicit, thread-safe cancellation signal shared between a caller and one send.

    Once tripped the token stays cancelled; registered callbacks run exactly once.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._run_callback(callback)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""

        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        self._run_callback(callback)
        return lambda: None

    def _remove(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    @staticmethod
    def _run_callback(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            LOGGER.warning("Cancellation callback failed", exc_info=True)


@dataclass(frozen=True, slots=True)
class ProviderChatRequest:
    """Provider-configured call: bearer credential and model name."""

    messages: tuple[ChatMessage, ...]
    config: ProviderConfig

    kind: ClassVar[str] = "provider"

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", coerce_messages(self.messages))

    @property
    def url(self) -> str:
        base = self.config.base_url.rstrip("/")
        return f"{base}/chat/completions" if base else ""

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def body(self, *, stream: bool = True) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [message.to_payload() for message in self.messages],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "stream": stream,
        }

    def segments(self, data: str, separator: str) -> Iterator[str]:
        del separator
        yield data


@dataclass(frozen=True, slots=True)
class LegacyChatRequest:
    """Fixed-endpoint call authenticated by an application id header."""

    messages: tuple[ChatMessage, ...]
    endpoint: str
    app_id: str

    kind: ClassVar[str] = "legacy"

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", coerce_messages(self.messages))

    @property
    def url(self) -> str:
        return self.endpoint

    def headers(self) -> Dict[str, str]:
        return {
            "X-App-Id": self.app_id,
            "Content-Type": "application/json",
        }

    def body(self, *, stream: bool = True) -> Dict[str, Any]:
        del stream
        return {
            "messages": [message.to_payload() for message in self.messages],
            "enable_thinking": False,
        }

    def segments(self, data: str, separator: str) -> Iterator[str]:
        return split_legacy_payload(data, separator)


ChatRequest = Union[ProviderChatRequest, LegacyChatRequest]


def build_chat_request(
    messages: Sequence[ChatMessage | Mapping[str, Any]],
    *,
    endpoint: str | None = None,
    app_id: str | None = None,
    provider: AIProvider | str | None = None,
    config: ProviderConfig | None = None,
    env: Mapping[str, str] | None = None,
) -> ChatRequest:
    """Pick the wire variant from the options present on the call.

    Both ``endpoint`` and ``app_id`` select the legacy path; anything else goes
    through the provider path, resolving ``config`` when it is not supplied.
    """

    normalized = coerce_messages(list(messages))
    if endpoint and app_id:
        return LegacyChatRequest(messages=normalized, endpoint=endpoint, app_id=app_id)
    if endpoint or app_id:
        LOGGER.debug("Partial legacy options supplied; using the provider path")
    resolved = config or resolve_provider_config(provider, env=env)
    return ProviderChatRequest(messages=normalized, config=resolved)


_TRANSITIONS: Mapping[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset(
        {SessionState.CONNECTING, SessionState.CANCELLED, SessionState.ERRORED}
    ),
    SessionState.CONNECTING: frozenset(
        {SessionState.STREAMING, SessionState.DONE, SessionState.CANCELLED, SessionState.ERRORED}
    ),
    SessionState.STREAMING: frozenset(
        {SessionState.DONE, SessionState.CANCELLED, SessionState.ERRORED}
    ),
}


@dataclass(slots=True)
class StreamSession:
    """Per-send state: the growing buffer and the one-shot terminal state."""

    request_kind: str
    state: SessionState = SessionState.IDLE
    delta_count: int = 0
    error: PickwiseError | None = None
    _text: str = field(default="", repr=False)

    @property
    def text(self) -> str:
        return self._text

    @property
    def completed(self) -> bool:
        return self.state.is_terminal

    def connect(self) -> None:
        self._transition(SessionState.CONNECTING)

    def open(self) -> None:
        if self.state is SessionState.CONNECTING:
            self._transition(SessionState.STREAMING)

    def append(self, fragment: str) -> str:
        if self.state is not SessionState.STREAMING:
            raise RuntimeError(f"Cannot append to a session in state {self.state.value}")
        self._text += fragment
        self.delta_count += 1
        return self._text

    def terminate(self, state: SessionState, error: PickwiseError | None = None) -> bool:
        """Enter a terminal state; returns ``False`` when already terminated."""

        if not state.is_terminal:
            raise ValueError(f"{state.value} is not a terminal state")
        if self.completed:
            return False
        self._transition(state)
        self.error = error
        return True

    def _transition(self, target: SessionState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if target not in allowed:
            raise RuntimeError(f"Illegal session transition {self.state.value} -> {target.value}")
        self.state = target


class AIClient:
    """Streams chat completions and reports progress through callbacks.

    Instances are explicit handles; each ``send`` owns its own session,
    buffer and cancellation token, so one client can serve concurrent sends.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._owns_http_client = http_client is None
        self._http = http_client or self._build_http_client(self._settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def __aenter__(self) -> AIClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def stream_chat(
        self,
        request: ChatRequest,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Yield text delta fragments in arrival order.

        Raises :class:`TransportFailure` for connection errors, non-2xx
        statuses, truncated bodies and undecodable bytes. Payloads that fail
        to parse are logged and skipped.
        """

        async with aclosing(self._iter_fragments(request, cancel_token or CancellationToken())) as stream:
            async for fragment in stream:
                yield fragment

    async def send(
        self,
        request: ChatRequest,
        on_delta: DeltaCallback,
        on_done: DoneCallback,
        on_error: ErrorCallback,
        cancel_token: CancellationToken | None = None,
    ) -> StreamOutcome:
        """Run one streamed exchange and report it through the callbacks.

        ``on_delta`` receives the whole accumulated text after every fragment.
        Exactly one of ``on_done``/``on_error`` fires, unless the token is
        cancelled, in which case neither fires and ``CANCELLED`` is returned.
        """

        token = cancel_token or CancellationToken()
        session = StreamSession(request_kind=request.kind)
        if token.cancelled:
            session.terminate(SessionState.CANCELLED)
            return StreamOutcome.CANCELLED

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_session(session, request, on_delta, token))
        unregister = token.add_callback(lambda: loop.call_soon_threadsafe(task.cancel))
        error: PickwiseError | None = None
        try:
            error = await task
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
        finally:
            unregister()

        if token.cancelled:
            session.terminate(SessionState.CANCELLED)
            LOGGER.info(
                "%s after %s delta(s) via %s path",
                StreamCancelled(details={"kind": request.kind}),
                session.delta_count,
                request.kind,
            )
            return StreamOutcome.CANCELLED
        if error is not None:
            session.terminate(SessionState.ERRORED, error)
            LOGGER.warning("Chat stream failed via %s path: %s", request.kind, error)
            await _invoke(on_error, error)
            return StreamOutcome.ERROR
        session.terminate(SessionState.DONE)
        LOGGER.debug(
            "Chat stream finished via %s path: %s delta(s), %s chars",
            request.kind,
            session.delta_count,
            len(session.text),
        )
        await _invoke(on_done)
        return StreamOutcome.DONE

    def start(
        self,
        request: ChatRequest,
        on_delta: DeltaCallback,
        on_done: DoneCallback,
        on_error: ErrorCallback,
        cancel_token: CancellationToken | None = None,
    ) -> asyncio.Task[StreamOutcome]:
        """Schedule :meth:`send` on the running loop and return immediately."""

        loop = asyncio.get_running_loop()
        return loop.create_task(self.send(request, on_delta, on_done, on_error, cancel_token))

    async def complete(self, request: ProviderChatRequest) -> str:
        """Non-streamed completion on the provider path."""

        if not isinstance(request, ProviderChatRequest):
            raise TypeError("complete() requires a ProviderChatRequest; the legacy endpoint only streams")
        payload = request.body(stream=False)
        if self._settings.debug_logging:
            self._log_prompt_payload(request, payload)
        response = await self._connect(request, payload, stream=False)
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportFailure(
                message=f"AI API returned a non-JSON body: {exc}",
                status_code=response.status_code,
            ) from exc
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return ""
        return content if isinstance(content, str) else ""

    async def aclose(self) -> None:
        """Close the HTTP client when this instance created it."""

        if self._owns_http_client:
            await self._http.aclose()

    async def _run_session(
        self,
        session: StreamSession,
        request: ChatRequest,
        on_delta: DeltaCallback,
        token: CancellationToken,
    ) -> PickwiseError | None:
        session.connect()
        try:
            async with aclosing(self._iter_fragments(request, token, on_open=session.open)) as stream:
                async for fragment in stream:
                    if token.cancelled:
                        break
                    text = session.append(fragment)
                    try:
                        await _invoke(on_delta, text)
                    except Exception as exc:
                        LOGGER.debug("on_delta callback raised", exc_info=True)
                        return _wrap_failure(f"on_delta callback failed: {exc}", "on_delta", exc)
        except PickwiseError as exc:
            return exc
        except Exception as exc:
            LOGGER.debug("Unexpected failure inside chat stream", exc_info=True)
            return _wrap_failure(f"Unexpected stream failure: {exc}", "stream", exc)
        return None

    async def _iter_fragments(
        self,
        request: ChatRequest,
        token: CancellationToken,
        on_open: Callable[[], None] | None = None,
    ) -> AsyncIterator[str]:
        payload = request.body(stream=True)
        LOGGER.debug(
            "Starting streamed chat via %s path with %s message(s)",
            request.kind,
            len(request.messages),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(request, payload)

        parser = ServerSentEventParser()
        decoder = codecs.getincrementaldecoder("utf-8")()
        async with self._open_stream(request, payload) as response:
            if on_open is not None:
                on_open()
            try:
                async for chunk in response.aiter_bytes():
                    if token.cancelled:
                        return
                    for event in parser.feed(decoder.decode(chunk)):
                        fragments, finished = self._decode_event(request, event)
                        for fragment in fragments:
                            yield fragment
                        if finished:
                            return
                tail = parser.feed(decoder.decode(b"", final=True)) + parser.flush()
                for event in tail:
                    fragments, finished = self._decode_event(request, event)
                    for fragment in fragments:
                        yield fragment
                    if finished:
                        return
            except UnicodeDecodeError as exc:
                raise TransportFailure(
                    message=f"Stream body is not valid UTF-8: {exc}",
                    details={"url": request.url},
                ) from exc
            except httpx.HTTPError as exc:
                raise TransportFailure(
                    message=f"Stream interrupted: {exc}",
                    details={"url": request.url},
                ) from exc

    def _decode_event(self, request: ChatRequest, event: ServerSentEvent) -> tuple[list[str], bool]:
        """Return the delta fragments carried by ``event`` and whether the stream ended."""

        fragments: list[str] = []
        for segment in request.segments(event.data, self._settings.legacy_separator):
            if segment.strip() == DONE_SENTINEL:
                return fragments, True
            try:
                fragment = extract_delta(segment)
            except PickwiseError as exc:
                LOGGER.warning("Skipping undecodable stream payload: %s", exc)
                continue
            if fragment is None:
                LOGGER.debug("Stream payload carried no delta content: %.120s", segment)
                continue
            fragments.append(fragment)
        return fragments, False

    @asynccontextmanager
    async def _open_stream(self, request: ChatRequest, payload: Mapping[str, Any]) -> AsyncIterator[httpx.Response]:
        response = await self._connect(request, payload, stream=True)
        try:
            yield response
        finally:
            await response.aclose()

    async def _connect(
        self,
        request: ChatRequest,
        payload: Mapping[str, Any],
        *,
        stream: bool,
    ) -> httpx.Response:
        if not request.url:
            raise TransportFailure(
                message=f"No endpoint configured for the {request.kind} path",
                details={"kind": request.kind},
            )
        response: httpx.Response | None = None
        async for attempt in self._retrying():
            with attempt:
                response = await self._send_once(request, payload, stream=stream)
            if response is not None:
                break
        if response is None:
            raise TransportFailure(message="AI request was never attempted", details={"url": request.url})
        return response

    async def _send_once(
        self,
        request: ChatRequest,
        payload: Mapping[str, Any],
        *,
        stream: bool,
    ) -> httpx.Response:
        try:
            http_request = self._http.build_request("POST", request.url, json=dict(payload), headers=request.headers())
            response = await self._http.send(http_request, stream=stream)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportFailure(
                message=f"Could not reach AI endpoint: {exc}",
                details={"url": request.url},
            ) from exc
        if response.is_success:
            return response

        try:
            body = (await response.aread()).decode("utf-8", errors="replace")
        except httpx.HTTPError:
            body = ""
        finally:
            await response.aclose()
        raise TransportFailure(
            message=f"AI API request failed: {response.status_code} {response.reason_phrase}",
            details={"url": request.url, "body": body[:_ERROR_BODY_PREVIEW]},
            status_code=response.status_code,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception(lambda exc: isinstance(exc, TransportFailure) and exc.retryable),
        )

    def _build_http_client(self, settings: ClientSettings) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            connect=settings.connect_timeout,
            read=settings.read_timeout,
            write=settings.write_timeout,
            pool=settings.pool_timeout,
        )
        headers = dict(settings.default_headers) if settings.default_headers else None
        return httpx.AsyncClient(timeout=timeout, headers=headers)

    def _log_prompt_payload(self, request: ChatRequest, payload: Mapping[str, Any]) -> None:
        headers = redact_headers(request.headers())
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable) to %s: %s", request.url, payload)
        else:
            LOGGER.debug("AI prompt payload to %s with headers %s:\n%s", request.url, headers, serialized)


def _wrap_failure(message: str, stage: str, cause: Exception) -> TransportFailure:
    failure = TransportFailure(message=message, details={"stage": stage})
    failure.__cause__ = cause
    return failure


async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


__all__ = [
    "AIClient",
    "CancellationToken",
    "ChatRequest",
    "LegacyChatRequest",
    "ProviderChatRequest",
    "StreamSession",
    "build_chat_request",
]
