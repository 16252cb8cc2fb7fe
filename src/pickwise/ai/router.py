"""Decision routing: one send + interpret cycle on behalf of a chat panel."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from ..errors import RETRY_LATER_MESSAGE, ParseError, PickwiseError
from .ai_types import ChatMessage, DecisionAction, DecisionActionKind, DecisionTool, StreamOutcome, build_message_pair
from .client import AIClient, CancellationToken, ChatRequest, DeltaCallback
from .interpreter import interpret
from .prompts import analysis_prompt, router_prompt, tool_prompt

__all__ = ["DecisionRouter", "RoutingKind", "RoutingOutcome"]

LOGGER = logging.getLogger(__name__)

RequestFactory = Callable[[Sequence[ChatMessage]], ChatRequest]


class RoutingKind(str, Enum):
    SWITCH = "switch"
    ANSWERED = "answered"
    MODIFY = "modify"
    UPDATE_QUESTION = "update_question"
    NOT_UNDERSTOOD = "not_understood"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class RoutingOutcome:
    """What the UI should do after a routed exchange finished."""

    kind: RoutingKind
    text: str = ""
    action: DecisionAction | None = None
    parse_error: ParseError | None = None
    error: PickwiseError | None = None

    @property
    def target_tool(self) -> DecisionTool | None:
        return self.action.tool if self.action else None

    @property
    def user_message(self) -> str | None:
        if self.kind is RoutingKind.NOT_UNDERSTOOD and self.parse_error is not None:
            return self.parse_error.user_message
        if self.kind is RoutingKind.FAILED:
            return RETRY_LATER_MESSAGE
        return None


@dataclass(slots=True)
class _Exchange:
    text: str = ""
    error: PickwiseError | None = None


class DecisionRouter:
    """Ask the model which tool fits and map its reply onto a routing outcome.

    ``request_factory`` turns the message pair into a wire request, which lets
    callers choose between the provider and legacy paths.
    """

    def __init__(self, client: AIClient, *, request_factory: RequestFactory) -> None:
        self._client = client
        self._request_factory = request_factory

    async def route(
        self,
        user_text: str,
        *,
        current_tool: DecisionTool | str | None = None,
        cancel_token: CancellationToken | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> RoutingOutcome:
        tool = DecisionTool.coerce(current_tool) if current_tool is not None else None
        system = tool_prompt(current_tool) if current_tool is not None else router_prompt()
        outcome, exchange = await self._exchange(system, user_text, cancel_token, on_delta)
        if outcome is not StreamOutcome.DONE:
            return self._unfinished(outcome, exchange)

        result = interpret(exchange.text)
        action = result.action
        if action is None:
            LOGGER.warning("Could not interpret router reply: %s", result.error.message)
            return RoutingOutcome(kind=RoutingKind.NOT_UNDERSTOOD, text=exchange.text, parse_error=result.error)
        return RoutingOutcome(kind=self._classify(action, tool), text=exchange.text, action=action)

    async def analyze(
        self,
        question: str,
        *,
        cancel_token: CancellationToken | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> RoutingOutcome:
        """Stream a free-form analysis of ``question``; the reply is plain text."""

        outcome, exchange = await self._exchange(analysis_prompt(), question, cancel_token, on_delta)
        if outcome is not StreamOutcome.DONE:
            return self._unfinished(outcome, exchange)
        return RoutingOutcome(kind=RoutingKind.ANSWERED, text=exchange.text)

    async def _exchange(
        self,
        system: str,
        user_text: str,
        cancel_token: CancellationToken | None,
        on_delta: DeltaCallback | None,
    ) -> tuple[StreamOutcome, _Exchange]:
        exchange = _Exchange()
        request = self._request_factory(build_message_pair(system, user_text))

        async def _on_delta(text: str) -> None:
            exchange.text = text
            if on_delta is not None:
                result = on_delta(text)
                if inspect.isawaitable(result):
                    await result

        def _on_error(error: PickwiseError) -> None:
            exchange.error = error

        outcome = await self._client.send(
            request,
            _on_delta,
            lambda: None,
            _on_error,
            cancel_token=cancel_token,
        )
        return outcome, exchange

    @staticmethod
    def _unfinished(outcome: StreamOutcome, exchange: _Exchange) -> RoutingOutcome:
        if outcome is StreamOutcome.CANCELLED:
            return RoutingOutcome(kind=RoutingKind.CANCELLED, text=exchange.text)
        return RoutingOutcome(kind=RoutingKind.FAILED, text=exchange.text, error=exchange.error)

    @staticmethod
    def _classify(action: DecisionAction, current_tool: DecisionTool | None) -> RoutingKind:
        if current_tool is None:
            return RoutingKind.SWITCH
        if action.action is DecisionActionKind.SWITCH and action.tool is not current_tool:
            return RoutingKind.SWITCH
        if current_tool is DecisionTool.AI_ANALYSIS and action.question:
            return RoutingKind.UPDATE_QUESTION
        return RoutingKind.MODIFY
