"""Shared typing contracts for the chat client and the decision interpreter."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Sequence

ChatRole = Literal["system", "user", "assistant"]
_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """Single wire message; a request always carries one system + one user message."""

    role: ChatRole
    content: str

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unsupported chat role: {self.role!r}")

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def build_message_pair(system_prompt: str, user_text: str) -> tuple[ChatMessage, ChatMessage]:
    """Return the ``(system, user)`` pair sent for a single exchange."""

    return (
        ChatMessage(role="system", content=system_prompt),
        ChatMessage(role="user", content=user_text),
    )


def coerce_messages(messages: Sequence[ChatMessage | dict[str, Any]]) -> tuple[ChatMessage, ...]:
    normalized: list[ChatMessage] = []
    for message in messages:
        if isinstance(message, ChatMessage):
            normalized.append(message)
            continue
        try:
            normalized.append(ChatMessage(role=message["role"], content=str(message["content"])))
        except (KeyError, TypeError) as exc:
            raise TypeError("Messages must be ChatMessage instances or role/content mappings") from exc
    if not normalized:
        raise ValueError("At least one message is required to start a chat")
    return tuple(normalized)


class DecisionTool(str, Enum):
    """The five decision helpers a router reply can point at."""

    COIN_FLIP = "coin-flip"
    DICE_ROLL = "dice-roll"
    WHEEL = "wheel"
    AI_ANALYSIS = "ai-analysis"
    ANSWER_BOOK = "answer-book"

    @property
    def display_name(self) -> str:
        return _TOOL_DISPLAY_NAMES[self]

    @classmethod
    def coerce(cls, value: Any) -> DecisionTool | None:
        if isinstance(value, DecisionTool):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


_TOOL_DISPLAY_NAMES: dict[DecisionTool, str] = {
    DecisionTool.COIN_FLIP: "Coin Flip",
    DecisionTool.DICE_ROLL: "Dice Roll",
    DecisionTool.WHEEL: "Probability Wheel",
    DecisionTool.AI_ANALYSIS: "AI Analysis",
    DecisionTool.ANSWER_BOOK: "Answer Book",
}


class DecisionActionKind(str, Enum):
    MODIFY = "modify"
    SWITCH = "switch"


@dataclass(frozen=True, slots=True)
class DecisionAction:
    """Structured outcome parsed from the model's final JSON reply."""

    tool: DecisionTool
    action: DecisionActionKind | None = None
    options: tuple[str, ...] = ()
    probabilities: tuple[float, ...] = ()
    reasoning: str | None = None
    question: str | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "tool": self.tool.value,
            "action": self.action.value if self.action else None,
            "options": list(self.options),
            "probabilities": list(self.probabilities),
            "reasoning": self.reasoning,
            "question": self.question,
        }
        return {key: value for key, value in payload.items() if value is not None}


class SessionState(str, Enum):
    """State machine for a single streamed exchange."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DONE = "done"
    CANCELLED = "cancelled"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.DONE, SessionState.CANCELLED, SessionState.ERRORED)


class StreamOutcome(str, Enum):
    """How a ``send`` call ended; exactly one per session."""

    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


__all__ = [
    "ChatMessage",
    "ChatRole",
    "DecisionAction",
    "DecisionActionKind",
    "DecisionTool",
    "SessionState",
    "StreamOutcome",
    "build_message_pair",
    "coerce_messages",
]
