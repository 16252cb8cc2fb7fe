"""AI client, stream framing, reply interpretation and routing."""

from .client import AIClient, CancellationToken, LegacyChatRequest, ProviderChatRequest, build_chat_request
from .interpreter import InterpretResult, interpret
from .router import DecisionRouter, RoutingKind, RoutingOutcome

__all__ = [
    "AIClient",
    "CancellationToken",
    "DecisionRouter",
    "InterpretResult",
    "LegacyChatRequest",
    "ProviderChatRequest",
    "RoutingKind",
    "RoutingOutcome",
    "build_chat_request",
    "interpret",
]
