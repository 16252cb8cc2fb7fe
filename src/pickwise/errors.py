"""Error taxonomy for the streaming client and the response interpreter.

Transport and configuration problems are exceptions; interpreter failures are
plain values (:class:`ParseError`) returned to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

__all__ = [
    "ErrorCode",
    "PickwiseError",
    "ConfigurationIncomplete",
    "TransportFailure",
    "FramingDecodeFailure",
    "StreamCancelled",
    "ParseError",
    "NOT_UNDERSTOOD_MESSAGE",
    "RETRY_LATER_MESSAGE",
]

NOT_UNDERSTOOD_MESSAGE = (
    "Sorry, I could not understand what you need. "
    "Please try describing your choice more clearly."
)
RETRY_LATER_MESSAGE = "The AI request failed. Please try again later."


class ErrorCode:
    """Machine-readable identifiers shared by every error type."""

    CONFIGURATION_INCOMPLETE = "configuration_incomplete"
    TRANSPORT_FAILURE = "transport_failure"
    FRAMING_DECODE_FAILURE = "framing_decode_failure"
    CANCELLED = "cancelled"
    NO_JSON_FOUND = "no_json_found"
    INVALID_JSON = "invalid_json"


@dataclass
class PickwiseError(Exception):
    """Base exception with consistent serialization for logs and UI layers."""

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class ConfigurationIncomplete(PickwiseError):
    """Base URL or credential resolved to an empty value.

    Reported as a warning at resolution time; the failure itself surfaces as a
    :class:`TransportFailure` on the first network call.
    """

    error_code: str = field(default=ErrorCode.CONFIGURATION_INCOMPLETE)
    message: str = field(default="AI provider configuration is incomplete")
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "warning"


@dataclass
class TransportFailure(PickwiseError):
    """Connection failure, non-2xx status or an unexpectedly closed stream."""

    error_code: str = field(default=ErrorCode.TRANSPORT_FAILURE)
    message: str = field(default="AI request failed")
    details: dict[str, Any] = field(default_factory=dict)
    status_code: int | None = None

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


@dataclass
class FramingDecodeFailure(PickwiseError):
    """A single event payload could not be decoded; the stream continues."""

    error_code: str = field(default=ErrorCode.FRAMING_DECODE_FAILURE)
    message: str = field(default="Failed to decode stream payload")
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "warning"


@dataclass
class StreamCancelled(PickwiseError):
    """The caller tripped the cancellation token. Never reported via ``on_error``."""

    error_code: str = field(default=ErrorCode.CANCELLED)
    message: str = field(default="Stream cancelled by caller")
    details: dict[str, Any] = field(default_factory=dict)

    severity: ClassVar[str] = "info"


@dataclass(frozen=True, slots=True)
class ParseError:
    """Recoverable interpreter failure."""

    code: str
    message: str
    user_message: str = NOT_UNDERSTOOD_MESSAGE

    @classmethod
    def no_json_found(cls) -> ParseError:
        return cls(code=ErrorCode.NO_JSON_FOUND, message="No JSON object found in model response")

    @classmethod
    def invalid_json(cls, reason: str) -> ParseError:
        return cls(code=ErrorCode.INVALID_JSON, message=f"Invalid JSON in model response: {reason}")

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}
