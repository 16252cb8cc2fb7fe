"""Log setup for applications embedding pickwise, with credential redaction.

Request headers carry the provider bearer key or the legacy application id.
:func:`redact_headers` masks them before the client dumps a payload, and
:class:`SecretRedactingFilter` masks anything that still reaches a handler.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
from pathlib import Path
from typing import Mapping

from ..services.settings import redact_secret

__all__ = ["SecretRedactingFilter", "get_log_path", "redact_headers", "setup_logging"]

_DEFAULT_LOG_DIR = Path.home() / ".pickwise" / "logs"
_LOG_FILE_NAME = "pickwise.log"
_TRANSPORT_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore")
_REDACTED_MARKERS: tuple[str, ...] = ("…", "***")
_SECRET_HEADERS: frozenset[str] = frozenset({"x-app-id"})

_BEARER_PATTERN = re.compile(r"(Bearer\s+)([^\s'\",}]+)", re.IGNORECASE)
_APP_ID_PATTERN = re.compile(r"(['\"]?X-App-Id['\"]?\s*[:=]\s*['\"]?)([^\s'\",}]+)", re.IGNORECASE)

_log_path: Path | None = None


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` with credentials masked."""

    masked: dict[str, str] = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered == "authorization":
            masked[name] = _BEARER_PATTERN.sub(_mask_match, value)
        elif lowered in _SECRET_HEADERS:
            masked[name] = redact_secret(value)
        else:
            masked[name] = value
    return masked


class SecretRedactingFilter(logging.Filter):
    """Mask bearer tokens and application ids in formatted log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _APP_ID_PATTERN.sub(_mask_match, _BEARER_PATTERN.sub(_mask_match, message))
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route root logging to ``pickwise.log`` (rotating) and optionally stderr.

    Every handler gets a :class:`SecretRedactingFilter`. The directory comes
    from ``log_dir``, then ``PICKWISE_LOG_DIR``, then ``~/.pickwise/logs``.
    Calling again is a no-op unless ``force`` is set.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    target_dir = Path(log_dir or os.environ.get("PICKWISE_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILE_NAME

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    redactor = SecretRedactingFilter()

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    # httpx logs every request line at INFO.
    transport_level = max(level, logging.WARNING)
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)

    _log_path = log_path
    return log_path


def get_log_path() -> Path | None:
    return _log_path


def _mask_match(match: re.Match[str]) -> str:
    prefix, secret = match.group(1), match.group(2)
    if any(marker in secret for marker in _REDACTED_MARKERS):
        return match.group(0)
    return f"{prefix}{redact_secret(secret)}"
