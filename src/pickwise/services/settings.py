"""Provider configuration and client settings resolved from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from ..errors import ConfigurationIncomplete

__all__ = [
    "AIProvider",
    "ClientSettings",
    "DEFAULT_PROVIDER",
    "ProviderConfig",
    "current_provider",
    "load_client_settings",
    "redact_secret",
    "resolve_provider_config",
]

LOGGER = logging.getLogger(__name__)

_ENV_PREFIX = "PICKWISE"
_PROVIDER_ENV = f"{_ENV_PREFIX}_AI_PROVIDER"
_DEFAULT_MAX_TOKENS = 4000
_DEFAULT_TEMPERATURE = 0.7
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


class AIProvider(str, Enum):
    """Backend vendors the client knows how to configure."""

    BAIDU = "baidu"
    OPENAI = "openai"
    ALI = "ali"
    TENCENT = "tencent"
    ZHIPU = "zhipu"
    CUSTOM = "custom"

    @classmethod
    def coerce(cls, value: AIProvider | str | None) -> AIProvider | None:
        if value is None or isinstance(value, AIProvider):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


DEFAULT_PROVIDER = AIProvider.BAIDU

# (base_url, model) literal defaults per provider.
_PROVIDER_DEFAULTS: Mapping[AIProvider, tuple[str, str]] = {
    AIProvider.BAIDU: ("https://api-integrations.appmiaoda.com", "ernie-4.0"),
    AIProvider.OPENAI: ("https://api.openai.com/v1", "gpt-4"),
    AIProvider.ALI: ("https://dashscope.aliyuncs.com/compatible-mode/v1", "qwen-max"),
    AIProvider.TENCENT: ("https://hunyuan.tencentcloudapi.com/v1", "hunyuan-pro"),
    AIProvider.ZHIPU: ("https://open.bigmodel.cn/api/paas/v4", "glm-4-plus"),
    AIProvider.CUSTOM: ("", ""),
}

# Env key suffix -> ProviderConfig field.
_PROVIDER_STR_FIELDS: Mapping[str, str] = {
    "API_BASE_URL": "base_url",
    "API_KEY": "api_key",
    "MODEL": "model",
}
_PROVIDER_INT_FIELDS: Mapping[str, str] = {"MAX_TOKENS": "max_tokens"}
_PROVIDER_FLOAT_FIELDS: Mapping[str, str] = {"TEMPERATURE": "temperature"}

_CLIENT_FLOAT_OVERRIDES: Mapping[str, str] = {
    f"{_ENV_PREFIX}_CONNECT_TIMEOUT": "connect_timeout",
    f"{_ENV_PREFIX}_RETRY_MIN_SECONDS": "retry_min_seconds",
    f"{_ENV_PREFIX}_RETRY_MAX_SECONDS": "retry_max_seconds",
}
_CLIENT_INT_OVERRIDES: Mapping[str, str] = {
    f"{_ENV_PREFIX}_MAX_RETRIES": "max_retries",
}
_CLIENT_BOOL_OVERRIDES: Mapping[str, str] = {
    f"{_ENV_PREFIX}_DEBUG_LOGGING": "debug_logging",
}


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """Immutable connection profile for one provider-path request."""

    base_url: str
    api_key: str
    model: str
    max_tokens: int = _DEFAULT_MAX_TOKENS
    temperature: float = _DEFAULT_TEMPERATURE

    @property
    def is_complete(self) -> bool:
        return bool(self.base_url) and bool(self.api_key)

    def redacted(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "api_key": redact_secret(self.api_key),
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }


@dataclass(slots=True)
class ClientSettings:
    """Transport tunables for :class:`pickwise.ai.client.AIClient`."""

    connect_timeout: float = 10.0
    read_timeout: float | None = None
    write_timeout: float | None = 30.0
    pool_timeout: float | None = 10.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    legacy_separator: str = "\\ "
    default_headers: Mapping[str, str] = field(default_factory=dict)
    debug_logging: bool = False


def current_provider(env: Mapping[str, str] | None = None) -> AIProvider:
    """Return the process-wide default provider, falling back to Baidu."""

    source = os.environ if env is None else env
    raw = (source.get(_PROVIDER_ENV) or "").strip()
    if not raw:
        return DEFAULT_PROVIDER
    provider = AIProvider.coerce(raw)
    if provider is None:
        LOGGER.warning("Ignoring unknown %s=%r; using %s", _PROVIDER_ENV, raw, DEFAULT_PROVIDER.value)
        return DEFAULT_PROVIDER
    return provider


def resolve_provider_config(
    provider: AIProvider | str | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> ProviderConfig:
    """Build the configuration for ``provider``.

    Each field resolves from ``PICKWISE_<PROVIDER>_<FIELD>``, then from the
    provider-agnostic ``PICKWISE_AI_<FIELD>``, then from the literal default.
    The result is always structurally valid; an empty base URL or key is only
    reported through a warning and surfaces on the first network call.
    """

    source = os.environ if env is None else env
    resolved = AIProvider.coerce(provider)
    if resolved is None:
        if provider is not None:
            LOGGER.warning("Unknown provider %r; using the configured default", provider)
        resolved = current_provider(source)

    base_url, model = _PROVIDER_DEFAULTS[resolved]
    values: dict[str, Any] = {
        "base_url": base_url,
        "api_key": "",
        "model": model,
        "max_tokens": _DEFAULT_MAX_TOKENS,
        "temperature": _DEFAULT_TEMPERATURE,
    }
    for suffix, field_name in _PROVIDER_STR_FIELDS.items():
        value = _lookup(source, resolved, suffix)
        if value:
            values[field_name] = value.strip()
    for suffix, field_name in _PROVIDER_INT_FIELDS.items():
        value = _lookup(source, resolved, suffix)
        if value:
            values[field_name] = _parse_number(value, int, values[field_name], suffix)
    for suffix, field_name in _PROVIDER_FLOAT_FIELDS.items():
        value = _lookup(source, resolved, suffix)
        if value:
            values[field_name] = _parse_number(value, float, values[field_name], suffix)

    config = ProviderConfig(**values)
    if not config.is_complete:
        missing = [name for name in ("base_url", "api_key") if not values[name]]
        warning = ConfigurationIncomplete(
            message=f"AI configuration for provider '{resolved.value}' is incomplete",
            details={"provider": resolved.value, "missing": missing},
        )
        LOGGER.warning("%s (config=%s)", warning, config.redacted())
    return config


def load_client_settings(
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> ClientSettings:
    """Return :class:`ClientSettings` with environment and keyword overrides applied."""

    source = os.environ if env is None else env
    settings = ClientSettings()
    updates: dict[str, Any] = {}
    for env_name, field_name in _CLIENT_FLOAT_OVERRIDES.items():
        value = source.get(env_name)
        if value:
            updates[field_name] = _parse_number(value, float, getattr(settings, field_name), env_name)
    for env_name, field_name in _CLIENT_INT_OVERRIDES.items():
        value = source.get(env_name)
        if value:
            updates[field_name] = _parse_number(value, int, getattr(settings, field_name), env_name)
    for env_name, field_name in _CLIENT_BOOL_OVERRIDES.items():
        value = source.get(env_name)
        if value is not None:
            updates[field_name] = value.strip().lower() in _TRUE_VALUES
    updates.update(overrides)
    if updates:
        settings = replace(settings, **updates)
    return settings


def redact_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}…{value[-4:]}"


def _lookup(source: Mapping[str, str], provider: AIProvider, suffix: str) -> str:
    specific = source.get(f"{_ENV_PREFIX}_{provider.name}_{suffix}")
    if specific:
        return specific
    return source.get(f"{_ENV_PREFIX}_AI_{suffix}") or ""


def _parse_number(raw: str, caster: type, fallback: Any, name: str) -> Any:
    try:
        return caster(raw.strip())
    except (TypeError, ValueError):
        LOGGER.warning("Ignoring invalid numeric value for %s: %r", name, raw)
        return fallback
