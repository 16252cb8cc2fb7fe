"""Tests for provider configuration resolution."""

from __future__ import annotations

import logging

import pytest

from pickwise.services.settings import (
    AIProvider,
    ClientSettings,
    ProviderConfig,
    current_provider,
    load_client_settings,
    redact_secret,
    resolve_provider_config,
)


def test_default_provider_is_baidu() -> None:
    assert current_provider({}) is AIProvider.BAIDU
    assert current_provider({"PICKWISE_AI_PROVIDER": " Zhipu "}) is AIProvider.ZHIPU


def test_unknown_provider_falls_back_with_warning(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="pickwise.services.settings"):
        provider = current_provider({"PICKWISE_AI_PROVIDER": "acme"})

    assert provider is AIProvider.BAIDU
    assert "acme" in caplog.text


@pytest.mark.parametrize(
    ("provider", "base_url", "model"),
    [
        (AIProvider.BAIDU, "https://api-integrations.appmiaoda.com", "ernie-4.0"),
        (AIProvider.OPENAI, "https://api.openai.com/v1", "gpt-4"),
        (AIProvider.ALI, "https://dashscope.aliyuncs.com/compatible-mode/v1", "qwen-max"),
        (AIProvider.TENCENT, "https://hunyuan.tencentcloudapi.com/v1", "hunyuan-pro"),
        (AIProvider.ZHIPU, "https://open.bigmodel.cn/api/paas/v4", "glm-4-plus"),
        (AIProvider.CUSTOM, "", ""),
    ],
)
def test_literal_defaults(provider: AIProvider, base_url: str, model: str) -> None:
    config = resolve_provider_config(provider, env={})

    assert config.base_url == base_url
    assert config.model == model
    assert config.api_key == ""
    assert config.max_tokens == 4000
    assert config.temperature == pytest.approx(0.7)


def test_provider_specific_value_beats_generic_fallback() -> None:
    env = {
        "PICKWISE_AI_API_KEY": "generic-key",
        "PICKWISE_BAIDU_API_KEY": "baidu-key",
        "PICKWISE_AI_MODEL": "generic-model",
    }

    config = resolve_provider_config("baidu", env=env)

    assert config.api_key == "baidu-key"
    assert config.model == "generic-model"


def test_generic_key_fills_missing_provider_key() -> None:
    config = resolve_provider_config(AIProvider.BAIDU, env={"PICKWISE_AI_API_KEY": "shared"})

    assert config.api_key == "shared"
    assert config.is_complete


def test_numeric_overrides_and_invalid_values(caplog) -> None:
    env = {
        "PICKWISE_OPENAI_MAX_TOKENS": "2048",
        "PICKWISE_OPENAI_TEMPERATURE": "warm",
        "PICKWISE_OPENAI_API_KEY": "sk",
    }

    with caplog.at_level(logging.WARNING, logger="pickwise.services.settings"):
        config = resolve_provider_config(AIProvider.OPENAI, env=env)

    assert config.max_tokens == 2048
    assert config.temperature == pytest.approx(0.7)
    assert "TEMPERATURE" in caplog.text


def test_incomplete_configuration_only_warns(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="pickwise.services.settings"):
        config = resolve_provider_config(AIProvider.CUSTOM, env={})

    assert isinstance(config, ProviderConfig)
    assert not config.is_complete
    assert "configuration_incomplete" in caplog.text


def test_selected_provider_comes_from_environment() -> None:
    env = {"PICKWISE_AI_PROVIDER": "ali", "PICKWISE_ALI_API_KEY": "dash"}

    config = resolve_provider_config(env=env)

    assert config.base_url == "https://dashscope.aliyuncs.com/compatible-mode/v1"
    assert config.api_key == "dash"


def test_resolution_reads_process_environment(monkeypatch) -> None:
    monkeypatch.setenv("PICKWISE_AI_PROVIDER", "tencent")
    monkeypatch.setenv("PICKWISE_TENCENT_MODEL", "hunyuan-lite")
    monkeypatch.delenv("PICKWISE_AI_MODEL", raising=False)

    config = resolve_provider_config()

    assert config.model == "hunyuan-lite"


def test_redaction_hides_keys() -> None:
    config = ProviderConfig(base_url="https://x", api_key="sk-abcdefghijkl", model="m")

    assert config.redacted()["api_key"] == "sk-a…ijkl"
    assert redact_secret("short") == "***"
    assert redact_secret("") == ""


def test_load_client_settings_applies_env_and_overrides() -> None:
    env = {
        "PICKWISE_CONNECT_TIMEOUT": "3.5",
        "PICKWISE_MAX_RETRIES": "4",
        "PICKWISE_DEBUG_LOGGING": "yes",
        "PICKWISE_RETRY_MAX_SECONDS": "nope",
    }

    settings = load_client_settings(env, retry_min_seconds=0.1)

    assert settings.connect_timeout == pytest.approx(3.5)
    assert settings.max_retries == 4
    assert settings.debug_logging is True
    assert settings.retry_max_seconds == ClientSettings().retry_max_seconds
    assert settings.retry_min_seconds == pytest.approx(0.1)
    assert settings.read_timeout is None


def test_client_settings_defaults_disable_retry() -> None:
    settings = load_client_settings({})

    assert settings.max_retries == 1
    assert settings.legacy_separator == "\\ "
    assert settings.debug_logging is False
