"""Shared pytest fixtures."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from helpers import Handler
from pickwise.ai.client import AIClient
from pickwise.services.settings import ClientSettings, ProviderConfig


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        base_url="https://llm.example.test/v1",
        api_key="sk-test-1234567890",
        model="test-model",
    )


@pytest.fixture
def make_client() -> Callable[..., AIClient]:
    def _factory(handler: Handler, **settings: Any) -> AIClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return AIClient(ClientSettings(**settings), http_client=http_client)

    return _factory
