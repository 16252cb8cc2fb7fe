"""Service layer helpers (provider configuration)."""

from .settings import AIProvider, ClientSettings, ProviderConfig, load_client_settings, resolve_provider_config

__all__ = ["AIProvider", "ClientSettings", "ProviderConfig", "load_client_settings", "resolve_provider_config"]
