"""Provider construction helpers."""

from functools import partial

from clai.config import PROVIDER_NAMES, Settings
from clai.errors import ConfigError
from clai.providers.anthropic import AnthropicProvider
from clai.providers.base import InferenceProvider
from clai.providers.mlx import MLXProvider
from clai.providers.ollama import OllamaProvider
from clai.providers.openai import OpenAIProvider
from clai.providers.router import ProviderResolver


def build_provider(name: str, settings: Settings) -> InferenceProvider:
    if name == "mlx":
        return MLXProvider(settings.mlx_model, disabled=settings.mlx_disabled)
    if name == "ollama":
        return OllamaProvider(
            settings.ollama_model,
            host=settings.ollama_host,
            timeout_seconds=settings.request_timeout_seconds,
        )
    if name == "anthropic":
        return AnthropicProvider(
            settings.api_key(settings.anthropic_api_key_env),
            settings.anthropic_model,
            base_url=settings.anthropic_base_url,
            timeout_seconds=settings.request_timeout_seconds,
        )
    if name == "openai":
        return OpenAIProvider(
            settings.api_key(settings.openai_api_key_env),
            settings.openai_model,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.request_timeout_seconds,
        )
    raise ConfigError(f"unknown provider '{name}' (valid: {', '.join(PROVIDER_NAMES)})")


def build_resolver(settings: Settings, forced: str | None = None) -> ProviderResolver:
    return ProviderResolver(
        settings.fallback_chain(),
        partial(build_provider, settings=settings),
        forced=forced or settings.forced_provider(),
    )
