import pytest

from clai.config import Settings
from clai.errors import ConfigError, NoProviderAvailable, ProviderUnavailable
from clai.providers.anthropic import AnthropicProvider
from clai.providers.factory import build_provider, build_resolver
from clai.providers.mlx import MLXProvider
from clai.providers.ollama import OllamaProvider
from clai.providers.openai import OpenAIProvider
from clai.providers.router import ProviderResolver


class StubProvider:
    supports_streaming = False

    def __init__(self, name: str, available: bool) -> None:
        self.name = name
        self.available = available

    async def is_available(self) -> bool:
        return self.available

    async def generate(self, prompt: str) -> str:
        return f"{self.name}:{prompt}"

    async def stream(self, prompt: str):
        yield prompt


class RecordingFactory:
    def __init__(self, availability: dict[str, bool]) -> None:
        self.availability = availability
        self.built: list[str] = []

    def __call__(self, name: str) -> StubProvider:
        self.built.append(name)
        return StubProvider(name, self.availability.get(name, False))


@pytest.mark.asyncio
async def test_first_available_in_chain_wins() -> None:
    factory = RecordingFactory({"mlx": False, "ollama": True, "openai": True})
    resolver = ProviderResolver(("mlx", "ollama", "openai"), factory)
    provider = await resolver.resolve()
    assert provider.name == "ollama"
    # probing stops at the first available provider
    assert factory.built == ["mlx", "ollama"]


@pytest.mark.asyncio
async def test_none_available_raises_with_chain() -> None:
    resolver = ProviderResolver(("mlx", "ollama"), RecordingFactory({}))
    with pytest.raises(NoProviderAvailable) as exc_info:
        await resolver.resolve()
    assert exc_info.value.chain == ("mlx", "ollama")
    assert "mlx, ollama" in str(exc_info.value)


@pytest.mark.asyncio
async def test_forced_provider_skips_chain() -> None:
    factory = RecordingFactory({"mlx": True, "anthropic": True})
    resolver = ProviderResolver(("mlx", "anthropic"), factory, forced="anthropic")
    provider = await resolver.resolve()
    assert provider.name == "anthropic"
    assert factory.built == ["anthropic"]


@pytest.mark.asyncio
async def test_forced_provider_unavailable_does_not_fall_back() -> None:
    factory = RecordingFactory({"mlx": True, "openai": False})
    resolver = ProviderResolver(("mlx", "openai"), factory, forced="openai")
    with pytest.raises(ProviderUnavailable) as exc_info:
        await resolver.resolve()
    assert exc_info.value.provider == "openai"
    assert factory.built == ["openai"]


@pytest.mark.asyncio
async def test_providers_built_fresh_per_resolution() -> None:
    factory = RecordingFactory({"ollama": True})
    resolver = ProviderResolver(("ollama",), factory)
    first = await resolver.resolve()
    second = await resolver.resolve()
    assert first is not second


@pytest.mark.asyncio
async def test_probe_exception_propagates() -> None:
    class ExplodingProvider(StubProvider):
        async def is_available(self) -> bool:
            raise RuntimeError("probe crashed")

    resolver = ProviderResolver(("x",), lambda name: ExplodingProvider(name, True))
    with pytest.raises(RuntimeError):
        await resolver.resolve()


@pytest.mark.asyncio
async def test_statuses_lists_forced_provider_first() -> None:
    factory = RecordingFactory({"ollama": True})
    resolver = ProviderResolver(("mlx", "ollama"), factory, forced="openai")
    assert await resolver.statuses() == [("openai", False), ("mlx", False), ("ollama", True)]


def test_build_provider_maps_names() -> None:
    settings = Settings()
    assert isinstance(build_provider("mlx", settings), MLXProvider)
    assert isinstance(build_provider("ollama", settings), OllamaProvider)
    assert isinstance(build_provider("anthropic", settings), AnthropicProvider)
    assert isinstance(build_provider("openai", settings), OpenAIProvider)
    with pytest.raises(ConfigError):
        build_provider("foundation", settings)


def test_build_provider_reads_api_key_from_named_env(monkeypatch) -> None:
    monkeypatch.setenv("MY_OPENAI_KEY", "sk-test")
    settings = Settings(openai_api_key_env="MY_OPENAI_KEY")
    provider = build_provider("openai", settings)
    assert isinstance(provider, OpenAIProvider)
    assert provider.api_key == "sk-test"


def test_build_resolver_uses_settings(monkeypatch) -> None:
    monkeypatch.setenv("CLAI_FALLBACK", "ollama, openai")
    monkeypatch.setenv("CLAI_PROVIDER", "OpenAI")
    settings = Settings()
    resolver = build_resolver(settings)
    assert resolver.chain == ("ollama", "openai")
    assert resolver.forced == "openai"
    assert build_resolver(settings, forced="ollama").forced == "ollama"
