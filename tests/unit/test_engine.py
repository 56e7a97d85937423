from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from clai.cache import CacheStore, cache_key
from clai.core.context import CommandContext
from clai.core.engine import ClaiEngine, Mode
from clai.errors import CacheError, EmptyResponse, NoProviderAvailable, ProviderError
from clai.providers.router import ProviderResolver


class MockProvider:
    def __init__(
        self,
        name: str = "mock",
        *,
        response: str = "mock answer",
        chunks: list[str] | None = None,
        available: bool = True,
        supports_streaming: bool = False,
    ) -> None:
        self.name = name
        self.response = response
        self.chunks = chunks or []
        self.available = available
        self.supports_streaming = supports_streaming
        self.prompts: list[str] = []
        self.stream_calls = 0

    async def is_available(self) -> bool:
        return self.available

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        self.stream_calls += 1
        for chunk in self.chunks:
            yield chunk


class StaticContext:
    def __init__(self, context: CommandContext | None = None, man: str = "MAN TEXT") -> None:
        self.context = context or CommandContext()
        self.man = man
        self.gathered: list[str] = []

    async def gather(self, command: str) -> CommandContext:
        self.gathered.append(command)
        return self.context

    async def man_page(self, command: str) -> str:
        return self.man


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.responses: list[tuple[str, str, bool]] = []

    def show_progress(self, message: str) -> None:
        self.events.append(("progress", message))

    def show_info(self, message: str) -> None:
        self.events.append(("info", message))

    def write_chunk(self, chunk: str) -> None:
        self.events.append(("chunk", chunk))

    def end_stream(self) -> None:
        self.events.append(("end", ""))

    def show_response(self, text: str, provider: str, *, cached: bool) -> None:
        self.responses.append((text, provider, cached))

    @property
    def chunks(self) -> list[str]:
        return [value for kind, value in self.events if kind == "chunk"]


class BrokenCache:
    def get(self, key: str):
        raise CacheError("disk I/O error")

    def set(self, key: str, response: str, provider: str) -> None:
        raise CacheError("disk I/O error")


def _resolver(provider: MockProvider, *, forced: str | None = "mock") -> ProviderResolver:
    return ProviderResolver(("mock",), lambda _name: provider, forced=forced)


def _engine(provider: MockProvider, cache, **kwargs) -> ClaiEngine:
    return ClaiEngine(_resolver(provider), cache, StaticContext(), **kwargs)


@pytest.fixture()
def store(tmp_path: Path) -> CacheStore:
    return CacheStore(tmp_path / "cache", sweep_on_open=False)


@pytest.mark.asyncio
async def test_miss_generates_and_writes_cache(store: CacheStore) -> None:
    provider = MockProvider(response="  Rebase replays commits.  ")
    sink = RecordingSink()
    result = await _engine(provider, store).explain("git rebase", sink)

    assert result.text == "Rebase replays commits."
    assert result.provider == "mock"
    assert result.cached is False
    assert sink.responses == [("Rebase replays commits.", "mock", False)]

    entry = store.get(cache_key("git rebase", "explain", "mock"))
    assert entry is not None
    assert entry.response == "Rebase replays commits."
    assert entry.provider == "mock"


@pytest.mark.asyncio
async def test_second_call_served_from_cache(store: CacheStore) -> None:
    provider = MockProvider(response="answer")
    engine = _engine(provider, store)
    await engine.explain("git rebase", RecordingSink())
    assert len(provider.prompts) == 1

    sink = RecordingSink()
    result = await engine.explain("git rebase", sink)
    assert result.cached is True
    assert result.text == "answer"
    assert len(provider.prompts) == 1
    assert sink.responses == [("answer", "mock", True)]


@pytest.mark.asyncio
async def test_cache_hit_skips_resolution(store: CacheStore) -> None:
    store.set(cache_key("ls", "examples", "mock"), "cached examples", "ollama")
    provider = MockProvider(available=False)
    result = await _engine(provider, store).examples("ls", RecordingSink())
    assert result.cached is True
    assert result.provider == "ollama"
    assert provider.prompts == []


@pytest.mark.asyncio
async def test_auto_selector_used_without_forced_provider(store: CacheStore) -> None:
    provider = MockProvider()
    resolver = ProviderResolver(("mock",), lambda _name: provider)
    engine = ClaiEngine(resolver, store, StaticContext())
    await engine.suggest("find large files", RecordingSink())
    assert store.get(cache_key("find large files", "suggest", "auto")) is not None


@pytest.mark.asyncio
async def test_use_cache_false_never_touches_store(store: CacheStore) -> None:
    provider = MockProvider()
    engine = _engine(provider, store, use_cache=False)
    await engine.explain("ls", RecordingSink())
    await engine.explain("ls", RecordingSink())
    assert len(provider.prompts) == 2
    assert store.stats().count == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("response", ["", "   \n\t", "<think>only reasoning</think>"])
async def test_empty_response_rejected_and_not_cached(store: CacheStore, response: str) -> None:
    provider = MockProvider(response=response)
    sink = RecordingSink()
    with pytest.raises(EmptyResponse) as exc_info:
        await _engine(provider, store).explain("ls", sink)
    assert exc_info.value.provider == "mock"
    assert store.stats().count == 0
    assert sink.responses == []


@pytest.mark.asyncio
async def test_streaming_forwards_filtered_chunks_in_order(store: CacheStore) -> None:
    provider = MockProvider(
        supports_streaming=True,
        chunks=["<thi", "nk>plan</think>", "Use ", "`du -sh`", "<think>x</think>", " here."],
    )
    sink = RecordingSink()
    result = await _engine(provider, store).suggest("disk usage", sink)

    assert "".join(sink.chunks) == "Use `du -sh` here."
    assert sink.chunks == ["Use ", "`du -sh`", " here."]
    assert sink.events[-1] == ("end", "")
    assert result.streamed is True
    assert result.text == "Use `du -sh` here."
    assert sink.responses == []
    entry = store.get(cache_key("disk usage", "suggest", "mock"))
    assert entry is not None
    assert entry.response == "Use `du -sh` here."


@pytest.mark.asyncio
async def test_stream_disabled_uses_batch(store: CacheStore) -> None:
    provider = MockProvider(supports_streaming=True, response="batch", chunks=["stream"])
    result = await _engine(provider, store, stream=False).explain("ls", RecordingSink())
    assert result.text == "batch"
    assert provider.stream_calls == 0


@pytest.mark.asyncio
async def test_non_streaming_provider_never_streams(store: CacheStore) -> None:
    provider = MockProvider(supports_streaming=False, response="batch", chunks=["stream"])
    result = await _engine(provider, store, stream=True).explain("ls", RecordingSink())
    assert result.streamed is False
    assert provider.stream_calls == 0


@pytest.mark.asyncio
async def test_streamed_think_only_response_rejected(store: CacheStore) -> None:
    provider = MockProvider(supports_streaming=True, chunks=["<think>", "hmm", "</think>", "  "])
    with pytest.raises(EmptyResponse):
        await _engine(provider, store).explain("ls", RecordingSink())
    assert store.stats().count == 0


class BrokenStreamProvider(MockProvider):
    async def stream(self, prompt: str) -> AsyncIterator[str]:
        for chunk in self.chunks:
            yield chunk
        raise ProviderError("mock: connection reset mid-stream")


@pytest.mark.asyncio
async def test_stream_failure_still_closes_line(store: CacheStore) -> None:
    provider = BrokenStreamProvider(supports_streaming=True, chunks=["partial <thi"])
    sink = RecordingSink()
    with pytest.raises(ProviderError):
        await _engine(provider, store).explain("ls", sink)
    # held-back tag prefix is not flushed on failure
    assert sink.events[-2:] == [("chunk", "partial "), ("end", "")]
    assert store.stats().count == 0


@pytest.mark.asyncio
async def test_cache_faults_are_absorbed() -> None:
    provider = MockProvider(response="still works")
    result = await _engine(provider, BrokenCache()).explain("ls", RecordingSink())
    assert result.text == "still works"
    assert result.cached is False


@pytest.mark.asyncio
async def test_no_cache_instance_runs_uncached() -> None:
    provider = MockProvider()
    result = await _engine(provider, None).explain("ls", RecordingSink())
    assert result.cached is False


@pytest.mark.asyncio
async def test_unavailable_provider_is_terminal(store: CacheStore) -> None:
    provider = MockProvider(available=False)
    resolver = ProviderResolver(("mock",), lambda _name: provider)
    engine = ClaiEngine(resolver, store, StaticContext())
    with pytest.raises(NoProviderAvailable):
        await engine.explain("ls", RecordingSink())
    assert provider.prompts == []


@pytest.mark.asyncio
async def test_verbose_reports_provider(store: CacheStore) -> None:
    sink = RecordingSink()
    await _engine(MockProvider(), store, verbose=True).explain("ls", sink)
    assert ("info", "Using provider: mock") in sink.events


@pytest.mark.asyncio
async def test_explain_prompt_includes_gathered_context(store: CacheStore) -> None:
    provider = MockProvider()
    context = StaticContext(CommandContext(help_output="usage: tar [options]"))
    engine = ClaiEngine(_resolver(provider), store, context)
    await engine.explain("tar -xzf a.tgz", RecordingSink())
    assert context.gathered == ["tar -xzf a.tgz"]
    assert "usage: tar [options]" in provider.prompts[0]
    assert "Command: tar -xzf a.tgz" in provider.prompts[0]


@pytest.mark.asyncio
async def test_summarize_man_uses_man_mode(store: CacheStore) -> None:
    provider = MockProvider()
    await _engine(provider, store).summarize_man("grep", RecordingSink())
    assert "MAN TEXT" in provider.prompts[0]
    assert store.get(cache_key("grep", Mode.MAN.value, "mock")) is not None
