"""Request orchestration: cache lookup, provider resolution, generation, write-through."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from clai.cache.store import CacheStore, cache_key
from clai.core.context import ContextGatherer
from clai.core.prompts import (
    build_examples_prompt,
    build_explain_prompt,
    build_man_summary_prompt,
    build_suggest_prompt,
)
from clai.core.thinking import ThinkTagStreamFilter, strip_think_tags
from clai.errors import CacheError, EmptyResponse
from clai.logging import bind_context
from clai.providers.base import InferenceProvider
from clai.providers.router import ProviderResolver

logger = logging.getLogger(__name__)


class Mode(StrEnum):
    EXPLAIN = "explain"
    SUGGEST = "suggest"
    EXAMPLES = "examples"
    MAN = "man"


class OutputSink(Protocol):
    def show_progress(self, message: str) -> None: ...

    def show_info(self, message: str) -> None: ...

    def write_chunk(self, chunk: str) -> None: ...

    def end_stream(self) -> None: ...

    def show_response(self, text: str, provider: str, *, cached: bool) -> None: ...


@dataclass(frozen=True, slots=True)
class EngineResult:
    text: str
    provider: str
    cached: bool
    streamed: bool


class ClaiEngine:
    def __init__(
        self,
        resolver: ProviderResolver,
        cache: CacheStore | None,
        context: ContextGatherer,
        *,
        use_cache: bool = True,
        stream: bool = True,
        verbose: bool = False,
    ) -> None:
        self.resolver = resolver
        self.cache = cache
        self.context = context
        self.use_cache = use_cache
        self.stream = stream
        self.verbose = verbose

    def _cache_key(self, text: str, mode: Mode) -> str | None:
        if not self.use_cache or self.cache is None:
            return None
        return cache_key(text, mode.value, self.resolver.forced or "auto")

    def _cached(self, key: str) -> tuple[str, str] | None:
        if self.cache is None:
            return None
        try:
            entry = self.cache.get(key)
        except CacheError as exc:
            logger.warning("Cache lookup failed, treating as miss: %s", exc)
            return None
        if entry is None:
            logger.debug("Cache miss %s", key[:12])
            return None
        logger.debug("Cache hit %s from %s", key[:12], entry.provider)
        return entry.response, entry.provider

    def _store(self, key: str, text: str, provider: str) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(key, text, provider)
        except CacheError as exc:
            logger.warning("Cache write failed, continuing without it: %s", exc)

    async def _stream_through_filter(
        self, provider: InferenceProvider, prompt: str, sink: OutputSink
    ) -> str:
        think_filter = ThinkTagStreamFilter()
        raw: list[str] = []
        try:
            async for chunk in provider.stream(prompt):
                raw.append(chunk)
                visible = think_filter.process(chunk)
                if visible:
                    sink.write_chunk(visible)
            remaining = think_filter.flush()
            if remaining:
                sink.write_chunk(remaining)
        finally:
            # close the partial line so an error message starts on its own line
            sink.end_stream()
        return "".join(raw)

    async def generate_response(
        self, prompt: str, *, text: str, mode: Mode, sink: OutputSink
    ) -> EngineResult:
        """Answer one request, from the cache when possible.

        ``text`` and ``mode`` identify the request for caching; ``prompt`` is
        what the provider sees. Streamed output has already reached the sink
        when this returns; anything else is handed over with ``show_response``.
        """
        bind_context(mode=mode.value)
        key = self._cache_key(text, mode)

        if key is not None:
            hit = self._cached(key)
            if hit is not None:
                response, provider_name = hit
                if self.verbose:
                    sink.show_info(f"Using cached response from {provider_name}")
                sink.show_response(response, provider_name, cached=True)
                return EngineResult(response, provider_name, cached=True, streamed=False)

        provider = await self.resolver.resolve()
        bind_context(provider=provider.name)
        if self.verbose:
            sink.show_info(f"Using provider: {provider.name}")

        streamed = self.stream and provider.supports_streaming
        if streamed:
            raw = await self._stream_through_filter(provider, prompt, sink)
        else:
            raw = await provider.generate(prompt)

        response = strip_think_tags(raw)
        if not response:
            logger.warning("Provider %s returned an empty response", provider.name)
            raise EmptyResponse(provider.name)

        if key is not None:
            self._store(key, response, provider.name)
            logger.debug("Cached response %s from %s", key[:12], provider.name)

        if not streamed:
            sink.show_response(response, provider.name, cached=False)
        return EngineResult(response, provider.name, cached=False, streamed=streamed)

    async def explain(self, command: str, sink: OutputSink) -> EngineResult:
        sink.show_progress("Analyzing command...")
        context = await self.context.gather(command)
        prompt = build_explain_prompt(command, context)
        return await self.generate_response(prompt, text=command, mode=Mode.EXPLAIN, sink=sink)

    async def suggest(self, task: str, sink: OutputSink) -> EngineResult:
        sink.show_progress("Finding commands...")
        prompt = build_suggest_prompt(task)
        return await self.generate_response(prompt, text=task, mode=Mode.SUGGEST, sink=sink)

    async def examples(self, command: str, sink: OutputSink) -> EngineResult:
        sink.show_progress("Generating examples...")
        context = await self.context.gather(command)
        prompt = build_examples_prompt(command, context)
        return await self.generate_response(prompt, text=command, mode=Mode.EXAMPLES, sink=sink)

    async def summarize_man(self, command: str, sink: OutputSink) -> EngineResult:
        sink.show_progress("Reading man page...")
        man_content = await self.context.man_page(command)
        prompt = build_man_summary_prompt(command, man_content)
        return await self.generate_response(prompt, text=command, mode=Mode.MAN, sink=sink)
