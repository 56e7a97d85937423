"""Provider contracts."""

from collections.abc import AsyncIterator
from typing import Protocol

import httpx

from clai.errors import ProviderError


class InferenceProvider(Protocol):
    name: str
    supports_streaming: bool

    async def is_available(self) -> bool: ...

    async def generate(self, prompt: str) -> str: ...

    def stream(self, prompt: str) -> AsyncIterator[str]: ...


def http_provider_error(provider: str, exc: httpx.HTTPError) -> ProviderError:
    """Translate an httpx failure into a ProviderError naming the provider."""
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError(f"{provider}: request timed out")
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return ProviderError(
            f"{provider}: HTTP {status} from {exc.request.url.path}",
            retryable=status == 429 or status >= 500,
        )
    return ProviderError(f"{provider}: {type(exc).__name__}: {exc}")


async def raise_for_stream_status(provider: str, response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    detail = (await response.aread()).decode("utf-8", errors="replace")[:300]
    raise ProviderError(
        f"{provider}: HTTP {response.status_code}: {detail}",
        retryable=response.status_code == 429 or response.status_code >= 500,
    )


def sse_data(line: str) -> str | None:
    """Payload of an SSE ``data:`` line, or None for anything else."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    return line[len("data:") :].strip()
