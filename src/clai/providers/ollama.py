"""Ollama provider for a local inference server."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from clai.errors import ProviderError
from clai.providers.base import http_provider_error, raise_for_stream_status

logger = logging.getLogger(__name__)

PREFERRED_MODELS: tuple[str, ...] = ("llama3.2", "qwen3", "llama3.1", "mistral", "gemma2")

_PROBE_TIMEOUT_SECONDS = 3.0


def select_model(configured: str, installed: list[str]) -> str:
    """Pick the installed model to use.

    The configured model wins when installed (prefix match, so ``llama3.2``
    matches ``llama3.2:latest``); otherwise the first preferred family that is
    installed; otherwise the first installed model. With nothing installed the
    configured name is kept and Ollama reports the error at generation time.
    """
    if not installed:
        return configured
    for candidate in (configured, *PREFERRED_MODELS):
        for name in installed:
            if name.startswith(candidate):
                return name
    return installed[0]


class OllamaProvider:
    name = "ollama"
    supports_streaming = True

    def __init__(
        self,
        model: str = "llama3.2",
        *,
        host: str = "http://localhost:11434",
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self.host = host.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @staticmethod
    def _model_names(payload: object) -> list[str]:
        if not isinstance(payload, dict):
            return []
        models = payload.get("models")
        if not isinstance(models, list):
            return []
        names: list[str] = []
        for item in models:
            if isinstance(item, dict) and isinstance(item.get("name"), str):
                names.append(item["name"])
        return names

    async def list_models(self) -> list[dict[str, Any]]:
        """Installed models as reported by ``/api/tags`` (empty when unreachable)."""
        try:
            async with httpx.AsyncClient(
                timeout=_PROBE_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.get(f"{self.host}/api/tags")
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, json.JSONDecodeError):
            return []
        models = payload.get("models") if isinstance(payload, dict) else None
        if not isinstance(models, list):
            return []
        return [item for item in models if isinstance(item, dict)]

    async def is_available(self) -> bool:
        try:
            async with httpx.AsyncClient(
                timeout=_PROBE_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.get(f"{self.host}/api/tags")
        except httpx.HTTPError as exc:
            logger.debug("Ollama probe at %s failed: %s", self.host, exc)
            return False
        if response.status_code != 200:
            return False
        try:
            installed = self._model_names(response.json())
        except json.JSONDecodeError:
            installed = []
        selected = select_model(self.model, installed)
        if selected != self.model:
            logger.debug("Ollama model %s selected in place of %s", selected, self.model)
            self.model = selected
        return True

    async def generate(self, prompt: str) -> str:
        body = {"model": self.model, "prompt": prompt, "stream": False}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(f"{self.host}/api/generate", json=body)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise http_provider_error(self.name, exc) from exc
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise ProviderError("ollama: response is not JSON") from exc
        if not isinstance(payload, dict):
            raise ProviderError("ollama: response is not an object")
        if isinstance(payload.get("error"), str):
            raise ProviderError(f"ollama: {payload['error']}")
        text = payload.get("response")
        return text if isinstance(text, str) else ""

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        body = {"model": self.model, "prompt": prompt, "stream": True}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                async with client.stream("POST", f"{self.host}/api/generate", json=body) as response:
                    await raise_for_stream_status(self.name, response)
                    async for raw in response.aiter_lines():
                        line = raw.strip()
                        if not line:
                            continue
                        try:
                            event = json.loads(line)
                        except json.JSONDecodeError:
                            continue
                        if not isinstance(event, dict):
                            continue
                        if isinstance(event.get("error"), str):
                            raise ProviderError(f"ollama: {event['error']}")
                        text = event.get("response")
                        if isinstance(text, str) and text:
                            yield text
                        if event.get("done") is True:
                            break
        except httpx.HTTPError as exc:
            raise http_provider_error(self.name, exc) from exc
