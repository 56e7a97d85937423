"""Anthropic provider adapter using the Messages API."""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from clai.errors import ProviderError
from clai.providers.base import http_provider_error, raise_for_stream_status, sse_data

_API_VERSION = "2023-06-01"


class AnthropicProvider:
    name = "anthropic"
    supports_streaming = True

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-20241022",
        *,
        base_url: str = "https://api.anthropic.com",
        max_tokens: int = 2048,
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": _API_VERSION,
            "content-type": "application/json",
        }

    def _body(self, prompt: str, *, stream: bool) -> dict[str, object]:
        body: dict[str, object] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if stream:
            body["stream"] = True
        return body

    @staticmethod
    def _parse_response(payload: dict[str, Any]) -> str:
        blocks = payload.get("content")
        if not isinstance(blocks, list):
            raise ProviderError("anthropic: response missing content")
        parts: list[str] = []
        for block in blocks:
            if not isinstance(block, dict) or block.get("type") != "text":
                continue
            text = block.get("text")
            if isinstance(text, str):
                parts.append(text)
        return "".join(parts)

    async def is_available(self) -> bool:
        return bool(self.api_key.strip())

    async def generate(self, prompt: str) -> str:
        endpoint = f"{self.base_url}/v1/messages"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    endpoint, headers=self._headers(), json=self._body(prompt, stream=False)
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise http_provider_error(self.name, exc) from exc
        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise ProviderError("anthropic: response is not JSON") from exc
        if not isinstance(payload, dict):
            raise ProviderError("anthropic: response is not an object")
        return self._parse_response(payload)

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        endpoint = f"{self.base_url}/v1/messages"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                async with client.stream(
                    "POST", endpoint, headers=self._headers(), json=self._body(prompt, stream=True)
                ) as response:
                    await raise_for_stream_status(self.name, response)
                    async for raw in response.aiter_lines():
                        data = sse_data(raw)
                        if not data:
                            continue
                        try:
                            event = json.loads(data)
                        except json.JSONDecodeError:
                            continue
                        if not isinstance(event, dict):
                            continue
                        kind = event.get("type")
                        if kind == "message_stop":
                            break
                        if kind == "error":
                            error = event.get("error")
                            detail = error.get("message") if isinstance(error, dict) else None
                            raise ProviderError(f"anthropic: {detail or 'stream error'}")
                        if kind != "content_block_delta":
                            continue
                        delta = event.get("delta")
                        if not isinstance(delta, dict) or delta.get("type") != "text_delta":
                            continue
                        text = delta.get("text")
                        if isinstance(text, str) and text:
                            yield text
        except httpx.HTTPError as exc:
            raise http_provider_error(self.name, exc) from exc
