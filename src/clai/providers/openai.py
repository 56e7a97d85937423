"""OpenAI provider adapter using the chat completions API."""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from clai.errors import ProviderError
from clai.providers.base import http_provider_error, raise_for_stream_status, sse_data


class OpenAIProvider:
    name = "openai"
    supports_streaming = True

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        *,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @staticmethod
    def _coerce_text(value: object) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            chunks: list[str] = []
            for item in value:
                if isinstance(item, str):
                    chunks.append(item)
                elif isinstance(item, dict):
                    text = item.get("text")
                    if isinstance(text, str):
                        chunks.append(text)
            return "".join(chunks)
        return ""

    @staticmethod
    def _parse_response(payload: dict[str, Any]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProviderError("openai: response missing choices")
        first = choices[0]
        if not isinstance(first, dict):
            raise ProviderError("openai: response choice malformed")
        message = first.get("message")
        if not isinstance(message, dict):
            raise ProviderError("openai: response message missing")
        return OpenAIProvider._coerce_text(message.get("content"))

    @staticmethod
    def _delta_text(event: dict[str, Any]) -> str:
        choices = event.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        delta = first.get("delta")
        if not isinstance(delta, dict):
            return ""
        return OpenAIProvider._coerce_text(delta.get("content"))

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _body(self, prompt: str, *, stream: bool) -> dict[str, object]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": stream,
        }

    async def is_available(self) -> bool:
        return bool(self.api_key.strip())

    async def generate(self, prompt: str) -> str:
        endpoint = f"{self.base_url}/chat/completions"
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
            raise ProviderError("openai: response is not JSON") from exc
        if not isinstance(payload, dict):
            raise ProviderError("openai: response is not an object")
        return self._parse_response(payload)

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        endpoint = f"{self.base_url}/chat/completions"
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
                        if data is None:
                            continue
                        if data == "[DONE]":
                            break
                        try:
                            event = json.loads(data)
                        except json.JSONDecodeError:
                            continue
                        if not isinstance(event, dict):
                            continue
                        text = self._delta_text(event)
                        if text:
                            yield text
        except httpx.HTTPError as exc:
            raise http_provider_error(self.name, exc) from exc
