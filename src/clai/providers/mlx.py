"""MLX provider for on-device inference on Apple Silicon."""

import asyncio
import importlib.util
import logging
from collections.abc import AsyncIterator
from typing import Any

from clai.errors import ProviderError
from clai.providers.platform import PlatformInfo, detect_platform

logger = logging.getLogger(__name__)


class MLXProvider:
    """Runs ``mlx_lm`` in a worker thread; batch generation only."""

    name = "mlx"
    supports_streaming = False

    def __init__(
        self,
        model_id: str = "mlx-community/Qwen3-4B-4bit",
        *,
        disabled: bool = False,
        max_tokens: int = 1024,
        platform_info: PlatformInfo | None = None,
    ) -> None:
        self.model_id = model_id
        self.disabled = disabled
        self.max_tokens = max_tokens
        self.platform_info = platform_info or detect_platform()
        self._loaded: tuple[Any, Any] | None = None

    async def is_available(self) -> bool:
        if self.disabled or not self.platform_info.supports_mlx:
            return False
        if importlib.util.find_spec("mlx_lm") is None:
            logger.debug("mlx_lm is not installed; install the 'mlx' extra")
            return False
        return True

    def _generate_sync(self, prompt: str) -> str:
        import mlx_lm

        if self._loaded is None:
            self._loaded = mlx_lm.load(self.model_id)
        model, tokenizer = self._loaded
        if getattr(tokenizer, "chat_template", None):
            prompt = tokenizer.apply_chat_template(
                [{"role": "user", "content": prompt}],
                add_generation_prompt=True,
                tokenize=False,
            )
        return mlx_lm.generate(model, tokenizer, prompt=prompt, max_tokens=self.max_tokens)

    async def generate(self, prompt: str) -> str:
        try:
            return await asyncio.to_thread(self._generate_sync, prompt)
        except (OSError, RuntimeError, ValueError) as exc:
            raise ProviderError(f"mlx: {type(exc).__name__}: {exc}", retryable=False) from exc

    def stream(self, prompt: str) -> AsyncIterator[str]:
        raise ProviderError("mlx: streaming is not supported", retryable=False)
