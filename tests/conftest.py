import logging
from pathlib import Path

import pytest

from clai.config import get_settings
from clai.logging import clear_context

_CLEARED_ENV = (
    "CLAI_PROVIDER",
    "CLAI_FALLBACK",
    "CLAI_DISABLE_MLX",
    "CLAI_OLLAMA_MODEL",
    "CLAI_OLLAMA_HOST",
    "CLAI_CACHE_ENABLED",
    "CLAI_CACHE_TTL_DAYS",
    "CLAI_LOG_LEVEL",
    "CLAI_LOG_JSON",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
)


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path, monkeypatch):
    for name in _CLEARED_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CLAI_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("CLAI_CONFIG_FILE", str(tmp_path / "missing-config.yaml"))
    get_settings.cache_clear()
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    get_settings.cache_clear()
    clear_context()
    # the CLI points the root handler at CliRunner's stderr, which is closed afterwards
    root.handlers[:] = handlers
    root.setLevel(level)
