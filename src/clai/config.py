"""Application configuration contract."""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import httpx
import yaml
from platformdirs import user_cache_dir
from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from clai.errors import ConfigError

logger = logging.getLogger(__name__)

PROVIDER_NAMES: tuple[str, ...] = ("mlx", "ollama", "anthropic", "openai")

# (section, key) in config.yaml -> Settings field
_FILE_KEYS: dict[tuple[str, str], str] = {
    ("provider", "default"): "default_provider",
    ("provider", "fallback"): "fallback",
    ("mlx", "model_id"): "mlx_model",
    ("ollama", "model"): "ollama_model",
    ("ollama", "host"): "ollama_host",
    ("anthropic", "api_key_env"): "anthropic_api_key_env",
    ("anthropic", "model"): "anthropic_model",
    ("anthropic", "base_url"): "anthropic_base_url",
    ("openai", "api_key_env"): "openai_api_key_env",
    ("openai", "model"): "openai_model",
    ("openai", "base_url"): "openai_base_url",
    ("cache", "enabled"): "cache_enabled",
    ("cache", "ttl_days"): "cache_ttl_days",
    ("cache", "dir"): "cache_dir",
}


def config_file_path() -> Path:
    override = os.environ.get("CLAI_CONFIG_FILE", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "clai" / "config.yaml"


def load_config_file(path: Path) -> dict[str, Any]:
    """Read the nested YAML config file into a flat mapping of Settings fields.

    A missing file yields an empty mapping. An unreadable or malformed file is
    logged and ignored so a bad edit never blocks the CLI.
    """
    if not path.is_file():
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to load config file %s: %s", path, exc)
        return {}
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        logger.warning("Ignoring config file %s: top level is not a mapping", path)
        return {}

    values: dict[str, Any] = {}
    for (section, key), field_name in _FILE_KEYS.items():
        block = raw.get(section)
        if not isinstance(block, dict) or key not in block:
            continue
        value = block[key]
        if value is None:
            continue
        if field_name == "fallback" and isinstance(value, list):
            value = ",".join(str(item) for item in value)
        values[field_name] = value
    return values


class _YamlFileSource(PydanticBaseSettingsSource):
    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        return load_config_file(config_file_path())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    default_provider: str | None = Field(alias="CLAI_PROVIDER", default=None)
    fallback: str = Field(alias="CLAI_FALLBACK", default=",".join(PROVIDER_NAMES))

    mlx_model: str = Field(alias="CLAI_MLX_MODEL", default="mlx-community/Qwen3-4B-4bit")
    mlx_disabled: bool = Field(alias="CLAI_DISABLE_MLX", default=False)

    ollama_model: str = Field(alias="CLAI_OLLAMA_MODEL", default="llama3.2")
    ollama_host: str = Field(alias="CLAI_OLLAMA_HOST", default="http://localhost:11434")

    anthropic_api_key_env: str = Field(
        alias="CLAI_ANTHROPIC_API_KEY_ENV", default="ANTHROPIC_API_KEY"
    )
    anthropic_model: str = Field(
        alias="CLAI_ANTHROPIC_MODEL", default="claude-3-5-haiku-20241022"
    )
    anthropic_base_url: str = Field(
        alias="CLAI_ANTHROPIC_BASE_URL", default="https://api.anthropic.com"
    )
    openai_api_key_env: str = Field(alias="CLAI_OPENAI_API_KEY_ENV", default="OPENAI_API_KEY")
    openai_model: str = Field(alias="CLAI_OPENAI_MODEL", default="gpt-4o-mini")
    openai_base_url: str = Field(alias="CLAI_OPENAI_BASE_URL", default="https://api.openai.com/v1")

    cache_enabled: bool = Field(alias="CLAI_CACHE_ENABLED", default=True)
    cache_ttl_days: int = Field(alias="CLAI_CACHE_TTL_DAYS", default=7)
    cache_dir: str = Field(alias="CLAI_CACHE_DIR", default="")

    request_timeout_seconds: float = Field(alias="CLAI_REQUEST_TIMEOUT_SECONDS", default=120.0)
    context_timeout_seconds: float = Field(alias="CLAI_CONTEXT_TIMEOUT_SECONDS", default=10.0)

    log_level: str = Field(alias="CLAI_LOG_LEVEL", default="WARNING")
    log_json: bool = Field(alias="CLAI_LOG_JSON", default=False)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, env_settings, _YamlFileSource(settings_cls))

    def forced_provider(self) -> str | None:
        value = (self.default_provider or "").strip().lower()
        return value or None

    def fallback_chain(self) -> tuple[str, ...]:
        return tuple(
            item.strip().lower() for item in self.fallback.split(",") if item.strip()
        )

    def cache_path(self) -> Path:
        if self.cache_dir.strip():
            return Path(self.cache_dir).expanduser()
        return Path(user_cache_dir("clai"))

    def api_key(self, env_name: str) -> str:
        return os.environ.get(env_name, "").strip()


def validate_settings(settings: Settings) -> None:
    problems: list[str] = []

    forced = settings.forced_provider()
    if forced is not None and forced not in PROVIDER_NAMES:
        problems.append(f"invalid provider '{forced}'")

    chain = settings.fallback_chain()
    if not chain:
        problems.append("fallback chain is empty")
    for name in chain:
        if name not in PROVIDER_NAMES:
            problems.append(f"invalid fallback provider '{name}'")

    try:
        host = httpx.URL(settings.ollama_host)
    except (httpx.InvalidURL, TypeError):
        host = None
    if host is None or host.scheme not in {"http", "https"} or not host.host:
        problems.append(f"invalid Ollama host URL '{settings.ollama_host}'")

    if settings.cache_ttl_days <= 0:
        problems.append(f"invalid cache TTL '{settings.cache_ttl_days}', must be positive")
    if settings.request_timeout_seconds <= 0:
        problems.append("CLAI_REQUEST_TIMEOUT_SECONDS must be > 0")
    if settings.context_timeout_seconds <= 0:
        problems.append("CLAI_CONTEXT_TIMEOUT_SECONDS must be > 0")

    if problems:
        valid = ", ".join(PROVIDER_NAMES)
        raise ConfigError(f"invalid configuration: {'; '.join(problems)} (providers: {valid})")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
