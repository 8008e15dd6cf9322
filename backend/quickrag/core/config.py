"""Application configuration handling."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from quickrag.core.errors import ConfigurationError
from quickrag.ingest.batching import validate_batch_limits
from quickrag.ingest.chunker import validate_chunk_options
from quickrag.ingest.types import BatchLimits, ChunkOptions

ENV_PREFIX = "QUICKRAG_"
DEFAULT_CONFIG_PATH = Path("~/.config/quickrag/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("provider",): "provider",
    ("apiKey",): "api_key",
    ("model",): "model",
    ("baseUrl",): "base_url",
    ("chunking", "strategy"): "chunk_strategy",
    ("chunking", "chunkSize"): "chunk_size",
    ("chunking", "chunkOverlap"): "chunk_overlap",
    ("chunking", "minChunkSize"): "min_chunk_size",
    ("batching", "maxTextsPerBatch"): "max_texts_per_batch",
    ("batching", "maxCharsPerBatch"): "max_chars_per_batch",
    ("batching", "maxTokensPerBatch"): "max_tokens_per_batch",
    ("batching", "maxConcurrentEmbeddings"): "max_concurrent_embeddings",
    ("batching", "timeoutSeconds"): "embed_timeout_seconds",
    ("storage", "dbPath"): "db_path",
    ("files", "include"): "include_glob",
    ("files", "exclude"): "exclude_glob",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=Path("index.rag"))
    provider: Literal["hashed", "openai", "voyageai", "ollama"] = "ollama"
    model: str = "nomic-embed-text"
    api_key: str | None = None
    base_url: str | None = None
    chunk_strategy: Literal["recursive-token", "simple"] = "recursive-token"
    chunk_size: int = 500
    chunk_overlap: int = 50
    min_chunk_size: int = Field(default=0, ge=0)
    max_texts_per_batch: int = Field(default=64, ge=1)
    max_chars_per_batch: int = Field(default=150_000, ge=1)
    max_tokens_per_batch: int = Field(default=20_000, ge=1)
    max_concurrent_embeddings: int = Field(default=4, ge=1)
    embed_timeout_seconds: float = Field(default=120.0, gt=0)
    include_glob: str = "*.{txt,md,markdown}"
    exclude_glob: str = ""

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    def chunk_options(self) -> ChunkOptions:
        options = ChunkOptions(target_size=self.chunk_size, overlap=self.chunk_overlap)
        validate_chunk_options(options)
        return options

    def batch_limits(self) -> BatchLimits:
        limits = BatchLimits(
            max_count=self.max_texts_per_batch,
            max_chars=self.max_chars_per_batch,
            max_tokens=self.max_tokens_per_batch,
        )
        validate_batch_limits(limits)
        return limits

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with non-``None`` overrides applied and validated."""
        values = self.model_dump()
        values.update({key: value for key, value in overrides.items() if value is not None})
        return build_settings(values)

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            try:
                with config_path.open("r", encoding="utf-8") as fh:
                    raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
            if not isinstance(raw, Mapping):
                raise ConfigurationError(f"Config file {config_path} must contain a mapping")
            data.update(_flatten_yaml(raw))
        elif path is not None:
            raise ConfigurationError(f"Config file not found: {config_path}")
        data.update(_load_env_overrides())
        return build_settings(data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def build_settings(values: Mapping[str, Any]) -> Settings:
    """Validate raw values into :class:`Settings`, reporting failures as ``ConfigurationError``."""
    try:
        settings = Settings(**values)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
    settings.chunk_options()
    settings.batch_limits()
    return settings


def write_default_config(path: Path | None = None) -> Path:
    """Write the default settings as nested YAML and return the file path."""
    target = (path or DEFAULT_CONFIG_PATH).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    defaults = Settings().model_dump(mode="json")
    nested: dict[str, Any] = {}
    for yaml_path, field_name in _YAML_KEY_MAP.items():
        value = defaults.get(field_name)
        if value is None:
            continue
        node = nested
        for key in yaml_path[:-1]:
            node = node.setdefault(key, {})
        node[yaml_path[-1]] = value
    with target.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(nested, fh, sort_keys=False)
    return target


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with QUICKRAG_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


__all__ = ["Settings", "build_settings", "write_default_config", "DEFAULT_CONFIG_PATH"]
