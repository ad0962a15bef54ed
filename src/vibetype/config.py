from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Type, TypeVar

import yaml

_T = TypeVar("_T")


@dataclass(slots=True)
class OpenAISettings:
    """Configuration block for the OpenAI-backed inference capability."""

    enabled: bool = False
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    api_key_env: str = "OPENAI_API_KEY"
    base_url: str | None = None
    organization: str | None = None
    temperature: float = 0.7
    detection_temperature: float = 0.3
    max_output_tokens: int = 400
    top_p: float = 0.95
    request_timeout: float = 30.0
    parallel_requests: int = 4


@dataclass(slots=True)
class CacheSettings:
    """Keys and versions for persisted variants."""

    schema_version: int = 1
    model_version: str = "gpt-4o-mini-v1"
    word_prefix: str = "vibe:word:"
    phrase_prefix: str = "vibe:phrase:"
    detection_prefix: str = "vibe:detection:"
    gallery_key: str = "vibe:gallery"
    ttl_seconds: int = 30 * 24 * 60 * 60
    case_sensitive_keys: bool = True
    store_path: str | None = None


@dataclass(slots=True)
class LoaderSettings:
    """Font Asset Loader batching and delivery settings."""

    css_base_url: str = "https://fonts.googleapis.com/css2"
    batch_delay_ms: float = 16.0
    request_timeout: float = 15.0


@dataclass(slots=True)
class OrchestratorSettings:
    """Input Orchestrator timing."""

    debounce_ms: float = 300.0


@dataclass(slots=True)
class VibeTypeConfig:
    """Configuration options for the resolution pipeline."""

    default_family: str = "Inter"
    inference_timeout: float = 20.0
    offline_inference: bool = False
    vetted_styles_path: str | None = None
    openai: OpenAISettings = field(default_factory=OpenAISettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    loader: LoaderSettings = field(default_factory=LoaderSettings)
    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)

    def to_dict(self) -> dict[str, Any]:
        """Return a mutable dictionary representation of the configuration."""
        return dict(asdict(self))


_SECTIONS: dict[str, type] = {
    "openai": OpenAISettings,
    "cache": CacheSettings,
    "loader": LoaderSettings,
    "orchestrator": OrchestratorSettings,
}


def _filtered(cls: Type[_T], data: Mapping[str, Any]) -> _T:
    allowed = {item.name for item in fields(cls)}  # type: ignore[arg-type]
    return cls(**{key: data[key] for key in data if key in allowed})


def _build_kwargs(data: Mapping[str, Any]) -> dict[str, Any]:
    allowed = {item.name for item in fields(VibeTypeConfig)}
    kwargs = {
        key: data[key] for key in data if key in allowed and key not in _SECTIONS
    }
    for name, section_cls in _SECTIONS.items():
        if name not in data:
            continue
        value = data[name]
        if isinstance(value, section_cls):
            kwargs[name] = value
        elif isinstance(value, Mapping):
            kwargs[name] = _filtered(section_cls, value)
        elif value is not None:
            raise ValueError(f"Configuration section '{name}' must be a mapping.")
    return kwargs


def config_from_dict(data: Mapping[str, Any] | None) -> VibeTypeConfig:
    """Build a VibeTypeConfig from a dictionary-like input."""
    if data is None:
        return VibeTypeConfig()
    return VibeTypeConfig(**_build_kwargs(data))


def config_from_yaml(path: str | Path) -> VibeTypeConfig:
    """Load configuration from a YAML file."""
    contents = Path(path).read_text(encoding="utf-8")
    parsed = yaml.safe_load(contents) or {}
    if not isinstance(parsed, MutableMapping):
        raise ValueError("Configuration YAML must define a mapping.")
    return config_from_dict(parsed)


def load_config(path: str | Path | None = None) -> VibeTypeConfig:
    """Load configuration from YAML when provided, otherwise return defaults."""
    if path is None:
        return VibeTypeConfig()
    return config_from_yaml(path)
