from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Tuple, TypedDict

import typer
import yaml

from .cache import VariantCache
from .color import derive_color
from .config import OpenAISettings, VibeTypeConfig, load_config
from .fonts import FontAssetLoader, FontRequest, build_font_url
from .inference import DeterministicInference, OpenAIStyleInference, StyleInference
from .llm import OpenAIStyleClient
from .models import ColorIntent, Error, FontVariant, InputState, Loading, Resolved
from .orchestrator import InputOrchestrator
from .phrases import PhraseDetector, PhraseResolver
from .resolver import TieredResolver
from .store import build_store

logger = logging.getLogger(__name__)

app = typer.Typer(help="VibeType CLI: style words by meaning.", no_args_is_help=True)


class ResolutionPayload(TypedDict):
    word: str
    family: str
    weight: int
    style: str
    colorIntent: Dict[str, float]
    color: Dict[str, str]
    source: str


@app.command()
def resolve(
    words: List[str] = typer.Argument(..., help="Words to style."),
    config: Path | None = typer.Option(None, "--config", "-c"),
    regenerate: bool = typer.Option(
        False, "--regenerate", help="Skip vetted styles and the cache; ask inference."
    ),
    offline: bool | None = typer.Option(
        None,
        "--offline/--no-offline",
        help="Use the deterministic offline inference when OpenAI is disabled.",
    ),
    openai_enabled: bool | None = typer.Option(
        None,
        "--openai-enabled/--openai-disabled",
        help="Toggle OpenAI-backed inference.",
    ),
    openai_model: str | None = typer.Option(
        None, "--openai-model", help="OpenAI model identifier (e.g., gpt-4o-mini)."
    ),
    openai_api_key_env: str | None = typer.Option(
        None,
        "--openai-api-key-env",
        help="Environment variable to read the OpenAI API key from.",
    ),
    store_path: Path | None = typer.Option(
        None, "--store-path", help="JSON file used as the persistent variant store."
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level."),
) -> None:
    """Resolve each word to a font variant and emit the results as JSON."""
    _configure_logging(log_level)
    cfg = load_config(config)
    _apply_overrides(
        cfg, offline, openai_enabled, openai_model, openai_api_key_env, store_path
    )
    resolver, _ = _build_resolvers(cfg)
    results = asyncio.run(_resolve_words(resolver, words, regenerate))
    typer.echo(json.dumps(results, indent=2))


@app.command()
def detect(
    words: List[str] = typer.Argument(..., help="Word sequence to scan for phrases."),
    config: Path | None = typer.Option(None, "--config", "-c"),
    offline: bool | None = typer.Option(None, "--offline/--no-offline"),
    openai_enabled: bool | None = typer.Option(
        None,
        "--openai-enabled/--openai-disabled",
        help="Toggle OpenAI-backed inference.",
    ),
    openai_model: str | None = typer.Option(None, "--openai-model"),
    store_path: Path | None = typer.Option(None, "--store-path"),
    log_level: str = typer.Option("WARNING", "--log-level"),
) -> None:
    """Detect multi-word phrases and resolve each one to a shared variant."""
    _configure_logging(log_level)
    cfg = load_config(config)
    _apply_overrides(cfg, offline, openai_enabled, openai_model, None, store_path)
    _, phrase_resolver = _build_resolvers(cfg)
    phrases = asyncio.run(_detect_phrases(phrase_resolver, words))
    typer.echo(json.dumps({"phrases": phrases}, indent=2))


@app.command("type")
def type_text(
    text: str = typer.Argument(..., help="Text to run through the input pipeline."),
    config: Path | None = typer.Option(None, "--config", "-c"),
    load_fonts: bool = typer.Option(
        False, "--load-fonts/--no-load-fonts", help="Fetch glyphs from the css2 API."
    ),
    offline: bool | None = typer.Option(None, "--offline/--no-offline"),
    openai_enabled: bool | None = typer.Option(
        None,
        "--openai-enabled/--openai-disabled",
        help="Toggle OpenAI-backed inference.",
    ),
    openai_model: str | None = typer.Option(None, "--openai-model"),
    store_path: Path | None = typer.Option(None, "--store-path"),
    log_level: str = typer.Option("WARNING", "--log-level"),
) -> None:
    """Feed text to the orchestrator, wait for quiescence and print the state."""
    _configure_logging(log_level)
    cfg = load_config(config)
    _apply_overrides(cfg, offline, openai_enabled, openai_model, None, store_path)
    state = asyncio.run(_run_orchestrator(cfg, text, load_fonts))
    typer.echo(json.dumps(state_payload(state), indent=2))


@app.command("font-url")
def font_url(
    text: str = typer.Argument(..., help="Characters the stylesheet must cover."),
    family: str = typer.Option("Inter", "--family"),
    weight: int = typer.Option(400, "--weight"),
    style: str = typer.Option("normal", "--style"),
    config: Path | None = typer.Option(None, "--config", "-c"),
) -> None:
    """Print the css2 stylesheet URL for one variant and text."""
    cfg = load_config(config)
    if style not in ("normal", "italic"):
        raise typer.BadParameter("style must be 'normal' or 'italic'.")
    variant = FontVariant(
        family=family,
        weight=weight,
        style=style,  # type: ignore[arg-type]
        color_intent=ColorIntent(0.0, 0.0, 60.0),
    )
    typer.echo(build_font_url([FontRequest(variant, text)], cfg.loader.css_base_url))


@app.command("print-config")
def print_config() -> None:
    """Print the default configuration as YAML."""
    cfg = VibeTypeConfig()
    typer.echo(yaml.safe_dump(cfg.to_dict(), sort_keys=False))


def main() -> None:
    app()


def state_payload(state: InputState) -> Dict[str, Any]:
    """Serialize an InputState into a JSON-friendly dictionary."""
    words: List[Dict[str, Any]] = []
    for word in state.words:
        entry: Dict[str, Any] = {
            "id": word.token.id,
            "raw": word.token.raw,
            "normalized": word.token.normalized,
            "position": word.token.position,
            "status": word.resolution.status,
            "fontLoaded": word.font_loaded,
            "phraseGroupId": word.phrase_group_id,
        }
        resolution = word.resolution
        if isinstance(resolution, Resolved):
            entry["variant"] = resolution.variant.to_dict()
            entry["source"] = resolution.source
        elif isinstance(resolution, Loading):
            entry["requestId"] = resolution.request_id
        elif isinstance(resolution, Error):
            entry["message"] = resolution.message
        words.append(entry)
    return {"rawText": state.raw_text, "words": words}


async def _resolve_words(
    resolver: TieredResolver, words: List[str], regenerate: bool
) -> List[ResolutionPayload]:
    payload: List[ResolutionPayload] = []
    for word in words:
        if regenerate:
            result = await resolver.regenerate_word(word)
        else:
            result = await resolver.resolve_word(word)
        variant = result.variant
        payload.append(
            {
                "word": word,
                "family": variant.family,
                "weight": variant.weight,
                "style": variant.style,
                "colorIntent": variant.color_intent.to_dict(),
                "color": {
                    "light": derive_color(variant.color_intent, "light"),
                    "dark": derive_color(variant.color_intent, "dark"),
                },
                "source": result.source,
            }
        )
    await resolver.drain()
    return payload


async def _detect_phrases(
    phrase_resolver: PhraseResolver, words: List[str]
) -> List[Dict[str, Any]]:
    resolved = await phrase_resolver.resolve_phrases(words)
    await phrase_resolver.drain()
    return [
        {
            "words": phrase.words,
            "startIndex": phrase.start_index,
            "endIndex": phrase.end_index,
            "reason": phrase.reason,
            "variant": phrase.variant.to_dict(),
            "source": phrase.source,
        }
        for phrase in resolved
    ]


async def _run_orchestrator(
    config: VibeTypeConfig, text: str, load_fonts: bool
) -> InputState:
    resolver, phrase_resolver = _build_resolvers(config)
    font_loader = FontAssetLoader(config.loader) if load_fonts else None
    orchestrator = InputOrchestrator(
        resolver.resolve_word,
        phrase_resolver,
        font_loader,
        settings=config.orchestrator,
        word_regenerator=resolver.regenerate_word,
        phrase_regenerator=resolver.regenerate_phrase,
    )
    try:
        orchestrator.set_text(text)
        await orchestrator.wait_idle()
        await phrase_resolver.drain()
    finally:
        await orchestrator.aclose()
    return orchestrator.state


def _build_resolvers(config: VibeTypeConfig) -> Tuple[TieredResolver, PhraseResolver]:
    """Assemble the tiered resolver and phrase resolver for the current run."""
    cache = VariantCache(build_store(config.cache.store_path), config.cache)
    inference = _build_inference(config)
    resolver = TieredResolver.from_config(config, cache, inference)
    detector = PhraseDetector(
        cache, inference, inference_timeout=config.inference_timeout
    )
    return resolver, PhraseResolver(detector, resolver)


def _build_inference(config: VibeTypeConfig) -> StyleInference | None:
    """Instantiate the configured inference capability, if any."""
    if config.openai.enabled:
        api_key = _resolve_openai_api_key(config.openai)
        client = OpenAIStyleClient(config.openai, api_key=api_key)
        return OpenAIStyleInference(client)
    if config.offline_inference:
        return DeterministicInference()
    logger.warning(
        "No inference capability configured; unknown words use the fallback variant."
    )
    return None


def _apply_overrides(
    config: VibeTypeConfig,
    offline: bool | None,
    openai_enabled: bool | None,
    openai_model: str | None,
    openai_api_key_env: str | None,
    store_path: Path | None,
) -> None:
    """Override inference and store settings from CLI flags."""
    if offline is not None:
        config.offline_inference = offline
    settings = config.openai
    if openai_enabled is not None:
        settings.enabled = openai_enabled
    if openai_model:
        settings.model = openai_model
    if openai_api_key_env:
        settings.api_key_env = openai_api_key_env
    if store_path:
        config.cache.store_path = str(store_path)


def _resolve_openai_api_key(settings: OpenAISettings) -> str:
    """Resolve the API key from explicit config or the configured environment variable."""
    if settings.api_key:
        return settings.api_key
    env_name = settings.api_key_env or "OPENAI_API_KEY"
    if env_name in os.environ:
        return os.environ[env_name]
    raise RuntimeError(
        "OpenAI API key not provided. Set it in the config or the configured environment variable."
    )


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    main()
