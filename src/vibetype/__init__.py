"""
vibetype package exports the resolution pipeline for library consumers.
"""

from __future__ import annotations

from .cache import VariantCache
from .catalog import FONT_CATALOG, FontCatalog
from .config import VibeTypeConfig, config_from_dict, config_from_yaml, load_config
from .fonts import FontAssetLoader, build_font_url
from .inference import (
    CallableInference,
    DeterministicInference,
    OpenAIStyleInference,
    StyleInference,
)
from .models import ColorIntent, FontVariant, InputState, WordResolutionResult
from .orchestrator import InputOrchestrator
from .phrases import PhraseDetector, PhraseResolver
from .resolver import TieredResolver
from .state import reduce
from .store import JsonFileStore, KeyValueStore, MemoryStore
from .tokenization import reconcile_words, tokenize

__all__ = [
    "FONT_CATALOG",
    "CallableInference",
    "ColorIntent",
    "DeterministicInference",
    "FontAssetLoader",
    "FontCatalog",
    "FontVariant",
    "InputOrchestrator",
    "InputState",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "OpenAIStyleInference",
    "PhraseDetector",
    "PhraseResolver",
    "StyleInference",
    "TieredResolver",
    "VariantCache",
    "VibeTypeConfig",
    "WordResolutionResult",
    "build_font_url",
    "config_from_dict",
    "config_from_yaml",
    "load_config",
    "reconcile_words",
    "reduce",
    "tokenize",
]

__version__ = "0.1.0"
