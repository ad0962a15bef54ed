from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Literal, Sequence

from .catalog import FontCatalog
from .llm.openai_client import OpenAIStyleClient, RequestMetadata

logger = logging.getLogger(__name__)

SubjectKind = Literal["word", "phrase"]

STYLE_SYSTEM_PROMPT = (
    "You are a creative typography expert. Given a {kind}, select a Google Font "
    "and an OKLCH color that visually express its meaning, emotion and cultural "
    "associations.\n"
    "Rules:\n"
    "- Pick the family ONLY from the catalog below and report its category.\n"
    "- weight is a multiple of 100 between 100 (whisper) and 900 (shout).\n"
    "- style is \"normal\" or \"italic\" (flowing, graceful, nostalgic).\n"
    "- hue is 0-360, chroma is 0-0.4 (0.05 muted, 0.3 vivid), "
    "lightness is 30-90.\n"
    "- Respond with a JSON object with keys family, category, weight, style, "
    "hue, chroma, lightness.\n"
    "\n"
    "Catalog:\n"
    "{catalog}"
)

STYLE_USER_PROMPT_TEMPLATE = (
    "{kind_title} to style: \"{subject}\"\n"
    "{guidance}"
    "Return only the JSON object."
)

DETECTION_SYSTEM_PROMPT = (
    "You analyze a sequence of words and find contiguous runs that form one "
    "recognized cultural or semantic unit: named entities (people, places), "
    "titles of songs/films/books, fixed idioms, famous expressions and "
    "established compound terms (\"climate change\", \"carpe diem\").\n"
    "Incidental adjacency is NOT a phrase: article + adjective + noun, "
    "generic pairs like \"the cat\" or \"very big\", preposition runs.\n"
    "Be selective; most sequences contain no phrase.\n"
    "Respond with a JSON object {\"phrases\": [{\"words\": [...], "
    "\"startIndex\": int, \"endIndex\": int, \"reason\": str}]} where indices "
    "are inclusive and refer to the numbered list. Use an empty list when "
    "nothing qualifies."
)


@dataclass(slots=True)
class StyleRequest:
    """A word or phrase that needs a variant from the inference capability."""

    subject: str
    kind: SubjectKind = "word"
    guidance: str | None = None


class StyleInference(ABC):
    """
    External capability that proposes variants and detects phrases.

    Responses are untrusted dictionaries: callers validate and clamp them
    before they become a FontVariant.
    """

    @abstractmethod
    async def suggest_variant(self, request: StyleRequest) -> Dict[str, Any]:
        """Return ``{family, weight, style, hue, chroma, lightness}`` for the subject."""
        raise NotImplementedError

    async def detect_phrases(self, words: Sequence[str]) -> Dict[str, Any]:
        """Return ``{"phrases": [...]}``; the default detects nothing."""
        return {"phrases": []}


class CallableInference(StyleInference):
    """Adapt coroutine functions into the StyleInference interface."""

    def __init__(
        self,
        suggest: Callable[[StyleRequest], Awaitable[Dict[str, Any]]],
        detect: Callable[[Sequence[str]], Awaitable[Dict[str, Any]]] | None = None,
    ) -> None:
        self._suggest = suggest
        self._detect = detect

    async def suggest_variant(self, request: StyleRequest) -> Dict[str, Any]:
        return await self._suggest(request)

    async def detect_phrases(self, words: Sequence[str]) -> Dict[str, Any]:
        if self._detect is None:
            return await super().detect_phrases(words)
        return await self._detect(words)


class DeterministicInference(StyleInference):
    """
    Offline stand-in that derives a variant from a stable hash of the subject.

    The same subject always yields the same variant, so demos and tests are
    reproducible without network access.
    """

    def __init__(self, catalog: FontCatalog | None = None) -> None:
        self._catalog = catalog or FontCatalog()

    async def suggest_variant(self, request: StyleRequest) -> Dict[str, Any]:
        seed = hash_string(request.subject.lower())
        entries = self._catalog.entries
        entry = entries[seed % len(entries)]
        weight = entry.weights[seed % len(entry.weights)]
        return {
            "family": entry.family,
            "category": entry.category,
            "weight": weight,
            "style": "italic" if entry.has_italic and seed % 5 == 0 else "normal",
            "hue": seed % 360,
            "chroma": round(0.05 + seeded_random(seed) * 0.25, 3),
            "lightness": 55 + seed % 30,
        }


class OpenAIStyleInference(StyleInference):
    """StyleInference implementation backed by the OpenAI Responses API."""

    def __init__(
        self,
        client: OpenAIStyleClient,
        catalog: FontCatalog | None = None,
        *,
        system_prompt_template: str = STYLE_SYSTEM_PROMPT,
        user_prompt_template: str = STYLE_USER_PROMPT_TEMPLATE,
        detection_prompt: str = DETECTION_SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self._catalog = catalog or FontCatalog()
        self._system_prompt_template = system_prompt_template
        self._user_prompt_template = user_prompt_template
        self._detection_prompt = detection_prompt

    async def suggest_variant(self, request: StyleRequest) -> Dict[str, Any]:
        system_prompt = self._system_prompt_template.format(
            kind=request.kind, catalog=self._catalog.prompt_listing()
        )
        user_prompt = self._user_prompt_template.format(
            kind_title=request.kind.capitalize(),
            subject=request.subject,
            guidance=f"Context: {request.guidance}\n" if request.guidance else "",
        )
        metadata = RequestMetadata(
            task=f"{request.kind}-style",
            subject=request.subject,
            word_count=len(request.subject.split()),
        )
        logger.info("Requesting %s style for %r", request.kind, request.subject)
        return await asyncio.to_thread(
            self._client.complete_json,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            metadata=metadata,
        )

    async def detect_phrases(self, words: Sequence[str]) -> Dict[str, Any]:
        numbered = "\n".join(f'{index}: "{word}"' for index, word in enumerate(words))
        metadata = RequestMetadata(
            task="phrase-detection", subject=" ".join(words), word_count=len(words)
        )
        return await asyncio.to_thread(
            self._client.complete_json,
            system_prompt=self._detection_prompt,
            user_prompt=f"Words (with indices):\n{numbered}",
            metadata=metadata,
            temperature=self._client.settings.detection_temperature,
        )


def hash_string(value: str) -> int:
    """Stable 32-bit string hash (``h * 31 + c``), independent of PYTHONHASHSEED."""
    result = 0
    for char in value:
        result = (result * 31 + ord(char)) & 0xFFFFFFFF
    if result & 0x80000000:
        result -= 1 << 32
    return abs(result)


def seeded_random(seed: int) -> float:
    state = (seed * 1103515245 + 12345) & 0x7FFFFFFF
    return state / 0x7FFFFFFF
