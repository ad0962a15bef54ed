from __future__ import annotations

import asyncio
import itertools
from typing import Any, Dict, List, Sequence

from vibetype.inference import StyleInference, StyleRequest
from vibetype.models import ColorIntent, FontStyle, FontVariant


def make_variant(
    family: str = "Inter",
    weight: int = 400,
    style: FontStyle = "normal",
    hue: float = 200.0,
    chroma: float = 0.1,
    lightness: float = 60.0,
) -> FontVariant:
    """Build a FontVariant with sensible defaults for tests."""
    return FontVariant(
        family=family,
        weight=weight,
        style=style,
        color_intent=ColorIntent(hue, chroma, lightness),
    )


class SequentialIds:
    """Deterministic id factory producing ``prefix1``, ``prefix2``, ..."""

    def __init__(self, prefix: str = "w") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self._prefix}{next(self._counter)}"


class RecordingInference(StyleInference):
    """Inference double that records requests and replays canned responses."""

    def __init__(
        self,
        responses: Dict[str, Dict[str, Any]] | None = None,
        default: Dict[str, Any] | None = None,
        phrases: Dict[str, Any] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.responses = responses or {}
        self.default = default or {
            "family": "Lora",
            "weight": 400,
            "style": "normal",
            "hue": 120,
            "chroma": 0.2,
            "lightness": 60,
        }
        self.phrases = phrases or {"phrases": []}
        self.delay = delay
        self.requests: List[StyleRequest] = []
        self.detections: List[List[str]] = []

    async def suggest_variant(self, request: StyleRequest) -> Dict[str, Any]:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return dict(self.responses.get(request.subject, self.default))

    async def detect_phrases(self, words: Sequence[str]) -> Dict[str, Any]:
        self.detections.append(list(words))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.phrases

    @property
    def subjects(self) -> List[str]:
        return [request.subject for request in self.requests]


class FakeFetcher:
    """Stylesheet fetcher double recording every URL it is asked for."""

    def __init__(self, fail: bool = False) -> None:
        self.urls: List[str] = []
        self.fail = fail

    async def __call__(self, url: str) -> str:
        self.urls.append(url)
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("network down")
        return "@font-face {}"
