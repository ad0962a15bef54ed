from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Literal, Mapping, Union

from .color import normalize_color

FontStyle = Literal["normal", "italic"]
ResolutionSource = Literal["vetted", "cache", "llm"]

FONT_WEIGHTS = (100, 200, 300, 400, 500, 600, 700, 800, 900)


@dataclass(frozen=True, slots=True)
class ColorIntent:
    """Perceptual (OKLCH) color for a variant."""

    hue: float
    chroma: float
    lightness: float

    def __post_init__(self) -> None:
        hue, chroma, lightness = normalize_color(self.hue, self.chroma, self.lightness)
        object.__setattr__(self, "hue", hue)
        object.__setattr__(self, "chroma", chroma)
        object.__setattr__(self, "lightness", lightness)

    def to_dict(self) -> dict[str, float]:
        return {"hue": self.hue, "chroma": self.chroma, "lightness": self.lightness}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ColorIntent":
        return cls(
            hue=float(data.get("hue", 0.0)),
            chroma=float(data.get("chroma", 0.0)),
            lightness=float(data.get("lightness", 60.0)),
        )


@dataclass(frozen=True, slots=True)
class FontVariant:
    """A complete styling decision for a word or phrase."""

    family: str
    weight: int
    style: FontStyle
    color_intent: ColorIntent

    @property
    def key(self) -> str:
        """Identity of the font asset (color does not affect glyphs)."""
        return f"{self.family}:{self.weight}:{self.style}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "family": self.family,
            "weight": self.weight,
            "style": self.style,
            "colorIntent": self.color_intent.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FontVariant":
        color = data.get("colorIntent") or data.get("color_intent") or {}
        style = data.get("style", "normal")
        return cls(
            family=str(data["family"]),
            weight=int(data.get("weight", 400)),
            style="italic" if style == "italic" else "normal",
            color_intent=ColorIntent.from_dict(color),
        )


@dataclass(frozen=True, slots=True)
class WordToken:
    """A retained whitespace-delimited token of the input text."""

    id: str
    raw: str
    normalized: str
    position: int


@dataclass(frozen=True, slots=True)
class Pending:
    status: Literal["pending"] = "pending"


@dataclass(frozen=True, slots=True)
class Loading:
    request_id: str
    status: Literal["loading"] = "loading"


@dataclass(frozen=True, slots=True)
class Resolved:
    variant: FontVariant
    source: ResolutionSource
    status: Literal["resolved"] = "resolved"


@dataclass(frozen=True, slots=True)
class Error:
    message: str
    status: Literal["error"] = "error"


WordResolution = Union[Pending, Loading, Resolved, Error]

PENDING = Pending()


@dataclass(frozen=True, slots=True)
class WordState:
    """A token together with its resolution and font readiness."""

    token: WordToken
    resolution: WordResolution = PENDING
    font_loaded: bool = False
    phrase_group_id: str | None = None


@dataclass(frozen=True, slots=True)
class InputState:
    """Everything the rendering layer needs to draw the current text."""

    raw_text: str = ""
    words: tuple[WordState, ...] = ()

    def find(self, word_id: str) -> WordState | None:
        for word in self.words:
            if word.token.id == word_id:
                return word
        return None

    def pending(self) -> List[WordState]:
        return [word for word in self.words if isinstance(word.resolution, Pending)]


@dataclass(slots=True)
class CacheEntry:
    """Persisted variant plus the versions of the logic that produced it."""

    variant: FontVariant
    schema_version: int
    model_version: str
    created_at: float
    hit_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant": self.variant.to_dict(),
            "schemaVersion": self.schema_version,
            "modelVersion": self.model_version,
            "createdAt": self.created_at,
            "hitCount": self.hit_count,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        return cls(
            variant=FontVariant.from_dict(data["variant"]),
            schema_version=int(data.get("schemaVersion", 0)),
            model_version=str(data.get("modelVersion", "")),
            created_at=float(data.get("createdAt", 0.0)),
            hit_count=int(data.get("hitCount", 0)),
        )


@dataclass(frozen=True, slots=True)
class WordResolutionResult:
    variant: FontVariant
    source: ResolutionSource
    # True when the variant is the stand-in used because inference was unavailable.
    fallback: bool = False


@dataclass(slots=True)
class DetectedPhrase:
    """A contiguous run of words recognized as one unit."""

    words: List[str]
    start_index: int
    end_index: int
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "words": list(self.words),
            "startIndex": self.start_index,
            "endIndex": self.end_index,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DetectedPhrase":
        return cls(
            words=[str(word) for word in data.get("words", [])],
            start_index=int(data.get("startIndex", data.get("start_index", -1))),
            end_index=int(data.get("endIndex", data.get("end_index", -1))),
            reason=str(data.get("reason", "")),
        )


@dataclass(slots=True)
class ResolvedPhrase:
    """A detected phrase together with the variant shared by its words."""

    words: List[str]
    start_index: int
    end_index: int
    variant: FontVariant
    source: ResolutionSource
    reason: str = field(default="")
