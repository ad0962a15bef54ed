from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Tuple

from .models import FONT_WEIGHTS, FontStyle

logger = logging.getLogger(__name__)

FontCategory = Literal["serif", "sans-serif", "display", "handwriting", "monospace"]

DEFAULT_FAMILY = "Inter"


@dataclass(frozen=True, slots=True)
class FontEntry:
    """A Google Fonts family the inference capability may pick from."""

    family: str
    category: FontCategory
    weights: Tuple[int, ...]
    has_italic: bool
    vibe: str


# Curated, expressive families grouped by category.
# fmt: off
FONT_CATALOG: Tuple[FontEntry, ...] = (
    FontEntry("Bebas Neue", "display", (400,), False, "bold, condensed, industrial, powerful"),
    FontEntry("Anton", "display", (400,), False, "heavy, impactful, headlines"),
    FontEntry("Righteous", "display", (400,), False, "retro, groovy, fun"),
    FontEntry("Bangers", "display", (400,), False, "comic book, loud, playful"),
    FontEntry("Permanent Marker", "display", (400,), False, "handwritten, casual, graffiti"),
    FontEntry("Alfa Slab One", "display", (400,), False, "slab serif, bold, strong"),
    FontEntry("Bungee", "display", (400,), False, "urban, signage, bold"),
    FontEntry("Rubik Mono One", "display", (400,), False, "geometric, heavy, modern"),
    FontEntry("Black Ops One", "display", (400,), False, "military, stencil, tactical"),
    FontEntry("Creepster", "display", (400,), False, "horror, spooky, halloween"),
    FontEntry("Fascinate", "display", (400,), False, "art deco, elegant display"),
    FontEntry("Faster One", "display", (400,), False, "speed, racing, motion"),
    FontEntry("Fredoka", "display", (300, 400, 500, 600, 700), False, "friendly, rounded, playful"),
    FontEntry("Lacquer", "display", (400,), False, "brush stroke, artistic, expressive"),
    FontEntry("Luckiest Guy", "display", (400,), False, "cartoon, fun, bouncy"),
    FontEntry("Modak", "display", (400,), False, "indian, decorative, festive"),
    FontEntry("Nosifer", "display", (400,), False, "horror, dripping, scary"),
    FontEntry("Rubik Wet Paint", "display", (400,), False, "wet paint, dripping, artistic"),
    FontEntry("Shrikhand", "display", (400,), False, "indian, bold, festive"),
    FontEntry("Ultra", "display", (400,), False, "ultra bold, heavy, impactful"),
    FontEntry("Playfair Display", "serif", (400, 500, 600, 700, 800, 900), True, "elegant, editorial, luxury"),
    FontEntry("Cinzel", "serif", (400, 500, 600, 700, 800, 900), False, "classical, roman, inscriptional"),
    FontEntry("Cormorant Garamond", "serif", (300, 400, 500, 600, 700), True, "elegant, delicate, literary"),
    FontEntry("Lora", "serif", (400, 500, 600, 700), True, "readable, contemporary, stories"),
    FontEntry("Merriweather", "serif", (300, 400, 700, 900), True, "readable, screen-optimized, pleasant"),
    FontEntry("Crimson Text", "serif", (400, 600, 700), True, "book, old-style, academic"),
    FontEntry("EB Garamond", "serif", (400, 500, 600, 700, 800), True, "classical, timeless, books"),
    FontEntry("Libre Baskerville", "serif", (400, 700), True, "traditional, elegant, readable"),
    FontEntry("Spectral", "serif", (200, 300, 400, 500, 600, 700, 800), True, "modern serif, screen, elegant"),
    FontEntry("Vollkorn", "serif", (400, 500, 600, 700, 800, 900), True, "warm, readable, daily text"),
    FontEntry("Bodoni Moda", "serif", (400, 500, 600, 700, 800, 900), True, "fashion, high contrast, glamour"),
    FontEntry("Fraunces", "serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "wonky, soft, friendly serif"),
    FontEntry("Newsreader", "serif", (200, 300, 400, 500, 600, 700, 800), True, "news, editorial, readable"),
    FontEntry("Bitter", "serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "slab serif, readable, sturdy"),
    FontEntry("Cardo", "serif", (400, 700), True, "scholarly, unicode, historical"),
    FontEntry("Montserrat", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "geometric, urban, modern"),
    FontEntry("Oswald", "sans-serif", (200, 300, 400, 500, 600, 700), False, "condensed, headlines, impactful"),
    FontEntry("Raleway", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "elegant, thin, sophisticated"),
    FontEntry("Poppins", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "geometric, friendly, modern"),
    FontEntry("Work Sans", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "neutral, screen, optimized"),
    FontEntry("Inter", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), False, "ui, technical, clear"),
    FontEntry("Space Grotesk", "sans-serif", (300, 400, 500, 600, 700), False, "tech, futuristic, geometric"),
    FontEntry("DM Sans", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "low contrast, geometric, friendly"),
    FontEntry("Archivo", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "grotesque, strong, versatile"),
    FontEntry("Barlow", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "slightly rounded, friendly, soft"),
    FontEntry("Cabin", "sans-serif", (400, 500, 600, 700), True, "humanist, warm, readable"),
    FontEntry("Exo 2", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "futuristic, tech, sci-fi"),
    FontEntry("Fjalla One", "sans-serif", (400,), False, "condensed, headlines, strong"),
    FontEntry("Josefin Sans", "sans-serif", (100, 200, 300, 400, 500, 600, 700), True, "elegant, vintage, geometric"),
    FontEntry("Karla", "sans-serif", (200, 300, 400, 500, 600, 700, 800), True, "grotesque, quirky, friendly"),
    FontEntry("Manrope", "sans-serif", (200, 300, 400, 500, 600, 700, 800), False, "modern, clean, versatile"),
    FontEntry("Nunito", "sans-serif", (200, 300, 400, 500, 600, 700, 800, 900), True, "rounded, friendly, balanced"),
    FontEntry("Outfit", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), False, "geometric, modern, clean"),
    FontEntry("Quicksand", "sans-serif", (300, 400, 500, 600, 700), False, "rounded, friendly, display"),
    FontEntry("Rubik", "sans-serif", (300, 400, 500, 600, 700, 800, 900), True, "rounded corners, friendly, modern"),
    FontEntry("Sora", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800), False, "geometric, tech, clean"),
    FontEntry("Urbanist", "sans-serif", (100, 200, 300, 400, 500, 600, 700, 800, 900), True, "low contrast, geometric, modern"),
    FontEntry("Dancing Script", "handwriting", (400, 500, 600, 700), False, "casual script, friendly, lively"),
    FontEntry("Sacramento", "handwriting", (400,), False, "monoline script, casual, brush"),
    FontEntry("Pacifico", "handwriting", (400,), False, "brush script, fun, surf"),
    FontEntry("Great Vibes", "handwriting", (400,), False, "elegant script, formal, wedding"),
    FontEntry("Caveat", "handwriting", (400, 500, 600, 700), False, "handwritten, casual, notes"),
    FontEntry("Kalam", "handwriting", (300, 400, 700), False, "handwritten, casual, friendly"),
    FontEntry("Satisfy", "handwriting", (400,), False, "script, casual, flowing"),
    FontEntry("Shadows Into Light", "handwriting", (400,), False, "handwritten, whimsical, light"),
    FontEntry("Indie Flower", "handwriting", (400,), False, "handwritten, cute, personal"),
    FontEntry("Amatic SC", "handwriting", (400, 700), False, "condensed hand, tall, quirky"),
    FontEntry("Architects Daughter", "handwriting", (400,), False, "handwritten, casual, sketchy"),
    FontEntry("Courgette", "handwriting", (400,), False, "medium script, casual, warm"),
    FontEntry("Gloria Hallelujah", "handwriting", (400,), False, "handwritten, comic, fun"),
    FontEntry("Homemade Apple", "handwriting", (400,), False, "very casual, personal, notes"),
    FontEntry("Kaushan Script", "handwriting", (400,), False, "brush script, bold, lively"),
    FontEntry("Lobster", "handwriting", (400,), False, "bold script, retro, fun"),
    FontEntry("Marck Script", "handwriting", (400,), False, "casual script, flowing"),
    FontEntry("Patrick Hand", "handwriting", (400,), False, "handwritten, casual, friendly"),
    FontEntry("Rock Salt", "handwriting", (400,), False, "rough handwritten, edgy"),
    FontEntry("Yellowtail", "handwriting", (400,), False, "vintage script, retro, americana"),
    FontEntry("Fira Code", "monospace", (300, 400, 500, 600, 700), False, "coding, ligatures, technical"),
    FontEntry("JetBrains Mono", "monospace", (100, 200, 300, 400, 500, 600, 700, 800), True, "coding, developer, precise"),
    FontEntry("Source Code Pro", "monospace", (200, 300, 400, 500, 600, 700, 800, 900), True, "coding, adobe, clean"),
    FontEntry("Space Mono", "monospace", (400, 700), True, "futuristic, geometric, mono"),
    FontEntry("Inconsolata", "monospace", (200, 300, 400, 500, 600, 700, 800, 900), False, "humanist mono, readable"),
    FontEntry("Roboto Mono", "monospace", (100, 200, 300, 400, 500, 600, 700), True, "geometric mono, google"),
    FontEntry("Ubuntu Mono", "monospace", (400, 700), True, "linux, friendly mono"),
    FontEntry("Anonymous Pro", "monospace", (400, 700), True, "coding, clear, readable"),
    FontEntry("Courier Prime", "monospace", (400, 700), True, "typewriter, screenplay, classic"),
    FontEntry("Cutive Mono", "monospace", (400,), False, "typewriter, vintage, classic"),
)
# fmt: on


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance between ``a`` and ``b``."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost)
            )
        previous = current
    return previous[-1]


def fuzzy_threshold(family: str) -> int:
    return 2 if len(family) <= 8 else 3


class FontCatalog:
    """Lookup, validation and prompt rendering over a set of font families."""

    def __init__(
        self,
        entries: Iterable[FontEntry] = FONT_CATALOG,
        default_family: str = DEFAULT_FAMILY,
    ) -> None:
        self._entries: Tuple[FontEntry, ...] = tuple(entries)
        self._lookup: Dict[str, FontEntry] = {
            entry.family.lower(): entry for entry in self._entries
        }
        if default_family.lower() not in self._lookup:
            raise ValueError(f"Default family '{default_family}' is not in the catalog.")
        self.default_family = self._lookup[default_family.lower()].family

    def __contains__(self, family: object) -> bool:
        return isinstance(family, str) and family.lower() in self._lookup

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[FontEntry, ...]:
        return self._entries

    def get(self, family: str) -> FontEntry | None:
        return self._lookup.get(family.strip().lower())

    def fuzzy_match(self, name: str) -> str | None:
        """Return the closest family within the length-scaled edit distance."""
        normalized = name.strip().lower()
        exact = self._lookup.get(normalized)
        if exact is not None:
            return exact.family
        best: FontEntry | None = None
        best_distance: int | None = None
        for entry in self._entries:
            distance = levenshtein(normalized, entry.family.lower())
            if distance > fuzzy_threshold(entry.family):
                continue
            if best_distance is None or distance < best_distance:
                best, best_distance = entry, distance
        return best.family if best else None

    def first_in_category(self, category: str | None) -> str | None:
        if not category:
            return None
        wanted = category.strip().lower()
        for entry in self._entries:
            if entry.category == wanted:
                return entry.family
        return None

    def resolve_family(self, name: str, category: str | None = None) -> str:
        """Map an untrusted family name onto a family that exists in the catalog."""
        entry = self.get(name)
        if entry is not None:
            return entry.family
        fuzzy = self.fuzzy_match(name)
        if fuzzy is not None:
            logger.info("Unknown font %r matched to %r", name, fuzzy)
            return fuzzy
        by_category = self.first_in_category(category)
        if by_category is not None:
            logger.warning(
                "Unknown font %r; using %r from category %s", name, by_category, category
            )
            return by_category
        logger.warning("Unknown font %r; falling back to %s", name, self.default_family)
        return self.default_family

    def snap_weight(self, family: str, weight: int) -> int:
        """Return the supported weight of ``family`` closest to ``weight``."""
        entry = self.get(family)
        available = entry.weights if entry else (400,)
        if weight in available:
            return weight
        # Ties go to the lighter weight, matching a left-to-right scan.
        return min(available, key=lambda candidate: abs(candidate - weight))

    def validate_style(self, family: str, style: str) -> FontStyle:
        entry = self.get(family)
        if style == "italic" and entry is not None and entry.has_italic:
            return "italic"
        return "normal"

    def categories(self) -> List[str]:
        seen: List[str] = []
        for entry in self._entries:
            if entry.category not in seen:
                seen.append(entry.category)
        return seen

    def prompt_listing(self) -> str:
        """Render the catalog grouped by category for inclusion in a prompt."""
        sections: List[str] = []
        for category in self.categories():
            fonts = ", ".join(
                f"{entry.family} ({entry.vibe})"
                for entry in self._entries
                if entry.category == category
            )
            sections.append(f"{category.upper()}:\n{fonts}")
        return "\n\n".join(sections)


def nearest_standard_weight(weight: float) -> int:
    """Round an arbitrary number onto the 100..900 weight scale."""
    if math.isnan(weight):
        return 400
    clamped = max(FONT_WEIGHTS[0], min(FONT_WEIGHTS[-1], weight))
    return min(FONT_WEIGHTS, key=lambda candidate: abs(candidate - clamped))
