from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Literal, Mapping, Tuple

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from .models import ColorIntent

logger = logging.getLogger(__name__)

ColorMode = Literal["light", "dark"]

MAX_CHROMA = 0.4
MIN_LIGHTNESS = 30.0
MAX_LIGHTNESS = 90.0
NEUTRAL_HUE = 220.0
NEUTRAL_CHROMA = 0.05
NEUTRAL_LIGHTNESS = 60.0

# Lightness shifts applied per display mode so text stays legible on either background.
_MODE_LIGHTNESS_SHIFT = {"light": -15.0, "dark": 10.0}


def wrap_hue(hue: float) -> float:
    if not math.isfinite(hue):
        return 0.0
    wrapped = hue % 360.0
    # tiny negative hues round up to exactly 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def clamp(value: float, low: float, high: float) -> float:
    if not math.isfinite(value):
        return low
    return max(low, min(high, value))


def normalize_color(
    hue: float, chroma: float, lightness: float
) -> Tuple[float, float, float]:
    """Wrap hue into [0, 360) and clamp chroma and lightness into range."""
    return (
        wrap_hue(float(hue)),
        clamp(float(chroma), 0.0, MAX_CHROMA),
        clamp(float(lightness), MIN_LIGHTNESS, MAX_LIGHTNESS),
    )


def saturation_to_chroma(saturation: float) -> float:
    """Map a legacy HSL saturation (0-100) onto the OKLCH chroma range."""
    return clamp(float(saturation), 0.0, 100.0) / 100.0 * MAX_CHROMA


def color_fields_from_response(data: Mapping[str, Any]) -> Tuple[float, float, float]:
    """
    Extract (hue, chroma, lightness) from an untrusted inference payload.

    Payloads that still use the legacy ``saturation`` field are converted, but
    flagged, since the OKLCH fields are the only supported schema.
    """
    hue = _as_float(data.get("hue"), NEUTRAL_HUE)
    lightness = _as_float(data.get("lightness"), NEUTRAL_LIGHTNESS)
    if data.get("chroma") is not None:
        chroma = _as_float(data.get("chroma"), NEUTRAL_CHROMA)
    elif data.get("saturation") is not None:
        logger.warning(
            "Inference response uses legacy saturation=%s; converting to chroma.",
            data.get("saturation"),
        )
        chroma = saturation_to_chroma(_as_float(data.get("saturation"), 0.0))
    else:
        chroma = NEUTRAL_CHROMA
    return normalize_color(hue, chroma, lightness)


def derive_color(intent: "ColorIntent", mode: ColorMode) -> str:
    """Render the intent as a CSS ``oklch()`` color for the given display mode."""
    lightness = clamp(intent.lightness + _MODE_LIGHTNESS_SHIFT[mode], 0.0, 100.0)
    return f"oklch({lightness:.1f}% {intent.chroma:.3f} {intent.hue:.1f})"


def derive_css_variables(intent: "ColorIntent") -> dict[str, str]:
    return {
        "--vibe-color-light": derive_color(intent, "light"),
        "--vibe-color-dark": derive_color(intent, "dark"),
        "--vibe-hue": f"{intent.hue:.1f}",
        "--vibe-chroma": f"{intent.chroma:.3f}",
        "--vibe-lightness": f"{intent.lightness:.1f}%",
    }


def _as_float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default
