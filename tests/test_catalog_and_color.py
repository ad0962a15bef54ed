import logging

import pytest

from vibetype.catalog import (
    DEFAULT_FAMILY,
    FONT_CATALOG,
    FontCatalog,
    FontEntry,
    fuzzy_threshold,
    levenshtein,
    nearest_standard_weight,
)
from vibetype.color import (
    MAX_CHROMA,
    color_fields_from_response,
    derive_color,
    derive_css_variables,
    normalize_color,
    saturation_to_chroma,
    wrap_hue,
)
from vibetype.models import ColorIntent
from vibetype.resolver import fallback_variant, validate_variant


def test_catalog_contains_default_family():
    catalog = FontCatalog()
    assert DEFAULT_FAMILY in catalog
    assert len(catalog) == len(FONT_CATALOG)
    assert "inter" in catalog


def test_catalog_rejects_unknown_default():
    with pytest.raises(ValueError):
        FontCatalog(default_family="Comic Sans MS")


def test_levenshtein_and_threshold():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("same", "same") == 0
    assert fuzzy_threshold("Lora") == 2
    assert fuzzy_threshold("Playfair Display") == 3


def test_resolve_family_exact_fuzzy_category_default():
    catalog = FontCatalog()
    assert catalog.resolve_family("playfair display") == "Playfair Display"
    assert catalog.resolve_family("Playfiar Display") == "Playfair Display"
    assert catalog.resolve_family("Totally Unknown", "serif") == "Playfair Display"
    assert catalog.resolve_family("Helvetica Neue XYZ") == "Inter"


def test_snap_weight_prefers_supported_weights():
    catalog = FontCatalog()
    assert catalog.snap_weight("Anton", 900) == 400
    assert catalog.snap_weight("Oswald", 900) == 700
    assert catalog.snap_weight("Oswald", 100) == 200
    assert catalog.snap_weight("Inter", 300) == 300


def test_snap_weight_ties_go_lighter():
    entries = [FontEntry("Duo", "serif", (300, 500), False, "test")]
    catalog = FontCatalog(entries, default_family="Duo")
    assert catalog.snap_weight("Duo", 400) == 300


def test_validate_style_drops_unsupported_italic():
    catalog = FontCatalog()
    assert catalog.validate_style("Playfair Display", "italic") == "italic"
    assert catalog.validate_style("Anton", "italic") == "normal"
    assert catalog.validate_style("Inter", "oblique") == "normal"


def test_nearest_standard_weight():
    assert nearest_standard_weight(449) == 400
    assert nearest_standard_weight(1200) == 900
    assert nearest_standard_weight(-5) == 100


def test_nearest_standard_weight_handles_non_finite_values():
    assert nearest_standard_weight(float("inf")) == 900
    assert nearest_standard_weight(float("-inf")) == 100
    assert nearest_standard_weight(float("nan")) == 400


def test_validate_variant_snaps_infinite_weight_to_heaviest():
    variant = validate_variant({"family": "Inter", "weight": float("inf")}, FontCatalog())
    assert variant.weight == 900


def test_prompt_listing_groups_by_category():
    listing = FontCatalog().prompt_listing()
    assert "SERIF:" in listing
    assert "MONOSPACE:" in listing
    assert "Inter (ui, technical, clear)" in listing


def test_wrap_hue_and_normalize_color():
    assert wrap_hue(370) == pytest.approx(10)
    assert wrap_hue(-30) == pytest.approx(330)
    assert wrap_hue(360) == 0.0
    assert wrap_hue(float("nan")) == 0.0
    assert normalize_color(400, 0.9, 10) == pytest.approx((40, MAX_CHROMA, 30))
    assert normalize_color(10, -1, 120) == pytest.approx((10, 0.0, 90))


def test_color_intent_is_normalized_on_construction():
    intent = ColorIntent(hue=-90, chroma=1.5, lightness=95)
    assert intent.hue == pytest.approx(270)
    assert intent.chroma == MAX_CHROMA
    assert intent.lightness == 90


def test_legacy_saturation_maps_to_chroma(caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.WARNING, logger="vibetype.color"):
        hue, chroma, lightness = color_fields_from_response(
            {"hue": 30, "saturation": 50, "lightness": 55}
        )
    assert (hue, lightness) == (30, 55)
    assert chroma == pytest.approx(0.2)
    assert "legacy saturation" in caplog.text
    assert saturation_to_chroma(150) == MAX_CHROMA


def test_color_fields_default_when_missing_or_invalid():
    hue, chroma, lightness = color_fields_from_response({"hue": "red"})
    assert (hue, chroma, lightness) == (220.0, 0.05, 60.0)


def test_derive_color_shifts_lightness_per_mode():
    intent = ColorIntent(200, 0.2, 60)
    assert derive_color(intent, "light") == "oklch(45.0% 0.200 200.0)"
    assert derive_color(intent, "dark") == "oklch(70.0% 0.200 200.0)"
    variables = derive_css_variables(intent)
    assert variables["--vibe-hue"] == "200.0"
    assert variables["--vibe-color-dark"] == "oklch(70.0% 0.200 200.0)"


def test_validate_variant_maps_untrusted_response():
    catalog = FontCatalog()
    variant = validate_variant(
        {
            "family": "Helvetica Neue XYZ",
            "weight": 950,
            "style": "italic",
            "hue": 720,
            "chroma": 2,
            "lightness": 5,
        },
        catalog,
    )
    assert variant.family == "Inter"
    assert variant.weight == 900
    assert variant.style == "normal"
    assert variant.color_intent == ColorIntent(0, MAX_CHROMA, 30)


def test_validate_variant_uses_category_and_defaults():
    catalog = FontCatalog()
    variant = validate_variant(
        {"family": "Unknown Script", "category": "handwriting", "weight": "heavy"},
        catalog,
    )
    assert catalog.get(variant.family).category == "handwriting"
    assert variant.weight in catalog.get(variant.family).weights


def test_fallback_variant_is_neutral():
    variant = fallback_variant()
    assert (variant.family, variant.weight, variant.style) == ("Inter", 400, "normal")
    assert variant.color_intent == ColorIntent(220, 0.05, 60)
