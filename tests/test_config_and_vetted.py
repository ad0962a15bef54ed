import json
from pathlib import Path

import pytest

from vibetype.config import (
    CacheSettings,
    VibeTypeConfig,
    config_from_dict,
    config_from_yaml,
    load_config,
)
from vibetype.vetted import VettedStyles


def test_load_config_defaults():
    config = load_config(None)
    assert config == VibeTypeConfig()
    assert config.orchestrator.debounce_ms == 300
    assert config.loader.batch_delay_ms == 16
    assert config.cache.schema_version == 1
    assert not config.openai.enabled


def test_config_from_yaml_reads_sections_and_ignores_unknown_keys(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "default_family: Lora",
                "inference_timeout: 5",
                "unknown_option: true",
                "openai:",
                "  enabled: true",
                "  model: gpt-4.1-mini",
                "cache:",
                "  schema_version: 3",
                "  bogus: 1",
                "orchestrator:",
                "  debounce_ms: 50",
            ]
        ),
        encoding="utf-8",
    )

    config = config_from_yaml(path)

    assert config.default_family == "Lora"
    assert config.inference_timeout == 5
    assert config.openai.enabled
    assert config.openai.model == "gpt-4.1-mini"
    assert config.cache.schema_version == 3
    assert config.orchestrator.debounce_ms == 50


def test_config_rejects_non_mapping_sections():
    with pytest.raises(ValueError):
        config_from_dict({"cache": ["not", "a", "mapping"]})


def test_config_yaml_must_be_mapping(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        config_from_yaml(path)


def test_config_accepts_section_instances_and_round_trips():
    config = config_from_dict({"cache": CacheSettings(model_version="v9")})
    assert config.cache.model_version == "v9"
    assert config_from_dict(config.to_dict()) == config


def test_packaged_vetted_styles_load():
    styles = VettedStyles.load()
    assert styles.version == 1
    assert styles.has_word("FIRE")
    assert styles.word("ocean").style == "italic"
    assert styles.phrase("New York") is not None
    assert "carpe diem" in styles.all_phrases()


def test_vetted_styles_skip_malformed_entries(tmp_path: Path):
    path = tmp_path / "vetted.json"
    path.write_text(
        json.dumps(
            {
                "version": 4,
                "words": {
                    "good": {"family": "Lora", "weight": 400, "style": "normal"},
                    "bad": {"weight": 400},
                },
            }
        ),
        encoding="utf-8",
    )

    styles = VettedStyles.load(path)

    assert styles.version == 4
    assert styles.all_words() == ["good"]
    assert styles.word("bad") is None
    assert styles.phrase("anything") is None
