import asyncio
import json
from pathlib import Path

from vibetype.cache import VariantCache, normalize_phrase
from vibetype.config import CacheSettings
from vibetype.models import DetectedPhrase
from vibetype.store import JsonFileStore, MemoryStore, build_store

from tests.utils import make_variant


def test_word_keys_are_case_sensitive_by_default():
    cache = VariantCache(MemoryStore())
    assert cache.word_key("hapax") == "vibe:word:hapax"
    assert cache.word_key("hapax", capitalized=True) == "vibe:word:hapax:cap"

    insensitive = VariantCache(MemoryStore(), CacheSettings(case_sensitive_keys=False))
    assert insensitive.word_key("hapax", capitalized=True) == "vibe:word:hapax"


def test_phrase_and_detection_keys():
    cache = VariantCache(MemoryStore())
    assert normalize_phrase([" New", "YORK "]) == "new york"
    assert cache.phrase_key(["New", "York"]) == "vibe:phrase:new york"
    assert cache.detection_key(["the", "big", "dog"]) == "vibe:detection:the|big|dog"


def test_word_round_trip_and_hit_counter():
    async def scenario():
        store = MemoryStore()
        cache = VariantCache(store)
        variant = make_variant("Lora", 500)
        await cache.set_word("ember", variant)
        assert await cache.get_word("ember") == variant
        assert await cache.get_word("ember", capitalized=True) is None
        await cache.increment_word_hits("ember")
        await cache.increment_word_hits("ember")
        return await store.get(cache.word_key("ember"))

    raw = asyncio.run(scenario())
    assert raw["hitCount"] == 2
    assert raw["schemaVersion"] == 1
    assert raw["variant"]["colorIntent"]["chroma"] == 0.1


def test_schema_version_bump_invalidates_entries():
    async def scenario():
        store = MemoryStore()
        old = VariantCache(store, CacheSettings(schema_version=2))
        await old.set_word("ember", make_variant())
        await old.set_phrase(["carpe", "diem"], make_variant())
        new = VariantCache(store, CacheSettings(schema_version=3))
        return await new.get_word("ember"), await new.get_phrase(["carpe", "diem"])

    assert asyncio.run(scenario()) == (None, None)


def test_model_version_mismatch_is_a_miss():
    async def scenario():
        store = MemoryStore()
        await VariantCache(store, CacheSettings(model_version="a")).set_word(
            "ember", make_variant()
        )
        return await VariantCache(store, CacheSettings(model_version="b")).get_word(
            "ember"
        )

    assert asyncio.run(scenario()) is None


def test_detection_distinguishes_unchecked_from_empty():
    async def scenario():
        cache = VariantCache(MemoryStore())
        words = ["the", "big", "dog"]
        before = await cache.get_detection(words)
        await cache.set_detection(words, [])
        after = await cache.get_detection(words)
        phrase = DetectedPhrase(["george", "washington"], 0, 1, "person")
        await cache.set_detection(["george", "washington"], [phrase])
        found = await cache.get_detection(["george", "washington"])
        return before, after, found

    before, after, found = asyncio.run(scenario())
    assert before is None
    assert after == []
    assert found == [DetectedPhrase(["george", "washington"], 0, 1, "person")]


def test_malformed_entry_is_a_miss():
    async def scenario():
        store = MemoryStore()
        cache = VariantCache(store)
        await store.set(
            cache.word_key("ember"), {"schemaVersion": 1, "modelVersion": "gpt-4o-mini-v1"}
        )
        return await cache.get_word("ember")

    assert asyncio.run(scenario()) is None


def test_memory_store_ttl_and_sorted_sets(monkeypatch):
    store = MemoryStore()
    now = {"value": 1000.0}
    monkeypatch.setattr("vibetype.store.time.time", lambda: now["value"])

    async def scenario():
        await store.set("k", {"a": 1}, ttl=10)
        await store.zadd("gallery", 2, "ember")
        await store.zadd("gallery", 1, "ash")
        fresh = await store.get("k")
        now["value"] += 11
        expired = await store.get("k")
        return fresh, expired

    fresh, expired = asyncio.run(scenario())
    assert fresh == {"a": 1}
    assert expired is None
    assert store.sorted_set("gallery") == [("ash", 1.0), ("ember", 2.0)]


def test_memory_store_copies_values():
    store = MemoryStore()
    value = {"nested": [1]}
    asyncio.run(store.set("k", value))
    value["nested"].append(2)
    assert asyncio.run(store.get("k")) == {"nested": [1]}


def test_json_file_store_persists_between_instances(tmp_path: Path):
    path = tmp_path / "store" / "variants.json"

    async def write():
        cache = VariantCache(JsonFileStore(path))
        await cache.set_word("ember", make_variant("Lora"))
        await cache.record_gallery("ember", score=5)

    asyncio.run(write())
    assert path.exists()
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert "vibe:word:ember" in payload["values"]

    reopened = JsonFileStore(path)
    cache = VariantCache(reopened)
    assert asyncio.run(cache.get_word("ember")).family == "Lora"
    assert reopened.sorted_set("vibe:gallery") == [("ember", 5.0)]


def test_build_store_selects_backend(tmp_path: Path):
    assert isinstance(build_store(None), MemoryStore)
    assert isinstance(build_store(tmp_path / "s.json"), JsonFileStore)


def test_json_file_store_ignores_non_object_documents(tmp_path: Path):
    path = tmp_path / "variants.json"
    path.write_text("[]", encoding="utf-8")

    store = JsonFileStore(path)

    assert len(store) == 0
    assert asyncio.run(store.get("vibe:word:ember")) is None
    asyncio.run(store.set("vibe:word:ember", {"ok": True}))
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["values"]["vibe:word:ember"]["value"] == {"ok": True}
