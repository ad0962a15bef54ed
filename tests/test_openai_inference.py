from __future__ import annotations

import asyncio
from typing import Any

import pytest

from vibetype.config import OpenAISettings
from vibetype.inference import OpenAIStyleInference, StyleRequest
from vibetype.llm import openai_client as oa_client


class DummySegment:
    def __init__(self, text: str) -> None:
        self.text = text


class DummyOutput:
    def __init__(self, text: str) -> None:
        self.content = [DummySegment(text)]


class DummyResponse:
    def __init__(self, text: str) -> None:
        self.output = [DummyOutput(text)]


def test_openai_inference_builds_prompts():
    """OpenAIStyleInference injects the subject and catalog into the prompts."""
    captured: dict[str, Any] = {}

    class DummyClient:
        settings = OpenAISettings(detection_temperature=0.1)

        def complete_json(
            self, *, system_prompt: str, user_prompt: str, metadata, temperature=None
        ):
            captured.setdefault("calls", []).append(
                {
                    "system": system_prompt,
                    "user": user_prompt,
                    "metadata": metadata,
                    "temperature": temperature,
                }
            )
            return {"family": "Lora"}

    inference = OpenAIStyleInference(DummyClient())  # type: ignore[arg-type]
    request = StyleRequest(subject="george washington", kind="phrase", guidance="Person")

    result = asyncio.run(inference.suggest_variant(request))
    asyncio.run(inference.detect_phrases(["the", "big", "dog"]))

    assert result == {"family": "Lora"}
    style_call, detect_call = captured["calls"]
    assert "Given a phrase" in style_call["system"]
    assert "Playfair Display (elegant, editorial, luxury)" in style_call["system"]
    assert 'Phrase to style: "george washington"' in style_call["user"]
    assert "Context: Person" in style_call["user"]
    assert style_call["metadata"].task == "phrase-style"
    assert style_call["metadata"].word_count == 2
    assert style_call["temperature"] is None
    assert '2: "dog"' in detect_call["user"]
    assert detect_call["metadata"].task == "phrase-detection"
    assert detect_call["temperature"] == 0.1


def test_openai_style_client_requires_api_key(monkeypatch):
    """Client constructor validates that an API key is provided."""
    monkeypatch.setattr(oa_client, "OpenAI", object())
    settings = OpenAISettings(enabled=True)
    with pytest.raises(ValueError):
        oa_client.OpenAIStyleClient(settings, api_key="")


def test_openai_style_client_retries_then_succeeds(monkeypatch):
    """Client retries failed requests and returns the first decoded payload."""
    attempts = {"count": 0}
    requests: list[dict[str, Any]] = []

    class DummyResponses:
        def create(self, **kwargs: object):
            attempts["count"] += 1
            requests.append(kwargs)
            if attempts["count"] == 1:
                raise RuntimeError("transient error")
            return DummyResponse('```json\n{"family": "Lora", "weight": 500}\n```')

    class DummyOpenAI:
        def __init__(self, **_: object) -> None:
            self.responses = DummyResponses()

    monkeypatch.setattr(oa_client, "OpenAI", DummyOpenAI)
    monkeypatch.setattr(oa_client.time, "sleep", lambda _: None)
    settings = OpenAISettings(enabled=True, model="gpt-4o-mini")
    client = oa_client.OpenAIStyleClient(settings, api_key="token")
    metadata = oa_client.RequestMetadata(task="word-style", subject="ember", word_count=1)

    result = client.complete_json(
        system_prompt="system", user_prompt="Word to style", metadata=metadata
    )

    assert result == {"family": "Lora", "weight": 500}
    assert attempts["count"] == 2
    assert requests[-1]["model"] == "gpt-4o-mini"
    assert requests[-1]["text"] == {"format": {"type": "json_object"}}
    assert requests[-1]["temperature"] == settings.temperature


def test_openai_style_client_gives_up_after_retries(monkeypatch):
    class DummyResponses:
        def create(self, **_: object):
            return DummyResponse("not json")

    class DummyOpenAI:
        def __init__(self, **_: object) -> None:
            self.responses = DummyResponses()

    monkeypatch.setattr(oa_client, "OpenAI", DummyOpenAI)
    monkeypatch.setattr(oa_client.time, "sleep", lambda _: None)
    client = oa_client.OpenAIStyleClient(OpenAISettings(enabled=True), api_key="token")
    metadata = oa_client.RequestMetadata(task="word-style", subject="ember")

    with pytest.raises(RuntimeError):
        client.complete_json(system_prompt="s", user_prompt="u", metadata=metadata)
