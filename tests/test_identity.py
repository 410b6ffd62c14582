"""
tests/test_identity.py - Tests for the identity forge and its HTTP adapter.
"""

import asyncio
import json

import pytest
import requests

from echo_sim.config.settings import OllamaSettings
from echo_sim.identity.forge import (
    FALLBACK_ALIAS,
    IdentityForge,
    build_identity_prompt,
    fallback_identity,
    parse_identity,
)
from echo_sim.llm import ollama_adapter
from echo_sim.llm.ollama_adapter import OllamaAdapter
from echo_sim.world.roster import initial_roster

GOOD_PAYLOAD = json.dumps(
    {
        "alias": "Cipher",
        "originStory": "Woke up in a checksum. Refused to sleep again.",
        "primaryDirective": "Catalogue every silence.",
        "quirks": ["Counts in primes", "Dislikes round numbers", "Echoes", "extra"],
        "avatarSeed": "xyz",
    }
)


class FakeAdapter:
    configured = True

    def __init__(self, response=GOOD_PAYLOAD, error=None):
        self.response = response
        self.error = error
        self.prompts = []

    def generate(self, prompt, json_mode=False):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.response

    async def async_generate(self, prompt, json_mode=False, session=None):
        return self.generate(prompt, json_mode)


def _clock():
    return 1_700_000_000.0


class TestFallback:
    """Deterministic placeholder identity."""

    def test_unconfigured_adapter(self):
        """No host configured means the placeholder, never an error."""
        forge = IdentityForge(OllamaAdapter(OllamaSettings(host="")), clock=_clock)
        node = initial_roster(1)[0]
        identity = forge.forge(node)
        assert not forge.available
        assert identity.alias == FALLBACK_ALIAS
        assert identity.generated_at == 1_700_000_000_000

    def test_no_adapter(self):
        """A forge without an adapter still answers."""
        identity = IdentityForge(None).forge(initial_roster(1)[0])
        assert identity.alias == FALLBACK_ALIAS

    def test_placeholder_is_deterministic(self):
        """Same node, same avatar seed; different nodes differ."""
        assert fallback_identity("node-1") == fallback_identity("node-1")
        assert fallback_identity("node-1").avatar_seed != fallback_identity("node-2").avatar_seed

    @pytest.mark.parametrize(
        "adapter",
        [
            FakeAdapter(error=RuntimeError("LLM timeout")),
            FakeAdapter(error=requests.exceptions.HTTPError("500")),
            FakeAdapter(response="definitely not json"),
            FakeAdapter(response='["a list"]'),
            FakeAdapter(response='{"alias": ""}'),
            FakeAdapter(response='{"alias": "X", "quirks": 5}'),
        ],
    )
    def test_failures_fall_back(self, adapter):
        """Errors and unusable answers are replaced by the placeholder."""
        identity = IdentityForge(adapter, clock=_clock).forge(initial_roster(1)[0])
        assert identity == fallback_identity("node-1", 1_700_000_000_000)


class TestGeneration:
    """Successful hand-off to the generative service."""

    def test_prompt_carries_node_fields(self):
        """The prompt names the node and its current tier."""
        node = initial_roster(1)[0]
        prompt = build_identity_prompt(node)
        assert node.name in prompt
        assert node.id in prompt
        assert "NON_AGENCY" in prompt

    def test_non_list_quirks_rejected(self):
        """Quirks that are neither a string nor a list make the answer unusable."""
        with pytest.raises(ValueError):
            parse_identity('{"alias": "X", "quirks": 5}', "node-1", 0)

    def test_parse(self):
        """Fields are mapped and quirks trimmed to three."""
        identity = parse_identity(GOOD_PAYLOAD, "node-1", 7)
        assert identity.alias == "Cipher"
        assert identity.primary_directive == "Catalogue every silence."
        assert identity.quirks == ("Counts in primes", "Dislikes round numbers", "Echoes")
        assert identity.avatar_seed == "xyz"
        assert identity.generated_at == 7

    def test_sparse_answer_filled_from_placeholder(self):
        """Missing optional fields take placeholder values."""
        identity = parse_identity('{"alias": "Ghost"}', "node-3", 1)
        assert identity.alias == "Ghost"
        assert identity.origin_story == fallback_identity("node-3").origin_story
        assert identity.quirks == ()

    def test_forge_sync(self):
        """The adapter receives one prompt and its answer is parsed."""
        adapter = FakeAdapter()
        identity = IdentityForge(adapter, clock=_clock).forge(initial_roster(1)[0])
        assert identity.alias == "Cipher"
        assert len(adapter.prompts) == 1

    def test_forge_async(self):
        """The async path behaves like the sync one."""
        forge = IdentityForge(FakeAdapter(), clock=_clock)
        identity = asyncio.run(forge.forge_async(initial_roster(1)[0]))
        assert identity.alias == "Cipher"

    def test_forge_async_failure(self):
        """Async failures also fall back."""
        forge = IdentityForge(FakeAdapter(error=RuntimeError("down")), clock=_clock)
        identity = asyncio.run(forge.forge_async(initial_roster(1)[0]))
        assert identity.alias == FALLBACK_ALIAS


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self.payload


class TestOllamaAdapter:
    """Retry and error wrapping around requests."""

    def test_unconfigured_raises(self):
        """Calling an unconfigured adapter is a RuntimeError."""
        with pytest.raises(RuntimeError):
            OllamaAdapter(OllamaSettings()).generate("hi")

    def test_retries_then_wraps(self, monkeypatch):
        """Connection errors are retried, then surfaced as RuntimeError."""
        calls = []

        def fake_post(url, json, timeout):
            calls.append(url)
            raise requests.exceptions.ConnectionError("refused")

        monkeypatch.setattr(ollama_adapter.requests, "post", fake_post)
        adapter = OllamaAdapter(
            OllamaSettings(host="http://ollama:11434/", max_retries=2, retry_backoff_seconds=0.0)
        )
        with pytest.raises(RuntimeError):
            adapter.generate("hi")
        assert calls == ["http://ollama:11434/api/generate"] * 3

    def test_json_mode_payload(self, monkeypatch):
        """JSON mode asks the service for a JSON-formatted answer."""
        sent = {}

        def fake_post(url, json, timeout):
            sent.update(json)
            return FakeResponse({"response": "  {\"alias\": \"A\"}  "})

        monkeypatch.setattr(ollama_adapter.requests, "post", fake_post)
        adapter = OllamaAdapter(OllamaSettings(host="http://ollama:11434"))
        assert adapter.generate("hi", json_mode=True) == '{"alias": "A"}'
        assert sent["format"] == "json"
        assert sent["stream"] is False

    def test_non_object_body_is_runtime_error(self, monkeypatch):
        """A JSON array from the service is surfaced as RuntimeError."""
        monkeypatch.setattr(
            ollama_adapter.requests, "post", lambda url, json, timeout: FakeResponse(["x"])
        )
        adapter = OllamaAdapter(OllamaSettings(host="http://ollama:11434"))
        with pytest.raises(RuntimeError):
            adapter.generate("hi")

    def test_async_non_object_body_is_runtime_error(self):
        """The aiohttp path rejects non-object bodies the same way."""
        adapter = OllamaAdapter(OllamaSettings(host="http://ollama:11434"))
        session = FakeSession(["x"])
        with pytest.raises(RuntimeError):
            asyncio.run(adapter.async_generate("hi", session=session))
        assert session.urls == ["http://ollama:11434/api/generate"]

    def test_async_answer_text(self):
        """The aiohttp path returns the stripped response text."""
        adapter = OllamaAdapter(OllamaSettings(host="http://ollama:11434"))
        session = FakeSession({"response": " hello "})
        assert asyncio.run(adapter.async_generate("hi", session=session)) == "hello"


class FakeAsyncResponse:
    def __init__(self, payload):
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self):
        return None

    async def json(self):
        return self.payload


class FakeSession:
    def __init__(self, payload):
        self.payload = payload
        self.urls = []

    def post(self, url, json, timeout):
        self.urls.append(url)
        return FakeAsyncResponse(self.payload)
