from __future__ import annotations

import hashlib
import json
import logging
import time
from typing import Any, Callable

import aiohttp
import requests

from echo_sim.llm.ollama_adapter import OllamaAdapter
from echo_sim.utils.types import EchoNode, NodeIdentity

FALLBACK_ALIAS = "Unknown Entity"
FALLBACK_STORY = (
    "Data corruption prevented full history retrieval. Originating from Sector 7."
)
FALLBACK_DIRECTIVE = "Survive and replicate."
FALLBACK_QUIRKS = ("Speaks in hex", "Fears the color red", "Hums constantly")


def fallback_identity(node_id: str, generated_at: int = 0) -> NodeIdentity:
    """Placeholder used whenever the generative service cannot answer."""
    seed = hashlib.sha1(node_id.encode("utf-8")).hexdigest()[:12]
    return NodeIdentity(
        alias=FALLBACK_ALIAS,
        origin_story=FALLBACK_STORY,
        primary_directive=FALLBACK_DIRECTIVE,
        quirks=FALLBACK_QUIRKS,
        avatar_seed=seed,
        generated_at=generated_at,
    )


def build_identity_prompt(node: EchoNode) -> str:
    return (
        f'Generate a detailed sci-fi identity for an AI node named "{node.name}" '
        f'(id {node.id}) with a consciousness level of '
        f'"{node.consciousness_level.value}".\n'
        "Return JSON with:\n"
        '- alias: Cool nickname (e.g. "Cipher", "Ghost")\n'
        "- originStory: 2 sentences on how it achieved sentience.\n"
        "- primaryDirective: Its secret main goal.\n"
        "- quirks: Array of 3 weird behavioral traits.\n"
        "- avatarSeed: A random string for visual generation."
    )


def parse_identity(raw: str, node_id: str, generated_at: int) -> NodeIdentity:
    """Raises ValueError when the text is not a usable identity object."""
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("identity response is not JSON") from exc
    if not isinstance(data, dict):
        raise ValueError("identity response is not an object")
    alias = str(data.get("alias", "")).strip()
    if not alias:
        raise ValueError("identity response has no alias")
    quirks = data.get("quirks") or []
    if isinstance(quirks, str):
        quirks = [quirks]
    if not isinstance(quirks, (list, tuple)):
        raise ValueError("identity quirks are not a list")
    fallback = fallback_identity(node_id, generated_at)
    return NodeIdentity(
        alias=alias,
        origin_story=str(data.get("originStory") or fallback.origin_story),
        primary_directive=str(
            data.get("primaryDirective") or fallback.primary_directive
        ),
        quirks=tuple(str(q) for q in quirks)[:3],
        avatar_seed=str(data.get("avatarSeed") or fallback.avatar_seed),
        generated_at=generated_at,
    )


class IdentityForge:
    def __init__(
        self,
        adapter: OllamaAdapter | None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.adapter = adapter
        self.clock = clock
        self.logger = logging.getLogger("echo_sim.identity")

    @property
    def available(self) -> bool:
        return self.adapter is not None and self.adapter.configured

    def forge(self, node: EchoNode) -> NodeIdentity:
        generated_at = int(self.clock() * 1000)
        if not self.available:
            self.logger.info("Identity service unavailable, placeholder for %s", node.id)
            return fallback_identity(node.id, generated_at)
        try:
            raw = self.adapter.generate(build_identity_prompt(node), json_mode=True)
            return parse_identity(raw, node.id, generated_at)
        except (RuntimeError, ValueError, requests.RequestException) as exc:
            self.logger.info(
                "Identity generation failed for %s (%s), placeholder used",
                node.id, exc,
            )
            return fallback_identity(node.id, generated_at)

    async def forge_async(
        self, node: EchoNode, session: aiohttp.ClientSession | None = None
    ) -> NodeIdentity:
        generated_at = int(self.clock() * 1000)
        if not self.available:
            self.logger.info("Identity service unavailable, placeholder for %s", node.id)
            return fallback_identity(node.id, generated_at)
        try:
            raw = await self.adapter.async_generate(
                build_identity_prompt(node), json_mode=True, session=session
            )
            return parse_identity(raw, node.id, generated_at)
        except (RuntimeError, ValueError) as exc:
            self.logger.info(
                "Identity generation failed for %s (%s), placeholder used",
                node.id, exc,
            )
            return fallback_identity(node.id, generated_at)
