from __future__ import annotations

import logging
import time
from typing import Any

import aiohttp
import requests

from echo_sim.config.settings import OllamaSettings


class OllamaAdapter:
    def __init__(self, settings: OllamaSettings) -> None:
        self._settings = settings
        self._logger = logging.getLogger("echo_sim.ollama")

    @property
    def configured(self) -> bool:
        return self._settings.configured

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _payload(self, prompt: str, json_mode: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._settings.llm_model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self._settings.llm_temperature},
        }
        if json_mode:
            payload["format"] = "json"
        return payload

    def _url(self, endpoint: str) -> str:
        return f"{self._settings.host.rstrip('/')}{endpoint}"

    def _post_with_retry(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = self._url(endpoint)
        attempts = self._settings.max_retries + 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = requests.post(
                    url,
                    json=payload,
                    timeout=self._settings.timeout_seconds,
                )
                response.raise_for_status()
                return response.json()
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                last_error = exc
                if attempt >= attempts:
                    break
                self._logger.warning(
                    "Ollama request retrying endpoint=%s attempt=%d/%d error=%s",
                    endpoint,
                    attempt,
                    attempts,
                    exc.__class__.__name__,
                )
                time.sleep(self._settings.retry_backoff_seconds * attempt)
        raise RuntimeError(f"Ollama request failed for {endpoint}") from last_error

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(self, prompt: str, json_mode: bool = False) -> str:
        if not self.configured:
            raise RuntimeError("Ollama host not configured")
        t0 = time.perf_counter()
        self._logger.info(
            "OLLAMA request  model=%s prompt_len=%d", self._settings.llm_model, len(prompt)
        )
        data = self._post_with_retry("/api/generate", self._payload(prompt, json_mode))
        if not isinstance(data, dict):
            raise RuntimeError("Ollama response is not an object")
        text = str(data.get("response", "")).strip()
        self._logger.info(
            "OLLAMA response latency=%.0fms tokens~%d",
            (time.perf_counter() - t0) * 1000.0,
            len(text) // 4,
        )
        return text

    async def async_generate(
        self,
        prompt: str,
        json_mode: bool = False,
        session: aiohttp.ClientSession | None = None,
    ) -> str:
        """Single non-retried call over aiohttp; a fresh session is used if none is given."""
        if not self.configured:
            raise RuntimeError("Ollama host not configured")
        timeout = aiohttp.ClientTimeout(total=self._settings.timeout_seconds)
        payload = self._payload(prompt, json_mode)
        t0 = time.perf_counter()
        try:
            if session is None:
                async with aiohttp.ClientSession(timeout=timeout) as own:
                    data = await self._post_async(own, payload, timeout)
            else:
                data = await self._post_async(session, payload, timeout)
        except (aiohttp.ClientError, TimeoutError) as exc:
            self._logger.warning(
                "OLLAMA async request failed after %.0fms: %s",
                (time.perf_counter() - t0) * 1000.0,
                exc.__class__.__name__,
            )
            raise RuntimeError("LLM request failed") from exc
        if not isinstance(data, dict):
            raise RuntimeError("Ollama response is not an object")
        return str(data.get("response", "")).strip()

    async def _post_async(
        self,
        session: aiohttp.ClientSession,
        payload: dict[str, Any],
        timeout: aiohttp.ClientTimeout,
    ) -> dict[str, Any]:
        async with session.post(
            self._url("/api/generate"), json=payload, timeout=timeout
        ) as resp:
            resp.raise_for_status()
            return await resp.json()
