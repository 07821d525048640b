from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Optional

import httpx

from .config import PLACEHOLDER_OPENAI_KEY, PipelineConfig, load_env_once
from .errors import ServiceUnavailable
from .prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class SerializedGenerationClient:
    """
    Chat-completion client that allows one in-flight request at a time.

    Concurrent submit() callers queue on a lock; after each call the next
    caller waits out config.generation_pause_seconds before dispatching.
    No retries happen here.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        config: Optional[PipelineConfig] = None,
        api_key: Optional[str] = None,
        *,
        debug_env: bool = False,
    ):
        load_env_once(debug=debug_env)
        self.client = client
        self.config = config or PipelineConfig()
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self.model = self.config.model
        self._lock = asyncio.Lock()
        self._last_finished: Optional[float] = None

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key) and self.api_key != PLACEHOLDER_OPENAI_KEY

    async def submit(self, prompt: str) -> str:
        async with self._lock:
            if self._last_finished is not None:
                wait = self.config.generation_pause_seconds - (time.monotonic() - self._last_finished)
                if wait > 0:
                    await asyncio.sleep(wait)
            try:
                return await self._call(prompt)
            finally:
                self._last_finished = time.monotonic()

    async def _call(self, prompt: str) -> str:
        if not self.has_credential:
            raise ServiceUnavailable("Missing OpenAI API key. Set OPENAI_API_KEY in the environment or .env.")

        body = {
            "model": self.model,
            "temperature": self.config.temperature,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start = time.monotonic()
        try:
            resp = await self.client.post(
                self.config.generation_base_url,
                json=body,
                headers=headers,
                timeout=self.config.generation_timeout_seconds,
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "[llm] HTTP %s from generation service: %s",
                exc.response.status_code,
                exc.response.text[:200],
            )
            raise ServiceUnavailable(f"Generation service returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("[llm] request failed: %s: %s", type(exc).__name__, exc)
            raise ServiceUnavailable(f"Generation request failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise ServiceUnavailable("Generation service returned invalid JSON") from exc

        content = None
        if isinstance(payload, dict):
            choices = payload.get("choices")
            if isinstance(choices, list) and choices and isinstance(choices[0], dict):
                message = choices[0].get("message")
                if isinstance(message, dict):
                    content = message.get("content")
        if not content or not isinstance(content, str):
            raise ServiceUnavailable("Empty response from generation service")

        logger.info("[llm] model=%s chars=%d elapsed=%.2fs", self.model, len(content), time.monotonic() - start)
        return content
