"""
HTTP client for the text-generation endpoint (OpenAI-compatible chat completions).

Only the transport lives here; prompt wording belongs to callers.  Failures
are raised as typed GenerationFailure subclasses so batch accounting can
tell a timeout or an exhausted balance from an ordinary error.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from notegen.config import settings
from notegen.services.errors import (
    GenerationFailure,
    GenerationTimeout,
    InsufficientBalanceError,
)

logger = logging.getLogger(__name__)


class GenerationClient:
    """Async wrapper around one chat-completions endpoint."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_concurrent: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_url = api_url or settings.GENERATION_API_URL
        self.api_key = api_key if api_key is not None else settings.GENERATION_API_KEY
        self.model = model or settings.GENERATION_MODEL
        self.timeout = timeout or settings.GENERATION_TIMEOUT
        self.max_tokens = max_tokens or settings.GENERATION_MAX_TOKENS
        self._transport = transport
        self._semaphore = asyncio.Semaphore(max_concurrent or settings.BATCH_CONCURRENCY)

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def _payload(self, prompt: str, system_message: Optional[str]) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if system_message:
            messages.append({"role": "system", "content": system_message})
        messages.append({"role": "user", "content": prompt})
        return {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": 0.7,
        }

    async def generate(self, prompt: str, system_message: Optional[str] = None) -> str:
        """
        Send *prompt* and return the first choice's message content.

        Raises:
            GenerationTimeout:        the request exceeded the timeout.
            InsufficientBalanceError: the endpoint answered HTTP 402.
            GenerationFailure:        any other transport or HTTP error, or
                                      a response without content.
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with self._semaphore:
            try:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout), transport=self._transport
                ) as client:
                    resp = await client.post(
                        self.api_url, json=self._payload(prompt, system_message), headers=headers
                    )
            except httpx.TimeoutException as exc:
                logger.error("generate: request timed out after %.0f s", self.timeout)
                raise GenerationTimeout(f"Generation timed out after {self.timeout:.0f}s") from exc
            except httpx.HTTPError as exc:
                logger.error("generate: transport error: %s", exc)
                raise GenerationFailure(f"Generation request failed: {exc}") from exc

        if resp.status_code == 402:
            logger.error("generate: insufficient balance (HTTP 402)")
            raise InsufficientBalanceError("Insufficient balance for generation")
        if resp.status_code != 200:
            logger.error("generate: HTTP %d: %s", resp.status_code, resp.text[:300])
            raise GenerationFailure(f"Generation endpoint returned HTTP {resp.status_code}")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise GenerationFailure("Generation response had no content") from exc
        if not content:
            raise GenerationFailure("Generation response was empty")
        return content
