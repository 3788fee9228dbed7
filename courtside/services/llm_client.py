"""
courtside/services/llm_client.py
LLM client for the world model

Async client for an OpenAI-compatible chat-completions endpoint
(Moonshot by default). Includes timeout, retry logic and token tracking.

Callers treat a None result as "capability unavailable" and switch to
their local fallback; no exception from this module reaches game logic.
"""
import asyncio
import json
import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from courtside.config.game_config import WorldModelConfig

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Standardized LLM response."""
    raw_text: str
    model: str
    latency_ms: int
    total_tokens: Optional[int]
    success: bool
    error: Optional[str] = None


class LLMError(Exception):
    """LLM call failed."""
    def __init__(self, message: str, retryable: bool = False):
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class LLMTimeoutError(LLMError):
    """LLM call timed out."""
    def __init__(self, timeout_seconds: float):
        super().__init__(f"LLM timeout after {timeout_seconds}s", retryable=True)
        self.timeout_seconds = timeout_seconds


class LLMMalformedError(LLMError):
    """LLM returned malformed output."""
    def __init__(self, message: str):
        super().__init__(message, retryable=False)


_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_BARE_JSON = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> Dict[str, Any]:
    """
    Pull the first JSON object out of model output.

    Accepts a ```json fenced block or a bare {...} span.

    Raises:
        LLMMalformedError: No object found or it does not parse
    """
    if not text:
        raise LLMMalformedError("Empty response")
    match = _FENCED_JSON.search(text) or _BARE_JSON.search(text)
    if not match:
        raise LLMMalformedError("No JSON object in response")
    candidate = match.group(1) if match.re is _FENCED_JSON else match.group(0)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise LLMMalformedError(f"Invalid JSON: {e}")
    if not isinstance(data, dict):
        raise LLMMalformedError("Top-level JSON value is not an object")
    return data


class LLMClient:
    """
    Chat-completions client with timeout and bounded retries.

    Every request is wrapped in asyncio.wait_for so a hung provider can
    never stall a simulation loop longer than the configured timeout.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key if api_key is not None else (
            os.getenv("WORLD_MODEL_API_KEY") or os.getenv("KIMI_API_KEY")
        )
        self.api_url = api_url or WorldModelConfig.API_URL
        self.model = model or WorldModelConfig.MODEL
        self.timeout_seconds = timeout_seconds or WorldModelConfig.TIMEOUT_SECONDS
        self.max_retries = WorldModelConfig.MAX_RETRIES if max_retries is None else max_retries
        self.transport = transport
        self.total_tokens_used = 0

    def is_configured(self) -> bool:
        """Check if an API key is configured."""
        return bool(self.api_key)

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds), transport=self.transport
        ) as client:
            response = await client.post(self.api_url, headers=headers, json=payload)
            response.raise_for_status()
            return response.json()

    async def call(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.8,
        max_tokens: int = 800
    ) -> LLMResponse:
        """
        Send a chat request.

        Returns:
            LLMResponse; success is False when every attempt failed
        """
        if not self.is_configured():
            return LLMResponse(
                raw_text="", model=self.model, latency_ms=0, total_tokens=None,
                success=False, error="not configured"
            )

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        start_time = time.time()
        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                data = await asyncio.wait_for(self._post(payload), timeout=self.timeout_seconds)
                content = data["choices"][0]["message"]["content"]
                tokens_used = (data.get("usage") or {}).get("total_tokens")
                if tokens_used:
                    self.total_tokens_used += tokens_used
                latency = int((time.time() - start_time) * 1000)
                logger.info(f"World model call: {tokens_used} tokens in {latency}ms")
                return LLMResponse(
                    raw_text=content or "",
                    model=self.model,
                    latency_ms=latency,
                    total_tokens=tokens_used,
                    success=True,
                )
            except asyncio.TimeoutError:
                last_error = f"Timeout after {self.timeout_seconds}s"
                logger.warning(f"World model timeout (attempt {attempt + 1}/{self.max_retries + 1})")
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(f"World model HTTP error (attempt {attempt + 1}/{self.max_retries + 1}): {e}")
            except (KeyError, IndexError, TypeError, ValueError) as e:
                last_error = f"Unexpected response shape: {e}"
                logger.warning(f"World model returned an unexpected payload: {e}")
                break

            if attempt < self.max_retries:
                await asyncio.sleep(1)

        return LLMResponse(
            raw_text="",
            model=self.model,
            latency_ms=int((time.time() - start_time) * 1000),
            total_tokens=None,
            success=False,
            error=last_error,
        )

    async def chat(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.8,
        max_tokens: int = 800
    ) -> Optional[str]:
        """Plain text completion, or None if unavailable."""
        response = await self.call(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response.success:
            return None
        return response.raw_text.strip() or None

    async def chat_json(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.8,
        max_tokens: int = 800
    ) -> Optional[Dict[str, Any]]:
        """JSON object completion, or None if unavailable or malformed."""
        text = await self.chat(system_prompt, user_prompt, temperature, max_tokens)
        if text is None:
            return None
        try:
            return extract_json(text)
        except LLMMalformedError as e:
            logger.warning(f"World model returned malformed JSON: {e.message}")
            return None


_default_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    global _default_client
    if _default_client is None:
        _default_client = LLMClient()
    return _default_client
