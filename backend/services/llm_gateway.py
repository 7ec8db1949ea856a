"""Client for an OpenAI-compatible chat-completions gateway.

Callers hand over a system instruction and a user instruction and get the
first choice's text back. Upstream failures are mapped onto a small error
hierarchy so the manual interaction check can tell rate limiting and quota
exhaustion apart from everything else.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import httpx

GATEWAY_URL = os.getenv("RXGUARD_AI_GATEWAY_URL", "https://api.openai.com/v1/chat/completions")
GATEWAY_API_KEY = os.getenv("RXGUARD_AI_API_KEY", "")
GATEWAY_MODEL = os.getenv("RXGUARD_AI_MODEL", "gpt-4o-mini")
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("RXGUARD_AI_TIMEOUT_SECONDS", "30"))

logger = logging.getLogger("rxguard.llm")


class LLMGatewayError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMRateLimitError(LLMGatewayError):
    """Gateway answered 429."""


class LLMQuotaError(LLMGatewayError):
    """Gateway answered 402: credits or quota exhausted."""


class LLMResponseError(LLMGatewayError):
    """Gateway answered 2xx but the envelope could not be read."""


@dataclass
class LLMResponse:
    content: str
    model: str


class LLMGatewayClient:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = GATEWAY_API_KEY if api_key is None else api_key
        self.url = url or GATEWAY_URL
        self.model = model or GATEWAY_MODEL
        self.timeout = GATEWAY_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        json_mode: bool = False,
    ) -> LLMResponse:
        if not self.configured:
            raise LLMGatewayError("AI gateway API key is not configured")

        payload: dict = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error("AI gateway timeout after %.1fs", self.timeout)
            raise LLMGatewayError("AI gateway timed out") from exc
        except httpx.RequestError as exc:
            logger.error("AI gateway connection error: %s", exc)
            raise LLMGatewayError(f"AI gateway connection error: {exc}") from exc

        if response.status_code == 429:
            raise LLMRateLimitError("Rate limit exceeded. Please try again later.", status_code=429)
        if response.status_code == 402:
            raise LLMQuotaError(
                "Payment required. Please add credits to your AI gateway workspace.",
                status_code=402,
            )
        if response.is_error:
            logger.error("AI gateway error: %s", response.status_code)
            raise LLMGatewayError(f"AI gateway error: {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError("AI gateway returned an unreadable response") from exc
        if not isinstance(content, str):
            raise LLMResponseError("AI gateway returned non-text content")

        return LLMResponse(content=content, model=str(data.get("model") or self.model))
