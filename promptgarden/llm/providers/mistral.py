"""Mistral chat-completions provider over plain HTTP."""

import logging
from typing import Any, Optional

import aiohttp

from .base import Completion, LLMProvider, ProviderType, TokenUsage

logger = logging.getLogger(__name__)

MISTRAL_API_BASE_URL = "https://api.mistral.ai/v1"

# Mistral model pricing per million tokens
MISTRAL_PRICING = {
    "mistral-small": {"input": 0.20, "output": 0.60},
    "mistral-small-latest": {"input": 0.20, "output": 0.60},
    "mistral-medium-latest": {"input": 0.40, "output": 2.00},
    "mistral-large-latest": {"input": 2.00, "output": 6.00},
    "open-mistral-nemo": {"input": 0.15, "output": 0.15},
}

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class MistralAPIError(Exception):
    """Non-2xx response from the Mistral API."""

    def __init__(self, status: int, body: str = ""):
        super().__init__(f"API call failed with status: {status}")
        self.status = status
        self.body = body


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, MistralAPIError):
        return exc.status in RETRYABLE_STATUS_CODES
    return isinstance(exc, aiohttp.ClientConnectionError)


class MistralProvider(LLMProvider):
    """
    Mistral LLM provider.

    Posts one user message per request to the chat-completions endpoint
    and returns the first choice. Rate limits and 5xx responses are retried.

    Usage:
        provider = MistralProvider(api_key="...", default_model="mistral-small")
        async with provider:
            response = await provider.complete("Hello!")
    """

    API_KEY_VARIABLES = ("MISTRAL_API_KEY",)
    PRICING = MISTRAL_PRICING
    DEFAULT_PRICING = MISTRAL_PRICING["mistral-small"]

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "mistral-small",
        api_base_url: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(
            api_key=api_key,
            default_model=default_model,
            api_base_url=(api_base_url or MISTRAL_API_BASE_URL).rstrip("/"),
            **kwargs,
        )
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.MISTRAL

    async def start(self) -> None:
        """Open the HTTP session."""
        self._session = aiohttp.ClientSession(
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._get_api_key()}",
            },
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
        )
        self._started = True
        logger.info("Mistral provider initialized")

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
        self._started = False
        logger.info("Mistral provider closed")

    def _is_retryable(self, exc: BaseException) -> bool:
        return _is_retryable(exc)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self._session is None:
            raise RuntimeError(
                "Provider not initialized. Use 'async with provider' or call start()."
            )

        async with self._session.post(
            f"{self.api_base_url}/chat/completions",
            json=payload,
        ) as response:
            if response.status < 200 or response.status >= 300:
                raise MistralAPIError(response.status, await response.text())
            return await response.json()

    async def _send(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        **kwargs: Any,
    ) -> Completion:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
            **kwargs,
        }
        data = await self._post(payload)

        content = ""
        stop_reason = None
        choices = data.get("choices") or []
        if choices:
            content = choices[0].get("message", {}).get("content", "") or ""
            stop_reason = choices[0].get("finish_reason")

        usage = data.get("usage") or {}
        return Completion(
            content=content,
            model=data.get("model", model),
            usage=TokenUsage(
                input_tokens=usage.get("prompt_tokens", 0) or 0,
                output_tokens=usage.get("completion_tokens", 0) or 0,
            ),
            stop_reason=stop_reason,
            raw=data,
        )
