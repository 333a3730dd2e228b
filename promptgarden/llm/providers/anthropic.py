"""Anthropic (Claude) provider built on the official async SDK."""

import logging
from typing import Any, Optional

import anthropic
from anthropic import APIConnectionError, InternalServerError, RateLimitError

from .base import Completion, LLMProvider, ProviderType, TokenUsage

logger = logging.getLogger(__name__)


# Claude pricing per million tokens
ANTHROPIC_PRICING = {
    "claude-opus-4-20250514": {"input": 15.00, "output": 75.00},
    "claude-sonnet-4-20250514": {"input": 3.00, "output": 15.00},
    "claude-3-5-sonnet-20241022": {"input": 3.00, "output": 15.00},
    "claude-3-5-haiku-20241022": {"input": 0.80, "output": 4.00},
}

RETRYABLE_ERRORS = (RateLimitError, APIConnectionError, InternalServerError)


class AnthropicProvider(LLMProvider):
    """Claude over the Messages API. The SDK's own retries are disabled."""

    API_KEY_VARIABLES = ("ANTHROPIC_API_KEY",)
    PRICING = ANTHROPIC_PRICING
    DEFAULT_PRICING = {"input": 3.00, "output": 15.00}

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "claude-sonnet-4-20250514",
        **kwargs: Any,
    ):
        super().__init__(api_key=api_key, default_model=default_model, **kwargs)
        self._client: Optional[anthropic.AsyncAnthropic] = None

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.ANTHROPIC

    async def start(self) -> None:
        self._client = anthropic.AsyncAnthropic(
            api_key=self._get_api_key(),
            base_url=self.api_base_url,
            timeout=self.timeout_seconds,
            max_retries=0,
        )
        self._started = True
        logger.info("Anthropic provider initialized")

    async def stop(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None
        self._started = False
        logger.info("Anthropic provider closed")

    def _is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, RETRYABLE_ERRORS)

    async def _send(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        **kwargs: Any,
    ) -> Completion:
        if self._client is None:
            raise RuntimeError(
                "Provider not initialized. Use 'async with provider' or call start()."
            )

        message = await self._client.messages.create(
            model=model,
            max_tokens=max_tokens,
            # Claude rejects temperatures above 1.0
            temperature=min(temperature, 1.0),
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )

        text_blocks = [block.text for block in message.content if block.type == "text"]

        return Completion(
            content="".join(text_blocks),
            model=message.model,
            usage=TokenUsage(
                input_tokens=message.usage.input_tokens,
                output_tokens=message.usage.output_tokens,
            ),
            stop_reason=message.stop_reason,
            raw=message,
        )
