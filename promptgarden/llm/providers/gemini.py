"""Google Gemini provider.

The google-generativeai SDK is synchronous, so each request runs in a
worker thread. The SDK is imported on start() so that installations
using another provider never load it.
"""

import asyncio
import logging
from typing import Any, Optional

from .base import Completion, LLMProvider, ProviderType, TokenUsage

logger = logging.getLogger(__name__)


GEMINI_PRICING = {
    "gemini-2.5-flash": {"input": 0.15, "output": 0.60},
    "gemini-2.5-flash-lite": {"input": 0.075, "output": 0.30},
    "gemini-2.5-pro": {"input": 1.25, "output": 5.00},
    "gemini-2.0-flash": {"input": 0.10, "output": 0.40},
}

# google.api_core exception names worth another attempt
RETRYABLE_ERROR_NAMES = {
    "ResourceExhausted",
    "ServiceUnavailable",
    "InternalServerError",
    "DeadlineExceeded",
    "TooManyRequests",
}


class GeminiProvider(LLMProvider):
    API_KEY_VARIABLES = ("GOOGLE_API_KEY", "GEMINI_API_KEY")
    PRICING = GEMINI_PRICING
    DEFAULT_PRICING = GEMINI_PRICING["gemini-2.5-flash"]

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "gemini-2.5-flash",
        **kwargs: Any,
    ):
        super().__init__(api_key=api_key, default_model=default_model, **kwargs)
        self._genai: Optional[Any] = None

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GEMINI

    async def start(self) -> None:
        import google.generativeai as genai

        genai.configure(api_key=self._get_api_key())
        self._genai = genai
        self._started = True
        logger.info("Gemini provider initialized")

    async def stop(self) -> None:
        self._genai = None
        self._started = False
        logger.info("Gemini provider closed")

    def _is_retryable(self, exc: BaseException) -> bool:
        return type(exc).__name__ in RETRYABLE_ERROR_NAMES or isinstance(exc, ConnectionError)

    async def _send(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        **kwargs: Any,
    ) -> Completion:
        if self._genai is None:
            raise RuntimeError(
                "Provider not initialized. Use 'async with provider' or call start()."
            )

        # The SDK adds the "models/" prefix itself
        generative_model = self._genai.GenerativeModel(model.removeprefix("models/"))

        response = await asyncio.to_thread(
            generative_model.generate_content,
            prompt,
            generation_config={
                "max_output_tokens": max_tokens,
                "temperature": temperature,
                **kwargs,
            },
            request_options={"timeout": self.timeout_seconds},
        )

        try:
            content = response.text
        except ValueError:
            # .text raises when every candidate was blocked
            logger.warning(f"Gemini returned no text: {response.prompt_feedback}")
            content = ""

        usage = TokenUsage()
        metadata = getattr(response, "usage_metadata", None)
        if metadata:
            usage.input_tokens = getattr(metadata, "prompt_token_count", 0) or 0
            usage.output_tokens = getattr(metadata, "candidates_token_count", 0) or 0

        stop_reason = None
        if response.candidates:
            stop_reason = str(getattr(response.candidates[0], "finish_reason", "")) or None

        return Completion(
            content=content,
            model=model,
            usage=usage,
            stop_reason=stop_reason,
            raw=response,
        )
