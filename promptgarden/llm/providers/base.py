"""Provider abstraction shared by every LLM backend."""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    MISTRAL = "mistral"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class Completion:
    """What a backend returned for one request, before cost accounting."""

    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    stop_reason: Optional[str] = None
    raw: Optional[Any] = None


@dataclass
class LLMResponse:
    """A completion annotated with timing, provider and cost."""

    content: str
    model: str
    usage: TokenUsage
    stop_reason: Optional[str] = None
    latency_ms: float = 0.0
    raw_response: Optional[Any] = None
    provider: Optional[ProviderType] = None
    cost_usd: float = 0.0


@dataclass
class CostTracker:
    """Running token and dollar totals, broken down by model."""

    requests: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost_by_model: dict[str, float] = field(default_factory=dict)

    @property
    def total_cost_usd(self) -> float:
        return sum(self.cost_by_model.values())

    def add(self, response: LLMResponse, cost_usd: float) -> None:
        self.requests += 1
        self.usage.input_tokens += response.usage.input_tokens
        self.usage.output_tokens += response.usage.output_tokens
        self.cost_by_model[response.model] = self.cost_by_model.get(response.model, 0.0) + cost_usd

    def get_summary(self) -> dict[str, Any]:
        return {
            "total_requests": self.requests,
            "total_input_tokens": self.usage.input_tokens,
            "total_output_tokens": self.usage.output_tokens,
            "total_cost_usd": round(self.total_cost_usd, 4),
            "costs_by_model": {
                model: round(cost, 4) for model, cost in self.cost_by_model.items()
            },
        }


def calculate_cost(usage: TokenUsage, pricing: dict[str, float]) -> float:
    """Dollar cost of a request given per-million-token prices."""
    return (
        usage.input_tokens * pricing["input"] + usage.output_tokens * pricing["output"]
    ) / 1_000_000


class RequestThrottle:
    """Spaces requests so that at most `per_minute` start in any minute."""

    def __init__(self, per_minute: Optional[int] = None):
        self.interval = 60.0 / per_minute if per_minute else 0.0
        self._lock = asyncio.Lock()
        self._next_slot = 0.0

    async def wait(self) -> None:
        if not self.interval:
            return
        async with self._lock:
            delay = self._next_slot - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            self._next_slot = time.monotonic() + self.interval


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    A provider turns a single user message into a single completion. No
    conversation state is kept between calls, so every request must carry
    its full context in the prompt text.

    Subclasses implement _send() for one HTTP or SDK round trip and
    _is_retryable() to pick the transient failures. complete() wraps _send()
    with throttling, exponential-backoff retries, cost tracking and
    request logging.

    Usage:
        provider = create_llm_provider(ProviderType.MISTRAL, api_key="...")
        async with provider:
            response = await provider.complete("Hello, world!")
    """

    # Environment variables checked when no api_key is passed
    API_KEY_VARIABLES: tuple[str, ...] = ()

    # Per-million-token pricing by model
    PRICING: dict[str, dict[str, float]] = {}
    DEFAULT_PRICING: dict[str, float] = {"input": 0.0, "output": 0.0}

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = "",
        api_base_url: Optional[str] = None,
        timeout_seconds: float = 120.0,
        max_retries: int = 3,
        requests_per_minute: Optional[int] = None,
        track_costs: bool = True,
        log_requests: bool = False,
        log_responses: bool = False,
    ):
        self._api_key = api_key
        self.default_model = default_model
        self.api_base_url = api_base_url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.track_costs = track_costs
        self.log_requests = log_requests
        self.log_responses = log_responses

        self.cost_tracker = CostTracker()
        self.throttle = RequestThrottle(requests_per_minute)
        self._started = False

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        ...

    @property
    def name(self) -> str:
        return self.provider_type.value.title()

    @property
    def is_started(self) -> bool:
        return self._started

    async def __aenter__(self) -> "LLMProvider":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    def _get_api_key(self) -> str:
        """Return the explicit key, else the first provider variable that is set."""
        candidates = [self._api_key] + [os.environ.get(var) for var in self.API_KEY_VARIABLES]
        for candidate in candidates:
            if candidate:
                return candidate

        raise ValueError(
            f"{self.name} API key not found. Set {' or '.join(self.API_KEY_VARIABLES)} "
            "or pass api_key explicitly."
        )

    @abstractmethod
    async def start(self) -> None:
        """Open connections or configure the SDK."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def _send(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        **kwargs: Any,
    ) -> Completion:
        """Perform one request without retries."""
        ...

    def _is_retryable(self, exc: BaseException) -> bool:
        return False

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=1.0, max=60.0, exp_base=2.0),
            retry=retry_if_exception(self._is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def complete(
        self,
        prompt: str,
        *,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        model: Optional[str] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Send one user message and wait for the reply.

        Transient failures, as judged by _is_retryable(), are retried with
        exponential backoff up to max_retries times; anything else is raised
        from the first attempt.

        Args:
            prompt: The complete user message
            max_tokens: Upper bound on generated tokens
            temperature: Sampling temperature
            model: Overrides default_model for this request
            **kwargs: Passed through to the backend request

        Returns:
            LLMResponse with the text, token usage, latency and cost
        """
        model = model or self.default_model
        await self.throttle.wait()

        if self.log_requests:
            logger.debug(f"{self.name} request to {model}: {prompt[:200]}...")

        started = time.monotonic()
        async for attempt in self._retrying():
            with attempt:
                completion = await self._send(
                    prompt,
                    model=model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    **kwargs,
                )

        cost_usd = self.calculate_cost(completion.usage, model)
        response = LLMResponse(
            content=completion.content,
            model=completion.model,
            usage=completion.usage,
            stop_reason=completion.stop_reason,
            latency_ms=(time.monotonic() - started) * 1000,
            raw_response=completion.raw if self.log_responses else None,
            provider=self.provider_type,
            cost_usd=cost_usd,
        )

        if self.track_costs:
            self.cost_tracker.add(response, cost_usd)
        if self.log_responses:
            logger.debug(f"{self.name} reply ({response.latency_ms:.0f} ms): {completion.content[:200]}...")

        return response

    def calculate_cost(self, usage: TokenUsage, model: str) -> float:
        return calculate_cost(usage, self.PRICING.get(model, self.DEFAULT_PRICING))

    def get_cost_summary(self) -> dict[str, Any]:
        return self.cost_tracker.get_summary()
