"""Credential-aware completion client used by the refinement engine."""

import asyncio
import logging
from typing import Any, Callable, Optional

from pydantic import SecretStr

from promptgarden.errors import CredentialMissing, GardenError, TransportError

from .providers import LLMProvider, ProviderType, create_llm_provider, resolve_provider_type

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., LLMProvider]


def status_from_exception(exc: BaseException) -> int:
    """Best-effort HTTP status extraction from SDK and HTTP errors."""
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0


def _secret_value(credential: Optional[SecretStr | str]) -> Optional[str]:
    if isinstance(credential, SecretStr):
        credential = credential.get_secret_value()
    if credential is None or not credential.strip():
        return None
    return credential.strip()


class CompletionClient:
    """
    Sends one prompt per call to the configured provider.

    The credential travels with every call instead of living in process-wide
    state. The underlying provider is created lazily and rebuilt whenever the
    credential changes. Provider failures surface as TransportError; retry
    policy stays inside the provider transport.

    Usage:
        client = CompletionClient(ProviderType.MISTRAL)
        text = await client.complete("Summarize this", credential="sk-...")
        await client.close()
    """

    def __init__(
        self,
        provider: ProviderType | str = ProviderType.MISTRAL,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        provider_factory: Optional[ProviderFactory] = None,
        **provider_kwargs: Any,
    ):
        self.provider_type = resolve_provider_type(provider)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._provider_factory = provider_factory or create_llm_provider
        self._provider_kwargs = provider_kwargs

        self._provider: Optional[LLMProvider] = None
        self._provider_credential: Optional[str] = None
        self._lock = asyncio.Lock()
        self._request_count = 0

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "CompletionClient":
        """Build a client from a GardenConfig."""
        return cls(
            provider=config.provider,
            model=config.get_model_name(),
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            api_base_url=config.api_base_url,
            timeout_seconds=config.timeout_seconds,
            max_retries=config.max_retries,
            requests_per_minute=config.requests_per_minute,
            log_requests=config.log_requests,
            log_responses=config.log_responses,
            **kwargs,
        )

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def request_count(self) -> int:
        """Number of completed provider calls."""
        return self._request_count

    async def _get_provider(self, api_key: str) -> LLMProvider:
        async with self._lock:
            if self._provider is not None and self._provider_credential == api_key:
                return self._provider

            if self._provider is not None:
                logger.info("Credential changed, restarting provider")
                await self._provider.stop()
                self._provider = None

            provider = self._provider_factory(
                self.provider_type,
                api_key=api_key,
                default_model=self.model,
                **self._provider_kwargs,
            )
            await provider.start()
            self._provider = provider
            self._provider_credential = api_key
            return provider

    async def complete(
        self,
        prompt: str,
        credential: Optional[SecretStr | str],
    ) -> str:
        """
        Send a single prompt and return the completion text.

        Raises:
            CredentialMissing: If no usable credential was supplied
            TransportError: If the provider call failed
        """
        api_key = _secret_value(credential)
        if api_key is None:
            raise CredentialMissing()

        try:
            provider = await self._get_provider(api_key)
            response = await provider.complete(
                prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except GardenError:
            raise
        except Exception as e:
            status = status_from_exception(e)
            logger.error(f"{self.provider_type.value} request failed (status {status}): {e}")
            raise TransportError(
                f"Failed to generate response from {self.provider_type.value}: {e}",
                status=status,
                cause=e,
            ) from e

        self._request_count += 1
        return response.content

    def get_cost_summary(self) -> dict[str, Any]:
        """Get the cost summary of the active provider."""
        if self._provider is None:
            return {"total_requests": 0, "total_cost_usd": 0.0}
        return self._provider.get_cost_summary()

    async def close(self) -> None:
        """Stop the underlying provider."""
        if self._provider is not None:
            await self._provider.stop()
            self._provider = None
            self._provider_credential = None
        logger.debug("Completion client closed")
