"""Provider lookup by name.

Provider modules are imported on demand so that only the SDK of the
selected backend has to be importable.
"""

import importlib
import logging
from typing import Any, Optional

from .base import LLMProvider, ProviderType

logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    ProviderType.MISTRAL: "mistral-small",
    ProviderType.ANTHROPIC: "claude-sonnet-4-20250514",
    ProviderType.GEMINI: "gemini-2.5-flash",
}

# module (relative to this package), class name
PROVIDER_CLASSES = {
    ProviderType.MISTRAL: (".mistral", "MistralProvider"),
    ProviderType.ANTHROPIC: (".anthropic", "AnthropicProvider"),
    ProviderType.GEMINI: (".gemini", "GeminiProvider"),
}


def resolve_provider_type(provider: ProviderType | str) -> ProviderType:
    """Accept an enum member or a case-insensitive provider name."""
    if isinstance(provider, ProviderType):
        return provider
    try:
        return ProviderType(provider.lower())
    except ValueError:
        supported = ", ".join(p.value for p in ProviderType)
        raise ValueError(f"Unknown provider: {provider}. Supported providers: {supported}")


def create_llm_provider(
    provider: ProviderType | str,
    api_key: Optional[str] = None,
    default_model: Optional[str] = None,
    **kwargs: Any,
) -> LLMProvider:
    """
    Build an unstarted provider.

    Args:
        provider: ProviderType or its name
        api_key: Explicit key; the provider's environment variables are used otherwise
        default_model: Model for requests that do not name one
        **kwargs: Transport settings such as timeout_seconds or max_retries

    Raises:
        ValueError: If the provider name is not recognised

    Example:
        async with create_llm_provider("mistral", api_key="...") as provider:
            response = await provider.complete("Bonjour")
    """
    provider_type = resolve_provider_type(provider)
    module_name, class_name = PROVIDER_CLASSES[provider_type]
    provider_class = getattr(importlib.import_module(module_name, __package__), class_name)

    model = default_model or DEFAULT_MODELS[provider_type]
    logger.debug(f"Creating {class_name} with model {model}")
    return provider_class(api_key=api_key, default_model=model, **kwargs)


def get_default_model(provider: ProviderType | str) -> str:
    return DEFAULT_MODELS[resolve_provider_type(provider)]
