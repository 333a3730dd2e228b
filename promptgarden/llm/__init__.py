"""
LLM integration for the prompt refinement engine.

Usage:
    from promptgarden.llm import CompletionClient, ProviderType

    client = CompletionClient(ProviderType.MISTRAL)
    text = await client.complete("Hello, world!", credential="...")
"""

from .providers import (
    CostTracker,
    LLMProvider,
    LLMResponse,
    ProviderType,
    TokenUsage,
    create_llm_provider,
    get_default_model,
)
from .client import CompletionClient, status_from_exception

__all__ = [
    "CompletionClient",
    "status_from_exception",
    "LLMProvider",
    "LLMResponse",
    "ProviderType",
    "TokenUsage",
    "CostTracker",
    "create_llm_provider",
    "get_default_model",
]
