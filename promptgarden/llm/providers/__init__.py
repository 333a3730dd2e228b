"""
LLM Provider implementations.

This module provides a unified single-message completion interface over
different LLM providers (Mistral, Anthropic, Google Gemini).
"""

from .base import (
    CostTracker,
    LLMProvider,
    LLMResponse,
    ProviderType,
    TokenUsage,
)
from .factory import create_llm_provider, get_default_model, resolve_provider_type

__all__ = [
    # Base
    "LLMProvider",
    "LLMResponse",
    "ProviderType",
    "TokenUsage",
    "CostTracker",
    # Factory
    "create_llm_provider",
    "get_default_model",
    "resolve_provider_type",
]
