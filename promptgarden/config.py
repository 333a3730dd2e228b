"""Configuration for the prompt refinement engine."""

import logging
import os
from enum import Enum
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, SecretStr

from promptgarden.llm.providers import ProviderType, get_default_model

logger = logging.getLogger(__name__)

ENV_PREFIX = "PROMPT_GARDEN_"

# Provider-specific variables checked when PROMPT_GARDEN_API_KEY is unset
PROVIDER_KEY_VARIABLES: dict[ProviderType, list[str]] = {
    ProviderType.MISTRAL: ["MISTRAL_API_KEY"],
    ProviderType.ANTHROPIC: ["ANTHROPIC_API_KEY"],
    ProviderType.GEMINI: ["GOOGLE_API_KEY", "GEMINI_API_KEY"],
}


class SimilarityMetric(str, Enum):
    """Text closeness metrics available to the validation runner."""

    DICE = "dice"  # Character-bigram Dice coefficient
    ROUGE_L = "rouge_l"  # Longest-common-subsequence F-measure


class GardenConfig(BaseModel):
    """Main configuration for a refinement session."""

    # Provider selection
    provider: ProviderType = Field(
        default=ProviderType.MISTRAL,
        description="LLM provider to use (mistral, anthropic or gemini)",
    )
    model: Optional[str] = Field(
        default=None,
        description="Model name. Defaults to the provider's default model",
    )
    api_base_url: Optional[str] = Field(
        default=None,
        description="Custom API base URL (for proxies)",
    )

    # Generation settings
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, ge=1, le=128000)

    # Transport
    timeout_seconds: float = Field(default=120.0, ge=1.0, le=600.0)
    max_retries: int = Field(default=3, ge=0, le=10)
    requests_per_minute: Optional[int] = Field(default=None, ge=1)

    # Refinement
    auto_synthesize: bool = Field(
        default=True,
        description="Regenerate the optimized template after every recorded iteration",
    )
    history_window: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum iterations re-sent to the provider. None sends the full history",
    )

    # Validation
    validation_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum testing cases validated concurrently",
    )
    similarity_metric: SimilarityMetric = SimilarityMetric.DICE

    # Logging
    log_requests: bool = False
    log_responses: bool = False

    def get_model_name(self) -> str:
        """Get the configured model or the provider default."""
        return self.model or get_default_model(self.provider)

    @classmethod
    def from_env(cls, **overrides: Any) -> "GardenConfig":
        """
        Build a config from PROMPT_GARDEN_* environment variables.

        A .env file in the working directory is loaded first. Explicit
        keyword overrides win over the environment.
        """
        load_dotenv(find_dotenv(usecwd=True))

        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls.model_validate(values)
        logger.debug(f"Loaded config for provider {config.provider.value}")
        return config


def credential_from_env(provider: ProviderType) -> Optional[SecretStr]:
    """Look up a provider credential in the environment."""
    load_dotenv(find_dotenv(usecwd=True))

    for env_var in [f"{ENV_PREFIX}API_KEY", *PROVIDER_KEY_VARIABLES.get(provider, [])]:
        value = os.environ.get(env_var)
        if value:
            return SecretStr(value)
    return None
