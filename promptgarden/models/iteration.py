"""Refinement iteration model."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_SCORE = 1
MAX_SCORE = 5


def clamp_score(score: Any) -> int:
    """Clamp a feedback score into the 1..5 range."""
    value = int(round(float(score)))
    return max(MIN_SCORE, min(MAX_SCORE, value))


class Iteration(BaseModel):
    """One recorded cycle of prompt, output, feedback and score."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    output: str
    feedback: str = ""
    score: int = Field(ge=MIN_SCORE, le=MAX_SCORE)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @field_validator("score", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> int:
        return clamp_score(value)

    @property
    def accepted(self) -> bool:
        """A top score means the user accepted the output as-is."""
        return self.score == MAX_SCORE
