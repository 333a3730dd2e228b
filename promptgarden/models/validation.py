"""Validation result models."""

from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import BaseModel, Field


def average_score(scores: Iterable[float]) -> Optional[float]:
    """Arithmetic mean rounded to one decimal, None for no scores."""
    values = list(scores)
    if not values:
        return None
    return round(sum(values) / len(values), 1)


class ValidationResult(BaseModel):
    """Outcome of running one testing case against the optimized template."""

    input: str
    expected: str
    actual: str
    similarity_score: float = Field(ge=0.0, le=100.0)


class ValidationReport(BaseModel):
    """All results of a validation run, in testing-case order."""

    template: str = ""
    results: list[ValidationResult] = Field(default_factory=list)
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    completed_at: Optional[datetime] = None

    @property
    def average_score(self) -> Optional[float]:
        """Mean similarity rounded to one decimal, None when there are no results."""
        return average_score(r.similarity_score for r in self.results)

    def __len__(self) -> int:
        return len(self.results)
