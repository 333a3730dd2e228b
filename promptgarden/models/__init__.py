"""Data models for the prompt refinement engine."""

from promptgarden.models.cases import CaseSet, CaseSplit, TestCase
from promptgarden.models.iteration import MAX_SCORE, MIN_SCORE, Iteration, clamp_score
from promptgarden.models.validation import ValidationReport, ValidationResult, average_score

__all__ = [
    # Cases
    "TestCase",
    "CaseSet",
    "CaseSplit",
    # Iterations
    "Iteration",
    "clamp_score",
    "MIN_SCORE",
    "MAX_SCORE",
    # Validation
    "ValidationResult",
    "ValidationReport",
    "average_score",
]
