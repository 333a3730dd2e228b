"""Template validation against testing cases."""

from .prompts import build_execution_prompt
from .runner import ProgressCallback, ValidationRunner
from .similarity import SimilarityScorer, dice_coefficient, similarity_score

__all__ = [
    "ValidationRunner",
    "ProgressCallback",
    "SimilarityScorer",
    "dice_coefficient",
    "similarity_score",
    "build_execution_prompt",
]
