"""Textual similarity between expected and actual outputs."""

import re
from collections import Counter
from typing import Optional

from promptgarden.config import SimilarityMetric

_WHITESPACE = re.compile(r"\s+")


def _bigrams(text: str) -> Counter:
    return Counter(text[i : i + 2] for i in range(len(text) - 1))


def dice_coefficient(first: str, second: str) -> float:
    """
    Sorensen-Dice coefficient over character bigrams, in [0, 1].

    Whitespace is ignored. Identical strings (including two empty ones)
    score 1; a string with fewer than two characters shares no bigrams
    with anything else and scores 0.
    """
    first = _WHITESPACE.sub("", first)
    second = _WHITESPACE.sub("", second)

    if first == second:
        return 1.0
    if len(first) < 2 or len(second) < 2:
        return 0.0

    first_bigrams = _bigrams(first)
    second_bigrams = _bigrams(second)
    intersection = sum((first_bigrams & second_bigrams).values())

    return (2.0 * intersection) / (len(first) + len(second) - 2)


class SimilarityScorer:
    """
    Scores how closely an actual output matches the expected one.

    Scores are percentages in [0, 100] rounded to two decimals.

    Usage:
        scorer = SimilarityScorer()
        scorer.score("hello world", "hello world")  # 100.0
    """

    def __init__(self, metric: SimilarityMetric | str = SimilarityMetric.DICE):
        self.metric = SimilarityMetric(metric)
        self._rouge_scorer: Optional[object] = None

    def _rouge_l(self, expected: str, actual: str) -> float:
        if self._rouge_scorer is None:
            from rouge_score import rouge_scorer

            self._rouge_scorer = rouge_scorer.RougeScorer(["rougeL"], use_stemmer=True)
        return self._rouge_scorer.score(expected, actual)["rougeL"].fmeasure

    def ratio(self, expected: str, actual: str) -> float:
        """Raw similarity in [0, 1]."""
        if self.metric == SimilarityMetric.DICE:
            return dice_coefficient(expected, actual)

        if expected == actual:
            return 1.0
        if not expected.strip() or not actual.strip():
            return 0.0
        return self._rouge_l(expected, actual)

    def score(self, expected: str, actual: str) -> float:
        """Similarity as a percentage rounded to two decimals."""
        return round(self.ratio(expected, actual) * 100, 2)


def similarity_score(
    expected: str,
    actual: str,
    metric: SimilarityMetric | str = SimilarityMetric.DICE,
) -> float:
    """One-off similarity percentage between two strings."""
    return SimilarityScorer(metric).score(expected, actual)
