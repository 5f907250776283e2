"""Sentence-length distribution statistics."""

from __future__ import annotations

from typing import List, Optional

from ..models import EssayStructure, EssayText, FeaturePolicy, mean, safe_ratio, std
from .base import FeatureGroup

# Sentence lengths are divided by this so typical essays stay inside [0, 1]
SENTENCE_LENGTH_SCALE = 40.0
COMPLEX_SENTENCE_WORDS = 15
SIMPLE_SENTENCE_WORDS = 8
LONG_SENTENCE_WORDS = 30


class SentenceGroup(FeatureGroup):
    name = "sentence"
    start = 45
    size = 10
    slot_names = (
        "mean_length",
        "length_std",
        "max_length",
        "min_length",
        "complex_ratio",
        "simple_ratio",
        "long_ratio",
        "variety",
        "question_ratio",
        "exclamation_ratio",
    )

    def compute(
        self,
        essay: EssayText,
        structure: Optional[EssayStructure],
        policy: FeaturePolicy,
    ) -> List[float]:
        lengths = essay.sentence_lengths()
        if not lengths:
            return []
        n = len(lengths)
        avg = mean(lengths)
        spread = std(lengths)
        variety = spread / (avg + 1) if n >= 2 else 0.5
        return [
            avg / SENTENCE_LENGTH_SCALE,
            spread / SENTENCE_LENGTH_SCALE,
            max(lengths) / SENTENCE_LENGTH_SCALE,
            min(lengths) / SENTENCE_LENGTH_SCALE,
            sum(1 for l in lengths if l > COMPLEX_SENTENCE_WORDS) / n,
            sum(1 for l in lengths if l < SIMPLE_SENTENCE_WORDS) / n,
            sum(1 for l in lengths if l > LONG_SENTENCE_WORDS) / n,
            variety,
            safe_ratio(essay.raw.count("?"), n),
            safe_ratio(essay.raw.count("!"), n),
        ]
