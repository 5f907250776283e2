"""Surface statistics: lengths, counts and readability."""

from __future__ import annotations

import math
from typing import List, Optional

from ..models import EssayStructure, EssayText, FeaturePolicy, mean, safe_ratio
from .base import FeatureGroup
from .lexicon import STOP_WORDS

# log1p(word_count) / WORD_COUNT_SCALE is stored in the vector; the fallback
# estimator inverts it.
WORD_COUNT_SCALE = 8.0


def decode_word_count(value: float) -> float:
    """Recover an approximate word count from the stored log-scaled slot."""
    return max(0.0, math.expm1(value * WORD_COUNT_SCALE))


class SurfaceGroup(FeatureGroup):
    name = "surface"
    start = 0
    size = 10
    slot_names = (
        "log_char_count",
        "log_sentence_count",
        "log_word_count",
        "log_unique_words",
        "avg_word_length",
        "long_word_ratio",
        "readability",
        "log_paragraph_count",
        "avg_paragraph_words",
        "complex_word_ratio",
    )

    def compute(
        self,
        essay: EssayText,
        structure: Optional[EssayStructure],
        policy: FeaturePolicy,
    ) -> List[float]:
        words = essay.words
        n_words = len(words)
        long_words = [w for w in words if len(w) > policy.long_word_length]
        complex_words = [w for w in long_words if w not in STOP_WORDS]
        avg_sentence_length = safe_ratio(n_words, essay.sentence_count)
        complex_ratio = safe_ratio(len(complex_words), n_words)

        # Simplified Flesch reading ease with the complex-word ratio standing in
        # for syllables per word
        flesch = 206.835 - 1.015 * avg_sentence_length - 84.6 * complex_ratio

        return [
            math.log1p(len(essay.clean)) / 10.0,
            math.log1p(essay.sentence_count) / 5.0,
            math.log1p(n_words) / WORD_COUNT_SCALE,
            math.log1p(len(set(words))) / WORD_COUNT_SCALE,
            mean([len(w) for w in words]) / 10.0,
            safe_ratio(len(long_words), n_words),
            max(0.0, min(100.0, flesch)) / 100.0,
            math.log1p(len(essay.paragraphs)) / 3.0,
            math.log1p(safe_ratio(n_words, len(essay.paragraphs))) / 6.0,
            complex_ratio,
        ]
