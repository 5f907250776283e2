"""Lexical diversity and word-frequency statistics."""

from __future__ import annotations

from collections import Counter
from typing import List, Optional

from ..models import EssayStructure, EssayText, FeaturePolicy, safe_ratio
from .base import FeatureGroup
from .lexicon import ACADEMIC_WORDS, STOP_WORDS, TRANSITION_WORDS

TOP_WORD_SLOTS = 5


class LexicalGroup(FeatureGroup):
    name = "lexical"
    start = 10
    size = 10
    slot_names = (
        "type_token_ratio",
        "content_word_ratio",
        "academic_word_ratio",
        "transition_word_ratio",
        "morphological_ratio",
    ) + tuple(f"top_word_share_{i}" for i in range(1, TOP_WORD_SLOTS + 1))

    def compute(
        self,
        essay: EssayText,
        structure: Optional[EssayStructure],
        policy: FeaturePolicy,
    ) -> List[float]:
        words = essay.words
        n_words = len(words)
        values = [
            safe_ratio(len(set(words)), n_words),
            safe_ratio(sum(1 for w in words if w not in STOP_WORDS), n_words),
            safe_ratio(sum(1 for w in words if w in ACADEMIC_WORDS), n_words),
            safe_ratio(sum(1 for w in words if w in TRANSITION_WORDS), n_words),
            safe_ratio(sum(1 for w in words if w.endswith(('ing', 'ed', 'ly'))), n_words),
        ]
        top = Counter(words).most_common(TOP_WORD_SLOTS)
        values.extend(safe_ratio(count, n_words) for _, count in top)
        return values
