"""Coherence proxies built on lexical overlap and paragraph balance."""

from __future__ import annotations

from typing import List, Optional, Set

from ..models import WORD_PATTERN, EssayStructure, EssayText, FeaturePolicy, mean, safe_ratio, std
from .base import FeatureGroup
from .lexicon import ARGUMENT_MARKERS, STOP_WORDS

NEUTRAL = 0.5


def _word_set(text: str) -> Set[str]:
    return {w.lower() for w in WORD_PATTERN.findall(text)}


def jaccard(a: Set[str], b: Set[str]) -> float:
    union = a | b
    return safe_ratio(len(a & b), len(union))


class CoherenceGroup(FeatureGroup):
    name = "coherence"
    start = 70
    size = 15
    slot_names = (
        "paragraph_balance",
        "adjacent_sentence_overlap",
        "lexical_diversity",
        "argument_strength",
        "opening_closing_overlap",
    )

    def compute(
        self,
        essay: EssayText,
        structure: Optional[EssayStructure],
        policy: FeaturePolicy,
    ) -> List[float]:
        return [
            self.paragraph_balance(essay),
            self.adjacent_overlap(essay),
            safe_ratio(len(set(essay.words)), essay.word_count),
            self.argument_strength(essay),
            self.opening_closing_overlap(essay),
        ]

    @staticmethod
    def paragraph_balance(essay: EssayText) -> float:
        if len(essay.paragraphs) < 2:
            return NEUTRAL
        lengths = [len(WORD_PATTERN.findall(p)) for p in essay.paragraphs]
        return min(1.0, std(lengths) / (mean(lengths) + 1))

    @staticmethod
    def adjacent_overlap(essay: EssayText) -> float:
        if essay.sentence_count < 2:
            return NEUTRAL
        sets = [_word_set(s) for s in essay.sentences]
        overlaps = [jaccard(a, b) for a, b in zip(sets, sets[1:])]
        return mean(overlaps)

    @staticmethod
    def argument_strength(essay: EssayText) -> float:
        text = essay.lower
        found = sum(1 for marker in ARGUMENT_MARKERS if marker in text)
        return min(1.0, found / 10.0)

    @staticmethod
    def opening_closing_overlap(essay: EssayText) -> float:
        """Content-word overlap between the first and last paragraph."""
        if len(essay.paragraphs) < 2:
            return 0.0
        first = _word_set(essay.paragraphs[0]) - STOP_WORDS
        last = _word_set(essay.paragraphs[-1]) - STOP_WORDS
        return jaccard(first, last)
