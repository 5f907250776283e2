"""Cheap error indicators computed without any external detector."""

from __future__ import annotations

import re
from typing import List, Optional

from ..models import EssayStructure, EssayText, FeaturePolicy, safe_ratio
from .base import FeatureGroup
from .lexicon import FEATURE_MISSPELLINGS, INFORMAL_WORDS

DOUBLE_SPACE_PATTERN = re.compile(r"[ \t]{2,}")
MISSING_SPACE_PATTERN = re.compile(r"[.,!?][A-Za-z]")
REPEATED_WORD_PATTERN = re.compile(r"\b(\w+)\s+\1\b", re.IGNORECASE)
LOWERCASE_START_PATTERN = re.compile(r"^[a-z]")


class ErrorIndicatorGroup(FeatureGroup):
    name = "errors"
    start = 85
    size = 15
    slot_names = (
        "misspelling_density",
        "spacing_issue_density",
        "informal_density",
        "repeated_word_density",
        "lowercase_sentence_ratio",
    )

    def compute(
        self,
        essay: EssayText,
        structure: Optional[EssayStructure],
        policy: FeaturePolicy,
    ) -> List[float]:
        n_words = essay.word_count
        raw_lower = essay.raw.lower()
        misspellings = sum(1 for w in essay.words if w in FEATURE_MISSPELLINGS)
        spacing = len(DOUBLE_SPACE_PATTERN.findall(essay.raw)) + len(
            MISSING_SPACE_PATTERN.findall(essay.raw)
        )
        informal = sum(
            len(re.findall(rf"\b{re.escape(word)}(?!\w)", raw_lower)) for word in INFORMAL_WORDS
        )
        repeated = len(REPEATED_WORD_PATTERN.findall(essay.clean))
        lowercase_starts = sum(1 for s in essay.sentences if LOWERCASE_START_PATTERN.match(s))
        return [
            safe_ratio(misspellings, n_words),
            safe_ratio(spacing, n_words),
            safe_ratio(informal, n_words),
            safe_ratio(repeated, n_words),
            safe_ratio(lowercase_starts, essay.sentence_count),
        ]
