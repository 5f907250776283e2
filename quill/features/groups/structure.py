"""Structural-presence indicators."""

from __future__ import annotations

import math
from typing import List, Optional

from ..models import WORD_PATTERN, EssayStructure, EssayText, FeaturePolicy, mean, std
from .base import FeatureGroup

PARAGRAPH_WORDS_SCALE = 200.0
MULTI_PARAGRAPH_MINIMUM = 3


class StructureGroup(FeatureGroup):
    """
    Introduction/conclusion detection from the text itself, plus the
    layout supplied by the caller. Slots that depend on the supplied
    structure stay zero when none is given.
    """

    name = "structure"
    start = 55
    size = 15
    slot_names = (
        "has_introduction",
        "has_conclusion",
        "multi_paragraph",
        "has_title",
        "log_section_count",
        "log_paragraph_count",
        "mean_paragraph_words",
        "paragraph_words_std",
        "has_sections",
    )

    def compute(
        self,
        essay: EssayText,
        structure: Optional[EssayStructure],
        policy: FeaturePolicy,
    ) -> List[float]:
        values = [
            1.0 if essay.has_introduction(policy.opening_window_chars) else 0.0,
            1.0 if essay.has_conclusion(policy.closing_window_chars) else 0.0,
            1.0 if len(essay.paragraphs) >= MULTI_PARAGRAPH_MINIMUM else 0.0,
        ]
        if structure is None:
            return values

        paragraph_words = [len(WORD_PATTERN.findall(p)) for p in structure.paragraphs]
        values.extend([
            1.0 if structure.title else 0.0,
            math.log1p(len(structure.sections)) / 3.0,
            math.log1p(len(structure.paragraphs)) / 3.0,
            mean(paragraph_words) / PARAGRAPH_WORDS_SCALE,
            std(paragraph_words) / PARAGRAPH_WORDS_SCALE,
            1.0 if structure.has_sections else 0.0,
        ])
        return values
