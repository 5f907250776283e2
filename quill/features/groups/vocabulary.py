"""Data-driven vocabulary density rules.

Each rule counts regex matches over the lower-cased essay and writes
``weight * matches / word_count`` into its slot within the group. Adding a
measurement means adding a row here; nothing else changes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..models import EssayStructure, EssayText, FeaturePolicy, safe_ratio
from .base import FeatureGroup


@dataclass(frozen=True)
class VocabularyRule:
    name: str
    pattern: "re.Pattern[str]"
    weight: float
    slot: int


def _rule(name: str, pattern: str, slot: int, weight: float = 1.0) -> VocabularyRule:
    return VocabularyRule(name=name, pattern=re.compile(pattern), weight=weight, slot=slot)


VOCABULARY_RULES: Sequence[VocabularyRule] = (
    _rule("being_verbs", r"\b(is|are|was|were|be|being|been)\b", 0),
    _rule("perfect_auxiliaries", r"\b(have|has|had)\b", 1),
    _rule("modal_verbs", r"\b(can|could|will|would|shall|should|may|might|must)\b", 2),
    _rule("transition_markers", r"\b(although|however|therefore|furthermore|moreover|consequently)\b", 3),
    _rule("subordinators", r"\b(because|since|although|while|if|unless|until)\b", 4),
    _rule("sequencing_markers", r"\b(first|second|third|finally|next|then)\b", 5),
    _rule("example_markers", r"\b(for\s+example|for\s+instance|such\s+as|including|specifically)\b", 6),
    _rule("negations", r"\b(not|no|never|nothing|none)\b", 7),
    _rule("personal_voice", r"\b(believe|think|feel|opinion|view|perspective)\b", 8),
    _rule("emphasis_words", r"\b(important|significant|crucial|essential|vital)\b", 9),
    _rule("evidence_markers", r"\b(according\s+to|research\s+shows|studies\s+indicate|evidence\s+suggests)\b", 10, 2.0),
    _rule("conclusion_markers", r"\b(therefore|thus|hence|consequently|as\s+a\s+result)\b", 11),
    _rule("addition_markers", r"\b(in\s+addition|furthermore|moreover|additionally)\b", 12),
    _rule("noun_suffixes", r"\b\w+(ment|tion|sion|ness|ity|ance|ence)\b", 13),
    _rule("verb_forms", r"\b\w+(ed|ing)\b", 14),
    _rule("adjective_suffixes", r"\b\w+(ful|ous|ish|ive|less|able|ible)\b", 15),
    _rule("adverbs", r"\b\w+ly\b", 16),
    _rule("prepositions", r"\b(in|on|at|by|with|about|against|between|through|during|before|after|above|below|from|of)\b", 17),
    _rule("contrast_markers", r"\b(but|whereas|nevertheless|nonetheless|on\s+the\s+other\s+hand)\b", 18),
    _rule("hedges", r"\b(perhaps|possibly|probably|likely|seems|appears)\b", 19),
    _rule("first_person", r"\b(i|me|my|mine|we|our|us)\b", 20, 0.5),
    _rule("second_person", r"\b(you|your|yours)\b", 21, 0.5),
)


class VocabularyGroup(FeatureGroup):
    name = "vocabulary"
    start = 20
    size = 25

    def __init__(self, rules: Optional[Sequence[VocabularyRule]] = None) -> None:
        self.rules = tuple(rules if rules is not None else VOCABULARY_RULES)
        slots = [rule.slot for rule in self.rules]
        if len(set(slots)) != len(slots):
            raise ValueError("Vocabulary rules must target distinct slots")
        if any(slot < 0 or slot >= self.size for slot in slots):
            raise ValueError(f"Vocabulary rule slots must be within [0, {self.size})")
        names = [""] * self.size
        for rule in self.rules:
            names[rule.slot] = rule.name
        self.slot_names = tuple(names)

    def qualified_names(self) -> List[str]:
        return [
            f"{self.name}.{slot}" if slot else f"reserved.{self.start + i}"
            for i, slot in enumerate(self.slot_names)
        ]

    def compute(
        self,
        essay: EssayText,
        structure: Optional[EssayStructure],
        policy: FeaturePolicy,
    ) -> List[float]:
        text = essay.lower
        n_words = essay.word_count
        values = [0.0] * self.size
        for rule in self.rules:
            matches = sum(1 for _ in rule.pattern.finditer(text))
            values[rule.slot] = rule.weight * safe_ratio(matches, n_words)
        return values
