"""Registry of feature groups in slot order."""

from __future__ import annotations

from typing import List

from .base import FeatureGroup
from .coherence import CoherenceGroup
from .errors import ErrorIndicatorGroup
from .lexical import LexicalGroup
from .sentence import SentenceGroup
from .structure import StructureGroup
from .surface import SurfaceGroup
from .vocabulary import VOCABULARY_RULES, VocabularyGroup, VocabularyRule


def default_groups() -> List[FeatureGroup]:
    return [
        SurfaceGroup(),
        LexicalGroup(),
        VocabularyGroup(),
        SentenceGroup(),
        StructureGroup(),
        CoherenceGroup(),
        ErrorIndicatorGroup(),
    ]


__all__ = [
    "FeatureGroup",
    "VocabularyRule",
    "VOCABULARY_RULES",
    "default_groups",
]
