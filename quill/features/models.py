"""Data models for essay feature extraction."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

DEFAULT_VECTOR_LENGTH = 150

WORD_PATTERN = re.compile(r"\b\w+\b")
SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?]+")
PARAGRAPH_SPLIT_PATTERN = re.compile(r"\n\s*\n")
STRIP_PATTERN = re.compile(r"[^\w\s.!?]")
HORIZONTAL_SPACE_PATTERN = re.compile(r"[ \t\f\v]+")

INTRODUCTION_PATTERN = re.compile(
    r"introduction|firstly|to begin|in this essay|this paper|the purpose",
    re.IGNORECASE,
)
CONCLUSION_PATTERN = re.compile(
    r"conclusion|in conclusion|to conclude|in summary|finally|overall",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class FeaturePolicy:
    """Knobs that fix the shape and bounds of the feature vector."""

    vector_length: int = DEFAULT_VECTOR_LENGTH
    lower_bound: float = -1.0
    upper_bound: float = 1.0
    long_word_length: int = 6
    opening_window_chars: int = 500
    closing_window_chars: int = 500

    def clamp(self, value: float) -> float:
        """Clamp a value into the policy bounds, mapping non-finite values to 0."""
        try:
            value = float(value)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(value):
            return 0.0
        return max(self.lower_bound, min(self.upper_bound, value))


@dataclass(frozen=True)
class EssayStructure:
    """Optional layout information supplied alongside the essay text."""

    title: Optional[str] = None
    sections: List[str] = field(default_factory=list)
    paragraphs: List[str] = field(default_factory=list)

    @property
    def has_sections(self) -> bool:
        return len(self.sections) >= 2

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "EssayStructure":
        paragraphs = []
        for para in data.get("paragraphs") or []:
            # Paragraphs may arrive as {"text": ...} records
            if isinstance(para, dict):
                paragraphs.append(str(para.get("text", "")))
            else:
                paragraphs.append(str(para))
        return cls(
            title=data.get("title") or None,
            sections=[str(s) for s in data.get("sections") or []],
            paragraphs=paragraphs,
        )


@dataclass(frozen=True)
class EssayText:
    """
    Tokenized view of an essay shared by every feature group.

    Punctuation other than sentence terminators is replaced with spaces, but
    newlines survive so blank-line paragraph breaks can still be detected.
    """

    raw: str
    clean: str
    words: Tuple[str, ...]
    sentences: Tuple[str, ...]
    paragraphs: Tuple[str, ...]

    @classmethod
    def from_text(cls, text: Optional[str]) -> "EssayText":
        raw = (text or "").replace("\r\n", "\n").replace("\r", "\n")
        clean = STRIP_PATTERN.sub(" ", raw)
        clean = HORIZONTAL_SPACE_PATTERN.sub(" ", clean).strip()
        words = tuple(w.lower() for w in WORD_PATTERN.findall(clean))
        sentences = tuple(
            s.strip() for s in SENTENCE_SPLIT_PATTERN.split(clean) if WORD_PATTERN.search(s)
        )
        paragraphs = tuple(p.strip() for p in PARAGRAPH_SPLIT_PATTERN.split(clean) if p.strip())
        return cls(raw=raw, clean=clean, words=words, sentences=sentences, paragraphs=paragraphs)

    @property
    def lower(self) -> str:
        return self.clean.lower()

    @property
    def word_count(self) -> int:
        return len(self.words)

    @property
    def sentence_count(self) -> int:
        return len(self.sentences)

    @property
    def is_degenerate(self) -> bool:
        return not self.words or not self.sentences

    def has_introduction(self, window: int = 500) -> bool:
        return bool(INTRODUCTION_PATTERN.search(self.clean[:window]))

    def has_conclusion(self, window: int = 500) -> bool:
        if not self.clean:
            return False
        return bool(CONCLUSION_PATTERN.search(self.clean[-window:]))

    def sentence_lengths(self) -> List[int]:
        return [len(WORD_PATTERN.findall(s)) for s in self.sentences]


@dataclass(frozen=True)
class FeatureVector:
    """Fixed-length, positionally named feature values."""

    values: Tuple[float, ...]
    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        if len(self.values) != len(self.names):
            raise ValueError(
                f"Feature vector has {len(self.values)} values but {len(self.names)} names"
            )

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[float]:
        return iter(self.values)

    def __getitem__(self, index: int) -> float:
        return self.values[index]

    def get(self, name: str) -> float:
        try:
            return self.values[self.names.index(name)]
        except ValueError:
            raise KeyError(f"Unknown feature slot {name}") from None

    def to_list(self) -> List[float]:
        return list(self.values)

    def to_dict(self) -> Dict[str, float]:
        """Named view of the assigned (non-reserved) slots."""
        return {
            name: value
            for name, value in zip(self.names, self.values)
            if not name.startswith("reserved.")
        }

    def is_zero(self) -> bool:
        return all(v == 0.0 for v in self.values)

    @classmethod
    def zeros(cls, names: Sequence[str]) -> "FeatureVector":
        return cls(values=tuple(0.0 for _ in names), names=tuple(names))


def check_vector_length(values: Sequence[float], expected: int) -> None:
    """Raise if a vector handed across a module boundary has the wrong length."""
    if len(values) != expected:
        raise ValueError(f"Feature vector must have {expected} values, got {len(values)}")


def safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def std(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) <= 1:
        return 0.0
    avg = mean(values)
    return math.sqrt(mean([(v - avg) ** 2 for v in values]))
