"""Pydantic models for essay grading results."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quill.tools.proficiency.models import ProficiencyState, TransitionEvent

QUALITY_KEYS = ('grammar', 'content', 'organization', 'style', 'mechanics')
NEUTRAL_QUALITY = 0.7


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def _finite(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Quality score {name} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise ValueError(f"Quality score {name} must be finite, got {value!r}")
    return number


class QualityScores(BaseModel):
    """Five independent [0, 1] ratings of essay quality. Out-of-range values are clamped."""
    model_config = ConfigDict(frozen=True)

    grammar: float = Field(description="Grammatical accuracy")
    content: float = Field(description="Argument and content quality")
    organization: float = Field(description="Structure and flow")
    style: float = Field(description="Vocabulary and sentence style")
    mechanics: float = Field(description="Spelling and punctuation")

    @field_validator(*QUALITY_KEYS, mode='before')
    @classmethod
    def _clamp(cls, value: Any, info) -> float:
        return clamp_unit(_finite(value, info.field_name))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'QualityScores':
        """Strict constructor for internal records: every key must be present."""
        missing = [key for key in QUALITY_KEYS if key not in data]
        if missing:
            raise KeyError(f"Quality scores missing required keys: {', '.join(missing)}")
        return cls(**{key: _finite(data[key], key) for key in QUALITY_KEYS})

    @classmethod
    def from_partial(cls, data: Optional[Mapping[str, Any]], default: float = NEUTRAL_QUALITY) -> 'QualityScores':
        """Lenient constructor for model output: missing or unusable values fall back to ``default``."""
        values = {}
        for key in QUALITY_KEYS:
            raw = (data or {}).get(key, default)
            try:
                values[key] = _finite(raw, key)
            except ValueError:
                values[key] = default
        return cls(**values)

    @classmethod
    def neutral(cls, value: float = NEUTRAL_QUALITY) -> 'QualityScores':
        return cls(**{key: value for key in QUALITY_KEYS})

    def as_dict(self) -> Dict[str, float]:
        return {key: getattr(self, key) for key in QUALITY_KEYS}

    def weighted(self, weights: Mapping[str, float]) -> float:
        return sum(getattr(self, key) * weights[key] for key in QUALITY_KEYS)


class ErrorKind(str, Enum):
    SUBJECT_VERB_AGREEMENT = 'subject_verb_agreement'
    VERB_TENSE = 'verb_tense'
    PRONOUN_CONFUSION = 'pronoun_confusion'
    ARTICLE_USAGE = 'article_usage'
    WORD_CHOICE = 'word_choice'
    SPELLING = 'spelling'
    GRAMMAR = 'grammar'


class Severity(str, Enum):
    MINOR = 'minor'
    MODERATE = 'moderate'
    SEVERE = 'severe'


class ErrorFinding(BaseModel):
    """One grammar or spelling problem reported by a detector."""
    model_config = ConfigDict(frozen=True)

    original: str = Field(description="Text span containing the error")
    correction: str = Field(description="Suggested replacement")
    kind: ErrorKind = Field(default=ErrorKind.GRAMMAR)
    confidence: float = Field(default=0.8, description="Detector confidence in [0, 1]")
    severity: Severity = Field(default=Severity.MODERATE)
    sentence_number: Optional[int] = Field(default=None, description="1-based sentence index, if known")
    offset: Optional[int] = Field(default=None, description="Character offset in the essay, if known")
    reason: str = Field(default="", description="Short explanation for the learner")

    @field_validator('confidence', mode='before')
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0
        return clamp_unit(number) if math.isfinite(number) else 0.0

    def to_yaml_dict(self) -> Dict[str, Any]:
        data = {
            'original': self.original,
            'correction': self.correction,
            'kind': self.kind.value,
            'severity': self.severity.value,
            'confidence': round(self.confidence, 3),
        }
        if self.sentence_number is not None:
            data['sentence_number'] = self.sentence_number
        if self.offset is not None:
            data['offset'] = self.offset
        if self.reason:
            data['reason'] = self.reason
        return data


class CorrectionItem(BaseModel):
    """A correction as reported by the language model, before it becomes an ErrorFinding."""
    original: str
    correction: str
    sentence_number: Optional[int] = None
    type: str = 'grammar'
    reason: str = ''
    confidence: float = 0.8
    severity: str = 'moderate'

    @field_validator('original', 'correction', mode='before')
    @classmethod
    def _require_text(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()

    @field_validator('sentence_number', mode='before')
    @classmethod
    def _coerce_sentence(cls, value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @field_validator('confidence', mode='before')
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.8
        return clamp_unit(number) if math.isfinite(number) else 0.8

    @field_validator('type', 'reason', 'severity', mode='before')
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return '' if value is None else str(value)


class ParsedAnalysis(BaseModel):
    """Structured result recovered from a language-model response."""
    corrections: List[CorrectionItem] = Field(default_factory=list)
    total_errors: int = 0
    quality_scores: QualityScores = Field(default_factory=QualityScores.neutral)
    confidence: float = NEUTRAL_QUALITY
    strategy: str = Field(description="Parse strategy that produced this result")


class InferenceResult(BaseModel):
    """Scores returned by the inference backend, or by the local fallback estimator."""
    model_config = ConfigDict(frozen=True)

    quality_scores: QualityScores
    raw_score: float
    normalized_score: float
    confidence: float
    source: str = 'backend'
    degraded: bool = False

    def to_yaml_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source,
            'degraded': self.degraded,
            'raw_score': round(self.raw_score, 2),
            'normalized_score': round(self.normalized_score, 2),
            'confidence': round(self.confidence, 3),
            'quality_scores': {k: round(v, 3) for k, v in self.quality_scores.as_dict().items()},
        }


class CalibrationResult(BaseModel):
    """Final bounded score and letter grade for one essay."""
    model_config = ConfigDict(frozen=True)

    final_score: int
    grade: str
    grade_description: str
    uncertainty_range: int
    adjusted_quality_scores: QualityScores
    weighted_quality: float
    base_score: float
    penalty: float
    grammar_error_count: int
    spelling_error_count: int
    grammar_density: float
    spelling_density: float
    policy_version: str

    def to_yaml_dict(self) -> Dict[str, Any]:
        return {
            'final_score': self.final_score,
            'grade': self.grade,
            'grade_description': self.grade_description,
            'uncertainty_range': self.uncertainty_range,
            'adjusted_quality_scores': {
                k: round(v, 3) for k, v in self.adjusted_quality_scores.as_dict().items()
            },
            'weighted_quality': round(self.weighted_quality, 4),
            'base_score': round(self.base_score, 2),
            'penalty': self.penalty,
            'grammar_error_count': self.grammar_error_count,
            'spelling_error_count': self.spelling_error_count,
            'grammar_density': round(self.grammar_density, 3),
            'spelling_density': round(self.spelling_density, 3),
            'policy_version': self.policy_version,
        }


class DetectorResult(BaseModel):
    """Findings from one grammar or spelling detector."""
    model_config = ConfigDict(frozen=True)

    findings: List[ErrorFinding] = Field(default_factory=list)
    source: str = Field(description="Which detector path produced the findings")
    confidence: float = NEUTRAL_QUALITY
    quality_scores: Optional[QualityScores] = None

    @classmethod
    def empty(cls, source: str = 'none') -> 'DetectorResult':
        return cls(findings=[], source=source, confidence=0.0)


@dataclass
class EssayGradingResult:
    """Everything the pipeline produced for one essay."""
    calibration: CalibrationResult
    inference: InferenceResult
    grammar: DetectorResult
    spelling: DetectorResult
    word_count: int
    structure_present: bool
    proficiency_event: Optional[TransitionEvent] = None
    proficiency_state: Optional[ProficiencyState] = None

    @property
    def final_score(self) -> int:
        return self.calibration.final_score

    @property
    def grade(self) -> str:
        return self.calibration.grade

    def to_yaml_dict(self) -> Dict[str, Any]:
        """Convert to dictionary suitable for YAML serialization."""
        data = {
            'final_score': self.calibration.final_score,
            'grade': self.calibration.grade,
            'grade_description': self.calibration.grade_description,
            'uncertainty_range': self.calibration.uncertainty_range,
            'word_count': self.word_count,
            'structure_present': self.structure_present,
            'calibration': self.calibration.to_yaml_dict(),
            'inference': self.inference.to_yaml_dict(),
            'grammar': {
                'source': self.grammar.source,
                'findings': [f.to_yaml_dict() for f in self.grammar.findings],
            },
            'spelling': {
                'source': self.spelling.source,
                'findings': [f.to_yaml_dict() for f in self.spelling.findings],
            },
        }
        if self.proficiency_event is not None:
            data['proficiency'] = self.proficiency_event.to_dict()
        return data
