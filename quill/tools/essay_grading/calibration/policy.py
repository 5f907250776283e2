"""Calibration policy: thresholds, weights and the score-mapping table."""

import logging
from dataclasses import dataclass, field, fields
from typing import Dict, Optional, Tuple

from quill.libs.config_loader import ConfigType, policy_overrides

LOG = logging.getLogger(__name__)

POLICY_VERSION = "improved-v2"

DEFAULT_WEIGHTS = {
    'grammar': 0.30,
    'content': 0.25,
    'organization': 0.20,
    'style': 0.15,
    'mechanics': 0.10,
}

# (quality, score) knots. Bands are deliberately uneven: the top of the
# quality range climbs faster than the bottom falls.
DEFAULT_SCORE_KNOTS = (
    (0.00, 40.0),
    (0.45, 55.0),
    (0.55, 68.0),
    (0.65, 78.0),
    (0.75, 85.0),
    (0.85, 92.0),
    (1.00, 98.0),
)

DEFAULT_GRADE_BANDS = (
    (85, "A+", "Excellent - Exceptional mastery and coherence"),
    (75, "A", "Very Good - Clear structure and strong content"),
    (70, "A-", "Good - Minor issues but strong writing overall"),
    (65, "B+", "Above Average - Some improvement needed in detail"),
    (60, "B", "Average - Solid foundation, moderate errors"),
    (55, "B-", "Fair - Needs improvement in clarity and grammar"),
    (50, "C+", "Satisfactory - Meets minimum expectations"),
    (45, "C", "Marginal Pass - Limited analysis and organization"),
    (40, "C-", "Borderline - Major issues in structure or grammar"),
    (35, "D+", "Weak - Minimal understanding, poor writing quality"),
)
FAILING_GRADE = ("F", "Fail - Does not meet basic academic standards")


@dataclass(frozen=True)
class CalibrationPolicy:
    """
    Every tunable number used by the calibrator.

    Threshold tables are ordered from the most severe entry to the least;
    the first entry whose threshold is exceeded applies.
    """

    version: str = POLICY_VERSION

    grammar_min_confidence: float = 0.75
    spelling_min_confidence: float = 0.7
    position_bucket_chars: int = 25

    # (density per 100 words, cap on the sub-score)
    grammar_caps: Tuple[Tuple[float, float], ...] = ((5.0, 0.40), (3.0, 0.50), (1.0, 0.60))
    mechanics_caps: Tuple[Tuple[float, float], ...] = ((8.0, 0.50), (5.0, 0.60), (2.0, 0.70))

    weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    score_knots: Tuple[Tuple[float, float], ...] = DEFAULT_SCORE_KNOTS

    # (error count, penalty points)
    grammar_count_penalties: Tuple[Tuple[int, float], ...] = ((8, 2.0), (4, 1.0))
    spelling_count_penalties: Tuple[Tuple[int, float], ...] = ((15, 1.0),)
    low_ocr_threshold: float = 95.0
    low_ocr_spelling_multiplier: float = 0.5
    # (organization below, minimum words, penalty points)
    organization_penalties: Tuple[Tuple[float, int, float], ...] = ((0.5, 300, 2.0), (0.6, 250, 1.0))

    length_bonus_words: int = 250
    length_bonus: float = 1.0
    structure_bonus: float = 1.0

    min_score: int = 40
    max_score: int = 98

    grade_bands: Tuple[Tuple[int, str, str], ...] = DEFAULT_GRADE_BANDS
    failing_grade: Tuple[str, str] = FAILING_GRADE

    # (OCR confidence at least, uncertainty)
    uncertainty_bands: Tuple[Tuple[float, int], ...] = ((95.0, 2), (90.0, 3), (85.0, 5))
    default_uncertainty: int = 2

    def __post_init__(self):
        total = sum(self.weights.values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Calibration weights must sum to 1, got {total}")
        qualities = [q for q, _ in self.score_knots]
        if qualities[0] != 0.0 or qualities[-1] != 1.0:
            raise ValueError("Score knots must span quality 0.0 to 1.0")
        if any(b <= a for a, b in zip(qualities, qualities[1:])):
            raise ValueError("Score knots must have strictly increasing quality")
        if self.min_score > self.max_score:
            raise ValueError("min_score must not exceed max_score")


def _as_tuples(value):
    if isinstance(value, (list, tuple)):
        return tuple(_as_tuples(v) for v in value)
    return value


def policy_from_config(configs: Optional[ConfigType]) -> CalibrationPolicy:
    """Build a CalibrationPolicy, overriding fields from the ``calibration`` config section."""
    if not configs:
        return CalibrationPolicy()
    overrides = policy_overrides("calibration", [f.name for f in fields(CalibrationPolicy)], configs)
    overrides = {k: v if k == 'weights' else _as_tuples(v) for k, v in overrides.items()}
    if overrides:
        LOG.info(f"Calibration policy overrides: {sorted(overrides)}")
    return CalibrationPolicy(**overrides)
