"""Score calibration: quality sub-scores plus error signals to a bounded grade."""

import logging
import math
import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..models import CalibrationResult, ErrorFinding, QualityScores
from .policy import CalibrationPolicy

LOG = logging.getLogger(__name__)

SPAN_PUNCTUATION = re.compile(r"^[^\w]+|[^\w]+$")
WHITESPACE = re.compile(r"\s+")


def normalize_span(text: str) -> str:
    """Lower-case, collapse whitespace and trim edge punctuation."""
    text = WHITESPACE.sub(" ", text.strip().lower())
    return SPAN_PUNCTUATION.sub("", text)


def position_bucket(finding: ErrorFinding, bucket_chars: int) -> Optional[Tuple[str, int]]:
    if finding.sentence_number is not None:
        return ('sentence', finding.sentence_number)
    if finding.offset is not None:
        return ('offset', finding.offset // max(1, bucket_chars))
    return None


def dedupe_findings(findings: Iterable[ErrorFinding], min_confidence: float,
                    bucket_chars: int) -> List[ErrorFinding]:
    """Drop low-confidence findings and collapse near-identical ones, keeping the first seen."""
    result = []
    seen = set()
    for finding in findings:
        if finding.confidence < min_confidence:
            continue
        key = (
            normalize_span(finding.original),
            normalize_span(finding.correction),
            position_bucket(finding, bucket_chars),
        )
        if key in seen:
            continue
        seen.add(key)
        result.append(finding)
    return result


def error_density(count: int, word_count: int) -> float:
    """Findings per 100 words; zero unless there is at least one finding and one word."""
    if count <= 0 or word_count <= 0:
        return 0.0
    return count / (word_count / 100.0)


def apply_caps(score: float, density: float, caps: Sequence[Tuple[float, float]]) -> float:
    """Cap a sub-score by the first density threshold exceeded. Never raises a score."""
    if density <= 0:
        return score
    for threshold, cap in caps:
        if density > threshold:
            return min(score, cap)
    return score


def map_quality_to_score(quality: float, knots: Sequence[Tuple[float, float]]) -> float:
    """Piecewise-linear interpolation of a [0, 1] quality through the knot table."""
    quality = max(0.0, min(1.0, quality))
    for (q0, s0), (q1, s1) in zip(knots, knots[1:]):
        if quality <= q1:
            return s0 + (quality - q0) * (s1 - s0) / (q1 - q0)
    return knots[-1][1]


def round_half_up(value: float) -> int:
    # Round off float noise first so 81.4999999 still rounds to 82
    return int(math.floor(round(value, 6) + 0.5))


def threshold_points(value: float, table: Sequence[Tuple[float, float]]) -> float:
    for threshold, points in table:
        if value > threshold:
            return points
    return 0.0


def letter_grade(score: int, policy: CalibrationPolicy) -> Tuple[str, str]:
    for minimum, grade, description in policy.grade_bands:
        if score >= minimum:
            return grade, description
    return policy.failing_grade


def uncertainty_range(ocr_confidence: Optional[float], policy: CalibrationPolicy) -> int:
    """Uncertainty from the OCR confidence percentage only; independent of the score."""
    if ocr_confidence is None:
        return policy.default_uncertainty
    for minimum, width in policy.uncertainty_bands:
        if ocr_confidence >= minimum:
            return width
    return max(0, math.ceil((100.0 - ocr_confidence) / 10.0))


class ScoreCalibrator:
    """Deterministic calibration of one essay's signals into a final score and grade."""

    def __init__(self, policy: Optional[CalibrationPolicy] = None):
        self.policy = policy or CalibrationPolicy()

    def calibrate(self,
                  quality_scores: Union[QualityScores, Mapping[str, Any]],
                  grammar_findings: Sequence[ErrorFinding],
                  spelling_findings: Sequence[ErrorFinding],
                  word_count: int,
                  structure_present: bool,
                  ocr_confidence: Optional[float] = None) -> CalibrationResult:
        """
        Combine quality sub-scores with error densities and structure signals.

        Args:
            quality_scores: The five sub-scores (a mapping must contain every key)
            grammar_findings: Grammar errors reported for the essay
            spelling_findings: Spelling errors reported for the essay
            word_count: Number of words in the essay
            structure_present: Whether the essay has multi-section structure
            ocr_confidence: OCR confidence percentage when the text came from an image

        Returns:
            CalibrationResult with the bounded final score and letter grade

        Raises:
            KeyError: If a quality-score mapping is missing a key
            ValueError: If a quality score is not a finite number
        """
        policy = self.policy
        if not isinstance(quality_scores, QualityScores):
            quality_scores = QualityScores.from_mapping(quality_scores)

        grammar = dedupe_findings(grammar_findings, policy.grammar_min_confidence,
                                  policy.position_bucket_chars)
        spelling = dedupe_findings(spelling_findings, policy.spelling_min_confidence,
                                   policy.position_bucket_chars)

        grammar_density = error_density(len(grammar), word_count)
        spelling_density = error_density(len(spelling), word_count)

        adjusted = quality_scores.as_dict()
        adjusted['grammar'] = apply_caps(adjusted['grammar'], grammar_density, policy.grammar_caps)
        adjusted['mechanics'] = apply_caps(adjusted['mechanics'], spelling_density, policy.mechanics_caps)
        adjusted_scores = QualityScores(**adjusted)

        weighted = adjusted_scores.weighted(policy.weights)
        base_score = map_quality_to_score(weighted, policy.score_knots)
        penalty = self._penalty(len(grammar), len(spelling), adjusted_scores.organization,
                                word_count, structure_present, ocr_confidence)

        final_score = round_half_up(base_score - penalty)
        final_score = max(policy.min_score, min(policy.max_score, final_score))
        grade, description = letter_grade(final_score, policy)

        LOG.debug(f"Calibrated: weighted={weighted:.4f} base={base_score:.2f} "
                  f"penalty={penalty:.1f} final={final_score} ({grade})")

        return CalibrationResult(
            final_score=final_score,
            grade=grade,
            grade_description=description,
            uncertainty_range=uncertainty_range(ocr_confidence, policy),
            adjusted_quality_scores=adjusted_scores,
            weighted_quality=weighted,
            base_score=base_score,
            penalty=penalty,
            grammar_error_count=len(grammar),
            spelling_error_count=len(spelling),
            grammar_density=grammar_density,
            spelling_density=spelling_density,
            policy_version=policy.version,
        )

    def _penalty(self, grammar_count: int, spelling_count: int, organization: float,
                 word_count: int, structure_present: bool, ocr_confidence: Optional[float]) -> float:
        """Net penalty points; bonuses can make it negative."""
        policy = self.policy
        penalty = 0.0
        if grammar_count > 0:
            penalty += threshold_points(grammar_count, policy.grammar_count_penalties)
        if spelling_count > 0:
            spelling_points = threshold_points(spelling_count, policy.spelling_count_penalties)
            if ocr_confidence is not None and ocr_confidence < policy.low_ocr_threshold:
                spelling_points *= policy.low_ocr_spelling_multiplier
            penalty += spelling_points

        for below, min_words, points in policy.organization_penalties:
            if organization < below and word_count >= min_words:
                penalty += points
                break

        if word_count >= policy.length_bonus_words:
            penalty -= policy.length_bonus
        if structure_present:
            penalty -= policy.structure_bonus
        return penalty
