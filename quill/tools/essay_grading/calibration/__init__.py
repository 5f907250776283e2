"""Score calibration engine for essay grading."""

from .calibrator import ScoreCalibrator, dedupe_findings, letter_grade, map_quality_to_score
from .policy import POLICY_VERSION, CalibrationPolicy, policy_from_config

__all__ = [
    'ScoreCalibrator',
    'CalibrationPolicy',
    'POLICY_VERSION',
    'dedupe_findings',
    'letter_grade',
    'map_quality_to_score',
    'policy_from_config',
]
