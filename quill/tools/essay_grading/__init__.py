"""Essay grading pipeline: feature scoring, error analysis, calibration and level tracking."""

from .grader import EssayGrader
from .batch_grader import BatchGrader, BatchEssayResult
from .inference import InferenceGateway
from .response_parser import ResponseRepairParser, parse_response
from .models import (
    CalibrationResult,
    DetectorResult,
    ErrorFinding,
    EssayGradingResult,
    InferenceResult,
    QualityScores,
)

__all__ = [
    'EssayGrader',
    'BatchGrader',
    'BatchEssayResult',
    'InferenceGateway',
    'ResponseRepairParser',
    'parse_response',
    'CalibrationResult',
    'DetectorResult',
    'ErrorFinding',
    'EssayGradingResult',
    'InferenceResult',
    'QualityScores'
]
