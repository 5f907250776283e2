"""Per-essay grading pipeline: features, scoring, error analysis, calibration."""

import asyncio
import dataclasses
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

from quill.features import EssayStructure, EssayText, FeatureExtractor, policy_from_config
from quill.features.models import check_vector_length
from quill.libs.config_loader import ConfigType, get_config
from quill.tools.proficiency import (
    ProficiencyPolicy,
    ProficiencyState,
    ProficiencyTracker,
    record_score,
    weaknesses_from_scores,
)
from .analyzers import GrammarAnalyzer, SpellingAnalyzer
from .calibration import ScoreCalibrator
from .calibration import policy_from_config as calibration_policy_from_config
from .inference import InferenceGateway, fallback_scores
from .models import DetectorResult, EssayGradingResult

LOG = logging.getLogger(__name__)

DEFAULT_MIN_CHARACTERS = 10


class EssayGrader:
    """Grade one essay end to end. Backend and language-model trouble degrades, never fails."""

    def __init__(self, configs: ConfigType,
                 model: Optional[str] = None,
                 extractor: Optional[FeatureExtractor] = None,
                 gateway: Optional[InferenceGateway] = None,
                 grammar_analyzer: Optional[GrammarAnalyzer] = None,
                 spelling_analyzer: Optional[SpellingAnalyzer] = None,
                 calibrator: Optional[ScoreCalibrator] = None,
                 proficiency_policy: Optional[ProficiencyPolicy] = None):
        """
        Initialize the grader.

        Args:
            configs: Configuration dictionary (required)
            model: Language model to use for grammar analysis (overrides config value)
            extractor: Feature extractor (built from config if omitted)
            gateway: Inference gateway (built from config if omitted)
            grammar_analyzer: Grammar detector (built from config if omitted)
            spelling_analyzer: Spelling detector
            calibrator: Score calibrator (built from config if omitted)
            proficiency_policy: Level-transition policy (built from config if omitted)
        """
        self.configs = configs
        self.min_characters = int(get_config("grading.min_characters", configs,
                                             default=DEFAULT_MIN_CHARACTERS))
        self.extractor = extractor or FeatureExtractor(policy_from_config(configs))
        self.gateway = gateway or InferenceGateway.from_config(configs)
        self.grammar_analyzer = grammar_analyzer or GrammarAnalyzer.from_config(configs, model=model)
        self.spelling_analyzer = spelling_analyzer or SpellingAnalyzer()
        self.calibrator = calibrator or ScoreCalibrator(calibration_policy_from_config(configs))
        self.proficiency_policy = proficiency_policy or ProficiencyPolicy.from_config(configs)

    def validate_text(self, text: Optional[str]) -> str:
        """
        Raises:
            ValueError: If the essay is empty or shorter than grading.min_characters
        """
        stripped = (text or "").strip()
        if not stripped:
            raise ValueError("Essay text is empty")
        if len(stripped) < self.min_characters:
            raise ValueError(
                f"Essay text has {len(stripped)} characters; at least {self.min_characters} required"
            )
        return stripped

    async def grade_async(self, text: str,
                          structure: Optional[EssayStructure] = None,
                          ocr_confidence: Optional[float] = None,
                          learner_state: Optional[ProficiencyState] = None,
                          now: Optional[datetime] = None) -> EssayGradingResult:
        """
        Grade an essay asynchronously.

        Inference, grammar and spelling analysis run concurrently. Calibration
        waits for all three; any that raised is replaced by its neutral default.

        Args:
            text: The essay text
            structure: Optional title/section/paragraph layout
            ocr_confidence: OCR confidence percentage when the text came from an image
            learner_state: The learner's proficiency state, to evaluate a level transition
            now: Evaluation time for the transition (defaults to the current UTC time)

        Returns:
            EssayGradingResult with calibrated score, findings and optional transition
        """
        text = self.validate_text(text)
        essay = EssayText.from_text(text)
        features = self.extractor.extract_essay(essay, structure)
        check_vector_length(features, self.gateway.vector_length)

        inference, grammar, spelling = await asyncio.gather(
            self.gateway.score_async(features),
            self.grammar_analyzer.analyze_async(text),
            self.spelling_analyzer.analyze_async(text),
            return_exceptions=True,
        )
        if isinstance(inference, Exception):
            LOG.error(f"Inference failed unexpectedly ({inference}); using fallback scores")
            inference = fallback_scores(features, self.gateway.fallback_policy)
        if isinstance(grammar, Exception):
            LOG.error(f"Grammar analysis failed unexpectedly: {grammar}")
            grammar = DetectorResult.empty('unavailable')
        if isinstance(spelling, Exception):
            LOG.error(f"Spelling analysis failed unexpectedly: {spelling}")
            spelling = DetectorResult.empty('unavailable')

        structure_present = self._structure_present(essay, structure)
        calibration = self.calibrator.calibrate(
            inference.quality_scores,
            grammar.findings,
            spelling.findings,
            essay.word_count,
            structure_present,
            ocr_confidence,
        )
        LOG.info(f"Graded essay ({essay.word_count} words): {calibration.final_score} "
                 f"{calibration.grade} [inference: {inference.source}, grammar: {grammar.source}]")

        result = EssayGradingResult(
            calibration=calibration,
            inference=inference,
            grammar=grammar,
            spelling=spelling,
            word_count=essay.word_count,
            structure_present=structure_present,
        )
        if learner_state is not None:
            new_state, event = record_score(
                learner_state,
                calibration.final_score,
                now or datetime.now(timezone.utc),
                self.weaknesses(result),
                self.proficiency_policy,
            )
            result = dataclasses.replace(result, proficiency_event=event, proficiency_state=new_state)
        return result

    def grade(self, text: str,
              structure: Optional[EssayStructure] = None,
              ocr_confidence: Optional[float] = None,
              learner_state: Optional[ProficiencyState] = None,
              now: Optional[datetime] = None) -> EssayGradingResult:
        """Grade an essay synchronously."""
        return asyncio.run(self.grade_async(text, structure, ocr_confidence, learner_state, now))

    async def grade_for_learner_async(self, text: str, learner_id: str,
                                      tracker: ProficiencyTracker,
                                      structure: Optional[EssayStructure] = None,
                                      ocr_confidence: Optional[float] = None,
                                      now: Optional[datetime] = None) -> EssayGradingResult:
        """Grade an essay and record the score with a tracker that serializes per learner."""
        result = await self.grade_async(text, structure, ocr_confidence)
        event = await tracker.record_async(learner_id, result.final_score,
                                           self.weaknesses(result), now)
        return dataclasses.replace(result, proficiency_event=event,
                                   proficiency_state=tracker.state(learner_id))

    def grade_file(self, essay_path: Path, ocr_confidence: Optional[float] = None) -> EssayGradingResult:
        """Grade an essay stored in a text file."""
        text = essay_path.read_text(encoding='utf-8', errors='ignore')
        return self.grade(text, ocr_confidence=ocr_confidence)

    def weaknesses(self, result: EssayGradingResult) -> Tuple[str, ...]:
        return weaknesses_from_scores(result.calibration.adjusted_quality_scores.as_dict(),
                                      self.proficiency_policy.weakness_threshold)

    @staticmethod
    def _structure_present(essay: EssayText, structure: Optional[EssayStructure]) -> bool:
        if structure is not None and structure.has_sections:
            return True
        return essay.has_introduction() and essay.has_conclusion()
