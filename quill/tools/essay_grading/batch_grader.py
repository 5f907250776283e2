"""Batch grader for a directory of learner folders, learners processed in parallel using async/await."""

import asyncio
import logging
import yaml
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime

from tqdm.asyncio import tqdm

from quill.libs.config_loader import ConfigType, get_config
from quill.tools.proficiency import Level, ProficiencyPolicy, ProficiencyTracker
from .grader import EssayGrader
from .models import EssayGradingResult

LOG = logging.getLogger(__name__)

LEARNER_PROFILE = "learner.yaml"
FEEDBACK_SUFFIX = ".feedback.yaml"
ESSAY_SUFFIXES = ('.txt',)


@dataclass
class BatchEssayResult:
    """Result from grading one essay in a batch."""
    learner_id: str
    essay_name: str
    final_score: int
    grade: str
    success: bool
    error_message: Optional[str] = None
    grading_result: Optional[EssayGradingResult] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        data = {
            'learner_id': self.learner_id,
            'essay': self.essay_name,
            'final_score': self.final_score,
            'grade': self.grade,
            'success': self.success,
            'timestamp': self.timestamp
        }
        if self.error_message:
            data['error_message'] = self.error_message
        if self.grading_result:
            data['inference_source'] = self.grading_result.inference.source
            data['grammar_source'] = self.grading_result.grammar.source
            data['uncertainty_range'] = self.grading_result.calibration.uncertainty_range
            if self.grading_result.proficiency_event is not None:
                event = self.grading_result.proficiency_event
                data['proficiency'] = {
                    'action': event.action.value,
                    'level': event.new_level.value,
                    'reason': event.reason,
                }
        return data


def feedback_path_for(essay_path: Path) -> Path:
    return essay_path.with_name(essay_path.stem + FEEDBACK_SUFFIX)


class BatchGrader:
    """Grade every learner's essays, learners concurrently and each learner's essays in order."""

    def __init__(self, configs: ConfigType, model: Optional[str] = None,
                 max_concurrent: Optional[int] = None,
                 grader: Optional[EssayGrader] = None):
        """
        Initialize the batch grader.

        Args:
            configs: Configuration dictionary
            model: Optional language model override
            max_concurrent: Maximum number of learners graded at once (overrides config)
            grader: Essay grader to share across the batch (built from config if omitted)
        """
        self.configs = configs
        self.grader = grader or EssayGrader(configs=configs, model=model)
        self.policy = ProficiencyPolicy.from_config(configs)
        self.tracker = ProficiencyTracker(self.policy)

        # Get max concurrent tasks from parameter or config
        if max_concurrent is not None:
            self.max_concurrent = max_concurrent
        else:
            self.max_concurrent = get_config("tools.max_threads", configs, default=4)
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {self.max_concurrent}")

        LOG.info(f"BatchGrader initialized with max_concurrent={self.max_concurrent}")

    @staticmethod
    def find_essays(learner_dir: Path) -> List[Path]:
        """Essay files directly inside a learner directory, in name order."""
        return sorted(
            f for f in learner_dir.iterdir()
            if f.is_file() and f.suffix in ESSAY_SUFFIXES and not f.name.startswith('.')
        )

    def find_learner_directories(self, essays_dir: Path) -> List[Path]:
        """
        Find all learner directories.

        Args:
            essays_dir: Parent directory containing one folder per learner

        Returns:
            Sorted list of learner directories holding at least one essay
        """
        learner_dirs = []
        for item in essays_dir.iterdir():
            if not item.is_dir() or item.name.startswith('.') or item.name == '__pycache__':
                continue
            if self.find_essays(item):
                learner_dirs.append(item)
                LOG.debug(f"Found learner directory: {item.name}")
            else:
                LOG.debug(f"Skipping {item.name}: no essays")

        learner_dirs.sort()
        return learner_dirs

    @staticmethod
    def load_learner_profile(learner_dir: Path) -> Tuple[Level, List[float]]:
        """
        Read a learner's starting level and prior scores from learner.yaml.

        A missing profile means a new beginner with no history.

        Raises:
            ValueError: If the profile names an unknown level, is not a mapping, or
                recent_scores is not a list of numbers
        """
        profile_path = learner_dir / LEARNER_PROFILE
        if not profile_path.is_file():
            return Level.BEGINNER, []

        with open(profile_path, 'r') as f:
            profile = yaml.safe_load(f) or {}
        if not isinstance(profile, dict):
            raise ValueError(f"{profile_path} must contain a mapping")

        level = Level(profile.get('level', Level.BEGINNER.value))
        raw_scores = profile.get('recent_scores') or []
        if not isinstance(raw_scores, list):
            raise ValueError(f"{profile_path}: recent_scores must be a list, got {raw_scores!r}")
        try:
            scores = [float(s) for s in raw_scores]
        except TypeError as e:
            raise ValueError(f"{profile_path}: recent_scores must hold numbers") from e
        return level, scores

    async def _grade_essay_async(self, learner_id: str, essay_path: Path) -> BatchEssayResult:
        try:
            text = essay_path.read_text(encoding='utf-8', errors='ignore')
            result = await self.grader.grade_for_learner_async(text, learner_id, self.tracker)

            with open(feedback_path_for(essay_path), 'w') as f:
                yaml.dump(result.to_yaml_dict(), f, default_flow_style=False, sort_keys=False)

            LOG.debug(f"Graded {learner_id}/{essay_path.name}: {result.final_score} {result.grade}")
            return BatchEssayResult(
                learner_id=learner_id,
                essay_name=essay_path.name,
                final_score=result.final_score,
                grade=result.grade,
                success=True,
                grading_result=result
            )

        except Exception as e:
            LOG.error(f"Error grading {learner_id}/{essay_path.name}: {e}")
            return BatchEssayResult(
                learner_id=learner_id,
                essay_name=essay_path.name,
                final_score=0,
                grade='',
                success=False,
                error_message=str(e)
            )

    async def _grade_learner_async(self, learner_dir: Path) -> List[BatchEssayResult]:
        """Grade one learner's essays in name order so transitions see scores in sequence."""
        learner_id = learner_dir.name
        try:
            level, scores = self.load_learner_profile(learner_dir)
            self.tracker.seed(learner_id, level, scores)
        except (ValueError, yaml.YAMLError) as e:
            LOG.error(f"Invalid learner profile for {learner_id}: {e}")
            return [
                BatchEssayResult(learner_id=learner_id, essay_name=essay.name, final_score=0,
                                 grade='', success=False, error_message=f"Invalid learner profile: {e}")
                for essay in self.find_essays(learner_dir)
            ]

        results = []
        for essay_path in self.find_essays(learner_dir):
            results.append(await self._grade_essay_async(learner_id, essay_path))
        return results

    async def grade_all_async(self, essays_dir: Path) -> List[BatchEssayResult]:
        """
        Grade all learners asynchronously with concurrency control.

        Args:
            essays_dir: Parent directory containing one folder per learner

        Returns:
            List of BatchEssayResult objects sorted by learner and essay name
        """
        learner_dirs = self.find_learner_directories(essays_dir)
        if not learner_dirs:
            LOG.error(f"No learner directories found in {essays_dir}")
            return []

        LOG.info(f"Found {len(learner_dirs)} learner directories")

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def grade_with_semaphore(learner_dir: Path) -> List[BatchEssayResult]:
            async with semaphore:
                return await self._grade_learner_async(learner_dir)

        tasks = [grade_with_semaphore(learner_dir) for learner_dir in learner_dirs]

        results = []
        for coro in tqdm.as_completed(tasks, total=len(tasks), desc="Grading learners"):
            learner_results = await coro
            for essay_result in learner_results:
                if not essay_result.success:
                    LOG.warning(f"Failed: {essay_result.learner_id}/{essay_result.essay_name} - "
                                f"{essay_result.error_message}")
            results.extend(learner_results)

        results.sort(key=lambda r: (r.learner_id, r.essay_name))
        return results

    def grade_all(self, essays_dir: Path) -> List[BatchEssayResult]:
        """Synchronous wrapper for grade_all_async."""
        return asyncio.run(self.grade_all_async(essays_dir))

    def save_summary(self, results: List[BatchEssayResult], output_path: Path):
        """
        Save grading summary, including each learner's final proficiency state, to a YAML file.

        Args:
            results: List of essay results
            output_path: Path to save summary file
        """
        successful = [r for r in results if r.success]
        failed = [r for r in results if not r.success]

        summary = {
            'grading_summary': {
                'timestamp': datetime.now().isoformat(),
                'total_essays': len(results),
                'total_learners': len({r.learner_id for r in results}),
                'successful': len(successful),
                'failed': len(failed),
                'average_score': sum(r.final_score for r in successful) / len(successful) if successful else 0,
            },
            'essays': [r.to_dict() for r in results],
            'learners': self.tracker.snapshot(),
        }

        with open(output_path, 'w') as f:
            yaml.dump(summary, f, default_flow_style=False, sort_keys=False)

        LOG.info(f"Summary saved to {output_path}")
