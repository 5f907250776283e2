"""Tests for the per-essay grading pipeline."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from quill.features import EssayStructure, FeatureExtractor, FeaturePolicy
from quill.tools.essay_grading import EssayGrader, InferenceGateway
from quill.tools.essay_grading.analyzers import GrammarAnalyzer, SpellingAnalyzer
from quill.tools.proficiency import Action, Level, ProficiencyState, ProficiencyTracker

CONFIGS = {
    "llm": {"api_key": ""},
    "grading": {"min_characters": 10},
}

ESSAY = (
    "In this essay I will argue that schools should teach media literacy. "
    "Students read news online every day and need to judge sources carefully.\n\n"
    "For example, many articles mix facts with opinion. Teachers can show how to check evidence.\n\n"
    "In conclusion, media literacy helps students think clearly about information."
)

NOW = datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)


def _backend(quality=0.7, **overrides):
    scores = {k: quality for k in ('grammar', 'content', 'organization', 'style', 'mechanics')}
    scores.update(overrides)
    payload = {"score": 80.0, "normalized_score": 0.8, "confidence": 0.9, "quality_scores": scores}
    return InferenceGateway(url="http://scorer.test",
                            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=payload)))


def _offline_backend():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)
    return InferenceGateway(url="http://scorer.test", transport=httpx.MockTransport(handler))


class TestEssayGrader:
    """End-to-end grading with the backend mocked and no language model."""

    @pytest.mark.asyncio
    async def test_grade_with_backend(self):
        grader = EssayGrader(CONFIGS, gateway=_backend())
        result = await grader.grade_async(ESSAY)

        assert result.inference.source == 'backend'
        assert result.grammar.source == 'rules'
        assert result.spelling.source == 'dictionary'
        assert result.structure_present
        assert result.calibration.penalty == -1.0
        assert result.final_score == 83
        assert result.grade == "A"
        assert result.proficiency_event is None

    @pytest.mark.asyncio
    async def test_backend_outage_degrades(self):
        grader = EssayGrader(CONFIGS, gateway=_offline_backend())
        result = await grader.grade_async(ESSAY)

        assert result.inference.source == 'fallback'
        assert result.inference.degraded
        assert 40 <= result.final_score <= 98

    @pytest.mark.asyncio
    async def test_errors_are_reported(self):
        text = "Everyday I walk to school. He go there alot and I recieve good grades."
        grader = EssayGrader(CONFIGS, gateway=_backend())
        result = await grader.grade_async(text)

        assert [f.correction for f in result.grammar.findings] == ["Every day", "He goes"]
        assert [f.correction for f in result.spelling.findings] == ["a lot", "receive"]
        # Rule findings are below the grammar confidence threshold; spelling findings count
        assert result.calibration.grammar_error_count == 0
        assert result.calibration.spelling_error_count == 2

    @pytest.mark.asyncio
    async def test_failing_components_use_neutral_defaults(self):
        gateway = _backend()
        grammar = GrammarAnalyzer(agent=None)
        spelling = SpellingAnalyzer()
        grader = EssayGrader(CONFIGS, gateway=gateway, grammar_analyzer=grammar, spelling_analyzer=spelling)

        with patch.object(gateway, 'score_async', AsyncMock(side_effect=RuntimeError("boom"))), \
                patch.object(grammar, 'analyze_async', AsyncMock(side_effect=RuntimeError("boom"))), \
                patch.object(spelling, 'analyze_async', AsyncMock(side_effect=RuntimeError("boom"))):
            result = await grader.grade_async(ESSAY)

        assert result.inference.source == 'fallback'
        assert result.grammar.source == 'unavailable'
        assert result.spelling.source == 'unavailable'
        assert result.grammar.findings == []

    @pytest.mark.asyncio
    async def test_empty_and_short_text_rejected(self):
        grader = EssayGrader(CONFIGS, gateway=_backend())
        with pytest.raises(ValueError, match="empty"):
            await grader.grade_async("   ")
        with pytest.raises(ValueError, match="at least 10"):
            await grader.grade_async("Too short")

    @pytest.mark.asyncio
    async def test_vector_length_mismatch_raises(self):
        grader = EssayGrader(CONFIGS, gateway=_backend(),
                             extractor=FeatureExtractor(FeaturePolicy(vector_length=200)))
        with pytest.raises(ValueError, match="150"):
            await grader.grade_async(ESSAY)

    @pytest.mark.asyncio
    async def test_supplied_structure_counts_as_present(self):
        text = "Cats sleep most of the day. Dogs like long walks in the park."
        structure = EssayStructure(title="Pets", sections=["Cats", "Dogs"])
        grader = EssayGrader(CONFIGS, gateway=_backend())

        assert not (await grader.grade_async(text)).structure_present
        assert (await grader.grade_async(text, structure=structure)).structure_present

    @pytest.mark.asyncio
    async def test_learner_state_transition(self):
        grader = EssayGrader(CONFIGS, gateway=_backend(0.9))
        state = ProficiencyState.from_history(Level.BEGINNER, [80, 82])

        result = await grader.grade_async(ESSAY, learner_state=state, now=NOW)

        assert result.proficiency_event.action == Action.PROMOTE
        assert result.proficiency_state.level == Level.INTERMEDIATE
        assert result.to_yaml_dict()['proficiency']['new_level'] == 'intermediate'

    @pytest.mark.asyncio
    async def test_grade_for_learner_records_with_tracker(self):
        grader = EssayGrader(CONFIGS, gateway=_backend(grammar=0.5, mechanics=0.5))
        tracker = ProficiencyTracker()

        result = await grader.grade_for_learner_async(ESSAY, 'alice', tracker, now=NOW)

        assert result.proficiency_event.action == Action.STABLE
        assert tracker.state('alice').recent_scores == (float(result.final_score),)
        assert tracker.state('alice').streaks == {'grammar_errors': 1, 'spelling_errors': 1}

    def test_weaknesses(self):
        grader = EssayGrader(CONFIGS, gateway=_backend(content=0.4))
        result = grader.grade(ESSAY)
        assert grader.weaknesses(result) == ('weak_arguments',)

    def test_grade_file(self):
        grader = EssayGrader(CONFIGS, gateway=_backend())
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "essay.txt"
            path.write_text(ESSAY, encoding='utf-8')
            result = grader.grade_file(path, ocr_confidence=88)

        assert result.calibration.uncertainty_range == 5
        data = result.to_yaml_dict()
        assert data['final_score'] == result.final_score
        assert data['inference']['source'] == 'backend'
        assert 'proficiency' not in data

    def test_min_characters_from_config(self):
        grader = EssayGrader({"llm": {"api_key": ""}, "grading": {"min_characters": 500}}, gateway=_backend())
        with pytest.raises(ValueError):
            grader.grade(ESSAY)
