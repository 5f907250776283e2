"""Tests for learner proficiency tracking."""

import asyncio
import math
from datetime import datetime, timedelta, timezone

import pytest

from quill.tools.proficiency import (
    Action,
    Level,
    ProficiencyPolicy,
    ProficiencyState,
    ProficiencyTracker,
    record_score,
    trending_average,
    weaknesses_from_scores,
)
from quill.tools.proficiency.state_machine import (
    ALREADY_AT_FLOOR,
    ALREADY_AT_TOP,
    SUSTAINED_HIGH,
    SUSTAINED_LOW,
    WARNING_ACTIVE,
    update_streaks,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
PERSISTENT = ('grammar_errors', 'spelling_errors')


def _record_all(state, scores, weaknesses=(), now=NOW):
    events = []
    for score in scores:
        state, event = record_score(state, score, now, weaknesses)
        events.append(event)
    return state, events


class TestLevelTransitions:
    """Promotion and demotion with hysteresis."""

    def test_promotion_after_sustained_high_scores(self):
        state, events = _record_all(ProficiencyState(), [80, 80, 80])

        assert [e.action for e in events] == [Action.STABLE, Action.STABLE, Action.PROMOTE]
        assert events[-1].reason == SUSTAINED_HIGH
        assert events[-1].level_changed
        assert state.level == Level.INTERMEDIATE
        assert state.scores_since_change == 0
        assert len(state.history) == 1
        assert state.history[0].previous_level == Level.BEGINNER

    def test_new_level_needs_fresh_streak(self):
        state, _ = _record_all(ProficiencyState(), [80, 80, 80])
        state, events = _record_all(state, [90, 90])

        assert all(e.action == Action.STABLE for e in events)
        assert state.level == Level.INTERMEDIATE

        state, event = record_score(state, 90, NOW)
        assert event.action == Action.PROMOTE
        assert state.level == Level.ADVANCED

    def test_two_high_scores_do_not_promote(self):
        state, events = _record_all(ProficiencyState(), [95, 95])
        assert state.level == Level.BEGINNER
        assert events[-1].action == Action.STABLE

    def test_demotion_after_sustained_low_scores(self):
        state = ProficiencyState(level=Level.INTERMEDIATE)
        state, events = _record_all(state, [55, 58, 59])

        assert events[-1].action == Action.DEMOTE
        assert events[-1].reason == SUSTAINED_LOW
        assert state.level == Level.BEGINNER

    def test_already_at_floor(self):
        state, events = _record_all(ProficiencyState(), [40, 42, 45])

        assert events[-1].action == Action.STABLE
        assert events[-1].reason == ALREADY_AT_FLOOR
        assert state.level == Level.BEGINNER
        assert state.history == ()

    def test_already_at_top(self):
        state, events = _record_all(ProficiencyState(level=Level.ADVANCED), [90, 92, 95])

        assert events[-1].action == Action.STABLE
        assert events[-1].reason == ALREADY_AT_TOP
        assert state.level == Level.ADVANCED

    def test_mixed_scores_stay_stable(self):
        state, events = _record_all(ProficiencyState(level=Level.INTERMEDIATE), [85, 55, 85, 55, 85])
        assert all(e.action == Action.STABLE for e in events)
        assert state.level == Level.INTERMEDIATE

    def test_seeded_history_counts_toward_streak(self):
        state = ProficiencyState.from_history(Level.BEGINNER, [80, 80])
        state, event = record_score(state, 80, NOW)

        assert event.action == Action.PROMOTE
        assert state.level == Level.INTERMEDIATE


class TestWarnings:
    """Warnings and their expiry."""

    def test_persistent_errors_warning(self):
        state, events = _record_all(ProficiencyState(), [70, 70, 70], PERSISTENT)

        assert [e.action for e in events] == [Action.STABLE, Action.STABLE, Action.WARN]
        assert events[-1].reason == 'persistent_errors'
        assert events[-1].warning is not None
        assert events[-1].warning.expires_at == NOW + timedelta(days=7)
        assert len(state.active_warnings) == 1
        assert state.level == Level.BEGINNER

    def test_one_persistent_weakness_is_not_enough(self):
        _, events = _record_all(ProficiencyState(), [70, 70, 70, 70], ('grammar_errors',))
        assert all(e.action == Action.STABLE for e in events)

    def test_duplicate_warning_suppressed_until_expiry(self):
        state, _ = _record_all(ProficiencyState(), [70, 70, 70], PERSISTENT)

        state, event = record_score(state, 70, NOW + timedelta(days=1), PERSISTENT)
        assert event.action == Action.STABLE
        assert event.reason == WARNING_ACTIVE
        assert len(state.active_warnings) == 1

        state, event = record_score(state, 70, NOW + timedelta(days=8), PERSISTENT)
        assert event.action == Action.WARN
        assert event.reason == 'persistent_errors'
        assert len(state.active_warnings) == 1

    def test_missing_weakness_resets_streak(self):
        state, _ = _record_all(ProficiencyState(), [70, 70], PERSISTENT)
        state, _ = _record_all(state, [70], ('grammar_errors',))
        state, events = _record_all(state, [70], PERSISTENT)

        assert state.streaks == {'grammar_errors': 4, 'spelling_errors': 1}
        assert events[-1].action == Action.STABLE

    def test_declining_performance_warning(self):
        state = ProficiencyState.from_history(Level.BEGINNER, [74] * 6)
        state, events = _record_all(state, [50, 50, 50])

        assert [e.action for e in events] == [Action.STABLE, Action.STABLE, Action.WARN]
        assert events[-1].reason == 'declining_performance'
        assert events[-1].trending_average == pytest.approx(56.0)
        assert events[-1].window_average == pytest.approx(66.0)

    def test_level_change_clears_warnings(self):
        state, _ = _record_all(ProficiencyState(), [70, 70, 70], PERSISTENT)
        assert state.active_warnings

        state, events = _record_all(state, [80, 80, 80], PERSISTENT)
        assert events[-1].action == Action.PROMOTE
        assert state.active_warnings == ()


class TestProficiencyState:

    def test_window_is_bounded(self):
        state, _ = _record_all(ProficiencyState(), [60 + i for i in range(12)])
        assert len(state.recent_scores) == 10
        assert state.recent_scores[-1] == 71

    def test_record_rejects_non_finite_score(self):
        with pytest.raises(ValueError):
            record_score(ProficiencyState(), math.nan, NOW)

    def test_from_history_trims_and_validates(self):
        state = ProficiencyState.from_history('intermediate', range(15))
        assert state.level == Level.INTERMEDIATE
        assert state.recent_scores == tuple(float(s) for s in range(5, 15))

        with pytest.raises(ValueError):
            ProficiencyState.from_history(Level.BEGINNER, [70, math.inf])

        with pytest.raises(ValueError):
            ProficiencyState.from_history('expert', [])

    def test_capacity_enforced(self):
        with pytest.raises(ValueError, match="capacity"):
            ProficiencyState(recent_scores=(70.0,) * 11)

    def test_state_is_not_mutated(self):
        original = ProficiencyState()
        record_score(original, 80, NOW)
        assert original.recent_scores == ()

    def test_event_to_dict(self):
        _, event = record_score(ProficiencyState(), 80, NOW)
        data = event.to_dict()
        assert data['action'] == 'stable'
        assert data['new_level'] == 'beginner'
        assert data['occurred_at'] == NOW.isoformat()


class TestHelpers:

    def test_weaknesses_from_scores(self):
        scores = {'grammar': 0.5, 'content': 0.7, 'organization': 0.6, 'style': 0.9, 'mechanics': 0.59}
        assert weaknesses_from_scores(scores) == ('grammar_errors', 'spelling_errors')

    def test_trending_average_weights_recent_scores(self):
        weights = (0.1, 0.15, 0.2, 0.25, 0.3)
        assert trending_average([80], weights) == pytest.approx(80.0)
        assert trending_average([70, 90], weights) == pytest.approx((70 * 0.25 + 90 * 0.3) / 0.55)
        assert trending_average([], weights) == 0.0

    def test_update_streaks(self):
        assert update_streaks((('grammar_errors', 2),), ['grammar_errors', 'weak_arguments']) == (
            ('grammar_errors', 3), ('weak_arguments', 1),
        )

    def test_policy_from_config(self):
        policy = ProficiencyPolicy.from_config({
            'proficiency': {'streak_length': 2, 'trending_weights': [0.5, 0.5], 'unknown': 1}
        })
        assert policy.streak_length == 2
        assert policy.trending_weights == (0.5, 0.5)

        _, events = _record_all(ProficiencyState(), [80, 80])
        assert events[-1].action == Action.STABLE
        state = ProficiencyState()
        for score in (80, 80):
            state, event = record_score(state, score, NOW, policy=policy)
        assert event.action == Action.PROMOTE

    def test_partial_band_override_keeps_other_levels(self):
        policy = ProficiencyPolicy.from_config({'proficiency': {'promotion_bands': {'intermediate': 90}}})
        assert policy.promotion_bands == {'beginner': 75.0, 'intermediate': 90.0, 'advanced': 85.0}

        state = ProficiencyState()
        for score in (80, 80, 80):
            state, event = record_score(state, score, NOW, policy=policy)
        assert event.action == Action.PROMOTE

        for score in (85, 85, 85):
            state, event = record_score(state, score, NOW, policy=policy)
        assert event.action == Action.STABLE
        assert state.level == Level.INTERMEDIATE

    def test_bands_must_cover_every_level(self):
        with pytest.raises(ValueError, match="demotion_bands"):
            ProficiencyPolicy(demotion_bands={'beginner': 50.0})


class TestProficiencyTracker:

    @pytest.mark.asyncio
    async def test_concurrent_scores_for_one_learner(self):
        tracker = ProficiencyTracker()
        events = await asyncio.gather(*[tracker.record_async('alice', 80, now=NOW) for _ in range(3)])

        assert sorted(e.action.value for e in events) == ['promote', 'stable', 'stable']
        state = tracker.state('alice')
        assert state.level == Level.INTERMEDIATE
        assert len(state.history) == 1

    @pytest.mark.asyncio
    async def test_learners_are_independent(self):
        tracker = ProficiencyTracker()
        tracker.seed('bob', Level.ADVANCED, [90, 91])

        await tracker.record_async('alice', 80, now=NOW)
        await tracker.record_async('bob', 92, now=NOW)

        snapshot = tracker.snapshot()
        assert list(snapshot) == ['alice', 'bob']
        assert snapshot['alice']['level'] == 'beginner'
        assert snapshot['bob']['recent_scores'] == [90.0, 91.0, 92.0]

    def test_unknown_learner_starts_at_beginner(self):
        assert ProficiencyTracker().state('nobody').level == Level.BEGINNER
