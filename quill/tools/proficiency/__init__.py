"""Learner proficiency tracking with hysteresis-damped level transitions."""

from .models import (
    Action,
    Level,
    LevelChange,
    LevelWarning,
    ProficiencyPolicy,
    ProficiencyState,
    TransitionEvent,
    weaknesses_from_scores,
)
from .state_machine import record_score, trending_average
from .tracker import ProficiencyTracker

__all__ = [
    'Action',
    'Level',
    'LevelChange',
    'LevelWarning',
    'ProficiencyPolicy',
    'ProficiencyState',
    'ProficiencyTracker',
    'TransitionEvent',
    'record_score',
    'trending_average',
    'weaknesses_from_scores',
]
