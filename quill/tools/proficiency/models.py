"""Value types for learner proficiency tracking."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple

from quill.libs.config_loader import ConfigType, policy_overrides

DEFAULT_WINDOW_CAPACITY = 10


class Level(str, Enum):
    BEGINNER = 'beginner'
    INTERMEDIATE = 'intermediate'
    ADVANCED = 'advanced'

    @property
    def higher(self) -> Optional['Level']:
        index = LEVEL_ORDER.index(self)
        return LEVEL_ORDER[index + 1] if index + 1 < len(LEVEL_ORDER) else None

    @property
    def lower(self) -> Optional['Level']:
        index = LEVEL_ORDER.index(self)
        return LEVEL_ORDER[index - 1] if index > 0 else None


LEVEL_ORDER = (Level.BEGINNER, Level.INTERMEDIATE, Level.ADVANCED)


class Action(str, Enum):
    PROMOTE = 'promote'
    DEMOTE = 'demote'
    WARN = 'warn'
    STABLE = 'stable'


# Quality sub-score -> weakness it signals when low
WEAKNESS_KINDS = {
    'grammar': 'grammar_errors',
    'content': 'weak_arguments',
    'organization': 'poor_organization',
    'style': 'vocabulary_limitations',
    'mechanics': 'spelling_errors',
}

PERSISTENT_ERRORS = 'persistent_errors'
DECLINING_PERFORMANCE = 'declining_performance'


def weaknesses_from_scores(quality_scores: Mapping[str, float], threshold: float = 0.6) -> Tuple[str, ...]:
    """Weakness kinds for every sub-score below ``threshold``."""
    return tuple(
        kind for key, kind in WEAKNESS_KINDS.items()
        if key in quality_scores and quality_scores[key] < threshold
    )


@dataclass(frozen=True)
class ProficiencyPolicy:
    """Bands and hysteresis settings for level transitions. Scores are on a 0-100 scale."""

    promotion_bands: Dict[str, float] = field(default_factory=lambda: {
        'beginner': 75.0, 'intermediate': 82.0, 'advanced': 85.0,
    })
    demotion_bands: Dict[str, float] = field(default_factory=lambda: {
        'beginner': 50.0, 'intermediate': 60.0, 'advanced': 72.0,
    })
    streak_length: int = 3
    weakness_threshold: float = 0.6
    persistent_weakness_count: int = 3
    persistent_warning_minimum: int = 2
    decline_min_scores: int = 4
    decline_margin: float = 8.0
    warning_expiry_days: float = 7.0
    trending_weights: Tuple[float, ...] = (0.1, 0.15, 0.2, 0.25, 0.3)
    window_capacity: int = DEFAULT_WINDOW_CAPACITY

    def __post_init__(self):
        levels = {level.value for level in LEVEL_ORDER}
        for name in ('promotion_bands', 'demotion_bands'):
            missing = levels - set(getattr(self, name))
            if missing:
                raise ValueError(f"{name} is missing levels: {sorted(missing)}")

    @property
    def warning_expiry(self) -> timedelta:
        return timedelta(days=self.warning_expiry_days)

    @classmethod
    def from_config(cls, configs: Optional[ConfigType]) -> 'ProficiencyPolicy':
        if not configs:
            return cls()
        overrides = policy_overrides("proficiency", list(cls.__dataclass_fields__), configs)
        # Band overrides may name only some levels
        for name in ('promotion_bands', 'demotion_bands'):
            if name in overrides:
                bands = cls.__dataclass_fields__[name].default_factory()
                bands.update({k: float(v) for k, v in overrides[name].items()})
                overrides[name] = bands
        if 'trending_weights' in overrides:
            overrides['trending_weights'] = tuple(overrides['trending_weights'])
        return cls(**overrides)


@dataclass(frozen=True)
class LevelWarning:
    kind: str
    issued_at: datetime
    expires_after: timedelta
    message: str = ''

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + self.expires_after

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at

    def to_dict(self) -> Dict[str, object]:
        return {
            'kind': self.kind,
            'issued_at': self.issued_at.isoformat(),
            'expires_at': self.expires_at.isoformat(),
            'message': self.message,
        }


@dataclass(frozen=True)
class LevelChange:
    previous_level: Level
    new_level: Level
    reason: str
    changed_at: datetime

    def to_dict(self) -> Dict[str, object]:
        return {
            'previous_level': self.previous_level.value,
            'new_level': self.new_level.value,
            'reason': self.reason,
            'changed_at': self.changed_at.isoformat(),
        }


@dataclass(frozen=True)
class ProficiencyState:
    """
    A learner's level and the bounded history that drives transitions.

    Immutable: the state machine returns a new state for every score.
    """

    level: Level = Level.BEGINNER
    recent_scores: Tuple[float, ...] = ()
    scores_since_change: int = 0
    weakness_streaks: Tuple[Tuple[str, int], ...] = ()
    active_warnings: Tuple[LevelWarning, ...] = ()
    history: Tuple[LevelChange, ...] = ()
    capacity: int = DEFAULT_WINDOW_CAPACITY

    def __post_init__(self):
        if len(self.recent_scores) > self.capacity:
            raise ValueError(
                f"recent_scores holds {len(self.recent_scores)} scores, capacity is {self.capacity}"
            )

    @classmethod
    def from_history(cls, level, scores: Iterable[float],
                     capacity: int = DEFAULT_WINDOW_CAPACITY) -> 'ProficiencyState':
        """Seed a state from a learner's prior calibrated scores (oldest first)."""
        window = tuple(float(s) for s in scores)[-capacity:] if capacity else ()
        if any(not math.isfinite(s) for s in window):
            raise ValueError("Prior scores must be finite numbers")
        return cls(
            level=Level(level),
            recent_scores=window,
            scores_since_change=len(window),
            capacity=capacity,
        )

    @property
    def streaks(self) -> Dict[str, int]:
        return dict(self.weakness_streaks)

    def with_updates(self, **changes) -> 'ProficiencyState':
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, object]:
        return {
            'level': self.level.value,
            'recent_scores': list(self.recent_scores),
            'scores_since_change': self.scores_since_change,
            'weakness_streaks': self.streaks,
            'active_warnings': [w.to_dict() for w in self.active_warnings],
            'history': [h.to_dict() for h in self.history],
        }


@dataclass(frozen=True)
class TransitionEvent:
    """Outcome of evaluating one new score."""

    action: Action
    previous_level: Level
    new_level: Level
    reason: str
    message: str
    occurred_at: datetime
    score: float
    trending_average: float
    window_average: float
    warning: Optional[LevelWarning] = None

    @property
    def level_changed(self) -> bool:
        return self.previous_level != self.new_level

    def to_dict(self) -> Dict[str, object]:
        data = {
            'action': self.action.value,
            'previous_level': self.previous_level.value,
            'new_level': self.new_level.value,
            'reason': self.reason,
            'message': self.message,
            'occurred_at': self.occurred_at.isoformat(),
            'score': self.score,
            'trending_average': round(self.trending_average, 2),
            'window_average': round(self.window_average, 2),
        }
        if self.warning is not None:
            data['warning'] = self.warning.to_dict()
        return data
