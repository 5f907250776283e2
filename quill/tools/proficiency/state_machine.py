"""Pure level-transition logic for the proficiency state machine.

``record_score`` never reads the clock: callers pass ``now`` so expiry and
history timestamps are deterministic.
"""

import logging
import math
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import (
    DECLINING_PERFORMANCE,
    PERSISTENT_ERRORS,
    WEAKNESS_KINDS,
    Action,
    Level,
    LevelChange,
    LevelWarning,
    ProficiencyPolicy,
    ProficiencyState,
    TransitionEvent,
)

LOG = logging.getLogger(__name__)

ALREADY_AT_TOP = 'already_at_top'
ALREADY_AT_FLOOR = 'already_at_floor'
WARNING_ACTIVE = 'warning_active'
SUSTAINED_HIGH = 'sustained_high_performance'
SUSTAINED_LOW = 'sustained_low_performance'

MESSAGES = {
    Action.PROMOTE: "Great progress! You've been moved up to the {level} level.",
    Action.DEMOTE: "We've adjusted your level to {level} so the feedback better matches where you are.",
    ALREADY_AT_TOP: "Excellent work! You're already at the highest level; keep challenging yourself.",
    ALREADY_AT_FLOOR: "Keep practicing. Focus on the feedback for each essay and your scores will rise.",
    PERSISTENT_ERRORS: "The same issues keep appearing in your essays ({issues}). Focus on them next time.",
    DECLINING_PERFORMANCE: "Your recent scores are lower than usual. Review your last feedback carefully.",
    WARNING_ACTIVE: "Keep working on the issues from your recent warning.",
    'trending_up': "Your recent essays are trending above your average. Keep it up!",
    'trending_down': "Your recent essays are a little below your average. Review your feedback to get back on track.",
}


def trending_average(scores: Sequence[float], weights: Sequence[float]) -> float:
    """Weighted average of the last len(weights) scores, most recent weighted heaviest."""
    recent = list(scores)[-len(weights):]
    if not recent:
        return 0.0
    used = list(weights)[-len(recent):]
    return sum(s * w for s, w in zip(recent, used)) / sum(used)


def window_average(scores: Sequence[float]) -> float:
    return sum(scores) / len(scores) if scores else 0.0


def update_streaks(current: Iterable[Tuple[str, int]],
                   weaknesses: Iterable[str]) -> Tuple[Tuple[str, int], ...]:
    """Consecutive-occurrence counts; a kind missing from this essay resets to zero."""
    present = set(weaknesses)
    previous = dict(current)
    return tuple(
        (kind, previous.get(kind, 0) + 1)
        for kind in WEAKNESS_KINDS.values()
        if kind in present
    )


def _streak_scores(window: Sequence[float], since_change: int, length: int) -> Optional[List[float]]:
    """The last ``length`` scores, if all were recorded since the last level change."""
    if since_change < length or len(window) < length:
        return None
    return list(window)[-length:]


def record_score(state: ProficiencyState,
                 score: float,
                 now: datetime,
                 weaknesses: Iterable[str] = (),
                 policy: Optional[ProficiencyPolicy] = None) -> Tuple[ProficiencyState, TransitionEvent]:
    """
    Append one calibrated score and evaluate at most one transition.

    Checks run in order (demote, promote, warn) and the first that fires
    wins; otherwise the result is stable. A blocked demotion or promotion
    (already at the floor or top) does not stop the warning check.

    Args:
        state: Current learner state
        score: New calibrated score (0-100)
        now: Evaluation time
        weaknesses: Weakness kinds detected in this essay
        policy: Bands and hysteresis settings

    Returns:
        (new_state, event)

    Raises:
        ValueError: If score is not a finite number
    """
    policy = policy or ProficiencyPolicy()
    score = float(score)
    if not math.isfinite(score):
        raise ValueError(f"Score must be finite, got {score!r}")

    capacity = state.capacity
    window = (state.recent_scores + (score,))[-capacity:]
    since_change = min(state.scores_since_change + 1, len(window))
    streaks = update_streaks(state.weakness_streaks, weaknesses)
    warnings = tuple(w for w in state.active_warnings if w.is_active(now))
    trending = trending_average(window, policy.trending_weights)
    average = window_average(window)
    level = state.level

    updated = state.with_updates(
        recent_scores=window,
        scores_since_change=since_change,
        weakness_streaks=streaks,
        active_warnings=warnings,
    )

    def event(action: Action, new_level: Level, reason: str, message: str,
              warning: Optional[LevelWarning] = None) -> TransitionEvent:
        return TransitionEvent(
            action=action,
            previous_level=level,
            new_level=new_level,
            reason=reason,
            message=message,
            occurred_at=now,
            score=score,
            trending_average=trending,
            window_average=average,
            warning=warning,
        )

    def change_level(action: Action, new_level: Level, reason: str):
        LOG.info(f"Level {action.value}: {level.value} -> {new_level.value} ({reason})")
        change = LevelChange(previous_level=level, new_level=new_level, reason=reason, changed_at=now)
        new_state = updated.with_updates(
            level=new_level,
            scores_since_change=0,
            active_warnings=(),
            history=state.history + (change,),
        )
        return new_state, event(action, new_level, reason,
                                MESSAGES[action].format(level=new_level.value))

    blocked_reason = None
    streak = _streak_scores(window, since_change, policy.streak_length)

    if streak is not None and all(s < policy.demotion_bands[level.value] for s in streak):
        if level.lower is not None:
            return change_level(Action.DEMOTE, level.lower, SUSTAINED_LOW)
        blocked_reason = ALREADY_AT_FLOOR
    elif streak is not None and all(s >= policy.promotion_bands[level.value] for s in streak):
        if level.higher is not None:
            return change_level(Action.PROMOTE, level.higher, SUSTAINED_HIGH)
        blocked_reason = ALREADY_AT_TOP

    candidates = []
    persistent = [kind for kind, count in streaks if count >= policy.persistent_weakness_count]
    if len(persistent) >= policy.persistent_warning_minimum:
        candidates.append((PERSISTENT_ERRORS,
                           MESSAGES[PERSISTENT_ERRORS].format(issues=", ".join(persistent))))
    if len(window) >= policy.decline_min_scores and trending < average - policy.decline_margin:
        candidates.append((DECLINING_PERFORMANCE, MESSAGES[DECLINING_PERFORMANCE]))

    active_kinds = {w.kind for w in warnings}
    for kind, message in candidates:
        if kind in active_kinds:
            continue
        warning = LevelWarning(kind=kind, issued_at=now, expires_after=policy.warning_expiry,
                               message=message)
        LOG.info(f"Issuing {kind} warning at level {level.value}")
        new_state = updated.with_updates(active_warnings=warnings + (warning,))
        return new_state, event(Action.WARN, level, kind, message, warning)

    if candidates:
        return updated, event(Action.STABLE, level, WARNING_ACTIVE, MESSAGES[WARNING_ACTIVE])

    if blocked_reason is not None:
        return updated, event(Action.STABLE, level, blocked_reason, MESSAGES[blocked_reason])

    trend = 'trending_up' if trending >= average else 'trending_down'
    return updated, event(Action.STABLE, level, 'stable', MESSAGES[trend])
