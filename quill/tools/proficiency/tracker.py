"""Per-learner serialization of proficiency transitions."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from .models import Level, ProficiencyPolicy, ProficiencyState, TransitionEvent
from .state_machine import record_score

LOG = logging.getLogger(__name__)


class ProficiencyTracker:
    """
    Holds learner states and applies scores one at a time per learner.

    Each learner has its own asyncio.Lock, so two scores for the same
    learner are never evaluated concurrently while different learners
    proceed independently. Persistence is left to the caller, who can read
    states back with ``state`` or ``snapshot``.
    """

    def __init__(self, policy: Optional[ProficiencyPolicy] = None,
                 states: Optional[Dict[str, ProficiencyState]] = None):
        self.policy = policy or ProficiencyPolicy()
        self._states: Dict[str, ProficiencyState] = dict(states or {})
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, learner_id: str) -> asyncio.Lock:
        lock = self._locks.get(learner_id)
        if lock is None:
            lock = self._locks[learner_id] = asyncio.Lock()
        return lock

    def seed(self, learner_id: str, level: Level, scores: Iterable[float]) -> ProficiencyState:
        """Initialize a learner from prior calibrated scores."""
        state = ProficiencyState.from_history(level, scores, capacity=self.policy.window_capacity)
        self._states[learner_id] = state
        return state

    def state(self, learner_id: str) -> ProficiencyState:
        return self._states.get(learner_id) or ProficiencyState(capacity=self.policy.window_capacity)

    async def record_async(self, learner_id: str, score: float,
                           weaknesses: Iterable[str] = (),
                           now: Optional[datetime] = None) -> TransitionEvent:
        """Apply one score for a learner and return the resulting event."""
        async with self._lock_for(learner_id):
            current = self.state(learner_id)
            new_state, event = record_score(current, score, now or datetime.now(timezone.utc),
                                            weaknesses, self.policy)
            self._states[learner_id] = new_state
        LOG.debug(f"Learner {learner_id}: {event.action.value} ({event.reason})")
        return event

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        return {learner_id: state.to_dict() for learner_id, state in sorted(self._states.items())}
