"""
Q-Table - Sparse State Key to Action-Value Vector Mapping.

Every vector has one slot per catalog action (not only the actions a
curriculum stage has unlocked) and starts at zero. Entries are created
lazily on first touch and never removed.

Visit counts live alongside the values; they are diagnostics only and
never influence action selection.
"""

import logging
import math
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from actions import InvalidActionError
from models import TOTAL_ACTIONS


logger = logging.getLogger(__name__)

Q_VALUE_DEFAULT = 0.0
VISIT_THRESHOLDS = (100, 200, 500, 1000)


class QTable:
    """
    Learned policy: state key -> float vector of length `action_count`.

    Example:
        >>> table = QTable()
        >>> table.update("0_0_0_0_1_1_1_4_1_4_0", 9, reward=5.0,
        ...              next_state="1_0_0_0_0_1_1_3_1_3_0", alpha=0.1, gamma=0.95)
        True
    """

    def __init__(self, action_count: int = TOTAL_ACTIONS):
        self.action_count = action_count
        self._values: Dict[str, np.ndarray] = {}
        self._visits: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._values)

    def __contains__(self, state: str) -> bool:
        return state in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def items(self) -> Iterable[Tuple[str, np.ndarray]]:
        return self._values.items()

    def visit_items(self) -> Iterable[Tuple[str, int]]:
        return self._visits.items()

    def clear(self) -> None:
        self._values.clear()
        self._visits.clear()

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def ensure(self, state: str) -> np.ndarray:
        """Return the vector for state, creating a zero vector if absent."""
        vec = self._values.get(state)
        if vec is None:
            vec = np.full(self.action_count, Q_VALUE_DEFAULT, dtype=np.float64)
            self._values[state] = vec
        return vec

    get = ensure

    def set_values(self, state: str, values: Sequence[float]) -> None:
        """Install a full vector (used by persistence). Length must match action_count."""
        if len(values) != self.action_count:
            raise ValueError(f"Expected {self.action_count} values for {state!r}, got {len(values)}")
        self._values[state] = np.asarray(values, dtype=np.float64).copy()

    def _check_action(self, action: int) -> int:
        if isinstance(action, bool) or not isinstance(action, (int, np.integer)) \
                or not 0 <= action < self.action_count:
            raise InvalidActionError(f"Action index {action!r} outside [0, {self.action_count})")
        return int(action)

    def value(self, state: str, action: int) -> float:
        return float(self.ensure(state)[self._check_action(action)])

    def max_value(self, state: str) -> float:
        """
        Largest action-value of state.

        A never-updated state is all zeros, so this returns 0 rather than
        any "minimum" sentinel and does not drag first-touch updates down.
        """
        return float(np.max(self.ensure(state)))

    def best_action(self, state: str, candidates: Sequence[int]) -> int:
        """
        Argmax over candidates only.

        Candidates are scanned in ascending index order and only a strictly
        greater value replaces the incumbent, so ties go to the lowest index.
        Out-of-range candidates are logged and skipped.
        """
        if not candidates:
            raise ValueError("best_action needs at least one candidate")

        values = self.ensure(state)
        best: Optional[int] = None
        best_value = -np.inf
        for action in sorted(candidates):
            try:
                index = self._check_action(action)
            except InvalidActionError as e:
                logger.error(f"[QTable] Skipping candidate: {e}")
                continue
            if best is None or values[index] > best_value:
                best = index
                best_value = values[index]

        if best is None:
            raise InvalidActionError(f"No valid candidate among {list(candidates)}")
        return best

    def update(self, state: str, action: int, reward: float, next_state: Optional[str],
               alpha: float, gamma: float) -> bool:
        """
        One Q-learning step: Q[s,a] += alpha * (r + gamma * maxQ(s') - Q[s,a]).

        next_state=None marks a terminal transition (no bootstrap term).

        Returns:
            True if the table changed; False if the call was rejected
            (unknown state, invalid action or NaN/inf reward), in which case
            nothing is touched.
        """
        try:
            index = self._check_action(action)
        except InvalidActionError as e:
            logger.error(f"[QTable] Rejected update for state {state!r}: {e}")
            return False
        if state not in self._values:
            logger.error(f"[QTable] Rejected update for unknown state {state!r}")
            return False
        if not math.isfinite(reward):
            logger.error(f"[QTable] Rejected non-finite reward {reward!r} for state {state!r}")
            return False

        future = 0.0 if next_state is None else self.max_value(next_state)
        old = self._values[state][index]
        self._values[state][index] = old + alpha * (reward + gamma * future - old)
        return True

    # ------------------------------------------------------------------
    # Visit counts
    # ------------------------------------------------------------------

    def record_visit(self, state: str) -> int:
        self._visits[state] = self._visits.get(state, 0) + 1
        return self._visits[state]

    def visit_count(self, state: str) -> int:
        return self._visits.get(state, 0)

    def set_visits(self, state: str, count: int) -> None:
        self._visits[state] = int(count)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @property
    def unique_states(self) -> int:
        return len(self._values)

    @property
    def visited_states(self) -> int:
        return len(self._visits)

    @property
    def revisited_states(self) -> int:
        return sum(1 for count in self._visits.values() if count > 1)

    def visit_threshold_counts(self, thresholds: Sequence[int] = VISIT_THRESHOLDS) -> Dict[int, int]:
        """Number of states visited strictly more than each threshold."""
        counts = {t: 0 for t in thresholds}
        for visits in self._visits.values():
            for t in thresholds:
                if visits > t:
                    counts[t] += 1
        return counts

    def greedy_policy(self) -> List[Tuple[str, int, float]]:
        """(state, argmax action, value) for every state, ties to the lowest index."""
        rows = []
        for state, values in self._values.items():
            action = int(np.argmax(values))
            rows.append((state, action, float(values[action])))
        return rows

    def stats(self, thresholds: Sequence[int] = VISIT_THRESHOLDS) -> Dict[str, object]:
        """Summary used by periodic progress logs and the inspect command."""
        return {
            'unique_states': self.unique_states,
            'visited_states': self.visited_states,
            'revisited_states': self.revisited_states,
            'visit_thresholds': self.visit_threshold_counts(thresholds),
        }
