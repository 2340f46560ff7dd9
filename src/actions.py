"""
Boss Q-Learning - Action Catalog (actions.py)
The fixed, ordered vocabulary of boss actions and the legality rules over it.

Action Space Layout:
====================

Index 0:        IDLE
Range 1-8:      MOVEMENT  - towards/away, strafe l/r/u/d, arena center, flank
Range 9-21:     RANGED    - 13 aiming variants
Range 22-25:    TRAP      - 4 placement variants
Range 26-28:    DASH      - 3 dash variants

Total Action Space: 29 indices

The ordering is part of the saved Q-table schema. Curriculum stages unlock
a prefix of it, so cheaper behaviours come first.
"""

from typing import Dict, List, Tuple, TYPE_CHECKING

from models import ActionCategory, ActionType, TOTAL_ACTIONS

if TYPE_CHECKING:
    from agents.base import ActionExecutor


class InvalidActionError(ValueError):
    """Raised when an action index falls outside the catalog."""
    pass


# ============================================================================
# ACTION RANGES (inclusive start, exclusive end)
# ============================================================================

ACTION_RANGES: Dict[ActionCategory, Tuple[int, int]] = {
    ActionCategory.IDLE: (ActionType.IDLE, ActionType.MOVE_TOWARDS_PLAYER),
    ActionCategory.MOVEMENT: (ActionType.MOVE_TOWARDS_PLAYER, ActionType.RANGED_AT_CURRENT_POS),
    ActionCategory.RANGED: (ActionType.RANGED_AT_CURRENT_POS, ActionType.TRAP_AT_PLAYER),
    ActionCategory.TRAP: (ActionType.TRAP_AT_PLAYER, ActionType.DASH_TOWARDS_PLAYER),
    ActionCategory.DASH: (ActionType.DASH_TOWARDS_PLAYER, TOTAL_ACTIONS),
}

ABILITY_CATEGORIES = (ActionCategory.RANGED, ActionCategory.TRAP, ActionCategory.DASH)


class ActionCatalog:
    """
    Total, stable ordering of boss actions partitioned into contiguous ranges.

    Usage:
        >>> catalog = ActionCatalog()
        >>> catalog.category_of(ActionType.DASH_TOWARDS_PLAYER)
        <ActionCategory.DASH: 'dash'>
        >>> catalog.valid_actions(executor, max_action_index=9)
        [0, 1, 2, 3, 4, 5, 6, 7, 8]
    """

    def __init__(self):
        self._category_by_index: List[ActionCategory] = []
        for category, (start, end) in ACTION_RANGES.items():
            for _ in range(int(start), int(end)):
                self._category_by_index.append(category)

        if len(self._category_by_index) != TOTAL_ACTIONS:
            raise RuntimeError("Action ranges do not cover the catalog exactly")

    @property
    def size(self) -> int:
        """Total number of actions (Q-vector length)."""
        return TOTAL_ACTIONS

    def check(self, index: int) -> int:
        """Return index unchanged, or raise InvalidActionError if it is out of range."""
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < TOTAL_ACTIONS:
            raise InvalidActionError(f"Action index {index!r} outside [0, {TOTAL_ACTIONS})")
        return index

    def category_of(self, index: int) -> ActionCategory:
        return self._category_by_index[self.check(index)]

    def is_ability(self, index: int) -> bool:
        """Ranged, trap and dash actions are abilities (gated by the global cooldown)."""
        return self.category_of(index) in ABILITY_CATEGORIES

    def name_of(self, index: int) -> str:
        return ActionType(self.check(index)).name

    def indices(self, category: ActionCategory) -> range:
        start, end = ACTION_RANGES[category]
        return range(int(start), int(end))

    def valid_actions(self, executor: 'ActionExecutor', max_action_index: int = TOTAL_ACTIONS) -> List[int]:
        """
        Actions legal right now, in ascending index order.

        Args:
            executor: Readiness source (ranged/trap/dash ready, busy)
            max_action_index: Curriculum ceiling; only indices below it are kept

        Returns:
            Sorted list of action indices. Never empty: Idle is the fallback.
        """
        busy = executor.is_busy()
        valid = list(self.indices(ActionCategory.IDLE))

        if not busy:
            valid.extend(self.indices(ActionCategory.MOVEMENT))
        if executor.is_ranged_ready():
            valid.extend(self.indices(ActionCategory.RANGED))
        if executor.is_trap_ready():
            valid.extend(self.indices(ActionCategory.TRAP))
        if executor.is_dash_ready() and not busy:
            valid.extend(self.indices(ActionCategory.DASH))

        valid = [a for a in valid if a < max_action_index]
        if not valid:
            return [int(ActionType.IDLE)]
        return valid
