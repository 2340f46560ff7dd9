"""
Tests for the ActionCatalog.

Verifies:
1. Contiguous, non-overlapping category ranges covering every action
2. Valid-action filtering by readiness, busy state and curriculum ceiling
3. Out-of-range indices raise InvalidActionError
"""

import pytest

from actions import ACTION_RANGES, ActionCatalog, InvalidActionError
from models import ActionCategory, ActionType, TOTAL_ACTIONS
from conftest import FakeExecutor


@pytest.fixture
def catalog():
    return ActionCatalog()


class TestLayout:

    def test_total_actions(self, catalog):
        assert TOTAL_ACTIONS == 29
        assert catalog.size == 29

    def test_ranges_are_contiguous(self):
        ordered = [ACTION_RANGES[c] for c in (ActionCategory.IDLE, ActionCategory.MOVEMENT,
                                               ActionCategory.RANGED, ActionCategory.TRAP,
                                               ActionCategory.DASH)]
        assert int(ordered[0][0]) == 0
        for (_, end), (start, _) in zip(ordered, ordered[1:]):
            assert int(end) == int(start)
        assert int(ordered[-1][1]) == TOTAL_ACTIONS

    @pytest.mark.parametrize("category,count", [
        (ActionCategory.IDLE, 1),
        (ActionCategory.MOVEMENT, 8),
        (ActionCategory.RANGED, 13),
        (ActionCategory.TRAP, 4),
        (ActionCategory.DASH, 3),
    ])
    def test_category_sizes(self, catalog, category, count):
        assert len(catalog.indices(category)) == count

    def test_category_of(self, catalog):
        assert catalog.category_of(ActionType.IDLE) is ActionCategory.IDLE
        assert catalog.category_of(ActionType.MOVE_TO_PLAYER_FLANK) is ActionCategory.MOVEMENT
        assert catalog.category_of(ActionType.RANGED_RELATIVE_DOWN) is ActionCategory.RANGED
        assert catalog.category_of(ActionType.TRAP_BEHIND_PLAYER) is ActionCategory.TRAP
        assert catalog.category_of(ActionType.DASH_TO_PLAYER_FLANK) is ActionCategory.DASH

    def test_is_ability(self, catalog):
        assert not catalog.is_ability(0)
        assert not catalog.is_ability(5)
        assert catalog.is_ability(9)
        assert catalog.is_ability(22)
        assert catalog.is_ability(28)

    def test_name_of(self, catalog):
        assert catalog.name_of(10) == "RANGED_PREDICTIVE"

    @pytest.mark.parametrize("bad", [-1, 29, 100, 3.0, True])
    def test_invalid_index(self, catalog, bad):
        with pytest.raises(InvalidActionError):
            catalog.category_of(bad)

    def test_invalid_action_error_is_value_error(self):
        assert issubclass(InvalidActionError, ValueError)


class TestValidActions:

    def test_everything_ready(self, catalog):
        assert catalog.valid_actions(FakeExecutor()) == list(range(29))

    def test_nothing_ready(self, catalog):
        executor = FakeExecutor(ranged=False, trap=False, dash=False)
        assert catalog.valid_actions(executor) == list(range(9))

    def test_busy_excludes_movement_and_dash(self, catalog):
        executor = FakeExecutor(busy=True)
        assert catalog.valid_actions(executor) == [0] + list(range(9, 26))

    def test_only_trap_ready(self, catalog):
        executor = FakeExecutor(ranged=False, trap=True, dash=False)
        assert catalog.valid_actions(executor) == list(range(9)) + [22, 23, 24, 25]

    def test_ceiling(self, catalog):
        assert catalog.valid_actions(FakeExecutor(), max_action_index=9) == list(range(9))
        assert catalog.valid_actions(FakeExecutor(), max_action_index=10) == list(range(10))

    def test_ceiling_never_empty(self, catalog):
        executor = FakeExecutor(busy=True, ranged=False, trap=False, dash=False)
        assert catalog.valid_actions(executor, max_action_index=1) == [0]

    def test_fallback_to_idle(self, catalog):
        executor = FakeExecutor(busy=True)
        assert catalog.valid_actions(executor, max_action_index=0) == [0]

    def test_sorted_and_unique(self, catalog):
        valid = catalog.valid_actions(FakeExecutor(ranged=True, trap=False, dash=True))
        assert valid == sorted(set(valid))
