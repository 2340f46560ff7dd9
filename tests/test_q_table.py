"""
Tests for QTable.

Verifies:
1. Lazy zero-initialized vectors of fixed length
2. The Q-learning update rule (bootstrapped and terminal)
3. Tie-breaking and candidate filtering in best_action
4. Visit counts and diagnostics
"""

import numpy as np
import pytest

from actions import InvalidActionError
from ai.q_table import QTable
from models import TOTAL_ACTIONS

S = "0_0_0_0_1_1_1_4_1_4_0"
S2 = "1_0_0_0_1_1_1_4_1_4_0"


class TestValues:

    def test_lazy_zero_vector(self):
        table = QTable()
        assert S not in table
        vec = table.ensure(S)
        assert S in table
        assert vec.shape == (TOTAL_ACTIONS,)
        assert np.all(vec == 0.0)

    def test_get_is_ensure(self):
        table = QTable()
        assert table.get(S) is table.ensure(S)

    def test_max_value_of_fresh_state_is_zero(self):
        assert QTable().max_value(S2) == 0.0

    def test_set_values_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            QTable().set_values(S, [0.0] * 5)

    def test_value_rejects_bad_action(self):
        with pytest.raises(InvalidActionError):
            QTable().value(S, TOTAL_ACTIONS)


class TestUpdate:

    def test_first_touch_update(self):
        table = QTable()
        table.ensure(S)
        assert table.update(S, 9, reward=5.0, next_state=S2, alpha=0.1, gamma=0.95)
        assert table.value(S, 9) == pytest.approx(0.5)

    def test_bootstraps_from_next_state(self):
        table = QTable()
        table.ensure(S)
        table.set_values(S2, [0.0] * 3 + [10.0] + [0.0] * (TOTAL_ACTIONS - 4))
        table.update(S, 1, reward=1.0, next_state=S2, alpha=0.5, gamma=0.9)
        # 0 + 0.5 * (1 + 0.9 * 10 - 0)
        assert table.value(S, 1) == pytest.approx(5.0)

    def test_terminal_update_has_no_bootstrap(self):
        table = QTable()
        table.ensure(S)
        table.update(S, 2, reward=-200.0, next_state=None, alpha=0.1, gamma=0.95)
        assert table.value(S, 2) == pytest.approx(-20.0)

    def test_self_transition(self):
        table = QTable()
        table.ensure(S)
        table.update(S, 0, reward=1.0, next_state=S, alpha=1.0, gamma=0.5)
        assert table.value(S, 0) == pytest.approx(1.0)

    def test_update_creates_next_state(self):
        table = QTable()
        table.ensure(S)
        table.update(S, 0, 0.0, S2, 0.1, 0.95)
        assert S2 in table

    @pytest.mark.parametrize("bad", [-1, TOTAL_ACTIONS, 99])
    def test_invalid_action_rejected(self, bad):
        table = QTable()
        table.ensure(S)
        before = table.ensure(S).copy()
        assert table.update(S, bad, 5.0, S2, 0.1, 0.95) is False
        assert np.array_equal(table.ensure(S), before)

    def test_unknown_state_rejected(self):
        table = QTable()
        assert table.update(S, 0, 5.0, S2, 0.1, 0.95) is False
        assert S not in table

    @pytest.mark.parametrize("bad", [float('nan'), float('inf'), float('-inf')])
    def test_non_finite_reward_rejected(self, bad):
        table = QTable()
        table.ensure(S)
        assert table.update(S, 0, bad, S2, 0.1, 0.95) is False
        assert np.all(table.ensure(S) == 0.0)

    def test_values_stay_finite(self):
        table = QTable()
        table.ensure(S)
        for _ in range(5000):
            table.update(S, 3, 200.0, S, 0.1, 0.95)
        assert np.isfinite(table.value(S, 3))
        assert table.value(S, 3) <= 200.0 / (1 - 0.95) + 1e-6


class TestBestAction:

    def test_ties_go_to_lowest_index(self):
        table = QTable()
        assert table.best_action(S, [5, 3, 9]) == 3

    def test_restricted_to_candidates(self):
        table = QTable()
        values = [0.0] * TOTAL_ACTIONS
        values[20] = 100.0
        values[4] = 1.0
        table.set_values(S, values)
        assert table.best_action(S, range(9)) == 4
        assert table.best_action(S, range(TOTAL_ACTIONS)) == 20

    def test_strictly_greater_replaces(self):
        table = QTable()
        values = [0.0] * TOTAL_ACTIONS
        values[2] = 1.0
        values[7] = 1.0
        table.set_values(S, values)
        assert table.best_action(S, range(9)) == 2

    def test_negative_values(self):
        table = QTable()
        values = [-5.0] * TOTAL_ACTIONS
        values[6] = -1.0
        table.set_values(S, values)
        assert table.best_action(S, [0, 6, 8]) == 6

    def test_invalid_candidates_skipped(self):
        table = QTable()
        assert table.best_action(S, [-1, 4, 50]) == 4

    def test_empty_candidates(self):
        with pytest.raises(ValueError):
            QTable().best_action(S, [])


class TestDiagnostics:

    def test_visit_counts(self):
        table = QTable()
        assert table.visit_count(S) == 0
        table.record_visit(S)
        table.record_visit(S)
        table.record_visit(S2)
        assert table.visit_count(S) == 2
        assert table.visited_states == 2
        assert table.revisited_states == 1

    def test_visits_do_not_create_values(self):
        table = QTable()
        table.record_visit(S)
        assert table.unique_states == 0

    def test_threshold_counts_are_strict(self):
        table = QTable()
        table.set_visits("a", 100)
        table.set_visits("b", 101)
        table.set_visits("c", 1001)
        assert table.visit_threshold_counts() == {100: 2, 200: 1, 500: 1, 1000: 1}

    def test_stats(self):
        table = QTable()
        table.ensure(S)
        table.record_visit(S)
        stats = table.stats()
        assert stats['unique_states'] == 1
        assert stats['visited_states'] == 1
        assert stats['revisited_states'] == 0

    def test_greedy_policy(self):
        table = QTable()
        values = [0.0] * TOTAL_ACTIONS
        values[11] = 2.5
        table.set_values(S, values)
        table.ensure(S2)
        policy = {state: (action, value) for state, action, value in table.greedy_policy()}
        assert policy[S] == (11, 2.5)
        assert policy[S2] == (0, 0.0)
