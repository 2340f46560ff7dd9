"""
Pytest configuration and fixtures.
Provides fake collaborators, configs and observations for all tests.
"""

import sys
sys.path.insert(0, 'src')

import random

import pytest
from typing import List, Tuple

from agents.base import ActionExecutor, RewardSource
from ai.learner import BossQLearner
from ai.persistence import QTableStore
from models import ActionType, LearnerConfig, Observation


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeExecutor(ActionExecutor):
    """
    Scriptable executor that records every request.

    Readiness flags and `succeed` can be flipped between ticks.
    """

    def __init__(self, ranged=True, trap=True, dash=True, busy=False, succeed=True):
        super().__init__("FakeBoss")
        self.ranged = ranged
        self.trap = trap
        self.dash = dash
        self.busy = busy
        self.succeed = succeed
        self.calls: List[Tuple[str, int]] = []

    def is_ranged_ready(self):
        return self.ranged

    def is_trap_ready(self):
        return self.trap

    def is_dash_ready(self):
        return self.dash

    def is_busy(self):
        return self.busy

    def request_move(self, action, player_pos, self_pos, offset):
        self.calls.append(('move', int(action)))

    def request_ranged_attack(self, action, player_pos, player_vel, offset):
        self.calls.append(('ranged', int(action)))
        return self.succeed

    def request_trap_attack(self, action, player_pos, self_pos, player_vel, offset):
        self.calls.append(('trap', int(action)))
        return self.succeed

    def request_dash_attack(self, action, player_pos, self_pos, offset):
        self.calls.append(('dash', int(action)))
        return self.succeed

    def request_idle(self):
        self.calls.append(('idle', int(ActionType.IDLE)))

    def kinds(self) -> List[str]:
        return [kind for kind, _ in self.calls]


class FakeRewardSource(RewardSource):
    """Returns queued rewards in order, then `default` forever."""

    def __init__(self, rewards=None, default=0.0):
        self.queue = list(rewards or [])
        self.default = default
        self.drains = 0

    def push(self, reward: float) -> None:
        self.queue.append(reward)

    def drain_step_reward(self):
        self.drains += 1
        if self.queue:
            return self.queue.pop(0)
        return self.default


class FixedRandom(random.Random):
    """random.Random whose random() always returns `value`."""

    def __init__(self, value: float, seed: int = 0):
        super().__init__(seed)
        self.value = value

    def random(self):
        return self.value


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def reward_source():
    return FakeRewardSource()


@pytest.fixture
def config(tmp_path):
    """Deterministic learner config writing into tmp_path."""
    return LearnerConfig(
        table_path=str(tmp_path / "BossQTable.json"),
        log_path=str(tmp_path / "BossTrainingLog.csv"),
        seed=1234,
        save_interval=0,
    )


@pytest.fixture
def greedy_config(config):
    """Same as config but never explores."""
    return config.model_copy(update={'epsilon': 0.0, 'epsilon_min': 0.0})


@pytest.fixture
def learner(executor, reward_source, config):
    return BossQLearner(executor, reward_source, config)


@pytest.fixture
def store(tmp_path):
    return QTableStore(str(tmp_path / "table.json"))


@pytest.fixture
def near_observation():
    """Opponent 5 units to the right of the boss, standing still."""
    return make_observation(boss=(0.0, 0.0), player=(5.0, 0.0))


# ============================================================================
# HELPERS
# ============================================================================

class ManualClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_observation(boss=(0.0, 0.0), player=(5.0, 0.0), velocity=(0.0, 0.0),
                     energy=1.0, grounded=True, health=1.0, invulnerable=False) -> Observation:
    return Observation(
        boss_position=boss,
        player_position=player,
        player_velocity=velocity,
        boss_energy=energy,
        player_grounded=grounded,
        player_health=health,
        player_invulnerable=invulnerable,
    )


def pytest_configure(config):
    """
    Configure pytest markers and other settings.
    """
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
