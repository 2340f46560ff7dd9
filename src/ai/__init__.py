"""
AI Module - Tabular Q-Learning for the Boss.

This module provides:
- StateEncoder: Converts Observations to discrete state keys
- QTable: Sparse state -> action-value vectors plus visit diagnostics
- RewardAccumulator: Event-sourced step rewards drained once per tick
- BossQLearner: Epsilon-greedy decision loop with global cooldown and curriculum
- QTableStore / ShutdownGuard: Durable JSON snapshots and exit-time saves
- EpisodeManager: Episode boundaries, CSV training log, training stats
"""

from .state_encoder import (
    StateEncoder,
    DiscreteState,
    DiscretizationParams,
    StateKeyError,
    parse_state_key,
    round_half_away,
    quantize,
    bin_fraction,
    SENTINEL_STATE,
    KEY_DELIMITER,
)
from .q_table import QTable, VISIT_THRESHOLDS
from .rewards import RewardAccumulator
from .persistence import LoadReport, QTableStore, ShutdownGuard
from .learner import BossQLearner, LearnerPhase, TickResult
from .episodes import EpisodeManager

__all__ = [
    # State encoding
    'StateEncoder',
    'DiscreteState',
    'DiscretizationParams',
    'StateKeyError',
    'parse_state_key',
    'round_half_away',
    'quantize',
    'bin_fraction',
    'SENTINEL_STATE',
    'KEY_DELIMITER',
    # Table
    'QTable',
    'VISIT_THRESHOLDS',
    # Rewards
    'RewardAccumulator',
    # Persistence
    'LoadReport',
    'QTableStore',
    'ShutdownGuard',
    # Learner
    'BossQLearner',
    'LearnerPhase',
    'TickResult',
    # Episodes
    'EpisodeManager',
]
