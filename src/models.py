"""
Boss Q-Learning - Data Layer (models.py)
Defines the action enumeration, configuration objects and persisted snapshots.
All models are pydantic models so they validate on construction and serialize to JSON.
"""

import math
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator


Vec2 = Tuple[float, float]


# ============================================================================
# 1. ACTIONS
# ============================================================================

class ActionType(IntEnum):
    """
    Every discrete action the boss can take.

    The integer values are part of the saved Q-table schema: a Q-vector slot
    index IS the action value. Reordering or inserting members invalidates
    previously saved tables (detected on load by vector length).
    """
    IDLE = 0

    # Movement (1-8)
    MOVE_TOWARDS_PLAYER = 1
    MOVE_AWAY_FROM_PLAYER = 2
    MOVE_STRAFE_LEFT = 3
    MOVE_STRAFE_RIGHT = 4
    MOVE_STRAFE_UP = 5
    MOVE_STRAFE_DOWN = 6
    MOVE_TO_ARENA_CENTER = 7
    MOVE_TO_PLAYER_FLANK = 8

    # Ranged aiming (9-21)
    RANGED_AT_CURRENT_POS = 9
    RANGED_PREDICTIVE = 10
    RANGED_OFFSET_UP = 11
    RANGED_OFFSET_DOWN = 12
    RANGED_OFFSET_LEFT = 13
    RANGED_OFFSET_RIGHT = 14
    RANGED_PREDICTIVE_OFFSET_UP = 15
    RANGED_PREDICTIVE_OFFSET_DOWN = 16
    RANGED_PREDICTIVE_OFFSET_LEFT = 17
    RANGED_PREDICTIVE_OFFSET_RIGHT = 18
    RANGED_RELATIVE_FORWARD = 19
    RANGED_RELATIVE_UP = 20
    RANGED_RELATIVE_DOWN = 21

    # Trap placement (22-25)
    TRAP_AT_PLAYER = 22
    TRAP_NEAR_BOSS = 23
    TRAP_BETWEEN_BOSS_AND_PLAYER = 24
    TRAP_BEHIND_PLAYER = 25

    # Dash (26-28)
    DASH_TOWARDS_PLAYER = 26
    DASH_AWAY_FROM_PLAYER = 27
    DASH_TO_PLAYER_FLANK = 28


TOTAL_ACTIONS = len(ActionType)


class ActionCategory(str, Enum):
    """Contiguous groups of the action catalog."""
    IDLE = "idle"
    MOVEMENT = "movement"
    RANGED = "ranged"
    TRAP = "trap"
    DASH = "dash"


class EpisodeOutcome(str, Enum):
    """Terminal outcome of a training episode, from the boss's point of view."""
    WIN = "win"
    LOSS = "loss"
    TIMEOUT = "timeout"


# ============================================================================
# 2. CONFIGURATION
# ============================================================================

class CurriculumStage(BaseModel):
    """
    One stage of the training curriculum.

    A stage unlocks a prefix of the action catalog and sets the state
    discretization used while it is active.
    """
    num_actions: int = Field(10, description="Actions unlocked (prefix of ActionType ordering)")
    position_discretization: float = Field(4.0, description="World units per relative-position bin")
    velocity_threshold_low: float = Field(2.0, description="Below this |v| the velocity bin is 0")
    velocity_threshold_high: float = Field(6.0, description="At or above this |v| the velocity bin is +/-2")
    player_speed: float = Field(3.0, description="Opponent speed hint for the surrounding game")
    min_episodes: int = Field(100, description="Lifetime episodes that must be exceeded to advance")
    min_average_reward: float = Field(50.0, description="Trailing average reward that must be exceeded to advance")

    @field_validator('num_actions')
    @classmethod
    def _num_actions_in_catalog(cls, v: int) -> int:
        if not 1 <= v <= TOTAL_ACTIONS:
            raise ValueError(f"num_actions must be in [1, {TOTAL_ACTIONS}], got {v}")
        return v

    @field_validator('position_discretization')
    @classmethod
    def _positive_factor(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("position_discretization must be positive")
        return v


DEFAULT_CURRICULUM: List[CurriculumStage] = [
    # Idle + movement only
    CurriculumStage(num_actions=int(ActionType.RANGED_AT_CURRENT_POS), position_discretization=4.0,
                    velocity_threshold_low=2.0, velocity_threshold_high=6.0,
                    min_episodes=100, min_average_reward=-50.0),
    # + ranged attacks
    CurriculumStage(num_actions=int(ActionType.TRAP_AT_PLAYER), position_discretization=3.0,
                    velocity_threshold_low=1.5, velocity_threshold_high=5.0,
                    min_episodes=300, min_average_reward=0.0),
    # + flame traps
    CurriculumStage(num_actions=int(ActionType.DASH_TOWARDS_PLAYER), position_discretization=2.5,
                    velocity_threshold_low=1.0, velocity_threshold_high=5.0,
                    min_episodes=600, min_average_reward=50.0),
    # everything
    CurriculumStage(num_actions=TOTAL_ACTIONS, position_discretization=2.5,
                    velocity_threshold_low=1.0, velocity_threshold_high=5.0,
                    min_episodes=1000, min_average_reward=100.0),
]


class LearnerConfig(BaseModel):
    """Hyperparameters and wiring for the boss Q-learning agent."""

    # Q-learning
    learning_rate: float = Field(0.1, description="Alpha: how much new information overrides old")
    discount_factor: float = Field(0.95, description="Gamma: importance of future rewards")
    epsilon: float = Field(1.0, description="Initial exploration rate")
    epsilon_decay: float = Field(0.9995, description="Multiplicative decay applied after each update")
    epsilon_min: float = Field(0.1, description="Floor for epsilon")

    # Gameplay & discretization
    global_cooldown: float = Field(0.5, description="Seconds between successful ability executions")
    position_discretization: float = Field(2.5, description="World units per relative-position bin")
    velocity_threshold_low: float = 1.0
    velocity_threshold_high: float = 5.0
    energy_bins: int = Field(5, description="Bins for normalized boss energy")
    health_bins: int = Field(5, description="Bins for normalized opponent health")
    activation_range: float = Field(20.0, description="Learner only acts while the opponent is this close")
    action_distance_offset: float = Field(3.0, description="Offset handed to the executor for move/aim geometry")

    # Curriculum
    use_curriculum: bool = False
    curriculum: List[CurriculumStage] = Field(default_factory=lambda: [s.model_copy() for s in DEFAULT_CURRICULUM])
    curriculum_stage: int = Field(0, description="Stage to start from")
    reward_window: int = Field(50, description="Trailing episodes averaged for curriculum advancement")

    # Persistence & logging
    table_path: str = "BossQTable.json"
    log_path: Optional[str] = "BossTrainingLog.csv"
    save_interval: int = Field(100, description="Save the table every N episodes (0 disables)")
    log_frequency: int = Field(100, description="Log a batch summary every N episodes (0 disables)")
    shutdown_save_timeout: float = Field(2.0, description="Max seconds a shutdown save waits for an in-flight save")

    seed: Optional[int] = None

    @field_validator('learning_rate')
    @classmethod
    def _alpha_range(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("learning_rate must be in (0, 1]")
        return v

    @field_validator('discount_factor')
    @classmethod
    def _gamma_range(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError("discount_factor must be in [0, 1)")
        return v

    @field_validator('epsilon_decay')
    @classmethod
    def _decay_range(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("epsilon_decay must be in (0, 1]")
        return v

    @field_validator('energy_bins', 'health_bins', 'reward_window')
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator('position_discretization')
    @classmethod
    def _positive_factor(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("position_discretization must be positive")
        return v

    @model_validator(mode='after')
    def _check_consistency(self) -> 'LearnerConfig':
        if not 0.0 <= self.epsilon_min <= self.epsilon <= 1.0:
            raise ValueError("require 0 <= epsilon_min <= epsilon <= 1")
        if self.use_curriculum:
            if not self.curriculum:
                raise ValueError("use_curriculum requires at least one stage")
            if not 0 <= self.curriculum_stage < len(self.curriculum):
                raise ValueError(f"curriculum_stage {self.curriculum_stage} out of range")
        return self


class RewardConfig(BaseModel):
    """Reward shaping for the boss. Terminal values apply once per episode."""
    reward_boss_wins_base: float = Field(200.0, description="Base reward when the boss defeats the opponent")
    penalty_boss_loses_base: float = Field(-200.0, description="Penalty when the boss is defeated or times out")
    max_episode_duration: float = Field(45.0, description="Seconds; scales the win bonus")
    scale_terminal_reward_by_time: bool = Field(True, description="Faster wins earn up to double the base reward")

    reward_hit_player: float = 5.0
    penalty_took_damage: float = -10.0
    penalty_attack_missed: float = -0.5
    reward_trap_triggered: float = 3.0
    penalty_per_step: float = Field(-0.01, description="Added on every drain to encourage efficiency")


class ExecutorConfig(BaseModel):
    """Tunables for the reference boss executor."""
    ranged_cooldown: float = 4.0
    trap_cooldown: float = 4.0
    dash_cooldown: float = 8.0

    max_energy: float = 100.0
    energy_regen_rate: float = Field(5.0, description="Energy per second")
    ranged_energy_cost: float = 10.0
    trap_energy_cost: float = 25.0
    dash_energy_cost: float = 35.0

    dash_charge_time: float = 0.5
    dash_duration: float = 0.4
    dash_distance: float = 6.0
    trap_warning_time: float = 1.0
    trap_burn_time: float = 2.0

    movement_speed: float = 4.0
    projectile_speed: float = 10.0
    ranged_aim_distance: float = 100.0
    arena_center: Vec2 = (0.0, 0.0)
    arena_x_bounds: Optional[Vec2] = Field(None, description="(left wall x, right wall x)")
    arena_y_bounds: Optional[Vec2] = Field(None, description="(floor y, ceiling y)")
    wall_buffer: float = 3.5
    trap_ground_y: float = -11.5


# ============================================================================
# 3. OBSERVATIONS
# ============================================================================

class Observation(BaseModel):
    """
    Continuous world observation handed to the learner each decision tick.

    Positions are optional: a missing handle (despawned boss or opponent)
    or a NaN/inf reading yields the sentinel state instead of an exception.
    """
    boss_position: Optional[Vec2] = None
    player_position: Optional[Vec2] = None
    player_velocity: Vec2 = (0.0, 0.0)
    boss_energy: float = Field(1.0, description="Normalized boss energy [0, 1]")
    player_grounded: bool = True
    player_health: float = Field(1.0, description="Normalized opponent health [0, 1]")
    player_invulnerable: bool = False

    @property
    def is_complete(self) -> bool:
        """Both positions present and every numeric reading finite."""
        if self.boss_position is None or self.player_position is None:
            return False
        numbers = (*self.boss_position, *self.player_position, *self.player_velocity,
                   self.boss_energy, self.player_health)
        return all(math.isfinite(v) for v in numbers)

    def distance(self) -> float:
        """Euclidean boss-to-player distance (requires a complete observation)."""
        dx = self.player_position[0] - self.boss_position[0]
        dy = self.player_position[1] - self.boss_position[1]
        return (dx * dx + dy * dy) ** 0.5


# ============================================================================
# 4. PERSISTENCE & REPORTING
# ============================================================================

class QTableSnapshot(BaseModel):
    """
    On-disk record of the learned policy.

    Parallel lists keep the format self-describing and diff-friendly:
    q_states[i] owns q_values[i], visit_states[i] owns visit_counts[i].
    """
    action_count: int = TOTAL_ACTIONS
    episode_count: Optional[int] = None
    saved_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    q_states: List[str] = Field(default_factory=list)
    q_values: List[List[float]] = Field(default_factory=list)
    visit_states: List[str] = Field(default_factory=list)
    visit_counts: List[int] = Field(default_factory=list)


class EpisodeRecord(BaseModel):
    """Summary of one finished episode."""
    episode: int
    started_at: float
    duration: float
    total_reward: float
    outcome: EpisodeOutcome
    stage: int


class TrainingStats(BaseModel):
    """Snapshot of training progress (stage, trailing reward, win rate)."""
    episodes: int
    stage: int
    epsilon: float
    average_reward: float
    win_rate: float
    unique_states: int
    visited_states: int
    revisited_states: int
    visit_thresholds: Dict[int, int] = Field(default_factory=dict)
