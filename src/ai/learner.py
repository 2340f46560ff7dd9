"""
Boss Q-Learner - The Decision Loop.

One call to tick() per simulation step:

1. Outside the activation range: request Idle, forget the pending
   (state, action) pair, reset the global cooldown gate, and stop.
2. Encode the observation into a state key and count the visit.
3. If a (state, action) pair is pending, drain the step reward and apply
   Q[s,a] += alpha * (r + gamma * maxQ(s') - Q[s,a]); on success decay
   epsilon towards epsilon_min.
4. Pick an action epsilon-greedily among the currently valid actions.
5. Dispatch it. Movement and Idle bypass the global cooldown gate; an
   ability is only attempted when the gate is open and the boss is not
   mid-charge/dash, and only a successful ability closes the gate.
6. Remember (state, chosen action) for the next tick, regardless of
   whether the executor actually performed it.

State machine: IDLE (nothing pending) <-> STEPPING (pair pending).

Curriculum stages advance one at a time, never regress, and take effect
immediately (action ceiling and discretization).
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

from actions import ActionCatalog, InvalidActionError
from agents.base import ActionExecutor, RewardSource
from ai.persistence import LoadReport, QTableStore, ShutdownGuard
from ai.q_table import QTable
from ai.state_encoder import SENTINEL_STATE, DiscretizationParams, StateEncoder
from models import ActionCategory, ActionType, CurriculumStage, LearnerConfig, Observation


logger = logging.getLogger(__name__)


class LearnerPhase(str, Enum):
    IDLE = "idle"
    STEPPING = "stepping"


@dataclass
class TickResult:
    """What happened during one decision tick."""
    state: str
    action: int
    explored: bool
    reward: Optional[float] = None      # reward credited to the previous pair
    dispatched: bool = False            # request reached the executor (not gated)
    succeeded: bool = False             # executor reported success


class BossQLearner:
    """
    Tabular Q-learning controller for a boss.

    Args:
        executor: Boss body that performs actions and reports readiness
        rewards: Reward source drained once per tick
        config: Hyperparameters (defaults to LearnerConfig())
        table: Existing QTable to learn into (a fresh one otherwise)
        store: Persistence backend (defaults to QTableStore(config.table_path))
        rng: Random source for exploration (seeded from config.seed otherwise)

    A missing executor or reward source disables the learner: tick() becomes
    a no-op, but the saved table is still loaded for offline inspection.
    """

    def __init__(self, executor: Optional[ActionExecutor], rewards: Optional[RewardSource],
                 config: Optional[LearnerConfig] = None, table: Optional[QTable] = None,
                 store: Optional[QTableStore] = None, catalog: Optional[ActionCatalog] = None,
                 rng: Optional[random.Random] = None):
        self.config = config or LearnerConfig()
        self.catalog = catalog or ActionCatalog()
        self.table = table if table is not None else QTable(self.catalog.size)
        self.store = store if store is not None else QTableStore(self.config.table_path)
        self.rng = rng or random.Random(self.config.seed)

        self.executor = executor
        self.rewards = rewards

        cfg = self.config
        self.encoder = StateEncoder(DiscretizationParams(
            position_factor=cfg.position_discretization,
            velocity_low=cfg.velocity_threshold_low,
            velocity_high=cfg.velocity_threshold_high,
            energy_bins=cfg.energy_bins,
            health_bins=cfg.health_bins,
        ))
        self.epsilon = cfg.epsilon
        self.max_action_index = self.catalog.size
        self.stage = cfg.curriculum_stage if cfg.use_curriculum else 0
        self.recent_rewards: Deque[float] = deque(maxlen=cfg.reward_window)
        self.episode_count = 0
        self.updates = 0

        self.last_state: Optional[str] = None
        self.last_action: Optional[int] = None
        self.gate_remaining = 0.0
        self._guard: Optional[ShutdownGuard] = None

        self.enabled = True
        missing = [name for name, ref in (("executor", executor), ("rewards", rewards)) if ref is None]
        if missing:
            logger.error(f"[Q-Learning] Missing required references {missing}! Disabling learner.")
            self.enabled = False

        logger.info(f"[Q-Learning] Initialized with {self.catalog.size} actions.")
        self.load_report = self.load()

        if cfg.use_curriculum:
            self.apply_stage(self.stage)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def phase(self) -> LearnerPhase:
        return LearnerPhase.IDLE if self.last_state is None else LearnerPhase.STEPPING

    @property
    def current_stage(self) -> Optional[CurriculumStage]:
        if not self.config.use_curriculum:
            return None
        return self.config.curriculum[self.stage]

    def average_reward(self) -> float:
        if not self.recent_rewards:
            return 0.0
        return sum(self.recent_rewards) / len(self.recent_rewards)

    def status(self) -> Dict[str, Any]:
        """Snapshot of learner progress for logs and status displays."""
        status = {
            'enabled': self.enabled,
            'phase': self.phase.value,
            'epsilon': self.epsilon,
            'stage': self.stage,
            'max_action_index': self.max_action_index,
            'episodes': self.episode_count,
            'updates': self.updates,
            'average_reward': self.average_reward(),
            'gate_remaining': self.gate_remaining,
        }
        status.update(self.table.stats())
        return status

    # ------------------------------------------------------------------
    # Decision loop
    # ------------------------------------------------------------------

    def tick(self, observation: Optional[Observation], dt: float) -> Optional[TickResult]:
        """
        Run one decision step.

        Args:
            observation: Current world observation (None or incomplete -> no-op)
            dt: Seconds since the previous tick (drives the global cooldown gate)

        Returns:
            TickResult, or None if nothing was decided this tick
        """
        if not self.enabled:
            return None

        if self.gate_remaining > 0:
            self.gate_remaining = max(0.0, self.gate_remaining - dt)

        if observation is None or not observation.is_complete:
            return None

        if observation.distance() > self.config.activation_range:
            self._deactivate()
            return None

        executor = self.executor
        state = self.encoder.encode(observation, executor.is_ranged_ready(),
                                    executor.is_trap_ready(), executor.is_dash_ready())
        if state == SENTINEL_STATE:
            return None

        self.table.record_visit(state)
        self.table.ensure(state)

        reward = None
        if self.last_state is not None:
            reward = self.rewards.drain_step_reward()
            self._learn(self.last_state, self.last_action, reward, state)

        valid = self.catalog.valid_actions(executor, self.max_action_index)
        action, explored = self.select_action(state, valid)
        dispatched, succeeded = self.dispatch(action, observation)

        self.last_state = state
        self.last_action = action
        return TickResult(state=state, action=action, explored=explored, reward=reward,
                          dispatched=dispatched, succeeded=succeeded)

    def select_action(self, state: str, valid: Optional[List[int]] = None) -> Tuple[int, bool]:
        """
        Epsilon-greedy choice among valid actions.

        Returns:
            (action, explored) where explored is True for a random pick
        """
        if valid is None:
            valid = self.catalog.valid_actions(self.executor, self.max_action_index)
        if not valid:
            logger.warning(f"[Q-Learning] No valid actions for state {state}! Defaulting to Idle.")
            return int(ActionType.IDLE), False

        if self.rng.random() < self.epsilon:
            return self.rng.choice(valid), True
        return self.table.best_action(state, valid), False

    def dispatch(self, action: int, observation: Observation) -> Tuple[bool, bool]:
        """
        Hand the action to the executor through the global cooldown gate.

        Returns:
            (dispatched, succeeded)
        """
        try:
            category = self.catalog.category_of(action)
        except InvalidActionError as e:
            logger.error(f"[Q-Learning] Cannot dispatch: {e}")
            return False, False

        executor = self.executor
        player_pos = observation.player_position
        boss_pos = observation.boss_position
        player_vel = observation.player_velocity
        offset = self.config.action_distance_offset
        action_type = ActionType(action)
        busy = executor.is_busy()

        if category is ActionCategory.IDLE:
            if not busy:
                executor.request_idle()
            return not busy, not busy

        if category is ActionCategory.MOVEMENT:
            if not busy:
                executor.request_move(action_type, player_pos, boss_pos, offset)
            return not busy, not busy

        if self.gate_remaining > 0 or busy:
            return False, False

        if category is ActionCategory.RANGED:
            success = executor.request_ranged_attack(action_type, player_pos, player_vel, offset)
        elif category is ActionCategory.TRAP:
            success = executor.request_trap_attack(action_type, player_pos, boss_pos, player_vel, offset)
        else:
            success = executor.request_dash_attack(action_type, player_pos, boss_pos, offset)

        if success:
            self.gate_remaining = self.config.global_cooldown
        return True, bool(success)

    def _learn(self, state: str, action: Optional[int], reward: float, next_state: Optional[str]) -> bool:
        if action is None:
            return False
        cfg = self.config
        if not self.table.update(state, action, reward, next_state, cfg.learning_rate, cfg.discount_factor):
            return False
        self.updates += 1
        self._decay_epsilon()
        return True

    def _decay_epsilon(self) -> None:
        if self.epsilon > self.config.epsilon_min:
            self.epsilon = max(self.config.epsilon_min, self.epsilon * self.config.epsilon_decay)

    def _deactivate(self) -> None:
        if not self.executor.is_busy():
            self.executor.request_idle()
        self.last_state = None
        self.last_action = None
        self.gate_remaining = 0.0

    # ------------------------------------------------------------------
    # Episode boundaries
    # ------------------------------------------------------------------

    def finish_episode(self) -> Optional[float]:
        """
        Credit the pending pair with the final drained reward (terminal bonus
        included) as a terminal transition, then clear episode memory.

        Returns:
            The drained reward, or None if nothing was pending
        """
        reward = None
        if self.enabled and self.last_state is not None:
            reward = self.rewards.drain_step_reward()
            self._learn(self.last_state, self.last_action, reward, None)
        self.reset_episode()
        return reward

    def reset_episode(self) -> None:
        """Forget the pending pair and open the gate. Table and visits persist."""
        self.last_state = None
        self.last_action = None
        self.gate_remaining = 0.0

    def on_episode_end(self, episode_reward: float, episode_count: int) -> bool:
        """
        Record an episode's total reward and advance the curriculum if earned.

        Advancement requires, simultaneously: a full trailing window whose
        average exceeds the stage's min_average_reward, and a lifetime
        episode count above the stage's min_episodes.

        Returns:
            True if the curriculum advanced
        """
        self.recent_rewards.append(episode_reward)
        self.episode_count = episode_count

        advanced = False
        cfg = self.config
        if cfg.use_curriculum and self.stage < len(cfg.curriculum) - 1:
            stage = cfg.curriculum[self.stage]
            if (len(self.recent_rewards) == cfg.reward_window
                    and self.average_reward() > stage.min_average_reward
                    and episode_count > stage.min_episodes):
                self.apply_stage(self.stage + 1)
                logger.info(f"[Q-Learning] Advanced to curriculum stage {self.stage}")
                advanced = True

        if cfg.save_interval > 0 and episode_count % cfg.save_interval == 0:
            self.save()
        return advanced

    def apply_stage(self, index: int) -> None:
        """Switch to curriculum stage `index` (never backwards)."""
        stages = self.config.curriculum
        if not 0 <= index < len(stages):
            logger.error(f"[Q-Learning] Curriculum stage {index} out of range")
            return
        if index < self.stage:
            logger.error(f"[Q-Learning] Refusing to regress from stage {self.stage} to {index}")
            return

        stage = stages[index]
        self.stage = index
        self.max_action_index = stage.num_actions
        params = self.encoder.params
        params.position_factor = stage.position_discretization
        params.velocity_low = stage.velocity_threshold_low
        params.velocity_high = stage.velocity_threshold_high
        logger.info(f"[Q-Learning] Applied curriculum stage {index} "
                    f"({stage.num_actions} actions, position factor {stage.position_discretization})")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> LoadReport:
        report = self.store.load(self.table)
        if report.episode_count is not None:
            self.episode_count = report.episode_count
        return report

    def save(self, timeout: Optional[float] = None) -> bool:
        saved = self.store.save(self.table, episode_count=self.episode_count, timeout=timeout)
        if self._guard is not None:
            self._guard.resume(saved)
        return saved

    def install_shutdown_hooks(self) -> ShutdownGuard:
        """Save (bounded by shutdown_save_timeout) on exit, SIGINT and SIGTERM."""
        if self._guard is None:
            timeout = self.config.shutdown_save_timeout
            self._guard = ShutdownGuard(lambda: self.save(timeout=timeout),
                                        busy_fn=self.store.saving_on_this_thread)
            self._guard.install()
        return self._guard

    def close(self) -> None:
        """Normal quit: remove shutdown hooks and save once."""
        if self._guard is not None:
            self._guard.uninstall()
            self._guard = None
        self.save()
