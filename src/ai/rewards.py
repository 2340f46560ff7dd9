"""
Reward Accumulator - Event-Sourced Step Rewards.

Combat collaborators (projectiles, traps, health components, the episode
manager) call the report_* methods whenever something happens. The learner
drains the running total exactly once per decision tick.

This is a single-slot accumulator, not a queue: events between two drains
sum into one scalar. A terminal win/loss reward is "sticky": the first one
reported wins, and it is added on top of the step accumulation at the next
drain.
"""

import logging
import time
from typing import Callable, Optional

from agents.base import RewardSource
from models import RewardConfig


logger = logging.getLogger(__name__)


class RewardAccumulator(RewardSource):
    """
    Collects reward events for the boss between decision ticks.

    Args:
        config: Reward values (defaults to RewardConfig())
        clock: Seconds source used to time episodes (injectable for tests)
    """

    def __init__(self, config: Optional[RewardConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or RewardConfig()
        self._clock = clock
        self.start_new_episode()

    # ------------------------------------------------------------------
    # Episode lifecycle
    # ------------------------------------------------------------------

    def start_new_episode(self) -> None:
        """Reset every accumulator and restart the episode clock."""
        self._step_reward = 0.0
        self._pending_terminal = 0.0
        self._terminal_pending = False
        self._episode_reward = 0.0
        self._episode_start = self._clock()
        self.total_boss_attacks = 0

    @property
    def episode_start(self) -> float:
        return self._episode_start

    def episode_duration(self) -> float:
        return self._clock() - self._episode_start

    # ------------------------------------------------------------------
    # Step events
    # ------------------------------------------------------------------

    def report_hit_player(self) -> None:
        self._step_reward += self.config.reward_hit_player

    def report_took_damage(self, amount: float = 0.0) -> None:
        """Flat penalty; the damage amount is not used for scaling."""
        self._step_reward += self.config.penalty_took_damage

    def report_attack_missed(self) -> None:
        self._step_reward += self.config.penalty_attack_missed

    def report_trap_triggered(self) -> None:
        self._step_reward += self.config.reward_trap_triggered

    def report_boss_attack(self) -> None:
        """Counts attacks fired; carries no reward."""
        self.total_boss_attacks += 1

    # ------------------------------------------------------------------
    # Terminal events
    # ------------------------------------------------------------------

    def report_boss_win(self) -> None:
        """Terminal reward for defeating the opponent; faster wins earn more."""
        if self._terminal_pending:
            return
        cfg = self.config
        reward = cfg.reward_boss_wins_base
        if cfg.scale_terminal_reward_by_time and cfg.max_episode_duration > 0:
            time_factor = min(1.0, max(0.0, 1.0 - self.episode_duration() / cfg.max_episode_duration))
            reward += cfg.reward_boss_wins_base * time_factor
        self._set_terminal(reward)

    def report_boss_loss(self) -> None:
        """Terminal penalty for being defeated or running out of time."""
        if self._terminal_pending:
            return
        self._set_terminal(self.config.penalty_boss_loses_base)

    def _set_terminal(self, reward: float) -> None:
        self._pending_terminal = reward
        self._terminal_pending = True
        logger.info(f"[Rewards] Terminal reward {reward:+.2f} after {self.episode_duration():.2f}s")

    def is_episode_done(self) -> bool:
        """True once a terminal reward is pending."""
        return self._terminal_pending

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def drain_step_reward(self) -> float:
        reward = self._step_reward + self.config.penalty_per_step
        if self._terminal_pending:
            reward += self._pending_terminal
            self._pending_terminal = 0.0
            self._terminal_pending = False
        self._step_reward = 0.0
        self._episode_reward += reward
        logger.debug(f"[Rewards] Drained {reward:+.3f} (episode total {self._episode_reward:+.3f})")
        return reward

    def episode_total_reward(self) -> float:
        """Episode total so far, including anything not yet drained. Does not reset."""
        total = self._episode_reward + self._step_reward
        if self._terminal_pending:
            total += self._pending_terminal
        return total
