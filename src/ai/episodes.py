"""
Episode Manager - Episode Boundaries, Training Log, Progress Stats.

Owns the lifetime episode counter. At the end of every episode it:
1. Reports the terminal reward (win, or loss for a defeat/timeout)
2. Lets the learner credit its pending pair as a terminal transition
3. Feeds the episode total to the learner's curriculum window
4. Appends one row to the CSV training log
5. Every `log_frequency` episodes, logs a batch summary and visit diagnostics
"""

import csv
import logging
import os
import time
from collections import deque
from typing import Callable, Deque, List, Optional

from ai.learner import BossQLearner
from ai.rewards import RewardAccumulator
from models import EpisodeOutcome, EpisodeRecord, LearnerConfig, TrainingStats


logger = logging.getLogger(__name__)

LOG_HEADER = ["Episode", "Reward", "Win", "Stage", "AverageReward"]
WIN_RATE_WINDOW = 100


class EpisodeManager:
    """
    Drives episode start/end for one learner.

    Args:
        learner: The boss learner
        rewards: Accumulator shared with the combat collaborators
        config: Defaults to the learner's config
        clock: Seconds source for episode timing
    """

    def __init__(self, learner: BossQLearner, rewards: RewardAccumulator,
                 config: Optional[LearnerConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.learner = learner
        self.rewards = rewards
        self.config = config or learner.config
        self._clock = clock

        self.episode_count = learner.episode_count
        self.episode_start = clock()
        self.in_episode = False
        self.history: List[EpisodeRecord] = []
        self._recent_wins: Deque[bool] = deque(maxlen=WIN_RATE_WINDOW)
        self._batch_rewards: List[float] = []
        self._batch_wins = 0

        if self.config.log_path:
            self._init_log(self.config.log_path)

    def _init_log(self, path: str) -> None:
        if os.path.exists(path) and os.path.getsize(path) > 0:
            return
        try:
            directory = os.path.dirname(os.path.abspath(path))
            os.makedirs(directory, exist_ok=True)
            with open(path, 'w', newline='', encoding='utf-8') as f:
                csv.writer(f).writerow(LOG_HEADER)
        except OSError as e:
            logger.error(f"[Episodes] Cannot create training log '{path}': {e}")

    # ------------------------------------------------------------------
    # Episode lifecycle
    # ------------------------------------------------------------------

    def begin_episode(self) -> None:
        """Reset reward accumulators and the learner's per-episode memory."""
        self.rewards.start_new_episode()
        self.learner.reset_episode()
        self.episode_start = self._clock()
        self.in_episode = True
        logger.debug(f"[Episodes] Episode {self.episode_count + 1} started")

    def end_episode(self, outcome: EpisodeOutcome) -> EpisodeRecord:
        """
        Close the current episode.

        Args:
            outcome: WIN (boss defeated the opponent), LOSS, or TIMEOUT

        Returns:
            The EpisodeRecord that was logged
        """
        outcome = EpisodeOutcome(outcome)
        if outcome is EpisodeOutcome.WIN:
            self.rewards.report_boss_win()
        else:
            self.rewards.report_boss_loss()

        self.learner.finish_episode()
        total = self.rewards.episode_total_reward()

        self.episode_count += 1
        self.learner.on_episode_end(total, self.episode_count)

        won = outcome is EpisodeOutcome.WIN
        self._recent_wins.append(won)
        self._batch_rewards.append(total)
        self._batch_wins += int(won)

        record = EpisodeRecord(
            episode=self.episode_count,
            started_at=self.episode_start,
            duration=self._clock() - self.episode_start,
            total_reward=total,
            outcome=outcome,
            stage=self.learner.stage,
        )
        self.history.append(record)
        self.in_episode = False

        self._append_log(record)
        freq = self.config.log_frequency
        if freq > 0 and self.episode_count % freq == 0:
            self._log_batch_summary()
        return record

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _append_log(self, record: EpisodeRecord) -> None:
        path = self.config.log_path
        if not path:
            return
        try:
            with open(path, 'a', newline='', encoding='utf-8') as f:
                csv.writer(f).writerow([
                    record.episode,
                    f"{record.total_reward:.2f}",
                    1 if record.outcome is EpisodeOutcome.WIN else 0,
                    record.stage,
                    f"{self.learner.average_reward():.2f}",
                ])
        except OSError as e:
            logger.error(f"[Episodes] Cannot append to training log '{path}': {e}")

    def _log_batch_summary(self) -> None:
        n = len(self._batch_rewards)
        if n == 0:
            return
        stats = self.training_stats()
        logger.info(
            f"[Episodes] Episodes {self.episode_count - n + 1}-{self.episode_count}: "
            f"avg reward {sum(self._batch_rewards) / n:.2f}, "
            f"win rate {self._batch_wins / n:.1%}, epsilon {stats.epsilon:.4f}, stage {stats.stage}"
        )
        logger.info(
            f"[Episodes] States: {stats.unique_states} unique, {stats.visited_states} visited, "
            f"{stats.revisited_states} revisited, thresholds {stats.visit_thresholds}"
        )
        self._batch_rewards = []
        self._batch_wins = 0

    def win_rate(self) -> float:
        if not self._recent_wins:
            return 0.0
        return sum(self._recent_wins) / len(self._recent_wins)

    def training_stats(self) -> TrainingStats:
        table = self.learner.table
        return TrainingStats(
            episodes=self.episode_count,
            stage=self.learner.stage,
            epsilon=self.learner.epsilon,
            average_reward=self.learner.average_reward(),
            win_rate=self.win_rate(),
            unique_states=table.unique_states,
            visited_states=table.visited_states,
            revisited_states=table.revisited_states,
            visit_thresholds=table.visit_threshold_counts(),
        )
