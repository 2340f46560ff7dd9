"""
Boss Q-Learning - Collaborator Interfaces

Abstract base classes for everything the learner talks to but does not own.
Defines the contract that every boss variant (executor) and every reward
reporter must follow, so the learner can be tested in isolation.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models import ActionType, Vec2


class ActionExecutor(ABC):
    """
    Capability interface of a boss body.

    The learner picks discrete actions; the executor turns them into
    physical intent (velocity, projectile, trap, dash). One concrete
    implementation exists per boss variant.

    Attributes:
        name: Display name for this executor
    """

    def __init__(self, name: str = "Boss"):
        self.name = name

    # ------------------------------------------------------------------
    # Readiness queries
    # ------------------------------------------------------------------

    @abstractmethod
    def is_ranged_ready(self) -> bool:
        """Ranged cooldown elapsed and its resource cost can be paid."""

    @abstractmethod
    def is_trap_ready(self) -> bool:
        """Trap cooldown elapsed and its resource cost can be paid."""

    @abstractmethod
    def is_dash_ready(self) -> bool:
        """Dash cooldown elapsed and its resource cost can be paid."""

    @abstractmethod
    def is_busy(self) -> bool:
        """True while mid-charge or mid-dash (non-interruptible)."""

    # ------------------------------------------------------------------
    # Action requests
    # ------------------------------------------------------------------

    @abstractmethod
    def request_move(self, action: 'ActionType', player_pos: 'Vec2', self_pos: 'Vec2',
                     offset: float) -> None:
        """Steer according to a movement variant."""

    @abstractmethod
    def request_ranged_attack(self, action: 'ActionType', player_pos: 'Vec2', player_vel: 'Vec2',
                              offset: float) -> bool:
        """
        Fire a projectile according to an aiming variant.

        Returns:
            True if the attack was actually performed
        """

    @abstractmethod
    def request_trap_attack(self, action: 'ActionType', player_pos: 'Vec2', self_pos: 'Vec2',
                            player_vel: 'Vec2', offset: float) -> bool:
        """
        Place a trap according to a placement variant.

        Returns:
            True if the trap was actually placed
        """

    @abstractmethod
    def request_dash_attack(self, action: 'ActionType', player_pos: 'Vec2', self_pos: 'Vec2',
                            offset: float) -> bool:
        """
        Start a charge-then-dash according to a dash variant.

        Returns:
            True if the charge started
        """

    @abstractmethod
    def request_idle(self) -> None:
        """Stop moving for this step."""

    def __repr__(self):
        return f"{self.__class__.__name__}(name='{self.name}')"


class RewardSource(ABC):
    """Event-sourced reward reporter drained once per decision tick."""

    @abstractmethod
    def drain_step_reward(self) -> float:
        """
        Pull and reset the reward accumulated since the previous drain.

        Includes the per-step penalty and any pending terminal reward.
        """
