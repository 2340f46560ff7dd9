"""
Boss Q-Learning - Reference Boss Executor

Deterministic, tick-steppable implementation of ActionExecutor.

Timed sequences (charge-then-dash, warning-then-burn) are explicit phase
machines with a remaining-time counter advanced by step(dt). Nothing here
simulates physics: every request resolves to a BossCommand (desired
velocity and/or target point) that the surrounding game applies.

Example:
    >>> boss = BossExecutor(ExecutorConfig(), rewards=accumulator)
    >>> boss.sync(position=(10.0, -9.0))
    >>> boss.request_dash_attack(ActionType.DASH_TOWARDS_PLAYER, (0.0, -9.0), (10.0, -9.0), 3.0)
    True
    >>> boss.step(0.5)       # charge completes, dash begins
    >>> boss.dash_phase
    <DashPhase.DASHING: 'dashing'>
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

from agents.base import ActionExecutor
from models import ActionType, ExecutorConfig, Vec2

if TYPE_CHECKING:
    from ai.rewards import RewardAccumulator


logger = logging.getLogger(__name__)

# Squared distance under which a movement target counts as reached
TARGET_REACHED_SQR = 0.25
# Horizontal speed under which "forward" falls back to facing right
FACING_EPSILON = 0.01


# =============================================================================
# VECTOR HELPERS
# =============================================================================

def _sub(a: Vec2, b: Vec2) -> Vec2:
    return (a[0] - b[0], a[1] - b[1])


def _add(a: Vec2, b: Vec2) -> Vec2:
    return (a[0] + b[0], a[1] + b[1])


def _scale(a: Vec2, k: float) -> Vec2:
    return (a[0] * k, a[1] * k)


def _length(a: Vec2) -> float:
    return math.hypot(a[0], a[1])


def _normalized(a: Vec2) -> Vec2:
    n = _length(a)
    if n == 0.0:
        return (0.0, 0.0)
    return (a[0] / n, a[1] / n)


def _left_perpendicular(a: Vec2) -> Vec2:
    return (-a[1], a[0])


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# =============================================================================
# PHASES & COMMANDS
# =============================================================================

class DashPhase(str, Enum):
    READY = "ready"
    CHARGING = "charging"
    DASHING = "dashing"


class TrapPhase(str, Enum):
    INACTIVE = "inactive"
    WARNING = "warning"
    BURNING = "burning"


@dataclass
class BossCommand:
    """Physical intent produced by the latest request."""
    action: ActionType
    velocity: Vec2 = (0.0, 0.0)
    target: Optional[Vec2] = None


# =============================================================================
# BOSS EXECUTOR
# =============================================================================

class BossExecutor(ActionExecutor):
    """
    Energy-limited boss with per-ability cooldowns.

    The owning game calls sync() with the body's current position/velocity,
    step(dt) once per simulation tick, and the on_* hooks when collisions
    resolve. Hit/miss outcomes are reported to the reward accumulator.
    """

    def __init__(self, config: Optional[ExecutorConfig] = None,
                 rewards: Optional['RewardAccumulator'] = None, name: str = "Boss"):
        super().__init__(name)
        self.config = config or ExecutorConfig()
        self.rewards = rewards

        self.position: Vec2 = (0.0, 0.0)
        self.velocity: Vec2 = (0.0, 0.0)
        self.commands: List[BossCommand] = []
        self.reset()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Restore full energy, ready abilities and idle phases."""
        cfg = self.config
        self.energy = cfg.max_energy
        self.dead = False

        # Time since last use; starting at the cooldown means "ready"
        self.ranged_timer = cfg.ranged_cooldown
        self.trap_timer = cfg.trap_cooldown
        self.dash_timer = cfg.dash_cooldown

        self.dash_phase = DashPhase.READY
        self.dash_remaining = 0.0
        self.dash_target: Optional[Vec2] = None
        self.dash_hit = False

        self.trap_phase = TrapPhase.INACTIVE
        self.trap_remaining = 0.0
        self.trap_position: Optional[Vec2] = None
        self.trap_triggered = False

        self.commands.clear()

    def sync(self, position: Vec2, velocity: Vec2 = (0.0, 0.0)) -> None:
        """Mirror the body's physical state before the learner ticks."""
        self.position = (float(position[0]), float(position[1]))
        self.velocity = (float(velocity[0]), float(velocity[1]))

    def step(self, dt: float) -> None:
        """Advance energy regeneration, cooldowns and timed phases by dt seconds."""
        cfg = self.config
        if not self.dead:
            self.energy = min(cfg.max_energy, self.energy + cfg.energy_regen_rate * dt)

        self.ranged_timer += dt
        if self.trap_phase is TrapPhase.INACTIVE:
            self.trap_timer += dt
        if self.dash_phase is DashPhase.READY:
            self.dash_timer += dt

        self._advance_dash(dt)
        self._advance_trap(dt)

    def energy_normalized(self) -> float:
        if self.config.max_energy <= 0:
            return 1.0
        return _clamp(self.energy / self.config.max_energy, 0.0, 1.0)

    @property
    def last_command(self) -> Optional[BossCommand]:
        return self.commands[-1] if self.commands else None

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def is_ranged_ready(self) -> bool:
        cfg = self.config
        return (not self.dead and self.ranged_timer >= cfg.ranged_cooldown
                and self.energy >= cfg.ranged_energy_cost)

    def is_trap_ready(self) -> bool:
        cfg = self.config
        return (not self.dead and self.trap_phase is TrapPhase.INACTIVE
                and self.trap_timer >= cfg.trap_cooldown and self.energy >= cfg.trap_energy_cost)

    def is_dash_ready(self) -> bool:
        cfg = self.config
        return (not self.dead and self.dash_phase is DashPhase.READY
                and self.dash_timer >= cfg.dash_cooldown and self.energy >= cfg.dash_energy_cost)

    def is_busy(self) -> bool:
        return self.dash_phase is not DashPhase.READY

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_move(self, action: ActionType, player_pos: Vec2, self_pos: Vec2,
                     offset: float) -> None:
        if self.dead or self.is_busy():
            return

        to_player = _normalized(_sub(player_pos, self_pos))

        if action == ActionType.MOVE_TOWARDS_PLAYER:
            target = player_pos
        elif action == ActionType.MOVE_AWAY_FROM_PLAYER:
            target = _add(self_pos, _scale(_scale(to_player, -1.0), offset))
        elif action == ActionType.MOVE_STRAFE_LEFT:
            target = _add(self_pos, _scale(_left_perpendicular(to_player), offset))
        elif action == ActionType.MOVE_STRAFE_RIGHT:
            target = _add(self_pos, _scale(_left_perpendicular(to_player), -offset))
        elif action == ActionType.MOVE_STRAFE_UP:
            target = _add(self_pos, (0.0, offset))
        elif action == ActionType.MOVE_STRAFE_DOWN:
            target = _add(self_pos, (0.0, -offset))
        elif action == ActionType.MOVE_TO_ARENA_CENTER:
            target = self.config.arena_center
        elif action == ActionType.MOVE_TO_PLAYER_FLANK:
            target = _add(player_pos, _scale(_left_perpendicular(to_player), offset))
        else:
            logger.warning(f"[{self.name}] Unexpected move action {action!r}; idling")
            self.request_idle()
            return

        delta = _sub(target, self_pos)
        if delta[0] * delta[0] + delta[1] * delta[1] > TARGET_REACHED_SQR:
            velocity = _scale(_normalized(delta), self.config.movement_speed)
        else:
            velocity = (0.0, 0.0)
        self.commands.append(BossCommand(action=action, velocity=velocity, target=target))

    def request_ranged_attack(self, action: ActionType, player_pos: Vec2, player_vel: Vec2,
                              offset: float) -> bool:
        if not self.is_ranged_ready() or self.is_busy():
            return False

        cfg = self.config
        lead_time = _length(_sub(player_pos, self.position)) / cfg.projectile_speed
        predicted = _add(player_pos, _scale(player_vel, lead_time))

        aim_points = {
            ActionType.RANGED_AT_CURRENT_POS: player_pos,
            ActionType.RANGED_PREDICTIVE: predicted,
            ActionType.RANGED_OFFSET_UP: _add(player_pos, (0.0, offset)),
            ActionType.RANGED_OFFSET_DOWN: _add(player_pos, (0.0, -offset)),
            ActionType.RANGED_OFFSET_LEFT: _add(player_pos, (-offset, 0.0)),
            ActionType.RANGED_OFFSET_RIGHT: _add(player_pos, (offset, 0.0)),
            ActionType.RANGED_PREDICTIVE_OFFSET_UP: _add(predicted, (0.0, offset)),
            ActionType.RANGED_PREDICTIVE_OFFSET_DOWN: _add(predicted, (0.0, -offset)),
            ActionType.RANGED_PREDICTIVE_OFFSET_LEFT: _add(predicted, (-offset, 0.0)),
            ActionType.RANGED_PREDICTIVE_OFFSET_RIGHT: _add(predicted, (offset, 0.0)),
            ActionType.RANGED_RELATIVE_UP: _add(self.position, (0.0, cfg.ranged_aim_distance)),
            ActionType.RANGED_RELATIVE_DOWN: _add(self.position, (0.0, -cfg.ranged_aim_distance)),
        }
        if action == ActionType.RANGED_RELATIVE_FORWARD:
            facing = -1.0 if self.velocity[0] < -FACING_EPSILON else 1.0
            target = _add(self.position, (facing * cfg.ranged_aim_distance, 0.0))
        elif action in aim_points:
            target = aim_points[action]
        else:
            logger.warning(f"[{self.name}] Unexpected ranged action {action!r}; aiming at player")
            target = player_pos

        self.energy -= cfg.ranged_energy_cost
        self.ranged_timer = 0.0
        self.commands.append(BossCommand(action=action, target=target))
        return True

    def request_trap_attack(self, action: ActionType, player_pos: Vec2, self_pos: Vec2,
                            player_vel: Vec2, offset: float) -> bool:
        if not self.is_trap_ready() or self.is_busy():
            return False

        cfg = self.config
        if action == ActionType.TRAP_AT_PLAYER:
            x = player_pos[0]
        elif action == ActionType.TRAP_NEAR_BOSS:
            x = self_pos[0]
        elif action == ActionType.TRAP_BETWEEN_BOSS_AND_PLAYER:
            x = (self_pos[0] + player_pos[0]) / 2.0
        elif action == ActionType.TRAP_BEHIND_PLAYER:
            x = _sub(player_pos, _scale(_normalized(player_vel), offset))[0]
        else:
            logger.warning(f"[{self.name}] Unexpected trap action {action!r}; placing at player")
            x = player_pos[0]

        if cfg.arena_x_bounds is not None:
            left, right = cfg.arena_x_bounds
            x = _clamp(x, left + cfg.wall_buffer, right - cfg.wall_buffer)

        self.energy -= cfg.trap_energy_cost
        self.trap_timer = 0.0
        self.trap_phase = TrapPhase.WARNING
        self.trap_remaining = cfg.trap_warning_time
        self.trap_position = (x, cfg.trap_ground_y)
        self.trap_triggered = False
        self.commands.append(BossCommand(action=action, target=self.trap_position))
        return True

    def request_dash_attack(self, action: ActionType, player_pos: Vec2, self_pos: Vec2,
                            offset: float) -> bool:
        if not self.is_dash_ready():
            return False

        cfg = self.config
        to_player = _normalized(_sub(player_pos, self_pos))
        if action == ActionType.DASH_TOWARDS_PLAYER:
            target = player_pos
        elif action == ActionType.DASH_AWAY_FROM_PLAYER:
            target = _add(self_pos, _scale(to_player, -cfg.dash_distance))
        elif action == ActionType.DASH_TO_PLAYER_FLANK:
            target = _add(player_pos, _scale(_left_perpendicular(to_player), offset))
        else:
            logger.warning(f"[{self.name}] Unexpected dash action {action!r}; dashing at player")
            target = player_pos

        self.energy -= cfg.dash_energy_cost
        self.dash_timer = 0.0
        self.dash_phase = DashPhase.CHARGING
        self.dash_remaining = cfg.dash_charge_time
        self.dash_target = self._clamp_to_arena(target)
        self.dash_hit = False
        self.commands.append(BossCommand(action=action, target=self.dash_target))
        return True

    def request_idle(self) -> None:
        if self.dead or self.is_busy():
            return
        self.commands.append(BossCommand(action=ActionType.IDLE))

    # ------------------------------------------------------------------
    # Collision hooks (called by the surrounding game)
    # ------------------------------------------------------------------

    def on_player_hit(self) -> None:
        """Body or dash contact with the opponent."""
        if self.rewards is not None:
            self.rewards.report_hit_player()
        if self.dash_phase is DashPhase.DASHING:
            self.dash_hit = True
            self._end_dash()

    def on_projectile_resolved(self, hit: bool) -> None:
        if self.rewards is None:
            return
        if hit:
            self.rewards.report_hit_player()
        else:
            self.rewards.report_attack_missed()

    def on_trap_triggered(self) -> None:
        if self.trap_phase is not TrapPhase.BURNING:
            return
        self.trap_triggered = True
        if self.rewards is not None:
            self.rewards.report_trap_triggered()

    def on_damaged(self, amount: float) -> None:
        if self.rewards is not None:
            self.rewards.report_took_damage(amount)

    # ------------------------------------------------------------------
    # Phase machines
    # ------------------------------------------------------------------

    def _advance_dash(self, dt: float) -> None:
        if self.dash_phase is DashPhase.READY:
            return
        self.dash_remaining -= dt
        if self.dash_remaining > 0:
            return

        if self.dash_phase is DashPhase.CHARGING:
            if self.dead:
                self.dash_phase = DashPhase.READY
                return
            self.dash_phase = DashPhase.DASHING
            self.dash_remaining = self.config.dash_duration
            if self.rewards is not None:
                self.rewards.report_boss_attack()
        else:
            self._end_dash()

    def _end_dash(self) -> None:
        missed = not self.dash_hit
        self.dash_phase = DashPhase.READY
        self.dash_remaining = 0.0
        self.dash_target = None
        self.dash_hit = False
        if missed and not self.dead and self.rewards is not None:
            self.rewards.report_attack_missed()

    def _advance_trap(self, dt: float) -> None:
        if self.trap_phase is TrapPhase.INACTIVE:
            return
        self.trap_remaining -= dt
        if self.trap_remaining > 0:
            return

        if self.trap_phase is TrapPhase.WARNING:
            self.trap_phase = TrapPhase.BURNING
            self.trap_remaining = self.config.trap_burn_time
            if self.rewards is not None:
                self.rewards.report_boss_attack()
        else:
            if not self.trap_triggered and self.rewards is not None:
                self.rewards.report_attack_missed()
            self.trap_phase = TrapPhase.INACTIVE
            self.trap_remaining = 0.0
            self.trap_position = None
            self.trap_triggered = False

    def _clamp_to_arena(self, point: Vec2) -> Vec2:
        cfg = self.config
        x, y = point
        if cfg.arena_x_bounds is not None:
            x = _clamp(x, cfg.arena_x_bounds[0], cfg.arena_x_bounds[1])
        if cfg.arena_y_bounds is not None:
            y = _clamp(y, cfg.arena_y_bounds[0], cfg.arena_y_bounds[1])
        return (x, y)
