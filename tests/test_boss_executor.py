"""
Tests for the reference BossExecutor.

Verifies:
1. Energy costs, regeneration and per-ability cooldowns
2. Charge -> dash and warning -> burn phase machines
3. Aim and placement geometry
4. Hit/miss reporting into the reward accumulator
"""

import pytest

from agents.boss import BossExecutor, DashPhase, TrapPhase
from ai.rewards import RewardAccumulator
from models import ActionType, ExecutorConfig, RewardConfig
from conftest import ManualClock

PLAYER = (10.0, 0.0)
BOSS = (0.0, 0.0)


@pytest.fixture
def rewards():
    return RewardAccumulator(RewardConfig(penalty_per_step=0.0), clock=ManualClock())


@pytest.fixture
def boss(rewards):
    executor = BossExecutor(ExecutorConfig(), rewards=rewards)
    executor.sync(BOSS)
    return executor


class TestReadiness:

    def test_everything_ready_at_start(self, boss):
        assert boss.is_ranged_ready()
        assert boss.is_trap_ready()
        assert boss.is_dash_ready()
        assert not boss.is_busy()
        assert boss.energy_normalized() == 1.0

    def test_ranged_cost_and_cooldown(self, boss):
        assert boss.request_ranged_attack(ActionType.RANGED_AT_CURRENT_POS, PLAYER, (0.0, 0.0), 3.0)
        assert boss.energy == pytest.approx(90.0)
        assert not boss.is_ranged_ready()
        assert not boss.request_ranged_attack(ActionType.RANGED_AT_CURRENT_POS, PLAYER, (0.0, 0.0), 3.0)
        boss.step(4.0)
        assert boss.is_ranged_ready()

    def test_energy_limits_abilities(self, boss):
        boss.energy = 20.0
        assert boss.is_ranged_ready()
        assert not boss.is_trap_ready()
        assert not boss.is_dash_ready()

    def test_energy_regenerates_and_caps(self, boss):
        boss.energy = 50.0
        boss.step(2.0)
        assert boss.energy == pytest.approx(60.0)
        boss.step(100.0)
        assert boss.energy == pytest.approx(100.0)

    def test_dead_boss_has_no_abilities(self, boss):
        boss.dead = True
        assert not boss.is_ranged_ready()
        assert not boss.is_dash_ready()


class TestDash:

    def test_charge_then_dash_then_ready(self, boss, rewards):
        assert boss.request_dash_attack(ActionType.DASH_TOWARDS_PLAYER, PLAYER, BOSS, 3.0)
        assert boss.dash_phase is DashPhase.CHARGING
        assert boss.is_busy()
        assert boss.energy == pytest.approx(65.0)

        boss.step(0.5)
        assert boss.dash_phase is DashPhase.DASHING
        assert rewards.total_boss_attacks == 1

        boss.step(0.4)
        assert boss.dash_phase is DashPhase.READY
        assert not boss.is_busy()
        # dash ended without contact
        assert rewards.drain_step_reward() == pytest.approx(-0.5)

    def test_dash_hit(self, boss, rewards):
        boss.request_dash_attack(ActionType.DASH_TOWARDS_PLAYER, PLAYER, BOSS, 3.0)
        boss.step(0.5)
        boss.on_player_hit()
        assert boss.dash_phase is DashPhase.READY
        assert rewards.drain_step_reward() == pytest.approx(5.0)

    def test_busy_blocks_other_requests(self, boss):
        boss.request_dash_attack(ActionType.DASH_AWAY_FROM_PLAYER, PLAYER, BOSS, 3.0)
        assert not boss.request_ranged_attack(ActionType.RANGED_PREDICTIVE, PLAYER, (0.0, 0.0), 3.0)
        count = len(boss.commands)
        boss.request_move(ActionType.MOVE_TOWARDS_PLAYER, PLAYER, BOSS, 3.0)
        boss.request_idle()
        assert len(boss.commands) == count

    def test_dash_away_target(self, boss):
        boss.request_dash_attack(ActionType.DASH_AWAY_FROM_PLAYER, PLAYER, BOSS, 3.0)
        assert boss.dash_target == pytest.approx((-6.0, 0.0))

    def test_dash_target_clamped_to_arena(self, rewards):
        boss = BossExecutor(ExecutorConfig(arena_x_bounds=(-5.0, 5.0)), rewards=rewards)
        boss.request_dash_attack(ActionType.DASH_TOWARDS_PLAYER, PLAYER, BOSS, 3.0)
        assert boss.dash_target == pytest.approx((5.0, 0.0))

    def test_cooldown_counts_after_dash_ends(self, boss):
        boss.request_dash_attack(ActionType.DASH_TOWARDS_PLAYER, PLAYER, BOSS, 3.0)
        boss.step(0.5)
        boss.step(0.4)
        boss.step(7.0)
        assert not boss.is_dash_ready()
        boss.step(1.0)
        assert boss.is_dash_ready()


class TestTrap:

    def test_warning_then_burn(self, boss, rewards):
        assert boss.request_trap_attack(ActionType.TRAP_AT_PLAYER, PLAYER, BOSS, (0.0, 0.0), 3.0)
        assert boss.trap_phase is TrapPhase.WARNING
        assert boss.trap_position == pytest.approx((10.0, -11.5))

        boss.step(1.0)
        assert boss.trap_phase is TrapPhase.BURNING
        boss.on_trap_triggered()
        boss.step(2.0)
        assert boss.trap_phase is TrapPhase.INACTIVE
        assert rewards.drain_step_reward() == pytest.approx(3.0)

    def test_untriggered_trap_is_a_miss(self, boss, rewards):
        boss.request_trap_attack(ActionType.TRAP_NEAR_BOSS, PLAYER, BOSS, (0.0, 0.0), 3.0)
        boss.step(1.0)
        boss.step(2.0)
        assert rewards.drain_step_reward() == pytest.approx(-0.5)

    def test_trigger_during_warning_ignored(self, boss, rewards):
        boss.request_trap_attack(ActionType.TRAP_AT_PLAYER, PLAYER, BOSS, (0.0, 0.0), 3.0)
        boss.on_trap_triggered()
        assert rewards.drain_step_reward() == 0.0

    @pytest.mark.parametrize("action,expected_x", [
        (ActionType.TRAP_AT_PLAYER, 10.0),
        (ActionType.TRAP_NEAR_BOSS, 0.0),
        (ActionType.TRAP_BETWEEN_BOSS_AND_PLAYER, 5.0),
        (ActionType.TRAP_BEHIND_PLAYER, 7.0),
    ])
    def test_placement(self, boss, action, expected_x):
        boss.request_trap_attack(action, PLAYER, BOSS, (4.0, 0.0), 3.0)
        assert boss.trap_position[0] == pytest.approx(expected_x)

    def test_placement_respects_walls(self, rewards):
        boss = BossExecutor(ExecutorConfig(arena_x_bounds=(-12.0, 12.0)), rewards=rewards)
        boss.request_trap_attack(ActionType.TRAP_AT_PLAYER, (20.0, 0.0), BOSS, (0.0, 0.0), 3.0)
        assert boss.trap_position[0] == pytest.approx(8.5)


class TestAimAndMove:

    def test_predictive_aim_leads_target(self, boss):
        boss.request_ranged_attack(ActionType.RANGED_PREDICTIVE, PLAYER, (0.0, 5.0), 3.0)
        # 10 units away at projectile speed 10 -> lead of 1 second
        assert boss.last_command.target == pytest.approx((10.0, 5.0))

    def test_offset_aim(self, boss):
        boss.request_ranged_attack(ActionType.RANGED_OFFSET_LEFT, PLAYER, (0.0, 0.0), 3.0)
        assert boss.last_command.target == pytest.approx((7.0, 0.0))

    def test_relative_forward_uses_facing(self, boss):
        boss.sync(BOSS, velocity=(-2.0, 0.0))
        boss.request_ranged_attack(ActionType.RANGED_RELATIVE_FORWARD, PLAYER, (0.0, 0.0), 3.0)
        assert boss.last_command.target == pytest.approx((-100.0, 0.0))

    def test_move_towards(self, boss):
        boss.request_move(ActionType.MOVE_TOWARDS_PLAYER, PLAYER, BOSS, 3.0)
        command = boss.last_command
        assert command.target == PLAYER
        assert command.velocity == pytest.approx((4.0, 0.0))

    def test_move_to_reached_target_stops(self, boss):
        boss.request_move(ActionType.MOVE_TO_ARENA_CENTER, PLAYER, BOSS, 3.0)
        assert boss.last_command.velocity == (0.0, 0.0)

    def test_strafe_is_perpendicular(self, boss):
        boss.request_move(ActionType.MOVE_STRAFE_LEFT, PLAYER, BOSS, 3.0)
        assert boss.last_command.target == pytest.approx((0.0, 3.0))

    def test_damage_and_projectile_reports(self, boss, rewards):
        boss.on_damaged(12.0)
        boss.on_projectile_resolved(hit=True)
        boss.on_projectile_resolved(hit=False)
        assert rewards.drain_step_reward() == pytest.approx(-10.0 + 5.0 - 0.5)
