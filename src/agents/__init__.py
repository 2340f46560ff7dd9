"""
Boss Q-Learning - Agent System

Capability interfaces the learner talks to, plus a reference boss body.

Usage:
    from agents import BossExecutor

    boss = BossExecutor(ExecutorConfig(), rewards=accumulator)
"""

from agents.base import ActionExecutor, RewardSource
from agents.boss import BossCommand, BossExecutor, DashPhase, TrapPhase

__all__ = [
    'ActionExecutor',
    'RewardSource',
    'BossExecutor',
    'BossCommand',
    'DashPhase',
    'TrapPhase',
]
