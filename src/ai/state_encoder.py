"""
State Encoder - Continuous Observation to Discrete State Key.

This encoder turns a world observation into the string key that indexes the
Q-table. It is the "eyes" of the boss.

Design Philosophy:
==================

1. RELATIVE: Position is the opponent's displacement from the boss, binned
   by a discretization factor with round-half-away-from-zero so positive
   and negative offsets bin symmetrically (2.5 -> 3, -2.5 -> -3).

2. COARSE VELOCITY: Each velocity axis collapses to {-2, -1, 0, 1, 2}
   against a low and a high threshold.

3. CANONICAL KEY: Fields are integers joined by "_" in a fixed order, so
   identical discretized observations always give identical keys and
   distinct ones never collide.

4. NEVER THROWS ON MISSING DATA: A missing boss or opponent position yields
   SENTINEL_STATE, which the learner treats as a no-op tick.

Key Layout:
===========
  relx _ rely _ velx _ vely _ ranged _ trap _ dash _ energy _ grounded _ health _ invulnerable

Rounding policy is part of the save-file format: changing it re-bins every
position and orphans previously learned states.
"""

import logging
import math
from dataclasses import astuple, dataclass, fields
from typing import Optional

from models import Observation


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

KEY_DELIMITER = "_"
SENTINEL_STATE = "<NO_STATE>"

# Lower bound applied to the low velocity threshold
MIN_QUANTIZE_THRESHOLD = 0.001

DEFAULT_ENERGY_BINS = 5
DEFAULT_HEALTH_BINS = 5


class StateKeyError(ValueError):
    """Raised when a field cannot be embedded in, or parsed from, a state key."""
    pass


# =============================================================================
# BINNING PRIMITIVES
# =============================================================================

def round_half_away(x: float) -> int:
    """Round to nearest integer, ties away from zero (2.5 -> 3, -2.5 -> -3)."""
    if x >= 0:
        return int(math.floor(x + 0.5))
    return -int(math.floor(-x + 0.5))


def quantize(value: float, threshold_low: float, threshold_high: float) -> int:
    """
    Classify a signed magnitude into {-2, -1, 0, 1, 2}.

    Args:
        value: Signed value (e.g. one velocity axis)
        threshold_low: |value| below this -> 0
        threshold_high: |value| at or above this -> +/-2

    Returns:
        0, sign(value) or 2 * sign(value)
    """
    low = max(MIN_QUANTIZE_THRESHOLD, threshold_low)
    high = max(low, threshold_high)

    magnitude = abs(value)
    if magnitude < low:
        return 0
    sign = 1 if value > 0 else -1
    if magnitude < high:
        return sign
    return sign * 2


def bin_fraction(normalized: float, bins: int) -> int:
    """Bin a [0, 1] fraction into [0, bins - 1]; exactly 1.0 lands in the top bin."""
    if bins <= 0:
        return 0
    clamped = min(1.0, max(0.0, normalized))
    return min(int(math.floor(clamped * bins)), bins - 1)


# =============================================================================
# DISCRETE STATE
# =============================================================================

@dataclass(frozen=True)
class DiscreteState:
    """Fully discretized observation; `key` is its canonical string form."""
    rel_x: int
    rel_y: int
    vel_x: int
    vel_y: int
    ranged_ready: int
    trap_ready: int
    dash_ready: int
    energy: int
    player_grounded: int
    player_health: int
    player_invulnerable: int

    @property
    def key(self) -> str:
        parts = []
        for value in astuple(self):
            if isinstance(value, bool) or not isinstance(value, int):
                raise StateKeyError(f"State fields must be integers, got {value!r}")
            text = str(value)
            if KEY_DELIMITER in text:
                raise StateKeyError(f"Field {text!r} contains the key delimiter")
            parts.append(text)
        return KEY_DELIMITER.join(parts)


STATE_FIELDS = tuple(f.name for f in fields(DiscreteState))


def parse_state_key(key: str) -> DiscreteState:
    """Inverse of DiscreteState.key. Raises StateKeyError on malformed keys."""
    if key == SENTINEL_STATE:
        raise StateKeyError("The sentinel state has no fields")
    parts = key.split(KEY_DELIMITER)
    if len(parts) != len(STATE_FIELDS):
        raise StateKeyError(f"Expected {len(STATE_FIELDS)} fields, got {len(parts)} in {key!r}")
    try:
        return DiscreteState(*(int(p) for p in parts))
    except ValueError as e:
        raise StateKeyError(f"Non-integer field in {key!r}") from e


# =============================================================================
# STATE ENCODER
# =============================================================================

@dataclass
class DiscretizationParams:
    """Current binning parameters (mutated when a curriculum stage is applied)."""
    position_factor: float = 2.5
    velocity_low: float = 1.0
    velocity_high: float = 5.0
    energy_bins: int = DEFAULT_ENERGY_BINS
    health_bins: int = DEFAULT_HEALTH_BINS


class StateEncoder:
    """
    Converts Observations into state keys.

    Usage:
        encoder = StateEncoder(DiscretizationParams(position_factor=2.5))
        key = encoder.encode(obs, ranged_ready=True, trap_ready=False, dash_ready=True)
    """

    def __init__(self, params: Optional[DiscretizationParams] = None):
        self.params = params or DiscretizationParams()

    def discretize(self, obs: Observation, ranged_ready: bool, trap_ready: bool,
                   dash_ready: bool) -> Optional[DiscreteState]:
        """Return the DiscreteState for obs, or None if a position is missing."""
        if obs is None or not obs.is_complete:
            return None

        p = self.params
        rel_x = obs.player_position[0] - obs.boss_position[0]
        rel_y = obs.player_position[1] - obs.boss_position[1]

        return DiscreteState(
            rel_x=round_half_away(rel_x / p.position_factor),
            rel_y=round_half_away(rel_y / p.position_factor),
            vel_x=quantize(obs.player_velocity[0], p.velocity_low, p.velocity_high),
            vel_y=quantize(obs.player_velocity[1], p.velocity_low, p.velocity_high),
            ranged_ready=int(bool(ranged_ready)),
            trap_ready=int(bool(trap_ready)),
            dash_ready=int(bool(dash_ready)),
            energy=bin_fraction(obs.boss_energy, p.energy_bins),
            player_grounded=int(bool(obs.player_grounded)),
            player_health=bin_fraction(obs.player_health, p.health_bins),
            player_invulnerable=int(bool(obs.player_invulnerable)),
        )

    def encode(self, obs: Optional[Observation], ranged_ready: bool, trap_ready: bool,
               dash_ready: bool) -> str:
        """State key for obs; SENTINEL_STATE if the observation is incomplete."""
        state = self.discretize(obs, ranged_ready, trap_ready, dash_ready)
        if state is None:
            logger.debug("Incomplete observation; emitting sentinel state")
            return SENTINEL_STATE
        return state.key
