"""
Base combat resolution system with common mechanics.
"""

import random
from dataclasses import dataclass, asdict
from typing import Optional
from enum import Enum


class AttackType(Enum):
    RANGED = "ranged"
    MELEE = "melee"


@dataclass
class HitBreakdown:
    """Every modifier that went into a hit chance, for previews and logs."""
    base: float
    damage: int
    final: float = 0.0
    cover_penalty: Optional[float] = None
    cover_type: Optional[str] = None
    hunkered_penalty: Optional[float] = None
    flanking_bonus: Optional[float] = None
    range_penalty: Optional[float] = None

    def to_dict(self) -> dict:
        """Only the modifiers that applied."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class AttackResult:
    """Outcome of a single attack."""
    hit: bool
    damage: int
    killed: bool
    attack_type: AttackType
    roll: float = 0.0
    chance: float = 0.0
    breakdown: Optional[HitBreakdown] = None

    def to_dict(self) -> dict:
        return {
            "hit": self.hit,
            "damage": self.damage,
            "killed": self.killed,
            "attack_type": self.attack_type.value,
            "roll": round(self.roll, 4),
            "chance": round(self.chance, 4),
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
        }


@dataclass
class AvailableActions:
    can_shoot: bool = False
    can_melee: bool = False
    can_overwatch: bool = False
    can_hunker: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class CombatResolver:
    """Base class for combat resolution."""

    def __init__(self, rng_seed: Optional[int] = None,
                 min_chance: float = 0.05, max_chance: float = 0.95):
        self.rng = random.Random(rng_seed)
        self.min_chance = min_chance
        self.max_chance = max_chance

    def roll(self) -> float:
        """Uniform draw in [0, 1)."""
        return self.rng.random()

    def hit_check(self, hit_chance: float) -> tuple[bool, float]:
        """Roll once; a roll equal to the chance still hits."""
        roll = self.roll()
        return roll <= hit_chance, roll

    def clamp_chance(self, chance: float) -> float:
        return max(self.min_chance, min(self.max_chance, chance))
