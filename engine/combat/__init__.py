"""
Combat resolution for squad tactics.

base: shared dice and result types; tactical: ranged/melee attacks;
overwatch: stances and reaction fire.
"""

from .base import CombatResolver, AttackType, AttackResult, HitBreakdown, AvailableActions
from .tactical import TacticalCombat
from .overwatch import OverwatchResolver

__all__ = [
    "CombatResolver",
    "AttackType",
    "AttackResult",
    "HitBreakdown",
    "AvailableActions",
    "TacticalCombat",
    "OverwatchResolver",
]
