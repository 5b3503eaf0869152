"""
Squad-level attack resolution: target enumeration, hit chance and damage.

execute_attack is the only path by which damage and death happen;
overwatch shots go through it too.
"""

import asyncio
import logging
from typing import Optional

from ..grid import GridModel, tile_distance
from ..rules import Rules
from ..units import Unit, UnitManager, UnitStatus
from ..events import EventChannel, CombatDamage, CombatMiss, CombatKill, CombatComplete
from .base import CombatResolver, AttackType, AttackResult, HitBreakdown, AvailableActions

logger = logging.getLogger(__name__)


class TacticalCombat(CombatResolver):
    """Resolves ranged and melee attacks between units on the grid."""

    def __init__(
        self,
        grid: GridModel,
        units: UnitManager,
        rules: Rules,
        events: Optional[EventChannel] = None,
        rng_seed: Optional[int] = None,
    ):
        super().__init__(rng_seed, rules.min_hit_chance, rules.max_hit_chance)
        self.grid = grid
        self.units = units
        self.rules = rules
        self.events = events or units.events

    # Targets
    def get_valid_ranged_targets(self, unit: Unit) -> list[Unit]:
        """Living enemies in range with clear line of sight."""
        max_range = self.rules.unit_stats.ranged_range
        targets = []
        for enemy in self.units.get_enemies(unit):
            if tile_distance(unit.tile, enemy.tile) > max_range:
                continue
            if self.grid.check_los(unit.tile, enemy.tile).clear:
                targets.append(enemy)
        return targets

    def get_valid_melee_targets(self, unit: Unit) -> list[Unit]:
        """Living enemies adjacent (diagonals included)."""
        reach = self.rules.unit_stats.melee_range
        return [e for e in self.units.get_enemies(unit)
                if tile_distance(unit.tile, e.tile) <= reach]

    def get_valid_targets(self, unit: Unit, attack_type: AttackType) -> list[Unit]:
        if attack_type == AttackType.RANGED:
            return self.get_valid_ranged_targets(unit)
        if attack_type == AttackType.MELEE:
            return self.get_valid_melee_targets(unit)
        return []

    def get_available_actions(self, unit: Optional[Unit]) -> AvailableActions:
        if not unit or not unit.alive or unit.ap <= 0:
            return AvailableActions()
        return AvailableActions(
            can_shoot=bool(self.get_valid_ranged_targets(unit)),
            can_melee=bool(self.get_valid_melee_targets(unit)),
            can_overwatch=unit.status != UnitStatus.OVERWATCH,
            can_hunker=unit.status != UnitStatus.HUNKERED,
        )

    # Hit chance
    def calculate_hit_chance(
        self,
        attacker: Unit,
        target: Unit,
        attack_type: AttackType,
    ) -> tuple[float, HitBreakdown]:
        """Probability of hitting plus the modifiers that produced it."""
        stats = self.rules.unit_stats
        flanked = self.grid.check_flanking(attacker.tile, target.tile, target.facing)

        if attack_type == AttackType.MELEE:
            breakdown = HitBreakdown(base=stats.melee_accuracy, damage=stats.melee_damage)
            chance = stats.melee_accuracy
            if flanked:
                breakdown.flanking_bonus = self.rules.flanking_bonus
                chance += self.rules.flanking_bonus
            chance = self.clamp_chance(chance)
            breakdown.final = chance
            return chance, breakdown

        breakdown = HitBreakdown(base=stats.ranged_accuracy, damage=stats.ranged_damage)
        chance = stats.ranged_accuracy

        los = self.grid.check_los(attacker.tile, target.tile)
        if los.cover_penalty != 0:
            breakdown.cover_penalty = los.cover_penalty
            breakdown.cover_type = los.cover_type.value
            chance += los.cover_penalty

            # Hunkering applies the same cover penalty a second time
            if target.status == UnitStatus.HUNKERED:
                breakdown.hunkered_penalty = los.cover_penalty
                chance += los.cover_penalty

        if flanked:
            breakdown.flanking_bonus = self.rules.flanking_bonus
            chance += self.rules.flanking_bonus

        if tile_distance(attacker.tile, target.tile) >= stats.ranged_range - 1:
            breakdown.range_penalty = self.rules.near_max_range_penalty
            chance += self.rules.near_max_range_penalty

        chance = self.clamp_chance(chance)
        breakdown.final = chance
        return chance, breakdown

    def damage_for(self, attack_type: AttackType) -> int:
        stats = self.rules.unit_stats
        return stats.ranged_damage if attack_type == AttackType.RANGED else stats.melee_damage

    # Execution
    async def execute_attack(
        self,
        attacker: Unit,
        target: Unit,
        attack_type: AttackType,
    ) -> AttackResult:
        """Resolve one attack to completion. Inputs are assumed pre-validated."""
        chance, breakdown = self.calculate_hit_chance(attacker, target, attack_type)
        self.units.face_target(attacker, target.tile)

        hit, roll = self.hit_check(chance)
        damage = 0
        killed = False

        if hit:
            damage = self.damage_for(attack_type)
            killed = self.units.apply_damage(target, damage)
            if killed:
                self.units.set_unit_dead(target)
                self.events.publish(CombatKill(attacker, target, attack_type))
            self.events.publish(CombatDamage(attacker, target, damage, attack_type))
        else:
            self.events.publish(CombatMiss(attacker, target, attack_type))

        attacker.ap = max(0, attacker.ap - 1)

        result = AttackResult(
            hit=hit, damage=damage, killed=killed, attack_type=attack_type,
            roll=roll, chance=chance, breakdown=breakdown,
        )
        logger.info(
            f"{attacker.id} {attack_type.value} -> {target.id}: "
            f"{'hit' if hit else 'miss'} (roll {roll:.2f} vs {chance:.2f})"
            f"{', killed' if killed else ''}"
        )
        await self.attack_resolved(result)
        self.events.publish(CombatComplete(attacker, target, attack_type, result))
        return result

    async def attack_resolved(self, result: AttackResult):
        """Suspension point after an attack; pacing is a presentation concern."""
        await asyncio.sleep(self.rules.pacing.attack_delay)
