"""
Rule-based opponent.

Scores targets by wound state, distance and exposure, and scores
destination tiles by range band, sight line, nearby cover and crowding.
Every action is issued through the scheduler so movement triggers
overwatch exactly as it does for a human player.
"""

import logging
from typing import Optional, TYPE_CHECKING

from engine.grid import Coord, CoverType, tile_distance
from engine.units import Unit
from engine.combat import AttackType

from .base import TacticalAgent

if TYPE_CHECKING:
    from engine.turn import TurnScheduler

logger = logging.getLogger(__name__)


def _pos(tile) -> Coord:
    return tile if isinstance(tile, tuple) else (tile.col, tile.row)


class RuleBasedPlanner(TacticalAgent):
    """Fixed-weight scorer: melee first, then ranged, then reposition."""

    # Activation entry point
    async def activate_unit(self, unit: Unit, scheduler: "TurnScheduler"):
        self.activation_count += 1

        # Adjacent enemy -> melee, otherwise anything in sight -> shoot
        for attack_type in (AttackType.MELEE, AttackType.RANGED):
            targets = self.combat.get_valid_targets(unit, attack_type)
            if targets and unit.ap > 0:
                target = self.pick_best_target(unit, targets)
                await scheduler.perform_attack(unit, target, attack_type)
                await self._continue_activation(unit, scheduler)
                return

        if unit.ap <= 0:
            return

        await self._move_toward_enemy(unit, scheduler)
        if not unit.alive or unit.ap <= 0:
            return

        if await self._attack_best(unit, scheduler):
            await self._continue_activation(unit, scheduler)
            return

        logger.debug(f"{unit.id}: no target after moving, setting overwatch")
        scheduler.perform_overwatch(unit)

    async def _continue_activation(self, unit: Unit, scheduler: "TurnScheduler"):
        """One more target search after an attack, else overwatch."""
        if not unit.alive or unit.ap <= 0:
            return
        if await self._attack_best(unit, scheduler):
            return
        if unit.ap > 0:
            scheduler.perform_overwatch(unit)

    async def _attack_best(self, unit: Unit, scheduler: "TurnScheduler") -> bool:
        for attack_type in (AttackType.MELEE, AttackType.RANGED):
            targets = self.combat.get_valid_targets(unit, attack_type)
            if targets:
                target = self.pick_best_target(unit, targets)
                await scheduler.perform_attack(unit, target, attack_type)
                return True
        return False

    # Target scoring
    def score_target(self, unit: Unit, target: Unit) -> float:
        w = self.config.weights
        score = (1.0 - target.hp / target.max_hp) * w.low_hp
        dist = tile_distance(unit.tile, target.tile)
        score += (1.0 - dist / self.config.ranged_range) * w.close

        cover = self.grid.get_cover_between(unit.tile, target.tile).cover_type
        if cover == CoverType.NONE:
            score += w.no_cover
        elif cover == CoverType.HALF:
            score += w.no_cover * 0.3
        return score

    def pick_best_target(self, unit: Unit, targets: list[Unit]) -> Unit:
        """Highest-scoring target; the first one wins ties."""
        if len(targets) == 1:
            return targets[0]

        best_target = targets[0]
        best_score = float("-inf")
        for target in targets:
            score = self.score_target(unit, target)
            if score > best_score:
                best_score = score
                best_target = target
        return best_target

    # Movement
    def score_move_tile(self, unit: Unit, tile: Coord, primary: Unit,
                        enemies: list[Unit]) -> float:
        w = self.config.weights
        max_range = self.config.ranged_range
        dist = tile_distance(tile, primary.tile)

        if w.preferred_min <= dist <= w.preferred_max:
            score = 40.0
        elif dist < w.preferred_min:
            score = 20.0 - (w.preferred_min - dist) * 5
        elif dist <= max_range:
            score = 30.0 - (dist - w.preferred_max) * 3
        else:
            score = 10.0 - dist

        if dist <= max_range and self.grid.check_los(tile, primary.tile).clear:
            score += w.los_bonus

        adjacency = self.grid.get_cover_adjacent_tiles([tile])
        if adjacency:
            if adjacency[0].cover_type == CoverType.FULL:
                score += w.cover_preference
            elif adjacency[0].cover_type == CoverType.HALF:
                score += w.cover_preference * 0.6

        adjacent_enemies = sum(1 for e in enemies if tile_distance(tile, e.tile) <= 1)
        if adjacent_enemies > 1:
            score -= adjacent_enemies * w.crowding_penalty

        if tile != unit.tile:
            score += w.move_bonus
        return score

    def find_best_move_tile(self, unit: Unit, primary: Unit, tiles,
                            enemies: list[Unit]) -> Optional[Coord]:
        """Best destination among tiles; earlier tiles win ties."""
        best_tile = None
        best_score = float("-inf")
        for tile in tiles:
            pos = _pos(tile)
            score = self.score_move_tile(unit, pos, primary, enemies)
            if score > best_score:
                best_score = score
                best_tile = pos
        return best_tile

    def nearest_enemy(self, unit: Unit) -> Optional[Unit]:
        enemies = self.units.get_enemies(unit)
        if not enemies:
            return None
        return min(enemies, key=lambda e: tile_distance(unit.tile, e.tile))

    async def _move_toward_enemy(self, unit: Unit, scheduler: "TurnScheduler") -> bool:
        primary = self.nearest_enemy(unit)
        if primary is None:
            return False

        reachable = self.grid.get_movement_range(unit.tile, self.config.move_points)
        candidates = [unit.tile] + [r.pos for r in reachable]
        enemies = self.units.get_enemies(unit)
        best = self.find_best_move_tile(unit, primary, candidates, enemies)

        if best is None or best == unit.tile:
            logger.debug(f"{unit.id} holds position at {unit.tile}")
            return False

        logger.debug(f"{unit.id} moving {unit.tile} -> {best} toward {primary.id}")
        return await scheduler.perform_move(unit, best)

    # Activation order
    def choose_activation_order(self, units: list[Unit]) -> list[Unit]:
        """Units that can strike now first, then those closest and most exposed."""
        scored = []
        for unit in units:
            score = 0.0
            if self.combat.get_valid_ranged_targets(unit):
                score += 100
            if self.combat.get_valid_melee_targets(unit):
                score += 90

            enemies = self.units.get_enemies(unit)
            if enemies:
                nearest = min(tile_distance(unit.tile, e.tile) for e in enemies)
                score += max(0, 20 - nearest)

            if not self.grid.get_cover_adjacent_tiles([unit.tile]):
                score += 10
            scored.append((score, unit))

        scored.sort(key=lambda s: s[0], reverse=True)
        return [unit for _, unit in scored]
