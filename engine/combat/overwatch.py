"""
Overwatch and hunker stances.

A unit on overwatch fires once at the first enemy step that lands inside
its range, sight and forward arc, then drops back to activated.
"""

import logging

from ..grid import Coord, tile_distance
from ..units import Unit, UnitStatus
from ..events import OverwatchFired
from .base import AttackType, AttackResult
from .tactical import TacticalCombat

logger = logging.getLogger(__name__)


class OverwatchResolver:
    """Stance changes and reaction fire, built on TacticalCombat."""

    def __init__(self, combat: TacticalCombat):
        self.combat = combat
        self.grid = combat.grid
        self.units = combat.units
        self.rules = combat.rules
        self.events = combat.events

    def set_overwatch(self, unit: Unit):
        unit.ap = max(0, unit.ap - 1)
        # A cone exists exactly while the status is OVERWATCH
        unit.overwatch_cone = tuple(unit.facing)
        self.units.set_unit_status(unit, UnitStatus.OVERWATCH)
        logger.info(f"{unit.id} on overwatch facing {unit.overwatch_cone}")

    def set_hunker(self, unit: Unit):
        unit.ap = max(0, unit.ap - 1)
        self.units.set_unit_status(unit, UnitStatus.HUNKERED)
        logger.info(f"{unit.id} hunkered down")

    def check_overwatch(self, mover: Unit, from_tile: Coord, to_tile: Coord) -> list[Unit]:
        """Enemy watchers that would fire at a unit stepping onto to_tile."""
        triggers = []
        for watcher in self.units.get_enemies(mover):
            if watcher.status != UnitStatus.OVERWATCH:
                continue
            if tile_distance(watcher.tile, to_tile) > self.rules.overwatch.range:
                continue
            if not self.grid.check_los(watcher.tile, to_tile).clear:
                continue
            if watcher.overwatch_cone:
                # Raw offset, so diagonal cones weigh both axes
                dc = to_tile[0] - watcher.tile[0]
                dr = to_tile[1] - watcher.tile[1]
                cone = watcher.overwatch_cone
                if dc * cone[0] + dr * cone[1] < 0:
                    continue
            triggers.append(watcher)
        return triggers

    async def execute_overwatch_shot(self, watcher: Unit, mover: Unit) -> AttackResult:
        logger.info(f"{watcher.id} overwatch triggered by {mover.id} at {mover.tile}")
        result = await self.combat.execute_attack(watcher, mover, AttackType.RANGED)
        self.units.set_unit_status(watcher, UnitStatus.ACTIVATED)
        self.events.publish(OverwatchFired(watcher, mover, result))
        return result
