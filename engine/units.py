"""
Unit state management for the tactics simulation.

Units are never removed: death is a terminal status and frees the tile.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .grid import GridModel, Coord, tile_direction
from .rules import Rules
from .events import (
    EventChannel, UnitSelected, UnitDeselected, UnitDamaged, UnitDied,
    UnitStatusChanged, UnitActivated, UnitMoveStep,
)

logger = logging.getLogger(__name__)


class UnitStatus(Enum):
    READY = "ready"
    ACTIVATED = "activated"
    OVERWATCH = "overwatch"
    HUNKERED = "hunkered"
    DEAD = "dead"


@dataclass(eq=False)
class Unit:
    """A single squad member."""
    id: str
    faction: str
    tile: Coord
    hp: int
    max_hp: int
    ap: int
    max_ap: int
    facing: Coord
    label: str = "Unit"
    activated: bool = False
    alive: bool = True
    status: UnitStatus = UnitStatus.READY
    overwatch_cone: Optional[Coord] = None
    index: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "faction": self.faction,
            "label": self.label,
            "tile": list(self.tile),
            "hp": self.hp,
            "max_hp": self.max_hp,
            "ap": self.ap,
            "max_ap": self.max_ap,
            "activated": self.activated,
            "alive": self.alive,
            "status": self.status.value,
            "facing": list(self.facing),
            "overwatch_cone": list(self.overwatch_cone) if self.overwatch_cone else None,
        }


class UnitManager:
    """Owns every unit in a session and keeps grid occupancy in step."""

    def __init__(self, grid: GridModel, rules: Rules, events: Optional[EventChannel] = None):
        self.grid = grid
        self.rules = rules
        self.events = events or EventChannel()
        self.units: list[Unit] = []
        self.selected: Optional[Unit] = None

    # Creation
    def create_unit(self, faction_id: str, index: int, tile: Coord) -> Unit:
        faction = self.rules.faction(faction_id)
        stats = self.rules.unit_stats
        unit = Unit(
            id=f"{faction_id}_{index}",
            faction=faction_id,
            tile=tuple(tile),
            hp=stats.hp,
            max_hp=stats.hp,
            ap=stats.ap,
            max_ap=stats.ap,
            facing=tuple(faction.facing),
            label=faction.unit_label,
            index=index,
        )
        self.grid.set_occupant(*unit.tile, unit)
        self.units.append(unit)
        return unit

    def spawn_squad(self, faction_id: str) -> list[Unit]:
        """Place a faction's squad on the first of its spawn tiles."""
        squad_size = self.rules.faction(faction_id).squad_size
        spawn_tiles = self.grid.get_spawn_tiles(faction_id)
        if len(spawn_tiles) < squad_size:
            logger.warning(
                f"{faction_id}: only {len(spawn_tiles)} spawn tiles for squad of {squad_size}"
            )

        spawned = [
            self.create_unit(faction_id, i, tile)
            for i, tile in enumerate(spawn_tiles[:squad_size])
        ]
        logger.info(f"Spawned {len(spawned)} {faction_id} units")
        return spawned

    # Selection
    def select_unit(self, unit: Unit):
        self.selected = unit
        self.events.publish(UnitSelected(unit))

    def deselect_unit(self):
        prev = self.selected
        self.selected = None
        if prev is not None:
            self.events.publish(UnitDeselected(prev))

    # Movement and facing
    def face_target(self, unit: Unit, target_tile: Coord):
        direction = tile_direction(unit.tile, target_tile)
        if direction != (0, 0):
            unit.facing = direction

    def move_step(self, unit: Unit, to_tile: Coord):
        """Advance one tile, keeping occupancy and facing in step."""
        from_tile = unit.tile
        self.grid.clear_occupant(*from_tile)
        unit.tile = tuple(to_tile)
        self.grid.set_occupant(*unit.tile, unit)
        unit.facing = tile_direction(from_tile, unit.tile)
        self.events.publish(UnitMoveStep(unit, from_tile, unit.tile))

    # Damage and death
    def apply_damage(self, unit: Unit, damage: int) -> bool:
        """Apply damage, returning True if it was lethal."""
        unit.hp = max(0, unit.hp - damage)
        self.events.publish(UnitDamaged(unit, damage, unit.hp))
        return unit.hp <= 0

    def set_unit_dead(self, unit: Unit):
        unit.alive = False
        unit.status = UnitStatus.DEAD
        unit.overwatch_cone = None
        unit.hp = 0
        self.grid.clear_occupant(*unit.tile)
        logger.info(f"{unit.id} killed at {unit.tile}")
        self.events.publish(UnitDied(unit))

    def set_unit_status(self, unit: Unit, status: UnitStatus):
        unit.status = status
        if status != UnitStatus.OVERWATCH:
            unit.overwatch_cone = None
        self.events.publish(UnitStatusChanged(unit, status))

    # Activation bookkeeping
    def reset_activations(self):
        """New turn: restore AP and drop persistent stances."""
        for unit in self.units:
            if not unit.alive:
                continue
            unit.activated = False
            unit.ap = unit.max_ap
            if unit.status in (UnitStatus.OVERWATCH, UnitStatus.HUNKERED,
                               UnitStatus.ACTIVATED):
                unit.status = UnitStatus.READY
                unit.overwatch_cone = None

    def mark_activated(self, unit: Unit):
        """Overwatch and hunker survive activation end; READY does not."""
        unit.activated = True
        if unit.status == UnitStatus.READY:
            unit.status = UnitStatus.ACTIVATED
        self.events.publish(UnitActivated(unit))

    # Queries
    def get_unit(self, unit_id: str) -> Optional[Unit]:
        return next((u for u in self.units if u.id == unit_id), None)

    def get_units_by_faction(self, faction_id: str) -> list[Unit]:
        return [u for u in self.units if u.faction == faction_id]

    def get_alive_units(self, faction_id: str) -> list[Unit]:
        return [u for u in self.units if u.faction == faction_id and u.alive]

    def get_unactivated_units(self, faction_id: str) -> list[Unit]:
        return [u for u in self.units
                if u.faction == faction_id and u.alive and not u.activated]

    def get_enemies(self, unit: Unit) -> list[Unit]:
        """Living units of every other faction."""
        return [u for u in self.units if u.faction != unit.faction and u.alive]

    def get_unit_at_tile(self, col: int, row: int) -> Optional[Unit]:
        tile = self.grid.get_tile(col, row)
        return tile.occupant if tile else None

    def get_stats(self) -> dict:
        stats = {}
        for unit in self.units:
            entry = stats.setdefault(unit.faction, {"total": 0, "alive": 0})
            entry["total"] += 1
            if unit.alive:
                entry["alive"] += 1
        return stats
