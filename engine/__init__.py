"""
Squad tactics simulation engine.

Core modules:
- grid: Square grid, pathfinding, line of sight, cover and flanking
- units: Unit state management
- combat/: Hit chance, attack resolution, overwatch
- turn: Activation queue and phase state machine
- events: Typed notifications for observers
- map_data: Map loading and validation
- rules: Rule constants from data/rules.yaml
- session: Session bootstrap
"""

from .rules import Rules, UnitStats, AIWeights, load_rules
from .grid import (
    GridModel, Tile, CoverType, LOSResult, CoverResult, ReachableTile,
    tile_distance, tile_direction, bresenham_line,
)
from .units import UnitManager, Unit, UnitStatus
from .events import EventChannel, GameEvent
from .combat import TacticalCombat, OverwatchResolver, AttackType, AttackResult, HitBreakdown
from .map_data import MapData, MapLoadError, load_map, build_grid, validate_map_data
from .turn import TurnScheduler, GameState, GamePhase, ActionKind, DRAW
from .session import Session, create_session, assemble_session

__all__ = [
    # Rules
    "Rules", "UnitStats", "AIWeights", "load_rules",
    # Grid
    "GridModel", "Tile", "CoverType", "LOSResult", "CoverResult", "ReachableTile",
    "tile_distance", "tile_direction", "bresenham_line",
    # Units
    "UnitManager", "Unit", "UnitStatus",
    # Events
    "EventChannel", "GameEvent",
    # Combat
    "TacticalCombat", "OverwatchResolver", "AttackType", "AttackResult", "HitBreakdown",
    # Maps
    "MapData", "MapLoadError", "load_map", "build_grid", "validate_map_data",
    # Turn Management
    "TurnScheduler", "GameState", "GamePhase", "ActionKind", "DRAW",
    # Session
    "Session", "create_session", "assemble_session",
]
