"""
Session bootstrap: map + rules -> fully wired scheduler.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Iterable

from .rules import Rules, load_rules
from .map_data import MapData, load_map, build_grid
from .grid import GridModel
from .units import UnitManager
from .events import EventChannel
from .combat import TacticalCombat, OverwatchResolver
from .turn import TurnScheduler, GameState

logger = logging.getLogger(__name__)

DEFAULT_MAP = Path(__file__).parent.parent / "data" / "maps" / "test-map.json"
PLAYER_FACTION = "orderOfTheAbyss"
AI_FACTION = "germani"


@dataclass
class Session:
    """Every component of one game, sharing one event channel."""
    rules: Rules
    map_data: Optional[MapData]
    grid: GridModel
    events: EventChannel
    units: UnitManager
    combat: TacticalCombat
    overwatch: OverwatchResolver
    scheduler: TurnScheduler

    @property
    def state(self) -> GameState:
        return self.scheduler.state


def assemble_session(
    grid: GridModel,
    rules: Rules,
    player_faction: str = PLAYER_FACTION,
    ai_faction: str = AI_FACTION,
    ai_factions: Iterable[str] = (AI_FACTION,),
    seed: Optional[int] = None,
    max_turns: Optional[int] = None,
    map_data: Optional[MapData] = None,
    spawn: bool = True,
) -> Session:
    """Wire components around an existing grid."""
    from agents import RuleBasedPlanner

    events = EventChannel()
    units = UnitManager(grid, rules, events)
    if spawn:
        units.spawn_squad(player_faction)
        units.spawn_squad(ai_faction)

    combat = TacticalCombat(grid, units, rules, events, rng_seed=seed)
    overwatch = OverwatchResolver(combat)
    agents = {
        faction: RuleBasedPlanner.from_rules(faction, rules, grid, units, combat)
        for faction in ai_factions
    }
    state = GameState(
        player_faction=player_faction,
        ai_faction=ai_faction,
        max_turns=max_turns,
    )
    scheduler = TurnScheduler(grid, units, combat, overwatch, rules, state, events, agents)
    return Session(rules, map_data, grid, events, units, combat, overwatch, scheduler)


def create_session(
    map_path: Path | str = DEFAULT_MAP,
    rules: Optional[Rules] = None,
    player_faction: str = PLAYER_FACTION,
    ai_faction: str = AI_FACTION,
    ai_factions: Iterable[str] = (AI_FACTION,),
    seed: Optional[int] = None,
    max_turns: Optional[int] = None,
) -> Session:
    """Load a map and build a ready-to-start session. Raises MapLoadError."""
    rules = rules or load_rules()
    map_data = load_map(map_path, rules)
    grid = build_grid(map_data, rules)
    logger.info(f"Grid ready: {grid.get_stats()}")
    return assemble_session(
        grid, rules,
        player_faction=player_faction,
        ai_faction=ai_faction,
        ai_factions=ai_factions,
        seed=seed,
        max_turns=max_turns,
        map_data=map_data,
    )
