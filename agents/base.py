"""
Base tactical agent.

An agent drives one faction's activations through the same scheduler
commands a human player uses, and only sees public grid/combat queries.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from engine.grid import GridModel
from engine.rules import AIWeights, Rules
from engine.units import Unit, UnitManager
from engine.combat import TacticalCombat

if TYPE_CHECKING:
    from engine.turn import TurnScheduler

logger = logging.getLogger(__name__)


@dataclass
class AgentConfig:
    """Configuration for a tactical agent."""
    faction: str
    doctrine: str = "rule_based"
    weights: AIWeights = field(default_factory=AIWeights)
    move_points: int = 4
    ranged_range: int = 8


class TacticalAgent(ABC):
    """Base class for computer-controlled factions."""

    def __init__(self, config: AgentConfig, grid: GridModel, units: UnitManager,
                 combat: TacticalCombat):
        self.config = config
        self.faction = config.faction
        self.grid = grid
        self.units = units
        self.combat = combat
        self.activation_count = 0

    @classmethod
    def from_rules(cls, faction: str, rules: Rules, grid: GridModel,
                   units: UnitManager, combat: TacticalCombat) -> "TacticalAgent":
        """Create an agent whose weights and ranges come from the rule set."""
        config = AgentConfig(
            faction=faction,
            weights=rules.ai,
            move_points=rules.unit_stats.movement,
            ranged_range=rules.unit_stats.ranged_range,
        )
        return cls(config, grid, units, combat)

    @abstractmethod
    async def activate_unit(self, unit: Unit, scheduler: "TurnScheduler"):
        """Decide and carry out one unit's activation."""
        pass

    def choose_activation_order(self, units: list[Unit]) -> list[Unit]:
        """Preferred order for this faction's units (default: as given)."""
        return list(units)

    def reset(self):
        self.activation_count = 0
