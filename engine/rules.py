"""
Rule constants for the tactics simulation.

Values are loaded from data/rules.yaml when present; anything missing falls
back to the built-in defaults below.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class UnitStats:
    """Per-unit combat and movement stats (shared by both factions)."""
    hp: int = 10
    ap: int = 2
    movement: int = 4
    ranged_damage: int = 4
    melee_damage: int = 5
    ranged_accuracy: float = 0.70
    melee_accuracy: float = 0.85
    ranged_range: int = 8
    melee_range: int = 1


@dataclass
class OverwatchRules:
    range: int = 8
    cone_angle: int = 180


@dataclass
class AIWeights:
    """Scoring weights used by the rule-based planner."""
    low_hp: float = 40.0
    close: float = 30.0
    no_cover: float = 30.0
    preferred_min: int = 4
    preferred_max: int = 6
    cover_preference: float = 50.0
    los_bonus: float = 25.0
    crowding_penalty: float = 15.0
    move_bonus: float = 1.0


@dataclass
class FactionRules:
    id: str
    name: str
    unit_label: str
    facing: tuple[int, int]
    squad_size: int = 5


@dataclass
class Pacing:
    """Presentation delays in seconds (0 = run as fast as possible)."""
    step_delay: float = 0.0
    attack_delay: float = 0.0


DEFAULT_FACTIONS = {
    "orderOfTheAbyss": FactionRules(
        id="orderOfTheAbyss", name="Order of the Abyss",
        unit_label="Acolyte", facing=(1, 0),
    ),
    "germani": FactionRules(
        id="germani", name="Germani",
        unit_label="Shock Trooper", facing=(-1, 0),
    ),
}


@dataclass
class Rules:
    """Complete rule set for a session."""
    unit_stats: UnitStats = field(default_factory=UnitStats)
    cover_bonus: dict[str, float] = field(
        default_factory=lambda: {"half": -0.25, "full": -0.50}
    )
    flanking_bonus: float = 0.15
    near_max_range_penalty: float = -0.05
    min_hit_chance: float = 0.05
    max_hit_chance: float = 0.95
    overwatch: OverwatchRules = field(default_factory=OverwatchRules)
    ai: AIWeights = field(default_factory=AIWeights)
    factions: dict[str, FactionRules] = field(
        default_factory=lambda: dict(DEFAULT_FACTIONS)
    )
    grid_min_size: int = 6
    grid_max_size: int = 40
    default_grid_size: tuple[int, int] = (20, 16)
    pacing: Pacing = field(default_factory=Pacing)

    def cover_penalty(self, cover_type: str) -> float:
        """Accuracy modifier for a cover tier ('none' -> 0)."""
        return self.cover_bonus.get(cover_type, 0.0)

    def faction(self, faction_id: str) -> FactionRules:
        return self.factions[faction_id]

    def enemy_of(self, faction_id: str) -> str:
        """The other faction id (two-faction sessions only)."""
        for fid in self.factions:
            if fid != faction_id:
                return fid
        raise KeyError(f"No opposing faction for {faction_id}")


def _merge(target, values: dict):
    """Copy known keys from a YAML mapping onto a dataclass instance."""
    for key, value in values.items():
        if hasattr(target, key):
            setattr(target, key, value)
        else:
            logger.warning(f"Unknown rules key ignored: {key}")


def load_rules(path: Optional[Path | str] = None) -> Rules:
    """Load rules from YAML, defaulting any missing section."""
    rules = Rules()
    if path is None:
        path = Path(__file__).parent.parent / "data" / "rules.yaml"
    path = Path(path)

    if not path.exists():
        logger.info(f"Rules file {path} not found, using defaults")
        return rules

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if "unit_stats" in data:
        _merge(rules.unit_stats, data["unit_stats"])
    if "overwatch" in data:
        _merge(rules.overwatch, data["overwatch"])
    if "ai" in data:
        _merge(rules.ai, data["ai"])
    if "pacing" in data:
        _merge(rules.pacing, data["pacing"])
    if "cover_bonus" in data:
        rules.cover_bonus.update(data["cover_bonus"])

    for key in ("flanking_bonus", "near_max_range_penalty",
                "min_hit_chance", "max_hit_chance"):
        if key in data:
            setattr(rules, key, float(data[key]))

    grid = data.get("grid", {})
    rules.grid_min_size = grid.get("min_size", rules.grid_min_size)
    rules.grid_max_size = grid.get("max_size", rules.grid_max_size)
    if "default_size" in grid:
        rules.default_grid_size = tuple(grid["default_size"])

    if "factions" in data:
        rules.factions = {}
        for fid, fdata in data["factions"].items():
            rules.factions[fid] = FactionRules(
                id=fid,
                name=fdata.get("name", fid),
                unit_label=fdata.get("unit_label", "Unit"),
                facing=tuple(fdata.get("facing", (1, 0))),
                squad_size=fdata.get("squad_size", 5),
            )

    logger.info(f"Rules loaded from {path}")
    return rules
