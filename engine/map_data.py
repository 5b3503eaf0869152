"""
Map file loading and validation.

Maps are JSON documents (YAML is accepted too):

    {name, gridSize: [w, h], tileSize, groundTexture,
     spawnZones: {faction: [[col, row], ...]},
     objects: [{type, tile: [col, row], seed, scale, rotation, cover}],
     lights: [...]}

Texture, light and model fields are passed through untouched for the
presentation layer. Any structural problem raises MapLoadError before a
session is built.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .grid import GridModel, CoverType
from .rules import Rules

logger = logging.getLogger(__name__)


class MapLoadError(ValueError):
    """Malformed or out-of-bound map data."""


@dataclass
class MapObject:
    type: str
    tile: tuple[int, int]
    cover: CoverType = CoverType.HALF
    extra: dict = field(default_factory=dict)


@dataclass
class MapData:
    name: str
    grid_size: tuple[int, int]
    tile_size: float
    ground_texture: Optional[str] = None
    spawn_zones: dict[str, list[tuple[int, int]]] = field(default_factory=dict)
    objects: list[MapObject] = field(default_factory=list)
    lights: list = field(default_factory=list)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value) -> bool:
    if isinstance(value, float):
        return value.is_integer()
    return isinstance(value, int) and not isinstance(value, bool)


def _is_tile(value) -> bool:
    """A [col, row] pair of whole numbers."""
    return (isinstance(value, (list, tuple)) and len(value) == 2
            and all(_is_integer(v) for v in value))


def validate_map_data(data, rules: Optional[Rules] = None):
    """Raise MapLoadError describing the first structural problem found."""
    rules = rules or Rules()
    if not isinstance(data, dict):
        raise MapLoadError("Map data must be an object")

    size = data.get("gridSize")
    if not _is_tile(size):
        raise MapLoadError("gridSize must be [width, height] in whole tiles")
    for dim in size:
        if dim < rules.grid_min_size or dim > rules.grid_max_size:
            raise MapLoadError(
                f"gridSize {list(size)} outside {rules.grid_min_size}-{rules.grid_max_size}"
            )

    tile_size = data.get("tileSize")
    if not _is_number(tile_size) or tile_size <= 0:
        raise MapLoadError("tileSize must be a positive number")

    objects = data.get("objects")
    if objects is not None:
        if not isinstance(objects, list):
            raise MapLoadError("objects must be a list")
        for i, obj in enumerate(objects):
            if not isinstance(obj, dict) or not isinstance(obj.get("type"), str):
                raise MapLoadError(f"objects[{i}] needs a string type")
            if not _is_tile(obj.get("tile")):
                raise MapLoadError(f"objects[{i}] needs tile [col, row]")
            cover = obj.get("cover", "half")
            if cover not in ("none", "half", "full"):
                raise MapLoadError(f"objects[{i}] has unknown cover {cover!r}")

    zones = data.get("spawnZones")
    if zones is not None:
        if not isinstance(zones, dict):
            raise MapLoadError("spawnZones must be an object")
        for faction, tiles in zones.items():
            if not isinstance(tiles, list) or not all(_is_tile(t) for t in tiles):
                raise MapLoadError(f"spawnZones.{faction} must be a list of [col, row]")

    lights = data.get("lights")
    if lights is not None and not isinstance(lights, list):
        raise MapLoadError("lights must be a list")


def parse_map_data(data: dict, rules: Optional[Rules] = None) -> MapData:
    validate_map_data(data, rules)

    objects = []
    for obj in data.get("objects") or []:
        extra = {k: v for k, v in obj.items() if k not in ("type", "tile", "cover")}
        objects.append(MapObject(
            type=obj["type"],
            tile=(int(obj["tile"][0]), int(obj["tile"][1])),
            cover=CoverType(obj.get("cover", "half")),
            extra=extra,
        ))

    zones = {
        faction: [(int(t[0]), int(t[1])) for t in tiles]
        for faction, tiles in (data.get("spawnZones") or {}).items()
    }

    return MapData(
        name=data.get("name", "Untitled Map"),
        grid_size=(int(data["gridSize"][0]), int(data["gridSize"][1])),
        tile_size=float(data["tileSize"]),
        ground_texture=data.get("groundTexture"),
        spawn_zones=zones,
        objects=objects,
        lights=data.get("lights") or [],
    )


def load_map(path: Path | str, rules: Optional[Rules] = None) -> MapData:
    """Read and validate a map file."""
    path = Path(path)
    if not path.exists():
        raise MapLoadError(f"Map file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise MapLoadError(f"Failed to parse {path}: {e}") from e

    map_data = parse_map_data(data, rules)
    logger.info(
        f"Map loaded: {map_data.name} {map_data.grid_size[0]}x{map_data.grid_size[1]}, "
        f"{len(map_data.objects)} objects"
    )
    return map_data


def build_grid(map_data: MapData, rules: Optional[Rules] = None) -> GridModel:
    """Create the grid and apply object and spawn-zone placement."""
    grid = GridModel(*map_data.grid_size, rules=rules)

    for obj in map_data.objects:
        if not grid.in_bounds(*obj.tile):
            logger.warning(f"Object {obj.type} at {obj.tile} is off the grid, skipped")
            continue
        grid.set_object(*obj.tile, obj.type, obj.cover)

    for faction, tiles in map_data.spawn_zones.items():
        for col, row in tiles:
            grid.set_spawn_zone(col, row, faction)

    return grid
