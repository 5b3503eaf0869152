"""
Square grid model for the tactics simulation.

Tiles are addressed by (col, row). Movement is 8-directional with uniform
cost (Chebyshev metric). Holds occupancy, walkability, pathfinding,
line of sight and the cover/flank geometry used by combat and the AI.
"""

import weakref
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .rules import Rules


Coord = tuple[int, int]


class CoverType(Enum):
    NONE = "none"
    HALF = "half"
    FULL = "full"
    BLOCKED = "blocked"  # LOS result only, never stored on a tile


COVER_RANK = {CoverType.NONE: 0, CoverType.HALF: 1, CoverType.FULL: 2}


@dataclass
class Tile:
    """Single grid tile."""
    col: int
    row: int
    walkable: bool = True
    cover_type: CoverType = CoverType.NONE
    cover_direction: Optional[Coord] = None
    object_type: Optional[str] = None
    spawn_zone: Optional[str] = None
    _occupant: Optional[weakref.ref] = field(default=None, repr=False)

    @property
    def pos(self) -> Coord:
        return (self.col, self.row)

    @property
    def occupant(self):
        """Unit standing on this tile, if any."""
        if self._occupant is None:
            return None
        return self._occupant()

    @occupant.setter
    def occupant(self, unit):
        self._occupant = weakref.ref(unit) if unit is not None else None


@dataclass
class ReachableTile:
    col: int
    row: int
    cost: int

    @property
    def pos(self) -> Coord:
        return (self.col, self.row)


@dataclass
class LOSResult:
    clear: bool
    cover_penalty: float
    cover_type: CoverType


@dataclass
class CoverResult:
    cover_type: CoverType
    penalty: float


@dataclass
class CoverAdjacency:
    col: int
    row: int
    cover_type: CoverType


# Grid math

def tile_distance(a: Coord, b: Coord) -> int:
    """Chebyshev distance (diagonals cost 1)."""
    return max(abs(a[0] - b[0]), abs(a[1] - b[1]))


def _sign(v: int) -> int:
    return 0 if v == 0 else (1 if v > 0 else -1)


def tile_direction(frm: Coord, to: Coord) -> Coord:
    """Direction from one tile to another with components in {-1, 0, 1}."""
    return (_sign(to[0] - frm[0]), _sign(to[1] - frm[1]))


def bresenham_line(start: Coord, end: Coord) -> list[Coord]:
    """Tiles crossed by a straight line, excluding start, including end."""
    tiles = []
    x0, y0 = start
    x1, y1 = end
    dx = abs(x1 - x0)
    dy = abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx - dy

    while (x0, y0) != (x1, y1):
        e2 = 2 * err
        if e2 > -dy:
            err -= dy
            x0 += sx
        if e2 < dx:
            err += dx
            y0 += sy
        tiles.append((x0, y0))

    return tiles


def get_neighbors(col: int, row: int, width: int, height: int) -> list[Coord]:
    """In-bounds 8-neighbourhood. Order is fixed; BFS ties depend on it."""
    neighbors = []
    for dc in (-1, 0, 1):
        for dr in (-1, 0, 1):
            if dc == 0 and dr == 0:
                continue
            nc, nr = col + dc, row + dr
            if 0 <= nc < width and 0 <= nr < height:
                neighbors.append((nc, nr))
    return neighbors


class GridModel:
    """
    Authoritative spatial state for a session.

    Out-of-bounds queries return None/False/empty rather than raising.
    """

    def __init__(self, width: int, height: int, rules: Optional[Rules] = None):
        self.width = width
        self.height = height
        self.rules = rules or Rules()
        self.tiles: dict[Coord, Tile] = {
            (c, r): Tile(c, r) for c in range(width) for r in range(height)
        }

    # Tile access
    def get_tile(self, col: int, row: int) -> Optional[Tile]:
        return self.tiles.get((col, row))

    def in_bounds(self, col: int, row: int) -> bool:
        return 0 <= col < self.width and 0 <= row < self.height

    def is_walkable(self, col: int, row: int) -> bool:
        """In bounds, walkable and unoccupied."""
        tile = self.get_tile(col, row)
        if not tile:
            return False
        return tile.walkable and tile.occupant is None

    def is_walkable_ignoring_occupant(self, col: int, row: int) -> bool:
        tile = self.get_tile(col, row)
        if not tile:
            return False
        return tile.walkable

    # Placement
    def set_occupant(self, col: int, row: int, unit):
        tile = self.get_tile(col, row)
        if tile:
            tile.occupant = unit

    def clear_occupant(self, col: int, row: int):
        tile = self.get_tile(col, row)
        if tile:
            tile.occupant = None

    def set_cover(self, col: int, row: int, cover_type: CoverType,
                  direction: Optional[Coord] = None):
        if cover_type == CoverType.BLOCKED:
            raise ValueError("BLOCKED is not a tile cover type")
        tile = self.get_tile(col, row)
        if tile:
            tile.cover_type = cover_type
            tile.cover_direction = direction

    def set_object(self, col: int, row: int, object_type: str,
                   cover_type: CoverType = CoverType.HALF):
        """Place an object. Any object giving cover blocks movement."""
        tile = self.get_tile(col, row)
        if tile:
            tile.object_type = object_type
            tile.cover_type = cover_type
            if cover_type != CoverType.NONE:
                tile.walkable = False

    def set_spawn_zone(self, col: int, row: int, faction_id: str):
        tile = self.get_tile(col, row)
        if tile:
            tile.spawn_zone = faction_id

    def get_spawn_tiles(self, faction_id: str) -> list[Coord]:
        """Spawn tiles for a faction, scanned column by column."""
        return [
            (c, r)
            for c in range(self.width)
            for r in range(self.height)
            if self.tiles[(c, r)].spawn_zone == faction_id
        ]

    def tiles_in_range(self, origin: Coord, rng: int) -> list[Coord]:
        """All in-bounds tiles within Chebyshev range, excluding origin."""
        tiles = []
        for c in range(origin[0] - rng, origin[0] + rng + 1):
            for r in range(origin[1] - rng, origin[1] + rng + 1):
                if not self.in_bounds(c, r) or (c, r) == origin:
                    continue
                tiles.append((c, r))
        return tiles

    # Movement
    def _diagonal_passable(self, current: Coord, neighbor: Coord) -> bool:
        """Corner-cut rule: both orthogonal tiles must be open terrain."""
        dc = neighbor[0] - current[0]
        dr = neighbor[1] - current[1]
        if dc == 0 or dr == 0:
            return True
        return (self.is_walkable_ignoring_occupant(current[0] + dc, current[1])
                and self.is_walkable_ignoring_occupant(current[0], current[1] + dr))

    def get_movement_range(self, origin: Coord, move_points: int) -> list[ReachableTile]:
        """Breadth-first flood fill of tiles reachable within move_points."""
        if not self.in_bounds(*origin):
            return []

        reachable = []
        visited = {origin}
        queue = deque([(origin, 0)])

        while queue:
            current, cost = queue.popleft()
            if cost > 0:
                reachable.append(ReachableTile(current[0], current[1], cost))
            if cost >= move_points:
                continue

            for neighbor in get_neighbors(*current, self.width, self.height):
                if neighbor in visited:
                    continue
                if not self.is_walkable(*neighbor):
                    continue
                if not self._diagonal_passable(current, neighbor):
                    continue
                visited.add(neighbor)
                queue.append((neighbor, cost + 1))

        return reachable

    def find_path(self, start: Coord, end: Coord,
                  allow_occupied_destination: bool = False) -> Optional[list[Coord]]:
        """
        Shortest path by BFS, using the same rules as get_movement_range.

        Returns [] when start == end, None when the destination is not
        enterable or unreachable, otherwise the tiles after start through end.
        """
        start, end = tuple(start), tuple(end)
        if start == end:
            return []

        if allow_occupied_destination:
            destination_ok = self.is_walkable_ignoring_occupant(*end)
        else:
            destination_ok = self.is_walkable(*end)
        if not destination_ok:
            return None

        queue = deque([start])
        came_from: dict[Coord, Coord] = {}
        visited = {start}
        found = False

        while queue and not found:
            current = queue.popleft()
            for neighbor in get_neighbors(*current, self.width, self.height):
                if neighbor in visited:
                    continue
                if neighbor == end and allow_occupied_destination:
                    walkable = self.is_walkable_ignoring_occupant(*neighbor)
                else:
                    walkable = self.is_walkable(*neighbor)
                if not walkable:
                    continue
                if not self._diagonal_passable(current, neighbor):
                    continue

                visited.add(neighbor)
                came_from[neighbor] = current
                if neighbor == end:
                    found = True
                    break
                queue.append(neighbor)

        if not found:
            return None

        path = []
        node = end
        while node != start:
            path.append(node)
            node = came_from[node]
        path.reverse()
        return path

    # Line of sight and cover
    def check_los(self, frm: Coord, to: Coord) -> LOSResult:
        """Trace a Bresenham line; full-cover objects on the way block it."""
        to = tuple(to)
        for pos in bresenham_line(frm, to):
            if pos == to:
                continue
            tile = self.get_tile(*pos)
            if not tile:
                continue
            if tile.cover_type == CoverType.FULL and tile.object_type:
                return LOSResult(clear=False, cover_penalty=0.0,
                                 cover_type=CoverType.BLOCKED)

        cover = self.get_cover_between(frm, to)
        return LOSResult(clear=True, cover_penalty=cover.penalty,
                         cover_type=cover.cover_type)

    def get_cover_between(self, attacker: Coord, target: Coord) -> CoverResult:
        """Strongest cover on the target's attacker-facing side."""
        dc, dr = tile_direction(attacker, target)
        tc, tr = target

        candidates = []
        if dc != 0:
            candidates.append((tc - dc, tr))
        if dr != 0:
            candidates.append((tc, tr - dr))
        if dc != 0 and dr != 0:
            candidates.append((tc - dc, tr - dr))

        best = CoverType.NONE
        for pos in candidates:
            tile = self.get_tile(*pos)
            if not tile or not tile.object_type:
                continue
            if COVER_RANK.get(tile.cover_type, 0) > COVER_RANK[best]:
                best = tile.cover_type

        return CoverResult(cover_type=best,
                           penalty=self.rules.cover_penalty(best.value))

    def check_flanking(self, attacker: Coord, target: Coord,
                       target_facing: Optional[Coord]) -> bool:
        """True when the attacker is beside or behind the target's facing."""
        if not target_facing:
            return False
        to_attacker = tile_direction(target, attacker)
        dot = target_facing[0] * to_attacker[0] + target_facing[1] * to_attacker[1]
        return dot <= 0

    def get_cover_adjacent_tiles(self, tiles) -> list[CoverAdjacency]:
        """Tiles from the input that sit next to cover, with the best tier."""
        result = []
        for pos in tiles:
            col, row = pos if isinstance(pos, tuple) else (pos.col, pos.row)
            best = CoverType.NONE
            for n in get_neighbors(col, row, self.width, self.height):
                tile = self.tiles[n]
                if tile.cover_type == CoverType.FULL:
                    best = CoverType.FULL
                    break
                if tile.cover_type == CoverType.HALF:
                    best = CoverType.HALF
            if best != CoverType.NONE:
                result.append(CoverAdjacency(col, row, best))
        return result

    def get_stats(self) -> dict:
        """Summary counts for logging."""
        blocked = sum(1 for t in self.tiles.values() if not t.walkable)
        cover = sum(1 for t in self.tiles.values() if t.cover_type != CoverType.NONE)
        return {
            "width": self.width,
            "height": self.height,
            "blocked_tiles": blocked,
            "cover_tiles": cover,
        }
