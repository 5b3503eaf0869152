import os
import sys

import pytest

# Ensure the project root is on the path so modules can be imported in tests
ROOT = os.path.dirname(os.path.dirname(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from engine.grid import GridModel
from engine.rules import Rules
from engine.session import assemble_session, PLAYER_FACTION, AI_FACTION


class FixedRoll:
    """Stands in for random.Random; every draw returns the same value."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def rules():
    return Rules()


@pytest.fixture
def grid(rules):
    return GridModel(10, 10, rules)


@pytest.fixture
def make_session(rules):
    """Build an empty session on a fresh grid; units are placed by the test."""

    def _make(width=10, height=10, ai_factions=(AI_FACTION,), max_turns=None, seed=1):
        grid = GridModel(width, height, rules)
        return assemble_session(
            grid, rules,
            ai_factions=ai_factions,
            seed=seed,
            max_turns=max_turns,
            spawn=False,
        )

    return _make


@pytest.fixture
def session(make_session):
    return make_session()


@pytest.fixture
def always_hit():
    return FixedRoll(0.0)


@pytest.fixture
def always_miss():
    return FixedRoll(0.999)


def place(session, faction, index, tile, facing=None):
    """Create a unit on the session's grid."""
    unit = session.units.create_unit(faction, index, tile)
    if facing is not None:
        unit.facing = facing
    return unit
