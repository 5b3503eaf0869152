"""
Overwatch and hunker stance tests.

Run with: python -m pytest tests/test_overwatch.py -v
"""

import asyncio

import pytest

from engine.events import OverwatchFired, UnitMoveComplete, UnitStatusChanged
from engine.grid import CoverType, tile_direction
from engine.units import UnitStatus

from conftest import place, PLAYER_FACTION, AI_FACTION


@pytest.fixture
def watch(make_session):
    """Germani watcher at (2,5) looking east over a 12x10 field."""
    session = make_session(width=12, height=10)
    watcher = place(session, AI_FACTION, 0, (2, 5), facing=(1, 0))
    mover = place(session, PLAYER_FACTION, 0, (6, 4))
    session.overwatch.set_overwatch(watcher)
    return session, watcher, mover


class TestStances:
    def test_set_overwatch(self, watch):
        _, watcher, _ = watch
        assert watcher.status == UnitStatus.OVERWATCH
        assert watcher.overwatch_cone == (1, 0)
        assert watcher.ap == 1

    def test_set_hunker(self, session):
        unit = place(session, PLAYER_FACTION, 0, (3, 3))
        session.overwatch.set_hunker(unit)
        assert unit.status == UnitStatus.HUNKERED
        assert unit.overwatch_cone is None
        assert unit.ap == 1

    def test_cone_is_set_before_status_is_announced(self, session):
        unit = place(session, PLAYER_FACTION, 0, (3, 3))
        seen = []
        session.events.subscribe(
            UnitStatusChanged, lambda e: seen.append((e.status, e.unit.overwatch_cone))
        )

        session.overwatch.set_overwatch(unit)

        assert seen == [(UnitStatus.OVERWATCH, (1, 0))]

    def test_new_turn_drops_stances(self, watch):
        session, watcher, _ = watch
        session.units.reset_activations()
        assert watcher.status == UnitStatus.READY
        assert watcher.overwatch_cone is None
        assert watcher.ap == watcher.max_ap


class TestTrigger:
    def test_step_in_front_triggers(self, watch):
        session, watcher, mover = watch
        assert session.overwatch.check_overwatch(mover, (6, 4), (6, 5)) == [watcher]

    def test_step_behind_does_not_trigger(self, watch):
        session, _, mover = watch
        assert session.overwatch.check_overwatch(mover, (1, 4), (1, 5)) == []

    def test_step_beside_is_inside_the_arc(self, watch):
        session, watcher, mover = watch
        assert session.overwatch.check_overwatch(mover, (2, 7), (2, 8)) == [watcher]

    def test_out_of_range(self, watch):
        session, _, mover = watch
        assert session.overwatch.check_overwatch(mover, (10, 5), (11, 5)) == []

    def test_blocked_sight_line(self, watch):
        session, _, mover = watch
        session.grid.set_object(4, 5, "wall", CoverType.FULL)
        assert session.overwatch.check_overwatch(mover, (6, 4), (6, 5)) == []

    def test_friendly_movers_are_ignored(self, watch):
        session, watcher, _ = watch
        friend = place(session, AI_FACTION, 1, (6, 2))
        assert session.overwatch.check_overwatch(friend, (6, 2), (6, 3)) == []

    def test_diagonal_cone_uses_the_full_offset(self, make_session):
        session = make_session(width=12, height=10)
        watcher = place(session, AI_FACTION, 0, (2, 6), facing=(1, 1))
        mover = place(session, PLAYER_FACTION, 0, (5, 3))
        session.overwatch.set_overwatch(watcher)

        # Offset (3, -4): dot product is -1
        assert session.overwatch.check_overwatch(mover, (5, 3), (5, 2)) == []
        # Offset (4, -3): dot product is +1
        assert session.overwatch.check_overwatch(mover, (5, 3), (6, 3)) == [watcher]

    def test_watcher_must_be_on_overwatch(self, watch):
        session, watcher, mover = watch
        session.units.set_unit_status(watcher, UnitStatus.ACTIVATED)
        assert session.overwatch.check_overwatch(mover, (6, 4), (6, 5)) == []


class TestReactionFire:
    def test_shot_spends_the_stance(self, watch, always_hit):
        session, watcher, mover = watch
        session.combat.rng = always_hit
        fired = []
        session.events.subscribe(OverwatchFired, fired.append)

        result = asyncio.run(session.overwatch.execute_overwatch_shot(watcher, mover))

        assert result.hit
        assert mover.hp == 6
        assert watcher.status == UnitStatus.ACTIVATED
        assert watcher.overwatch_cone is None
        assert watcher.ap == 0
        assert fired[0].result is result

    def test_mover_killed_mid_path(self, make_session, always_hit):
        session = make_session()
        session.combat.rng = always_hit
        watcher = place(session, AI_FACTION, 0, (8, 5))
        mover = place(session, PLAYER_FACTION, 0, (1, 5))
        mover.hp = 4
        session.overwatch.set_overwatch(watcher)
        completed = []
        session.events.subscribe(UnitMoveComplete, completed.append)
        first_step = session.grid.find_path(mover.tile, (4, 5))[0]

        moved = asyncio.run(session.scheduler.perform_move(mover, (4, 5)))

        assert moved
        assert not mover.alive
        assert mover.tile == first_step
        assert session.grid.is_walkable(*first_step)
        assert session.units.get_unit_at_tile(4, 5) is None
        assert completed == []

    def test_survivor_finishes_the_path(self, make_session, always_miss):
        session = make_session()
        session.combat.rng = always_miss
        watcher = place(session, AI_FACTION, 0, (8, 5))
        mover = place(session, PLAYER_FACTION, 0, (1, 5))
        session.overwatch.set_overwatch(watcher)
        path = session.grid.find_path(mover.tile, (4, 5))

        asyncio.run(session.scheduler.perform_move(mover, (4, 5)))

        assert mover.tile == (4, 5)
        assert mover.facing == tile_direction(path[-2], path[-1])
        assert mover.ap == 1
        # Only one reaction shot per overwatch
        assert watcher.status == UnitStatus.ACTIVATED
