"""
Unit tests for hit chance, target selection and attack resolution.

Run with: python -m pytest tests/test_combat.py -v
"""

import asyncio

import pytest

from engine.combat import AttackType
from engine.events import CombatComplete, CombatKill, CombatMiss, UnitDied
from engine.grid import CoverType, GridModel
from engine.rules import Rules, UnitStats
from engine.session import assemble_session
from engine.units import UnitStatus

from conftest import FixedRoll, place, PLAYER_FACTION, AI_FACTION


@pytest.fixture
def duel(session):
    """Attacker facing east, target facing west, four tiles apart."""
    attacker = place(session, PLAYER_FACTION, 0, (0, 5))
    target = place(session, AI_FACTION, 0, (4, 5))
    return session, attacker, target


class TestHitChance:
    def test_half_cover_no_flank(self, duel):
        session, attacker, target = duel
        session.grid.set_object(3, 5, "crate", CoverType.HALF)

        chance, breakdown = session.combat.calculate_hit_chance(
            attacker, target, AttackType.RANGED
        )

        assert chance == pytest.approx(0.45)
        assert breakdown.base == pytest.approx(0.70)
        assert breakdown.damage == 4
        assert breakdown.cover_penalty == pytest.approx(-0.25)
        assert breakdown.cover_type == "half"
        assert breakdown.final == pytest.approx(0.45)
        assert breakdown.flanking_bonus is None
        assert breakdown.range_penalty is None
        assert breakdown.hunkered_penalty is None

    def test_breakdown_dict_only_lists_applied_modifiers(self, duel):
        session, attacker, target = duel
        _, breakdown = session.combat.calculate_hit_chance(attacker, target, AttackType.RANGED)
        assert set(breakdown.to_dict()) == {"base", "damage", "final"}

    def test_hunker_doubles_cover(self, duel):
        session, attacker, target = duel
        session.grid.set_object(3, 5, "crate", CoverType.HALF)
        target.status = UnitStatus.HUNKERED

        chance, breakdown = session.combat.calculate_hit_chance(
            attacker, target, AttackType.RANGED
        )
        assert chance == pytest.approx(0.20)
        assert breakdown.hunkered_penalty == pytest.approx(-0.25)

    def test_hunker_in_the_open_changes_nothing(self, duel):
        session, attacker, target = duel
        target.status = UnitStatus.HUNKERED

        chance, breakdown = session.combat.calculate_hit_chance(
            attacker, target, AttackType.RANGED
        )
        assert chance == pytest.approx(0.70)
        assert breakdown.hunkered_penalty is None

    def test_flanking_bonus(self, session):
        attacker = place(session, PLAYER_FACTION, 0, (4, 2))
        target = place(session, AI_FACTION, 0, (4, 5))

        chance, breakdown = session.combat.calculate_hit_chance(
            attacker, target, AttackType.RANGED
        )
        assert chance == pytest.approx(0.85)
        assert breakdown.flanking_bonus == pytest.approx(0.15)

    def test_near_max_range_penalty(self, session):
        attacker = place(session, PLAYER_FACTION, 0, (0, 5))
        target = place(session, AI_FACTION, 0, (7, 5))

        chance, breakdown = session.combat.calculate_hit_chance(
            attacker, target, AttackType.RANGED
        )
        assert chance == pytest.approx(0.65)
        assert breakdown.range_penalty == pytest.approx(-0.05)

    def test_clamped_to_floor(self, session):
        attacker = place(session, PLAYER_FACTION, 0, (0, 0))
        target = place(session, AI_FACTION, 0, (4, 4))
        # Off the sight line, but on the target's exposed side
        session.grid.set_object(4, 3, "wall", CoverType.FULL)
        target.status = UnitStatus.HUNKERED

        chance, breakdown = session.combat.calculate_hit_chance(
            attacker, target, AttackType.RANGED
        )
        assert breakdown.cover_type == "full"
        assert chance == pytest.approx(0.05)

    def test_clamped_to_ceiling(self, session):
        attacker = place(session, PLAYER_FACTION, 0, (5, 4))
        target = place(session, AI_FACTION, 0, (5, 5))

        chance, breakdown = session.combat.calculate_hit_chance(
            attacker, target, AttackType.MELEE
        )
        assert breakdown.flanking_bonus == pytest.approx(0.15)
        assert chance == pytest.approx(0.95)

    def test_melee_ignores_cover(self, session):
        attacker = place(session, PLAYER_FACTION, 0, (3, 4))
        target = place(session, AI_FACTION, 0, (4, 5))
        session.grid.set_object(3, 5, "crate", CoverType.HALF)

        chance, breakdown = session.combat.calculate_hit_chance(
            attacker, target, AttackType.MELEE
        )
        assert chance == pytest.approx(0.85)
        assert breakdown.cover_penalty is None
        assert breakdown.damage == 5

    def test_rules_drive_the_numbers(self):
        rules = Rules(unit_stats=UnitStats(ranged_accuracy=0.5))

        session = assemble_session(GridModel(8, 8, rules), rules, spawn=False)
        attacker = place(session, PLAYER_FACTION, 0, (0, 3))
        target = place(session, AI_FACTION, 0, (3, 3))
        chance, _ = session.combat.calculate_hit_chance(attacker, target, AttackType.RANGED)
        assert chance == pytest.approx(0.5)


class TestTargets:
    def test_ranged_needs_range_and_sight(self, session):
        shooter = place(session, PLAYER_FACTION, 0, (0, 0))
        visible = place(session, AI_FACTION, 0, (5, 0))
        hidden = place(session, AI_FACTION, 1, (0, 4))
        far = place(session, AI_FACTION, 2, (9, 9))
        session.grid.set_object(0, 2, "wall", CoverType.FULL)

        targets = session.combat.get_valid_ranged_targets(shooter)
        assert visible in targets
        assert hidden not in targets
        assert far not in targets

    def test_melee_includes_diagonals(self, session):
        unit = place(session, PLAYER_FACTION, 0, (4, 4))
        diagonal = place(session, AI_FACTION, 0, (5, 5))
        two_away = place(session, AI_FACTION, 1, (6, 4))

        targets = session.combat.get_valid_melee_targets(unit)
        assert targets == [diagonal]
        assert two_away not in targets

    def test_dead_and_friendly_units_are_not_targets(self, session):
        unit = place(session, PLAYER_FACTION, 0, (4, 4))
        place(session, PLAYER_FACTION, 1, (4, 5))
        enemy = place(session, AI_FACTION, 0, (5, 4))
        session.units.set_unit_dead(enemy)

        assert session.combat.get_valid_melee_targets(unit) == []
        assert session.combat.get_valid_ranged_targets(unit) == []

    def test_available_actions(self, session):
        unit = place(session, PLAYER_FACTION, 0, (4, 4))
        place(session, AI_FACTION, 0, (5, 4))

        actions = session.combat.get_available_actions(unit)
        assert actions.can_shoot and actions.can_melee
        assert actions.can_overwatch and actions.can_hunker

        unit.status = UnitStatus.OVERWATCH
        assert not session.combat.get_available_actions(unit).can_overwatch

        unit.ap = 0
        assert session.combat.get_available_actions(unit).to_dict() == {
            "can_shoot": False, "can_melee": False,
            "can_overwatch": False, "can_hunker": False,
        }


class TestExecuteAttack:
    def test_roll_equal_to_chance_hits(self, session):
        session.combat.rng = FixedRoll(0.5)
        hit, roll = session.combat.hit_check(0.5)
        assert hit
        assert roll == 0.5

    def test_killing_blow_frees_the_tile(self, duel, always_hit):
        session, attacker, target = duel
        session.combat.rng = always_hit
        target.hp = 4
        kills = []
        session.events.subscribe(CombatKill, kills.append)
        deaths = []
        session.events.subscribe(UnitDied, deaths.append)

        result = asyncio.run(session.combat.execute_attack(attacker, target, AttackType.RANGED))

        assert result.hit and result.killed
        assert result.damage == 4
        assert target.status == UnitStatus.DEAD
        assert not target.alive
        assert target.hp == 0
        assert session.units.get_unit_at_tile(4, 5) is None
        assert session.grid.is_walkable(4, 5)
        assert len(kills) == 1 and len(deaths) == 1

    def test_attack_costs_one_ap_and_faces_target(self, session, always_hit):
        session.combat.rng = always_hit
        attacker = place(session, PLAYER_FACTION, 0, (2, 2), facing=(-1, 0))
        target = place(session, AI_FACTION, 0, (2, 5))

        result = asyncio.run(session.combat.execute_attack(attacker, target, AttackType.RANGED))

        assert attacker.ap == 1
        assert attacker.facing == (0, 1)
        assert target.hp == 6
        assert not result.killed

    def test_miss(self, duel, always_miss):
        session, attacker, target = duel
        session.combat.rng = always_miss
        misses, completes = [], []
        session.events.subscribe(CombatMiss, misses.append)
        session.events.subscribe(CombatComplete, completes.append)

        result = asyncio.run(session.combat.execute_attack(attacker, target, AttackType.MELEE))

        assert not result.hit
        assert result.damage == 0
        assert target.hp == target.max_hp
        assert len(misses) == 1
        assert completes[0].result is result

    def test_result_serializes(self, duel, always_hit):
        session, attacker, target = duel
        session.combat.rng = always_hit
        result = asyncio.run(session.combat.execute_attack(attacker, target, AttackType.RANGED))
        data = result.to_dict()
        assert data["attack_type"] == "ranged"
        assert data["breakdown"]["base"] == pytest.approx(0.70)
