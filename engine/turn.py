"""
Turn sequencing for the tactics simulation.

Each turn every living unit activates once, in a queue that alternates
between the two factions. A single phase value decides which commands are
legal; anything else is ignored. Movement and attacks are coroutines with
named suspension points so overwatch can interrupt between steps.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, TYPE_CHECKING

from .grid import GridModel, Coord
from .rules import Rules
from .units import Unit, UnitManager, UnitStatus
from .events import (
    EventChannel, PhaseChanged, ActivationStarted, MovementRangeShown,
    ActionsAvailable, TargetsShown, AttackPreview, HighlightsCleared,
    UnitMoveComplete, TurnStarted, TurnEnded, GameOver,
)
from .combat import TacticalCombat, OverwatchResolver, AttackType, AttackResult

if TYPE_CHECKING:
    from agents.base import TacticalAgent

logger = logging.getLogger(__name__)

DRAW = "draw"


class GamePhase(Enum):
    LOADING = "loading"
    PLAYER_SELECT_UNIT = "player_select_unit"
    PLAYER_MOVEMENT = "player_movement"
    PLAYER_ACTION = "player_action"
    PLAYER_TARGET_SELECT = "player_target_select"
    COMBAT_RESOLUTION_WAIT = "combat_resolution_wait"
    AI_THINKING = "ai_thinking"
    AI_ACTING = "ai_acting"
    TURN_TRANSITION = "turn_transition"
    GAME_OVER = "game_over"


class ActionKind(Enum):
    SHOOT = "shoot"
    MELEE = "melee"
    OVERWATCH = "overwatch"
    HUNKER = "hunker"
    END_TURN = "endTurn"


@dataclass
class GameState:
    """Complete mutable session state, owned by the scheduler."""
    player_faction: str
    ai_faction: str
    turn: int = 0
    max_turns: Optional[int] = None
    phase: GamePhase = GamePhase.LOADING
    active_unit: Optional[Unit] = None
    game_over: bool = False
    winner: Optional[str] = None
    activation_queue: list[Unit] = field(default_factory=list)
    cursor: int = 0
    move_tiles: set[Coord] = field(default_factory=set)
    valid_targets: list[Unit] = field(default_factory=list)
    pending_attack: Optional[AttackType] = None


class TurnScheduler:
    """Owns the phase machine and the activation queue."""

    def __init__(
        self,
        grid: GridModel,
        units: UnitManager,
        combat: TacticalCombat,
        overwatch: OverwatchResolver,
        rules: Rules,
        state: GameState,
        events: Optional[EventChannel] = None,
        agents: Optional[dict[str, "TacticalAgent"]] = None,
    ):
        self.grid = grid
        self.units = units
        self.combat = combat
        self.overwatch = overwatch
        self.rules = rules
        self.state = state
        self.events = events or units.events
        # Factions listed here are driven by an agent instead of commands
        self.agents: dict[str, "TacticalAgent"] = agents or {}

    # Phase helpers
    @property
    def phase(self) -> GamePhase:
        return self.state.phase

    def _set_phase(self, phase: GamePhase):
        if self.state.phase != phase:
            logger.debug(f"phase {self.state.phase.value} -> {phase.value}")
            self.state.phase = phase
            self.events.publish(PhaseChanged(phase))

    def is_ai(self, faction: str) -> bool:
        return faction in self.agents

    def _reject(self, command: str):
        logger.debug(f"{command} ignored in phase {self.state.phase.value}")

    # Game start
    async def start_game(self):
        """Leave LOADING and run until the first command is needed."""
        logger.info(
            f"Game start: {self.state.player_faction} vs {self.state.ai_faction}"
        )
        self.state.turn = 0
        await self.start_turn()

    # Turn flow
    def build_activation_queue(self) -> list[Unit]:
        """Alternate player and AI units, player first at each index."""
        player_units = self.units.get_unactivated_units(self.state.player_faction)
        ai_units = self.units.get_unactivated_units(self.state.ai_faction)

        queue = []
        for i in range(max(len(player_units), len(ai_units))):
            if i < len(player_units):
                queue.append(player_units[i])
            if i < len(ai_units):
                queue.append(ai_units[i])

        self.state.activation_queue = queue
        return queue

    def _begin_turn(self):
        self._set_phase(GamePhase.TURN_TRANSITION)
        self.state.turn += 1
        self.units.reset_activations()
        self.build_activation_queue()
        self.state.cursor = 0
        logger.info(f"Turn {self.state.turn} ({len(self.state.activation_queue)} activations)")
        self.events.publish(TurnStarted(self.state.turn))

    def _close_turn(self) -> bool:
        """Emit the turn end; False if the turn limit ended the game."""
        self.events.publish(TurnEnded(self.state.turn))
        limit = self.state.max_turns
        if limit is not None and self.state.turn >= limit:
            logger.info(f"Turn limit {limit} reached")
            self._handle_game_over(DRAW)
            return False
        return True

    async def start_turn(self):
        self._begin_turn()
        await self.next_activation()

    async def end_turn(self):
        if self._close_turn():
            await self.start_turn()

    def _next_queued_unit(self) -> Optional[Unit]:
        queue = self.state.activation_queue
        while self.state.cursor < len(queue):
            unit = queue[self.state.cursor]
            if unit.alive and not unit.activated:
                return unit
            self.state.cursor += 1
        return None

    async def next_activation(self):
        """
        Route the next queued unit to a player or an agent.

        Agent activations run inline, so this keeps going until a human
        command is needed or the game ends.
        """
        while not self.state.game_over:
            winner = self.check_win_condition()
            if winner:
                self._handle_game_over(winner)
                return

            unit = self._next_queued_unit()
            if unit is None:
                if not self._close_turn():
                    return
                self._begin_turn()
                continue

            if not self.is_ai(unit.faction):
                self._set_phase(GamePhase.PLAYER_SELECT_UNIT)
                self.begin_player_activation(unit)
                return

            await self._run_ai_activation(unit)

    def _finish_activation(self, unit: Unit):
        self.units.mark_activated(unit)
        self.state.active_unit = None
        self.state.move_tiles = set()
        self.state.valid_targets = []
        self.state.pending_attack = None
        self.events.publish(HighlightsCleared())

        queue = self.state.activation_queue
        if self.state.cursor < len(queue) and queue[self.state.cursor] is unit:
            self.state.cursor += 1

    async def end_activation(self, unit: Unit):
        self._finish_activation(unit)
        await self.next_activation()

    # Win condition
    def check_win_condition(self) -> Optional[str]:
        """Winning faction id, DRAW on mutual elimination, else None."""
        player_alive = self.units.get_alive_units(self.state.player_faction)
        ai_alive = self.units.get_alive_units(self.state.ai_faction)

        if not player_alive and not ai_alive:
            return DRAW
        if not ai_alive:
            return self.state.player_faction
        if not player_alive:
            return self.state.ai_faction
        return None

    def _handle_game_over(self, winner: str):
        self.state.game_over = True
        self.state.winner = winner
        self.state.active_unit = None
        self._set_phase(GamePhase.GAME_OVER)
        logger.info(f"Game over after turn {self.state.turn}: winner {winner}")
        self.events.publish(GameOver(winner))

    # Player activation
    def begin_player_activation(self, unit: Unit):
        self.state.active_unit = unit
        self._set_phase(GamePhase.PLAYER_MOVEMENT)
        self.units.select_unit(unit)
        self._show_movement_range(unit)
        self.events.publish(ActivationStarted(unit, True))

    def _show_movement_range(self, unit: Unit):
        tiles = self.grid.get_movement_range(unit.tile, self.rules.unit_stats.movement)
        self.state.move_tiles = {t.pos for t in tiles}
        self.events.publish(MovementRangeShown(unit, tuple(t.pos for t in tiles)))

    def _enter_action_phase(self, unit: Unit):
        self._set_phase(GamePhase.PLAYER_ACTION)
        actions = self.combat.get_available_actions(unit)
        self.events.publish(ActionsAvailable(unit, actions))

    def _enter_target_select(self, unit: Unit, attack_type: AttackType):
        targets = self.combat.get_valid_targets(unit, attack_type)
        if not targets:
            logger.debug(f"{unit.id}: no valid {attack_type.value} targets")
            self._enter_action_phase(unit)
            return

        self.state.pending_attack = attack_type
        self.state.valid_targets = targets
        self._set_phase(GamePhase.PLAYER_TARGET_SELECT)
        self.events.publish(TargetsShown(unit, attack_type, tuple(targets)))

    def _clear_pending(self):
        self.state.valid_targets = []
        self.state.pending_attack = None

    # Commands
    async def select_unit(self, unit: Unit | str):
        """Start (or switch to) a friendly unit's activation."""
        if isinstance(unit, str):
            unit = self.units.get_unit(unit)
        if unit is None:
            return
        # Only before the active unit has moved or acted
        if self.phase != GamePhase.PLAYER_MOVEMENT:
            self._reject("select_unit")
            return
        if self.is_ai(unit.faction) or not unit.alive or unit.activated:
            return
        if unit is self.state.active_unit:
            return

        # The chosen unit takes over the current slot; the displaced unit
        # moves to the chosen unit's old slot, so factions still alternate
        queue = self.state.activation_queue
        cursor = self.state.cursor
        if unit in queue and cursor < len(queue):
            i = queue.index(unit)
            queue[cursor], queue[i] = queue[i], queue[cursor]

        self.events.publish(HighlightsCleared())
        self.begin_player_activation(unit)

    async def request_move(self, col: int, row: int):
        unit = self.state.active_unit
        if not unit or self.phase != GamePhase.PLAYER_MOVEMENT:
            self._reject("move")
            return
        if (col, row) not in self.state.move_tiles:
            logger.debug(f"({col}, {row}) not in movement range of {unit.id}")
            return

        self.events.publish(HighlightsCleared())
        path = self.grid.find_path(unit.tile, (col, row))
        if not path:
            logger.warning(f"No path for {unit.id} to ({col}, {row}), re-showing range")
            self._show_movement_range(unit)
            return

        unit.ap = max(0, unit.ap - 1)
        self._set_phase(GamePhase.COMBAT_RESOLUTION_WAIT)
        await self._move_along_path(unit, path)

        if not unit.alive:
            await self.end_activation(unit)
            return
        if unit.ap > 0:
            self._enter_action_phase(unit)
        else:
            await self.end_activation(unit)

    async def request_action(self, kind: ActionKind | str):
        """Action bar command. Also accepted before moving, to skip movement."""
        unit = self.state.active_unit
        if not unit or not unit.alive:
            return
        if self.phase not in (GamePhase.PLAYER_ACTION, GamePhase.PLAYER_MOVEMENT):
            self._reject("action")
            return
        try:
            kind = ActionKind(kind)
        except ValueError:
            logger.debug(f"Unknown action {kind!r}")
            return

        self.events.publish(HighlightsCleared())
        actions = self.combat.get_available_actions(unit)

        if kind == ActionKind.SHOOT:
            self._enter_target_select(unit, AttackType.RANGED)
        elif kind == ActionKind.MELEE:
            self._enter_target_select(unit, AttackType.MELEE)
        elif kind == ActionKind.OVERWATCH:
            if not actions.can_overwatch:
                self._enter_action_phase(unit)
                return
            self.overwatch.set_overwatch(unit)
            await self.end_activation(unit)
        elif kind == ActionKind.HUNKER:
            if not actions.can_hunker:
                self._enter_action_phase(unit)
                return
            self.overwatch.set_hunker(unit)
            await self.end_activation(unit)
        elif kind == ActionKind.END_TURN:
            await self.end_activation(unit)

    async def request_target(self, col: int, row: int):
        unit = self.state.active_unit
        if not unit or self.phase != GamePhase.PLAYER_TARGET_SELECT:
            self._reject("target")
            return

        target = next((t for t in self.state.valid_targets if t.tile == (col, row)), None)
        if target is None:
            return

        attack_type = self.state.pending_attack
        self.events.publish(HighlightsCleared())
        self._set_phase(GamePhase.COMBAT_RESOLUTION_WAIT)
        await self.combat.execute_attack(unit, target, attack_type)
        self._clear_pending()

        winner = self.check_win_condition()
        if winner:
            self._handle_game_over(winner)
            return

        if unit.ap > 0 and unit.alive:
            self._enter_action_phase(unit)
        else:
            await self.end_activation(unit)

    def hover_tile(self, col: int, row: int) -> Optional[AttackPreview]:
        """Attack preview for a hovered target during target selection."""
        unit = self.state.active_unit
        if not unit or self.phase != GamePhase.PLAYER_TARGET_SELECT:
            return None

        target = next((t for t in self.state.valid_targets if t.tile == (col, row)), None)
        if target is None:
            preview = AttackPreview(unit, None, 0.0, None)
        else:
            chance, breakdown = self.combat.calculate_hit_chance(
                unit, target, self.state.pending_attack
            )
            preview = AttackPreview(unit, target, chance, breakdown)
        self.events.publish(preview)
        return preview

    def cancel(self):
        unit = self.state.active_unit
        if self.phase == GamePhase.PLAYER_TARGET_SELECT:
            self.events.publish(HighlightsCleared())
            self._clear_pending()
            if unit:
                self._enter_action_phase(unit)
        elif self.phase == GamePhase.PLAYER_ACTION:
            self.events.publish(HighlightsCleared())

    # Shared resolution paths (player and agents)
    async def _step_arrived(self, unit: Unit):
        await asyncio.sleep(self.rules.pacing.step_delay)

    async def _move_along_path(self, unit: Unit, path: list[Coord]) -> bool:
        """Walk the path one tile at a time; False if overwatch killed the mover."""
        for step in path:
            from_tile = unit.tile
            self.units.move_step(unit, step)
            await self._step_arrived(unit)

            for watcher in self.overwatch.check_overwatch(unit, from_tile, step):
                await self.overwatch.execute_overwatch_shot(watcher, unit)
                if not unit.alive:
                    logger.info(f"{unit.id} cut down by overwatch at {step}")
                    return False

        self.events.publish(UnitMoveComplete(unit, tuple(path)))
        return True

    async def perform_move(self, unit: Unit, destination: Coord) -> bool:
        """Agent move: path, AP, per-step overwatch. False if nothing moved."""
        if self.state.game_over:
            return False
        path = self.grid.find_path(unit.tile, destination)
        if not path:
            return False
        unit.ap = max(0, unit.ap - 1)
        await self._move_along_path(unit, path)
        return True

    async def perform_attack(self, unit: Unit, target: Unit,
                             attack_type: AttackType) -> Optional[AttackResult]:
        if self.state.game_over:
            return None
        result = await self.combat.execute_attack(unit, target, attack_type)
        winner = self.check_win_condition()
        if winner:
            self._handle_game_over(winner)
        return result

    def perform_overwatch(self, unit: Unit):
        if not self.state.game_over and unit.status != UnitStatus.OVERWATCH:
            self.overwatch.set_overwatch(unit)

    # Agent activation
    async def _run_ai_activation(self, unit: Unit):
        self.state.active_unit = unit
        self._set_phase(GamePhase.AI_THINKING)
        self.units.deselect_unit()
        self.events.publish(ActivationStarted(unit, False))

        self._set_phase(GamePhase.AI_ACTING)
        await self.agents[unit.faction].activate_unit(unit, self)

        if self.state.game_over:
            return
        self._finish_activation(unit)

    # Reporting
    def snapshot(self) -> dict:
        """JSON-ready view of the session."""
        active = self.state.active_unit
        return {
            "turn": self.state.turn,
            "phase": self.state.phase.value,
            "player_faction": self.state.player_faction,
            "ai_faction": self.state.ai_faction,
            "active_unit": active.id if active else None,
            "game_over": self.state.game_over,
            "winner": self.state.winner,
            "queue": [u.id for u in self.state.activation_queue],
            "cursor": self.state.cursor,
            "units": [u.to_dict() for u in self.units.units],
        }
