"""
Typed event channel between the simulation core and its observers.

Every notification the core emits is a frozen dataclass. Observers subscribe
per event class (or to everything) and are called synchronously in
subscription order. Bound methods are held weakly so a discarded view does
not keep receiving events.
"""

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Callable, Optional, Union
from weakref import WeakMethod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GameEvent:
    """Base class for all core notifications."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        """JSON-ready form (units reduced to their ids)."""
        data = {"event": self.name}
        for f in fields(self):
            data[f.name] = _plain(getattr(self, f.name))
        return data


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "id") and hasattr(value, "faction"):
        return value.id
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


# Selection and unit state

@dataclass(frozen=True)
class UnitSelected(GameEvent):
    unit: Any


@dataclass(frozen=True)
class UnitDeselected(GameEvent):
    unit: Any


@dataclass(frozen=True)
class UnitDamaged(GameEvent):
    unit: Any
    damage: int
    hp_remaining: int


@dataclass(frozen=True)
class UnitDied(GameEvent):
    unit: Any


@dataclass(frozen=True)
class UnitStatusChanged(GameEvent):
    unit: Any
    status: Enum


@dataclass(frozen=True)
class UnitActivated(GameEvent):
    unit: Any


@dataclass(frozen=True)
class UnitMoveStep(GameEvent):
    unit: Any
    from_tile: tuple[int, int]
    to_tile: tuple[int, int]


@dataclass(frozen=True)
class UnitMoveComplete(GameEvent):
    unit: Any
    path: tuple


# Combat

@dataclass(frozen=True)
class CombatDamage(GameEvent):
    attacker: Any
    target: Any
    damage: int
    attack_type: Enum


@dataclass(frozen=True)
class CombatMiss(GameEvent):
    attacker: Any
    target: Any
    attack_type: Enum


@dataclass(frozen=True)
class CombatKill(GameEvent):
    attacker: Any
    target: Any
    attack_type: Enum


@dataclass(frozen=True)
class CombatComplete(GameEvent):
    attacker: Any
    target: Any
    attack_type: Enum
    result: Any


@dataclass(frozen=True)
class OverwatchFired(GameEvent):
    watcher: Any
    mover: Any
    result: Any


# Flow

@dataclass(frozen=True)
class PhaseChanged(GameEvent):
    phase: Enum


@dataclass(frozen=True)
class ActivationStarted(GameEvent):
    unit: Any
    is_player: bool


@dataclass(frozen=True)
class MovementRangeShown(GameEvent):
    unit: Any
    tiles: tuple


@dataclass(frozen=True)
class ActionsAvailable(GameEvent):
    unit: Any
    actions: Any


@dataclass(frozen=True)
class TargetsShown(GameEvent):
    unit: Any
    attack_type: Enum
    targets: tuple


@dataclass(frozen=True)
class AttackPreview(GameEvent):
    attacker: Any
    target: Optional[Any]
    chance: float
    breakdown: Any


@dataclass(frozen=True)
class HighlightsCleared(GameEvent):
    pass


@dataclass(frozen=True)
class TurnStarted(GameEvent):
    turn: int


@dataclass(frozen=True)
class TurnEnded(GameEvent):
    turn: int


@dataclass(frozen=True)
class GameOver(GameEvent):
    winner: str


EventCallback = Callable[[GameEvent], None]
Subscriber = Union[EventCallback, WeakMethod]


class EventChannel:
    """Synchronous dispatcher keyed by event class."""

    def __init__(self):
        self._subscribers: dict[type, list[Subscriber]] = defaultdict(list)
        self._catch_all: list[Subscriber] = []

    @staticmethod
    def _wrap(callback: EventCallback) -> Subscriber:
        if inspect.ismethod(callback):
            return WeakMethod(callback)
        return callback

    def subscribe(self, event_type: type, callback: EventCallback):
        """Call ``callback`` for every published ``event_type`` (or subclass)."""
        if not (isinstance(event_type, type) and issubclass(event_type, GameEvent)):
            raise TypeError(f"{event_type!r} is not a GameEvent type")
        self._subscribers[event_type].append(self._wrap(callback))

    def subscribe_all(self, callback: EventCallback):
        self._catch_all.append(self._wrap(callback))

    def unsubscribe(self, callback: EventCallback):
        for subs in list(self._subscribers.values()) + [self._catch_all]:
            for sub in list(subs):
                target = sub() if isinstance(sub, WeakMethod) else sub
                if target == callback:
                    subs.remove(sub)

    def publish(self, event: GameEvent):
        logger.debug(f"event {event.name}")
        for event_type, subs in list(self._subscribers.items()):
            if isinstance(event, event_type):
                self._dispatch(subs, event)
        self._dispatch(self._catch_all, event)

    @staticmethod
    def _dispatch(subs: list[Subscriber], event: GameEvent):
        for sub in list(subs):
            if isinstance(sub, WeakMethod):
                func = sub()
                if func is None:
                    subs.remove(sub)
                    continue
                func(event)
            else:
                sub(event)
